"""
Cleaning pipeline for spatial networks.

The pipeline chains the structural operations that turn raw line data
into a routable network:

1. Reprojection to a metric CRS
2. Removal of loops and multiple edges
3. Subdivision at shared vertices
4. Smoothing of pseudo nodes
5. Selection of the largest connected component
6. Removal of isolated nodes

Each step can be disabled or parametrised through the configuration, and
steps can also be run on their own.
"""

import os
import copy
import json
import time
import logging
from typing import Any, Callable, Dict, List, Optional, Union

from ..core.network import SpatialNetwork
from ..network.structural import simplify, subdivide, smooth, largest_component, remove_isolated
from ..network_config import CLEANING_CONFIG, PipelineConfigError
from ..utils.log import setup_logger


class PipelineStep:
    """A single step of the pipeline."""

    def __init__(self, name: str, function: Callable, enabled: bool = True, params: Dict = None):
        """
        Initialize a pipeline step.

        Args:
            name: Step name
            function: Function called with the pipeline context and the params
            enabled: Whether the step runs
            params: Keyword arguments for the function
        """
        self.name = name
        self.function = function
        self.enabled = enabled
        self.params = params or {}
        self.result = None
        self.execution_time = 0
        self.status = "pending"
        self.error = None

    def execute(self, pipeline_context: Dict) -> Any:
        """
        Run the step.

        Args:
            pipeline_context: Pipeline context

        Returns:
            Result of the step function, or None when the step is disabled
        """
        if not self.enabled:
            self.status = "skipped"
            return None

        try:
            self.status = "running"
            start_time = time.time()

            self.result = self.function(pipeline_context, **self.params)

            self.execution_time = time.time() - start_time
            self.status = "completed"
            return self.result

        except Exception as e:
            self.status = "failed"
            self.error = str(e)
            logging.getLogger(__name__).error(f"Error in step '{self.name}': {e}")
            raise


class PipelineConfig:
    """Configuration of the cleaning pipeline, merged over the defaults."""

    def __init__(self, config_dict: Dict = None, config_file: str = None):
        """
        Initialize a pipeline configuration.

        Args:
            config_dict: Configuration overrides
            config_file: Path to a JSON file with configuration overrides

        Raises:
            PipelineConfigError: If the file is missing or a step is unknown
        """
        self.config = copy.deepcopy(CLEANING_CONFIG)

        if config_file:
            if not os.path.exists(config_file):
                raise PipelineConfigError(f"Configuration file not found: {config_file}")
            with open(config_file, 'r') as f:
                self._update(json.load(f))

        if config_dict:
            self._update(config_dict)

    def _update(self, overrides: Dict):
        known = {step['name']: step for step in self.config['steps']}
        for key, value in overrides.items():
            if key != 'steps':
                self.config[key] = value
                continue
            for step in value:
                name = step.get('name')
                if name not in known:
                    raise PipelineConfigError(f"Unknown pipeline step: {name!r}")
                if 'enabled' in step:
                    known[name]['enabled'] = bool(step['enabled'])
                if 'params' in step:
                    known[name]['params'].update(step['params'])

    def step_names(self) -> List[str]:
        """Names of the configured steps in execution order."""
        return [step['name'] for step in self.config['steps']]

    def get_step_config(self, step_name: str) -> Dict:
        """
        Get the parameters of a step.

        Args:
            step_name: Step name

        Returns:
            Step parameters
        """
        for step in self.config['steps']:
            if step['name'] == step_name:
                return dict(step.get('params', {}))
        raise PipelineConfigError(f"Unknown pipeline step: {step_name!r}")

    def is_step_enabled(self, step_name: str) -> bool:
        """
        Check whether a step is enabled.

        Args:
            step_name: Step name

        Returns:
            True if the step runs
        """
        for step in self.config['steps']:
            if step['name'] == step_name:
                return step.get('enabled', True)
        raise PipelineConfigError(f"Unknown pipeline step: {step_name!r}")

    def get_global_config(self) -> Dict:
        """
        Get the pipeline-wide settings.

        Returns:
            Configuration without the step list
        """
        config = self.config.copy()
        del config['steps']
        return config


def _reproject(context: Dict, crs=None) -> SpatialNetwork:
    if crs is None:
        raise PipelineConfigError("The reproject step needs a target 'crs'")
    context['network'] = context['network'].to_crs(crs)
    return context['network']


def _simplify(context: Dict) -> SpatialNetwork:
    context['network'] = simplify(context['network'])
    return context['network']


def _subdivide(context: Dict, tolerance: Optional[float] = None) -> SpatialNetwork:
    context['network'] = subdivide(context['network'], tolerance=tolerance)
    return context['network']


def _smooth(context: Dict, summarise_attributes=None, cleanup: bool = False,
            require_equal: Optional[List[str]] = None) -> SpatialNetwork:
    context['network'] = smooth(context['network'], summarise_attributes=summarise_attributes,
                                cleanup=cleanup, require_equal=require_equal)
    return context['network']


def _largest_component(context: Dict) -> SpatialNetwork:
    context['network'] = largest_component(context['network'])
    return context['network']


def _remove_isolated(context: Dict) -> SpatialNetwork:
    context['network'] = remove_isolated(context['network'])
    return context['network']


STEP_FUNCTIONS = {
    'reproject': _reproject,
    'simplify': _simplify,
    'subdivide': _subdivide,
    'smooth': _smooth,
    'largest_component': _largest_component,
    'remove_isolated': _remove_isolated,
}


class CleaningPipeline:
    """Pipeline that cleans a spatial network step by step."""

    def __init__(self, config: Union[Dict, PipelineConfig, str] = None):
        """
        Initialize a cleaning pipeline.

        Args:
            config: Configuration (dict, PipelineConfig or path to a JSON file)
        """
        if isinstance(config, dict):
            self.config = PipelineConfig(config_dict=config)
        elif isinstance(config, PipelineConfig):
            self.config = config
        elif isinstance(config, str):
            self.config = PipelineConfig(config_file=config)
        else:
            self.config = PipelineConfig()

        self.context = {
            'network': None,   # Network being cleaned
            'input': None,     # Network given to run()
            'stats': {},       # Node and edge counts after each step
        }

        self.logger = self._setup_logger()

        self.steps = []
        self._setup_steps()

    def _setup_logger(self) -> logging.Logger:
        """
        Configure the pipeline logger.

        Returns:
            Configured logger
        """
        return setup_logger('spatial_network.pipeline', self.config.get_global_config().get('logger'))

    def _setup_steps(self):
        """Build the steps from the configuration."""
        self.steps = [
            PipelineStep(name, STEP_FUNCTIONS[name],
                         enabled=self.config.is_step_enabled(name),
                         params=self.config.get_step_config(name))
            for name in self.config.step_names()
        ]

    def _record(self, step: PipelineStep):
        network = self.context['network']
        self.context['stats'][step.name] = {
            'nodes': network.number_of_nodes(),
            'edges': network.number_of_edges(),
            'time': step.execution_time,
        }
        self.logger.info(f"Step {step.name} finished in {step.execution_time:.2f}s: "
                         f"{network.number_of_nodes()} nodes, {network.number_of_edges()} edges")

    def run(self, network: SpatialNetwork) -> SpatialNetwork:
        """
        Run every enabled step on a network.

        Args:
            network: Network to clean; it is not modified

        Returns:
            Cleaned network
        """
        self.logger.info("Starting cleaning pipeline")
        start_time = time.time()
        self.context['input'] = network
        self.context['network'] = network
        self.context['stats'] = {}

        for step in self.steps:
            if step.enabled:
                self.logger.info(f"Running step: {step.name}")
                try:
                    step.execute(self.context)
                    self._record(step)
                except Exception:
                    if self.config.config.get('stop_on_error', True):
                        raise
            else:
                self.logger.info(f"Step {step.name} disabled")

        total_time = time.time() - start_time
        self.logger.info(f"Pipeline finished in {total_time:.2f}s")

        return self.context['network']

    def run_step(self, step_name: str, network: Optional[SpatialNetwork] = None) -> SpatialNetwork:
        """
        Run a single step, whether or not it is enabled.

        Args:
            step_name: Step name
            network: Network to process; defaults to the current context network

        Returns:
            Network produced by the step
        """
        if network is not None:
            self.context['network'] = network
        if self.context['network'] is None:
            raise PipelineConfigError("No network to process")

        for step in self.steps:
            if step.name == step_name:
                self.logger.info(f"Running step: {step.name}")
                step.enabled = True
                try:
                    result = step.execute(self.context)
                finally:
                    step.enabled = self.config.is_step_enabled(step_name)
                self._record(step)
                return result

        raise PipelineConfigError(f"Unknown pipeline step: {step_name!r}")
