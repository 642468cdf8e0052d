"""
Spatial Network - A Python package for building, cleaning and routing on spatial networks.
"""

__version__ = '0.1.0'

# Import main submodules for easy access
from . import core
from . import io
from . import network
from . import pipeline
from . import utils

from .core.network import SpatialNetwork, Table
from .network_config import (
    SpatialNetworkError, CRSError, DanglingEdgeError,
    GeometryMismatchError, NoPathError, PipelineConfigError,
)
