"""
Pipeline for cleaning spatial networks.

This module chains the structural operations into a configurable
cleaning pipeline.
"""

from .pipeline import PipelineStep, PipelineConfig, CleaningPipeline

__all__ = ['PipelineStep', 'PipelineConfig', 'CleaningPipeline']
