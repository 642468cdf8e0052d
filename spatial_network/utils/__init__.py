"""
Utility functions for the spatial_network package.

This module provides geometry helpers, attribute merging and logging setup used
throughout the package.
"""

from .geometry import *
from .attributes import *
from .log import *
