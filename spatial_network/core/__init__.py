"""
Core functionality for spatial_network.

This module contains the fundamental data structures that couple
graph topology with node and edge geometries.
"""

from .geometry_store import *
from .graph_store import *
from .index import *
from .network import *
