"""
Input/output operations for spatial networks.

This module provides functions for loading networks from files and
map-data providers, and for saving them.
"""

from .loaders import *
from .exporters import *
