"""
Network operations for spatial networks.

This module provides functions for creating spatial networks, rewriting
their structure, routing on them and analysing them.
"""

from .creation import *
from .structural import *
from .routing import *
from .analysis import *
