"""
Default configuration for spatial networks.

This module defines the settings shared by the network structure, the
structural operations, routing and the cleaning pipeline:
1. Tolerances used to decide when two coordinates coincide
2. Default policies for node removal and attribute merging
3. Routing defaults
4. Cleaning pipeline steps and logging
"""

# Settings for the network structure and structural operations
NETWORK_CONFIG = {
    # Coordinates closer than this are the same vertex during subdivision,
    # construction from lines and blending. 0.0 means exact equality.
    'coincidence_tolerance': 0.0,
    # Maximum distance between an edge end and the node it references
    'endpoint_tolerance': 1e-9,
    # What happens to incident edges when a node is removed: cascade, error
    'remove_policy': 'cascade',
    # How edge attributes are combined when smoothing concatenates edges
    'summarise_attributes': 'concat',
    # Attribute name under which geometric edge lengths are stored
    'length_attribute': 'length',
}

# Settings for routing
ROUTING_CONFIG = {
    # Worker threads for cost matrices (1 disables the pool)
    'num_workers': 1,
    # Raise NoPathError instead of returning empty paths
    'strict': False,
}

# Settings for the cleaning pipeline
CLEANING_CONFIG = {
    'steps': [
        {'name': 'reproject', 'enabled': False, 'params': {'crs': None}},
        {'name': 'simplify', 'enabled': True, 'params': {}},
        {'name': 'subdivide', 'enabled': True, 'params': {}},
        {'name': 'smooth', 'enabled': True, 'params': {'cleanup': True}},
        {'name': 'largest_component', 'enabled': True, 'params': {}},
        {'name': 'remove_isolated', 'enabled': False, 'params': {}},
    ],
    'stop_on_error': True,
}

# Settings for logging
LOGGING_CONFIG = {
    'level': 'INFO',
    'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    'console': True,
    'file': None,
}


# Error classes for spatial networks
class SpatialNetworkError(Exception):
    """Base error for spatial network operations."""
    pass

class CRSError(SpatialNetworkError):
    """Missing or incompatible coordinate reference system."""
    pass

class DanglingEdgeError(SpatialNetworkError):
    """An edge end does not agree with the node it references."""
    pass

class GeometryMismatchError(SpatialNetworkError):
    """Two edge geometries cannot be concatenated."""
    pass

class NoPathError(SpatialNetworkError):
    """No path exists between two nodes."""
    pass

class PipelineConfigError(SpatialNetworkError):
    """Error in the cleaning pipeline configuration."""
    pass
