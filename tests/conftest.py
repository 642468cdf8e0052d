"""
Shared fixtures for the spatial_network tests.
"""

import pytest
import geopandas as gpd
from shapely.geometry import LineString

from spatial_network.network import from_lines


@pytest.fixture
def triangle():
    """Undirected triangle whose direct edge 0-2 is expensive (w = 5)."""
    lines = gpd.GeoDataFrame(
        {'w': [1.0, 1.0, 5.0], 'name': ['a', 'b', 'c']},
        geometry=[
            LineString([(0, 0), (1, 0)]),
            LineString([(1, 0), (1, 1)]),
            LineString([(0, 0), (1, 1)]),
        ],
        crs='EPSG:3857',
    )
    return from_lines(lines, directed=False)


@pytest.fixture
def chain_lines():
    """Three collinear segments from (0, 0) to (3, 0)."""
    return gpd.GeoDataFrame(
        {'name': ['a', 'b', 'c']},
        geometry=[
            LineString([(0, 0), (1, 0)]),
            LineString([(1, 0), (2, 0)]),
            LineString([(2, 0), (3, 0)]),
        ],
        crs='EPSG:3857',
    )


@pytest.fixture
def segment():
    """Single undirected edge from (0, 0) to (10, 0)."""
    return from_lines([LineString([(0, 0), (10, 0)])], directed=False, crs='EPSG:3857')


@pytest.fixture
def star():
    """Undirected star: centre (0, 0) and three spokes."""
    return from_lines(
        [
            LineString([(0, 0), (1, 0)]),
            LineString([(0, 0), (0, 1)]),
            LineString([(0, 0), (-1, -1)]),
        ],
        directed=False,
        crs='EPSG:3857',
    )
