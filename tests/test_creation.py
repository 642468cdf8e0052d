"""
Tests for network creation and graph generators.
"""

import pytest
import numpy as np
import pandas as pd
import geopandas as gpd
import networkx as nx
from shapely.geometry import LineString, MultiLineString, Point, Polygon

from spatial_network.network import (
    from_lines, from_points, from_tables, from_networkx,
    sample_points, random_geometric_network, delaunay_network, gabriel_network,
)


class TestFromLines:
    """Test building networks from line layers."""

    def test_shared_ends(self, chain_lines):
        network = from_lines(chain_lines, directed=False)
        assert network.number_of_nodes() == 4
        assert network.number_of_edges() == 3
        assert network.crs == chain_lines.crs
        assert network.graph.edge_attributes(1) == {'name': 'b'}

    def test_multilines_are_split(self):
        lines = gpd.GeoDataFrame(
            {'name': ['m']},
            geometry=[MultiLineString([[(0, 0), (1, 0)], [(5, 5), (6, 5)]])],
        )
        network = from_lines(lines)
        assert network.number_of_edges() == 2
        assert network.number_of_nodes() == 4
        assert all(network.edges_table()['name'] == 'm')

    def test_tolerance_joins_ends(self):
        lines = [LineString([(0, 0), (1, 0)]), LineString([(1.0000001, 0), (2, 0)])]
        assert from_lines(lines).number_of_nodes() == 4

        network = from_lines(lines, tolerance=0.001)
        assert network.number_of_nodes() == 3
        assert network.graph.edge_geometry(1).coords[0] == network.graph.edge_geometry(0).coords[-1]

    def test_rejects_points(self):
        with pytest.raises(TypeError):
            from_lines([Point(0, 0)])


class TestFromTables:
    """Test building networks from points, tables and networkx graphs."""

    def test_from_points(self):
        network = from_points([Point(0, 0), Point(1, 0), Point(1, 1)], crs='EPSG:3857')
        assert network.number_of_edges() == 2
        assert network.graph.endpoints(1) == (1, 2)

    def test_from_tables(self):
        nodes = gpd.GeoDataFrame(
            {'label': ['a', 'b', 'c']},
            geometry=[Point(0, 0), Point(1, 0), Point(1, 1)],
            index=[10, 20, 30],
        )
        edges = pd.DataFrame({'from': [10, 20], 'to': [20, 30], 'kind': ['x', 'y']})
        network = from_tables(nodes, edges, directed=True)
        assert network.node_ids() == [10, 20, 30]
        assert network.graph.endpoints(1) == (20, 30)
        assert network.graph.node_attributes(30) == {'label': 'c'}
        assert network.graph.edge_attributes(0) == {'kind': 'x'}

    def test_from_networkx(self):
        G = nx.Graph(crs='EPSG:3857')
        G.add_node(0, x=0.0, y=0.0)
        G.add_node(1, x=1.0, y=0.0, label='end')
        G.add_edge(0, 1, geometry=LineString([(1, 0), (0, 0)]), kind='road')

        network = from_networkx(G)

        assert not network.directed
        assert network.crs is not None
        assert network.graph.node_attributes(1) == {'label': 'end'}
        line = network.graph.edge_geometry(0)
        assert line.coords[0] == (0.0, 0.0)
        assert network.graph.edge_attributes(0) == {'kind': 'road'}

    def test_from_networkx_named_nodes(self):
        G = nx.DiGraph()
        G.add_node('a', geometry=Point(0, 0))
        G.add_node('b', geometry=Point(0, 1))
        G.add_edge('a', 'b')
        network = from_networkx(G)
        assert network.directed
        assert sorted(network.nodes_table()['name']) == ['a', 'b']

    def test_from_networkx_mixed_keys(self):
        """Test that an integer key already taken as a handle falls back to a name."""
        G = nx.Graph()
        G.add_node('a', x=0.0, y=0.0)
        G.add_node(0, x=1.0, y=0.0)
        G.add_node(5, x=2.0, y=0.0)
        G.add_edge('a', 0)
        G.add_edge(0, 5)

        network = from_networkx(G)

        assert network.node_ids() == [0, 1, 5]
        assert network.graph.node_attributes(0) == {'name': 'a'}
        assert network.graph.node_attributes(1) == {'name': 0}
        assert network.graph.node_attributes(5) == {}
        assert network.number_of_edges() == 2

    def test_from_networkx_missing_location(self):
        G = nx.Graph()
        G.add_node(0)
        with pytest.raises(KeyError):
            from_networkx(G)


class TestGenerators:
    """Test random geometric, Delaunay and Gabriel networks."""

    @pytest.fixture
    def points(self):
        # (1, 0.2) sits inside the hull of the other three
        return [Point(0, 0), Point(2, 0), Point(1, 0.2), Point(1, 3)]

    def test_sample_points_inside_polygon(self):
        polygon = Polygon([(0, 0), (4, 0), (0, 4)])
        coords = sample_points(50, polygon, seed=1)
        assert coords.shape == (50, 2)
        assert all(polygon.contains(Point(x, y)) for x, y in coords)

    def test_random_geometric_reproducible(self):
        first = random_geometric_network(30, 0.3, (0, 0, 1, 1), seed=42)
        second = random_geometric_network(30, 0.3, (0, 0, 1, 1), seed=42)
        assert first.edges_table()[['source', 'target']].equals(second.edges_table()[['source', 'target']])

    def test_random_geometric_threshold(self):
        network = random_geometric_network(40, 0.25, (0, 0, 1, 1), directed=False, seed=7)
        edges = network.edges_table()
        assert (edges['length'] < 0.25).all()
        assert (edges['source'] < edges['target']).all()
        assert not network.directed

    def test_random_geometric_directed_doubles_edges(self):
        undirected = random_geometric_network(40, 0.25, (0, 0, 1, 1), directed=False, seed=7)
        directed = random_geometric_network(40, 0.25, (0, 0, 1, 1), directed=True, seed=7)
        assert directed.number_of_edges() == 2 * undirected.number_of_edges()

    def test_random_geometric_bounds_crs(self):
        bounds = gpd.GeoDataFrame(geometry=[Polygon([(0, 0), (10, 0), (10, 10), (0, 10)])], crs='EPSG:3857')
        network = random_geometric_network(10, 3, bounds, seed=0)
        assert network.crs == bounds.crs

    def test_delaunay(self, points):
        network = delaunay_network(points)
        assert network.number_of_nodes() == 4
        assert network.number_of_edges() == 6
        assert not network.directed

    def test_gabriel_subset_of_delaunay(self, points):
        network = gabriel_network(points)
        pairs = {tuple(sorted(network.graph.endpoints(e))) for e in network.edge_ids()}
        assert pairs == {(0, 2), (1, 2), (2, 3)}
        lengths = network.edges_table()['length']
        assert np.allclose(lengths, network.edges_table().geometry.length)

    def test_too_few_points(self):
        with pytest.raises(ValueError):
            delaunay_network([Point(0, 0), Point(1, 1)])
