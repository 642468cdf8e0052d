"""
Tests for the core data structures.

Tests cover:
- Geometry store reprojection
- Graph store mutations, removal policies, merging and splitting
- Spatial index freshness and exact queries
- SpatialNetwork tables and table verbs
"""

import math

import pytest
import numpy as np
import pandas as pd
import networkx as nx
from shapely.geometry import LineString, Point, box

from spatial_network import (
    SpatialNetwork, Table, CRSError, DanglingEdgeError,
)
from spatial_network.core import GeometryStore, GraphStore, SpatialIndex, normalize_crs, NODES, EDGES


class TestGeometryStore:
    """Test geometry storage and reprojection."""

    def test_normalize_crs(self):
        """Test CRS parsing from strings and integers."""
        assert normalize_crs(None) is None
        assert normalize_crs('EPSG:4326') == normalize_crs(4326)

    def test_invalid_crs(self):
        """Test that an unparseable CRS raises CRSError."""
        with pytest.raises(CRSError):
            normalize_crs('not a crs')

    def test_reproject(self):
        """Test that nodes and edges are transformed together."""
        store = GeometryStore('EPSG:4326')
        store.set_node(0, Point(0, 0))
        store.set_node(1, Point(1, 0))
        store.set_edge(0, LineString([(0, 0), (1, 0)]))

        projected = store.reproject('EPSG:3857', endpoints={0: (0, 1)})

        assert projected.crs == normalize_crs('EPSG:3857')
        assert projected.get_node(1).x == pytest.approx(111319.49, abs=0.01)
        line = projected.get_edge(0)
        assert line.coords[0] == projected.get_node(0).coords[0]
        assert line.coords[-1] == projected.get_node(1).coords[0]
        # The source store is untouched
        assert store.get_node(1).x == 1

    def test_reproject_without_crs(self):
        """Test that reprojection from an undefined CRS fails."""
        store = GeometryStore()
        store.set_node(0, Point(0, 0))
        with pytest.raises(CRSError):
            store.reproject('EPSG:3857')

    def test_unknown_table(self):
        """Test that only nodes and edges tables exist."""
        store = GeometryStore()
        with pytest.raises(ValueError):
            store.get(0, 'faces')


class TestGraphStore:
    """Test topology mutations."""

    def test_add_node_and_edge(self):
        """Test handles and incidence after additions."""
        graph = GraphStore()
        a = graph.add_node(Point(0, 0))
        b = graph.add_node((1, 0))
        e = graph.add_edge(a, b, attrs={'name': 'x'})

        assert (a, b, e) == (0, 1, 0)
        assert graph.endpoints(e) == (a, b)
        assert graph.out_edges(a) == {e}
        assert graph.in_edges(b) == {e}
        assert list(graph.edge_geometry(e).coords) == [(0.0, 0.0), (1.0, 0.0)]
        assert graph.edge_attributes(e) == {'name': 'x'}

    def test_add_edge_missing_node(self):
        """Test that edges need existing nodes."""
        graph = GraphStore()
        a = graph.add_node(Point(0, 0))
        with pytest.raises(KeyError):
            graph.add_edge(a, 7)

    def test_add_edge_dangling_geometry(self):
        """Test that edge geometry must end at its nodes."""
        graph = GraphStore()
        a = graph.add_node(Point(0, 0))
        b = graph.add_node(Point(1, 0))
        with pytest.raises(DanglingEdgeError):
            graph.add_edge(a, b, LineString([(0, 0), (2, 0)]))
        assert graph.number_of_edges() == 0

    def test_neighbors_and_edges_between(self):
        """Test adjacency queries in directed and undirected stores."""
        for directed in (True, False):
            graph = GraphStore(directed=directed)
            a, b, c = (graph.add_node(Point(x, 0)) for x in range(3))
            ab = graph.add_edge(a, b)
            cb = graph.add_edge(c, b)
            assert graph.neighbors(b, mode='in') == {a, c}
            assert graph.neighbors(b, mode='out') == set()
            assert graph.neighbors(b) == {a, c}
            assert graph.edges_between(a, b) == [ab]
            assert graph.edges_between(b, c) == ([] if directed else [cb])

    def test_loop_degree(self):
        """Test that a loop counts twice in the degree but once as incident edge."""
        graph = GraphStore()
        a = graph.add_node(Point(0, 0))
        graph.add_edge(a, a, LineString([(0, 0), (1, 1), (1, 0), (0, 0)]))
        assert graph.degree(a) == 2
        assert len(graph.incident_edges(a)) == 1

    def test_remove_node_cascade(self):
        """Test that cascading removal drops incident edges and geometries."""
        graph = GraphStore()
        a, b, c = (graph.add_node(Point(x, 0)) for x in range(3))
        graph.add_edge(a, b)
        keep = graph.add_edge(b, c)
        graph.remove_node(a, policy='cascade')

        assert graph.edge_ids() == [keep]
        assert set(dict(graph.geometry.node_items())) == {b, c}
        assert set(dict(graph.geometry.edge_items())) == {keep}

    def test_remove_node_error_policy(self):
        """Test that the error policy refuses to orphan edges."""
        graph = GraphStore()
        a, b = (graph.add_node(Point(x, 0)) for x in range(2))
        graph.add_edge(a, b)
        with pytest.raises(DanglingEdgeError):
            graph.remove_node(a, policy='error')
        assert graph.has_node(a)

    def test_handles_are_not_reused(self):
        """Test that removed handles are never handed out again."""
        graph = GraphStore()
        for x in range(3):
            graph.add_node(Point(x, 0))
        graph.remove_node(2)
        assert graph.add_node(Point(5, 0)) == 3

    def test_version_changes_on_mutation(self):
        """Test that every mutation bumps the version."""
        graph = GraphStore()
        before = graph.version
        a = graph.add_node(Point(0, 0))
        assert graph.version > before
        before = graph.version
        graph.remove_node(a)
        assert graph.version > before

    def test_merge_nodes(self):
        """Test folding a coincident node into another."""
        graph = GraphStore()
        a = graph.add_node(Point(0, 0), {'name': 'a'})
        b = graph.add_node(Point(1, 0), {'name': 'b'})
        c = graph.add_node(Point(1, 0), {'ref': 7})
        e = graph.add_edge(a, c)

        assert graph.merge_nodes(b, c) == b
        assert not graph.has_node(c)
        assert graph.endpoints(e) == (a, b)
        assert graph.node_attributes(b) == {'name': 'b', 'ref': 7}

    def test_merge_nodes_too_far(self):
        """Test that merging distant nodes fails without changing the store."""
        graph = GraphStore()
        a = graph.add_node(Point(0, 0))
        b = graph.add_node(Point(1, 0))
        c = graph.add_node(Point(5, 5))
        e = graph.add_edge(a, c)
        version = graph.version

        with pytest.raises(DanglingEdgeError):
            graph.merge_nodes(b, c)

        assert graph.has_node(c)
        assert graph.endpoints(e) == (a, c)
        assert graph.version == version

    def test_split_edge_at_vertex(self):
        """Test splitting at an interior vertex."""
        graph = GraphStore()
        a = graph.add_node(Point(0, 0))
        b = graph.add_node(Point(2, 0))
        e = graph.add_edge(a, b, LineString([(0, 0), (1, 1), (2, 0)]), {'name': 'x'})

        node, left, right = graph.split_edge(e, vertex_index=1)

        assert not graph.has_edge(e)
        assert graph.node_geometry(node).coords[0] == (1.0, 1.0)
        assert graph.endpoints(left) == (a, node)
        assert graph.endpoints(right) == (node, b)
        assert graph.edge_attributes(left) == {'name': 'x'}
        assert graph.edge_attributes(right) == {'name': 'x'}

    def test_split_edge_at_point_updates_length(self):
        """Test splitting at a projected point recomputes stored lengths."""
        graph = GraphStore()
        a = graph.add_node(Point(0, 0))
        b = graph.add_node(Point(4, 0))
        e = graph.add_edge(a, b, attrs={'length': 4.0})

        node, left, right = graph.split_edge(e, point=Point(1, 3))

        assert graph.node_geometry(node).coords[0] == (1.0, 0.0)
        assert graph.edge_attributes(left)['length'] == pytest.approx(1.0)
        assert graph.edge_attributes(right)['length'] == pytest.approx(3.0)

    def test_split_edge_needs_one_location(self):
        """Test that exactly one split location is required."""
        graph = GraphStore()
        a = graph.add_node(Point(0, 0))
        b = graph.add_node(Point(4, 0))
        e = graph.add_edge(a, b)
        with pytest.raises(ValueError):
            graph.split_edge(e)

    def test_copy_is_independent(self):
        """Test that mutating a copy leaves the original untouched."""
        graph = GraphStore()
        a = graph.add_node(Point(0, 0), {'name': 'a'})
        other = graph.copy()
        other.node_attributes(a)['name'] = 'changed'
        other.add_node(Point(1, 1))
        assert graph.node_attributes(a) == {'name': 'a'}
        assert graph.number_of_nodes() == 1


class TestSpatialIndex:
    """Test the STR-tree index."""

    def test_nearest_skips_removed_nodes(self, triangle):
        """Test that the index is rebuilt after a removal."""
        assert triangle.index.nearest(Point(0.1, 0.1), NODES) == 0
        triangle.graph.remove_node(0)
        assert triangle.index.nearest(Point(0.1, 0.1), NODES) == 1

    def test_nearest_tie_lowest_handle(self, triangle):
        """Test that equidistant nodes resolve to the lowest handle."""
        # (1, 0.5) is 0.5 away from nodes 1 and 2
        assert triangle.index.nearest(Point(1, 0.5), NODES) == 1

    def test_nearest_on_empty_table(self):
        """Test that an empty table has no nearest feature."""
        index = SpatialIndex(GraphStore())
        assert index.nearest(Point(0, 0), EDGES) is None

    def test_within_is_exact(self, triangle):
        """Test that bounding-box candidates are filtered exactly."""
        # The box covers the envelope of edge 2 but touches none of its points
        area = box(0.6, -0.5, 2, 0.3)
        assert triangle.index.within(area, EDGES) == {0, 1}
        assert triangle.index.within(area, NODES) == {1}

    def test_staleness(self, triangle):
        """Test version tracking."""
        index = SpatialIndex(triangle.graph)
        assert not index.is_stale(triangle.graph)
        triangle.add_node(Point(3, 3))
        assert index.is_stale(triangle.graph)


class TestSpatialNetwork:
    """Test network tables and table verbs."""

    def test_tables(self, triangle):
        """Test node and edge tables."""
        nodes, edges = triangle.to_geodataframes()
        assert list(nodes.index) == [0, 1, 2]
        assert nodes.index.name == 'node_id'
        assert list(edges.index) == [0, 1, 2]
        assert list(edges['source']) == [0, 1, 0]
        assert list(edges['target']) == [1, 2, 2]
        assert edges.crs == triangle.crs

    def test_empty_tables(self):
        """Test tables of an empty network."""
        network = SpatialNetwork(crs='EPSG:3857')
        assert len(network.nodes_table()) == 0
        assert list(network.edges_table().columns) == ['source', 'target', 'geometry']

    def test_table_names(self, triangle):
        """Test table selection by name."""
        assert len(triangle.table('edges')) == 3
        with pytest.raises(ValueError):
            triangle.table('faces')

    def test_filter_nodes_cascades(self, triangle):
        """Test that filtering nodes drops their edges."""
        result = triangle.filter(Table.NODES, lambda nodes: nodes.index != 1)
        assert result.node_ids() == [0, 2]
        assert result.edge_ids() == [2]
        assert triangle.number_of_nodes() == 3

    def test_filter_edges_keeps_nodes(self, triangle):
        """Test that filtering edges keeps every node."""
        result = triangle.filter(Table.EDGES, lambda edges: edges['w'] < 2)
        assert result.edge_ids() == [0, 1]
        assert result.number_of_nodes() == 3

    def test_filter_bad_mask(self, triangle):
        """Test that mask length must match the table."""
        with pytest.raises(ValueError):
            triangle.filter(Table.EDGES, [True, False])

    def test_mutate(self, triangle):
        """Test adding columns from scalars, sequences and callables."""
        result = triangle.mutate(
            Table.EDGES,
            kind='road',
            rank=[3, 2, 1],
            double=lambda edges: edges['w'] * 2,
        )
        edges = result.edges_table()
        assert list(edges['kind']) == ['road'] * 3
        assert list(edges['rank']) == [3, 2, 1]
        assert list(edges['double']) == [2.0, 2.0, 10.0]
        assert 'kind' not in triangle.edges_table().columns

    def test_mutate_reserved(self, triangle):
        """Test that geometry and endpoints cannot be overwritten."""
        with pytest.raises(ValueError):
            triangle.mutate(Table.EDGES, source=0)

    def test_select(self, triangle):
        """Test keeping only some attributes."""
        result = triangle.select(Table.EDGES, 'w')
        assert list(result.edges_table().columns) == ['source', 'target', 'w', 'geometry']

    def test_filter_spatial(self, triangle):
        """Test spatial filtering with a predicate."""
        result = triangle.filter_spatial(Table.NODES, box(-0.5, -0.5, 1.5, 0.5), predicate='within')
        assert result.node_ids() == [0, 1]
        assert result.edge_ids() == [0]
        with pytest.raises(ValueError):
            triangle.filter_spatial(Table.NODES, box(0, 0, 1, 1), predicate='near')

    def test_to_crs(self):
        """Test network reprojection keeps edge ends on nodes."""
        network = SpatialNetwork(directed=False, crs='EPSG:4326')
        a = network.add_node(Point(0, 0))
        b = network.add_node(Point(1, 1))
        e = network.add_edge(a, b)

        projected = network.to_crs('EPSG:3857')

        line = projected.graph.edge_geometry(e)
        assert line.coords[-1] == projected.graph.node_geometry(b).coords[0]
        assert projected.graph.node_geometry(b).x == pytest.approx(111319.49, abs=0.01)
        assert network.graph.node_geometry(b).x == 1

    def test_to_crs_without_crs(self):
        """Test that a network without CRS cannot be reprojected."""
        network = SpatialNetwork()
        network.add_node(Point(0, 0))
        with pytest.raises(CRSError):
            network.to_crs('EPSG:3857')

    def test_to_networkx(self, triangle):
        """Test conversion to a networkx multigraph."""
        G = triangle.to_networkx()
        assert isinstance(G, nx.MultiGraph)
        assert G.number_of_edges() == 3
        assert G.nodes[2]['x'] == 1.0
        assert G.edges[0, 2, 2]['w'] == 5.0

    def test_from_geodataframes(self, triangle):
        """Test rebuilding a network from its own tables."""
        nodes, edges = triangle.to_geodataframes()
        rebuilt = SpatialNetwork.from_geodataframes(nodes, edges, directed=False)
        assert rebuilt.node_ids() == triangle.node_ids()
        assert rebuilt.graph.endpoints(2) == (0, 2)
        assert rebuilt.graph.edge_attributes(2)['name'] == 'c'

    def test_from_geodataframes_without_edge_geometry(self, triangle):
        """Test that edges without geometry get straight lines."""
        nodes = triangle.nodes_table()
        edges = pd.DataFrame({'source': [0], 'target': [2]})
        network = SpatialNetwork.from_geodataframes(nodes, edges)
        assert network.graph.edge_length(0) == pytest.approx(math.sqrt(2))

    def test_copy_keeps_handles(self, triangle):
        """Test copies share handles but not state."""
        other = triangle.copy()
        other.graph.remove_edge(0)
        assert triangle.edge_ids() == [0, 1, 2]
        assert other.edge_ids() == [1, 2]
        assert np.isclose(other.graph.total_length(), 1 + math.sqrt(2))
