"""
Graph storage for spatial networks.

This module provides the topological half of a spatial network: integer
node and edge handles, edge endpoints and an incidence index. Every
mutation also updates the owned GeometryStore, so topology and geometry
change together.
"""

import logging
import math

from shapely.geometry import Point

from .geometry_store import GeometryStore
from ..network_config import NETWORK_CONFIG, DanglingEdgeError
from ..utils.attributes import merge_attributes
from ..utils.geometry import (
    coords_coincide,
    snap_line_endpoints,
    split_line_at_distance,
    split_line_at_vertex,
    straight_line,
)

logger = logging.getLogger(__name__)


class NodeRecord:
    """
    A node of a spatial network. Its geometry lives in the GeometryStore.
    """

    def __init__(self, node_id, attributes=None):
        self.id = node_id
        self.attributes = attributes or {}

    def __repr__(self):
        return f"NodeRecord(id={self.id})"


class EdgeRecord:
    """
    An edge of a spatial network, stored with a fixed orientation.
    """

    def __init__(self, edge_id, source, target, attributes=None):
        self.id = edge_id
        self.source = source
        self.target = target
        self.attributes = attributes or {}

    def __repr__(self):
        return f"EdgeRecord(id={self.id}, source={self.source}, target={self.target})"


class GraphStore:
    """
    Nodes, edges and incidence of a spatial network.
    """

    def __init__(self, crs=None, directed=True, endpoint_tolerance=None):
        """
        Initialize a GraphStore.

        Parameters
        ----------
        crs : str, int or pyproj.CRS, optional
            Coordinate reference system of the geometries
        directed : bool, optional
            Whether edges are directed
        endpoint_tolerance : float, optional
            Allowed distance between an edge end and its node
        """
        self.geometry = GeometryStore(crs)
        self.directed = directed
        if endpoint_tolerance is None:
            endpoint_tolerance = NETWORK_CONFIG['endpoint_tolerance']
        self.endpoint_tolerance = endpoint_tolerance
        self.version = 0

        self._nodes = {}
        self._edges = {}
        self._out = {}
        self._in = {}
        self._next_node_id = 0
        self._next_edge_id = 0

    # ------------------------------------------------------------------
    # Queries

    @property
    def crs(self):
        return self.geometry.crs

    def node_ids(self):
        return list(self._nodes)

    def edge_ids(self):
        return list(self._edges)

    def number_of_nodes(self):
        return len(self._nodes)

    def number_of_edges(self):
        return len(self._edges)

    def has_node(self, node_id):
        return node_id in self._nodes

    def has_edge(self, edge_id):
        return edge_id in self._edges

    def node(self, node_id):
        return self._nodes[node_id]

    def edge(self, edge_id):
        return self._edges[edge_id]

    def node_attributes(self, node_id):
        return self._nodes[node_id].attributes

    def edge_attributes(self, edge_id):
        return self._edges[edge_id].attributes

    def node_geometry(self, node_id):
        return self.geometry.get_node(node_id)

    def edge_geometry(self, edge_id):
        return self.geometry.get_edge(edge_id)

    def endpoints(self, edge_id):
        edge = self._edges[edge_id]
        return edge.source, edge.target

    def out_edges(self, node_id):
        return set(self._out[node_id])

    def in_edges(self, node_id):
        return set(self._in[node_id])

    def incident_edges(self, node_id):
        """Distinct edges touching a node; a loop is listed once."""
        return self._out[node_id] | self._in[node_id]

    def out_degree(self, node_id):
        return len(self._out[node_id])

    def in_degree(self, node_id):
        return len(self._in[node_id])

    def degree(self, node_id):
        """Edge ends at a node; a loop counts twice."""
        return len(self._out[node_id]) + len(self._in[node_id])

    def neighbors(self, node_id, mode='all'):
        """
        Nodes adjacent to ``node_id``.

        Parameters
        ----------
        node_id : int
            Node handle
        mode : str, optional
            'out' (successors), 'in' (predecessors) or 'all'
        """
        result = set()
        if mode in ('out', 'all'):
            result.update(self._edges[e].target for e in self._out[node_id])
        if mode in ('in', 'all'):
            result.update(self._edges[e].source for e in self._in[node_id])
        return result

    def edges_between(self, u, v):
        """Edges joining ``u`` to ``v`` (either way when undirected)."""
        found = [e for e in self._out[u] if self._edges[e].target == v]
        if not self.directed:
            found.extend(e for e in self._in[u] if self._edges[e].source == v and e not in found)
        return sorted(found)

    def edge_length(self, edge_id):
        return self.geometry.get_edge(edge_id).length

    # ------------------------------------------------------------------
    # Mutations

    def _touch(self):
        self.version += 1

    def add_node(self, geometry, attrs=None, node_id=None):
        """
        Add a node.

        Parameters
        ----------
        geometry : shapely.geometry.Point or sequence of float
            Location of the node
        attrs : dict, optional
            Node attributes
        node_id : int, optional
            Handle to use; must be unused. Defaults to the next free one.

        Returns
        -------
        int
            Handle of the new node
        """
        if not isinstance(geometry, Point):
            geometry = Point(geometry)
        if node_id is None:
            node_id = self._next_node_id
        elif node_id in self._nodes:
            raise ValueError(f"Node {node_id} already exists")
        self._next_node_id = max(self._next_node_id, node_id + 1)

        self._nodes[node_id] = NodeRecord(node_id, dict(attrs or {}))
        self._out[node_id] = set()
        self._in[node_id] = set()
        self.geometry.set_node(node_id, geometry)
        self._touch()
        return node_id

    def _check_endpoints(self, source, target, geometry):
        coords = list(geometry.coords)
        for end, node_id in ((coords[0], source), (coords[-1], target)):
            node_xy = self.geometry.get_node(node_id).coords[0]
            if not coords_coincide(end, node_xy, self.endpoint_tolerance):
                raise DanglingEdgeError(
                    f"Edge end {tuple(end)} does not match node {node_id} at {tuple(node_xy)}"
                )

    def add_edge(self, source, target, geometry=None, attrs=None, edge_id=None):
        """
        Add an edge between two existing nodes.

        Parameters
        ----------
        source : int
            Handle of the node the geometry starts at
        target : int
            Handle of the node the geometry ends at
        geometry : shapely.geometry.LineString, optional
            Edge geometry; a straight line between the nodes if omitted
        attrs : dict, optional
            Edge attributes
        edge_id : int, optional
            Handle to use; must be unused

        Returns
        -------
        int
            Handle of the new edge

        Raises
        ------
        KeyError
            If either node does not exist
        DanglingEdgeError
            If the geometry ends are not at the node locations
        """
        for node_id in (source, target):
            if node_id not in self._nodes:
                raise KeyError(f"Node {node_id} does not exist")
        if geometry is None:
            geometry = straight_line(self.geometry.get_node(source), self.geometry.get_node(target))
        else:
            self._check_endpoints(source, target, geometry)

        if edge_id is None:
            edge_id = self._next_edge_id
        elif edge_id in self._edges:
            raise ValueError(f"Edge {edge_id} already exists")
        self._next_edge_id = max(self._next_edge_id, edge_id + 1)

        self._edges[edge_id] = EdgeRecord(edge_id, source, target, dict(attrs or {}))
        self._out[source].add(edge_id)
        self._in[target].add(edge_id)
        self.geometry.set_edge(edge_id, geometry)
        self._touch()
        return edge_id

    def remove_edge(self, edge_id):
        edge = self._edges.pop(edge_id)
        self._out[edge.source].discard(edge_id)
        self._in[edge.target].discard(edge_id)
        self.geometry.remove_edge(edge_id)
        self._touch()

    def remove_node(self, node_id, policy=None):
        """
        Remove a node.

        Parameters
        ----------
        node_id : int
            Node handle
        policy : str, optional
            'cascade' removes incident edges, 'error' refuses to remove a
            node that still has edges. Defaults to the configured policy.

        Raises
        ------
        DanglingEdgeError
            With policy 'error' when the node has incident edges
        """
        if policy is None:
            policy = NETWORK_CONFIG['remove_policy']
        if policy not in ('cascade', 'error'):
            raise ValueError(f"Unknown remove policy {policy!r}")

        incident = self.incident_edges(node_id)
        if incident and policy == 'error':
            raise DanglingEdgeError(
                f"Node {node_id} still has {len(incident)} incident edge(s)"
            )
        for edge_id in sorted(incident):
            self.remove_edge(edge_id)

        del self._nodes[node_id]
        del self._out[node_id]
        del self._in[node_id]
        self.geometry.remove_node(node_id)
        self._touch()

    def merge_nodes(self, keep, fold, tolerance=None):
        """
        Fold node ``fold`` into node ``keep``.

        Every edge incident to ``fold`` is rewired to ``keep`` and its end
        snapped onto the location of ``keep``. Node attributes are merged.

        Parameters
        ----------
        keep : int
            Surviving node
        fold : int
            Node that disappears
        tolerance : float, optional
            Maximum distance between the rewired edge ends and ``keep``

        Returns
        -------
        int
            Handle of the surviving node

        Raises
        ------
        DanglingEdgeError
            If an edge end at ``fold`` is not at the location of ``keep``;
            the store is left unchanged
        """
        if keep == fold:
            return keep
        if tolerance is None:
            tolerance = max(self.endpoint_tolerance, NETWORK_CONFIG['coincidence_tolerance'])

        keep_xy = self.geometry.get_node(keep).coords[0]
        rewired = {}
        for edge_id in sorted(self.incident_edges(fold)):
            edge = self._edges[edge_id]
            coords = list(self.geometry.get_edge(edge_id).coords)
            start = keep_xy if edge.source == fold else coords[0]
            end = keep_xy if edge.target == fold else coords[-1]
            for original, snapped in ((coords[0], start), (coords[-1], end)):
                if not coords_coincide(original, snapped, tolerance):
                    raise DanglingEdgeError(
                        f"Cannot merge node {fold} into {keep}: edge {edge_id} ends at "
                        f"{tuple(original)}, not at {tuple(keep_xy)}"
                    )
            rewired[edge_id] = snap_line_endpoints(self.geometry.get_edge(edge_id), start, end)

        for edge_id, line in rewired.items():
            edge = self._edges[edge_id]
            if edge.source == fold:
                self._out[fold].discard(edge_id)
                self._out[keep].add(edge_id)
                edge.source = keep
            if edge.target == fold:
                self._in[fold].discard(edge_id)
                self._in[keep].add(edge_id)
                edge.target = keep
            self.geometry.set_edge(edge_id, line)

        self._nodes[keep].attributes = merge_attributes(
            [self._nodes[keep].attributes, self._nodes[fold].attributes]
        )
        self.remove_node(fold, policy='error')
        logger.debug(f"Merged node {fold} into {keep}")
        return keep

    def split_edge(self, edge_id, vertex_index=None, point=None, node_attrs=None):
        """
        Split an edge in two, joined by a new node.

        Exactly one of ``vertex_index`` (an interior vertex of the edge
        geometry) and ``point`` (projected onto the edge) must be given.

        Returns
        -------
        tuple of int
            (new node, edge from the old source, edge to the old target)
        """
        if (vertex_index is None) == (point is None):
            raise ValueError("Give exactly one of vertex_index and point")

        edge = self._edges[edge_id]
        line = self.geometry.get_edge(edge_id)
        if vertex_index is not None:
            left, right = split_line_at_vertex(line, vertex_index)
            split_xy = line.coords[vertex_index]
        else:
            left, right, split_xy = split_line_at_distance(line, line.project(point))

        source, target, attrs = edge.source, edge.target, edge.attributes
        length_attr = NETWORK_CONFIG['length_attribute']

        def piece_attrs(piece):
            new = dict(attrs)
            if length_attr in new:
                new[length_attr] = piece.length
            return new

        self.remove_edge(edge_id)
        node_id = self.add_node(Point(split_xy), node_attrs)
        left_id = self.add_edge(source, node_id, left, piece_attrs(left))
        right_id = self.add_edge(node_id, target, right, piece_attrs(right))
        return node_id, left_id, right_id

    # ------------------------------------------------------------------

    def set_geometry_store(self, store):
        """Replace the geometry store, e.g. after reprojection."""
        if set(dict(store.node_items())) != set(self._nodes) or set(dict(store.edge_items())) != set(self._edges):
            raise ValueError("Geometry store does not cover the same nodes and edges")
        self.geometry = store
        self._touch()

    def copy(self):
        """Independent copy of the store."""
        other = GraphStore(directed=self.directed, endpoint_tolerance=self.endpoint_tolerance)
        other.geometry = self.geometry.copy()
        other._nodes = {i: NodeRecord(i, dict(n.attributes)) for i, n in self._nodes.items()}
        other._edges = {
            i: EdgeRecord(i, e.source, e.target, dict(e.attributes)) for i, e in self._edges.items()
        }
        other._out = {i: set(s) for i, s in self._out.items()}
        other._in = {i: set(s) for i, s in self._in.items()}
        other._next_node_id = self._next_node_id
        other._next_edge_id = self._next_edge_id
        other.version = self.version
        return other

    def total_length(self):
        return math.fsum(line.length for _, line in self.geometry.edge_items())

    def __repr__(self):
        kind = 'directed' if self.directed else 'undirected'
        return f"GraphStore({kind}, nodes={len(self._nodes)}, edges={len(self._edges)})"
