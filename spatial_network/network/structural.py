"""
Structural operations on spatial networks.

Each operation works on a copy of the network and returns it, so a
failure leaves the input untouched. Topology and geometry are rewritten
together through the GraphStore.
"""

import heapq
import logging
from collections import defaultdict

import networkx as nx
from typing import Callable, Dict, Iterable, Optional, Union

from ..core.network import SpatialNetwork
from ..network_config import NETWORK_CONFIG
from ..utils.attributes import merge_attributes
from ..utils.geometry import coord_key, concatenate_lines, orient_line, reverse_line

logger = logging.getLogger(__name__)


def simplify(network: SpatialNetwork) -> SpatialNetwork:
    """
    Remove loop edges and multiple edges.

    Of several edges joining the same pair of nodes (in the same direction
    when the network is directed) the shortest is kept; equal lengths are
    resolved by the lowest edge handle.

    Parameters
    ----------
    network : SpatialNetwork
        Network to simplify

    Returns
    -------
    SpatialNetwork
        Simplified copy
    """
    result = network.copy()
    graph = result.graph

    groups = defaultdict(list)
    loops = []
    for edge_id in sorted(graph.edge_ids()):
        source, target = graph.endpoints(edge_id)
        if source == target:
            loops.append(edge_id)
            continue
        key = (source, target) if graph.directed else tuple(sorted((source, target)))
        groups[key].append(edge_id)

    for edge_id in loops:
        graph.remove_edge(edge_id)

    removed = 0
    for edge_ids in groups.values():
        if len(edge_ids) < 2:
            continue
        keep = min(edge_ids, key=lambda e: (graph.edge_length(e), e))
        for edge_id in edge_ids:
            if edge_id != keep:
                graph.remove_edge(edge_id)
                removed += 1

    logger.info(f"Simplify removed {len(loops)} loop edges and {removed} multiple edges")
    return result


def _split_vertices(graph, tolerance):
    """Interior vertex indices of each edge that coincide with a vertex of another edge."""
    occurrences = defaultdict(set)
    for edge_id, line in graph.geometry.edge_items():
        for xy in line.coords:
            occurrences[coord_key(xy, tolerance)].add(edge_id)

    splits = {}
    for edge_id, line in graph.geometry.edge_items():
        coords = list(line.coords)
        indices = [
            i for i in range(1, len(coords) - 1)
            if occurrences[coord_key(coords[i], tolerance)] - {edge_id}
        ]
        if indices:
            splits[edge_id] = indices
    return splits


def subdivide(network: SpatialNetwork, tolerance: Optional[float] = None) -> SpatialNetwork:
    """
    Split edges at interior vertices shared with other edges.

    An interior vertex of one edge that coincides with any vertex of
    another edge becomes a node. Split points at the same location become
    one node; a split point at the location of an existing node is folded
    into that node. Edges that cross without sharing a vertex are not split.
    The process repeats until no edge has such a vertex left.

    Parameters
    ----------
    network : SpatialNetwork
        Network to subdivide
    tolerance : float, optional
        Distance under which vertices coincide; defaults to the configured
        coincidence tolerance (exact match when 0)

    Returns
    -------
    SpatialNetwork
        Subdivided copy
    """
    if tolerance is None:
        tolerance = NETWORK_CONFIG['coincidence_tolerance']
    merge_tolerance = max(NETWORK_CONFIG['endpoint_tolerance'], 2 * tolerance)

    result = network.copy()
    graph = result.graph
    passes = 0

    while True:
        splits = _split_vertices(graph, tolerance)
        if not splits:
            break
        passes += 1

        existing = defaultdict(list)
        for node_id, point in graph.geometry.node_items():
            existing[coord_key(point.coords[0], tolerance)].append(node_id)

        created = []
        for edge_id in sorted(splits):
            current = edge_id
            # Descending, so the left piece keeps the remaining indices valid
            for vertex_index in sorted(splits[edge_id], reverse=True):
                node_id, current, _ = graph.split_edge(current, vertex_index=vertex_index)
                created.append(node_id)

        at_location = defaultdict(list)
        for node_id in created:
            at_location[coord_key(graph.node_geometry(node_id).coords[0], tolerance)].append(node_id)

        for key, node_ids in at_location.items():
            if existing.get(key):
                keep = min(existing[key])
            else:
                keep = min(node_ids)
            for node_id in sorted(node_ids):
                if node_id != keep:
                    graph.merge_nodes(keep, node_id, tolerance=merge_tolerance)

        logger.debug(f"Subdivision pass {passes}: split {len(splits)} edges at {len(created)} vertices")

    logger.info(f"Subdivide finished after {passes} pass(es): "
                f"{graph.number_of_nodes()} nodes, {graph.number_of_edges()} edges")
    return result


def _pseudo_edges(graph, node_id, require_equal):
    """The two edges to concatenate at a pseudo node, or None if the node is not one."""
    if graph.directed:
        ins = graph.in_edges(node_id)
        outs = graph.out_edges(node_id)
        if len(ins) != 1 or len(outs) != 1 or ins == outs:
            return None
        pair = (next(iter(ins)), next(iter(outs)))
    else:
        incident = sorted(graph.incident_edges(node_id))
        if len(incident) != 2:
            return None
        if any(graph.endpoints(e)[0] == graph.endpoints(e)[1] for e in incident):
            return None
        pair = tuple(incident)

    if require_equal:
        first, second = (graph.edge_attributes(e) for e in pair)
        for key in require_equal:
            if first.get(key) != second.get(key):
                return None
    return pair


def _other_end(graph, edge_id, node_id):
    source, target = graph.endpoints(edge_id)
    return target if source == node_id else source


def smooth(network: SpatialNetwork,
           summarise_attributes: Optional[Union[str, Callable, Dict]] = None,
           cleanup: bool = False,
           require_equal: Optional[Iterable[str]] = None) -> SpatialNetwork:
    """
    Remove pseudo nodes, concatenating the edges on either side.

    A pseudo node has exactly one incoming and one outgoing edge (directed)
    or exactly two incident edges, neither of them a loop (undirected).
    The replacing edge follows the traversal order of the two originals;
    in undirected networks their geometries are reversed where needed.

    Parameters
    ----------
    network : SpatialNetwork
        Network to smooth
    summarise_attributes : str, callable or dict, optional
        How attributes of the two edges are combined (see
        ``merge_attributes``); defaults to the configured rule
    cleanup : bool, optional
        Run ``simplify`` on the result to remove loops and multiple edges
        created by smoothing
    require_equal : iterable of str, optional
        Attributes that must be equal on both edges for a node to be
        smoothed

    Returns
    -------
    SpatialNetwork
        Smoothed copy

    Raises
    ------
    GeometryMismatchError
        If two edge geometries do not meet at the pseudo node
    """
    result = network.copy()
    graph = result.graph
    tolerance = graph.endpoint_tolerance
    require_equal = list(require_equal or [])
    length_attr = NETWORK_CONFIG['length_attribute']

    queue = sorted(graph.node_ids())
    heapq.heapify(queue)
    removed = 0

    while queue:
        node_id = heapq.heappop(queue)
        if not graph.has_node(node_id):
            continue
        pair = _pseudo_edges(graph, node_id, require_equal)
        if pair is None:
            continue
        first, second = pair

        # Orient both edges along the traversal u -> node -> w
        start = _other_end(graph, first, node_id)
        end = _other_end(graph, second, node_id)
        node_xy = graph.node_geometry(node_id).coords[0]
        line_in = reverse_line(orient_line(graph.edge_geometry(first), node_xy, tolerance))
        line_out = orient_line(graph.edge_geometry(second), node_xy, tolerance)

        line = concatenate_lines(line_in, line_out, tolerance)
        attrs = merge_attributes(
            [graph.edge_attributes(first), graph.edge_attributes(second)], summarise_attributes
        )
        if length_attr in attrs:
            attrs[length_attr] = line.length

        graph.remove_edge(first)
        graph.remove_edge(second)
        graph.remove_node(node_id, policy='error')
        graph.add_edge(start, end, line, attrs)
        removed += 1

        heapq.heappush(queue, start)
        if end != start:
            heapq.heappush(queue, end)

    logger.info(f"Smooth removed {removed} pseudo nodes")
    if cleanup:
        result = simplify(result)
    return result


def largest_component(network: SpatialNetwork) -> SpatialNetwork:
    """
    Keep only the largest connected component.

    Components are computed ignoring edge direction. The component with
    the most nodes wins; ties go to the component holding the lowest node
    handle.

    Returns
    -------
    SpatialNetwork
        Copy restricted to the component
    """
    G = nx.Graph()
    G.add_nodes_from(network.graph.node_ids())
    G.add_edges_from(network.graph.endpoints(e) for e in network.graph.edge_ids())

    components = list(nx.connected_components(G))
    if len(components) <= 1:
        return network.copy()

    keep = max(components, key=lambda c: (len(c), -min(c)))
    result = network.copy()
    for node_id in sorted(set(G.nodes) - keep):
        result.graph.remove_node(node_id, policy='cascade')

    logger.info(f"Kept largest of {len(components)} components ({len(keep)} nodes)")
    return result


def remove_isolated(network: SpatialNetwork) -> SpatialNetwork:
    """Drop nodes without incident edges."""
    result = network.copy()
    isolated = [n for n in sorted(result.graph.node_ids()) if result.graph.degree(n) == 0]
    for node_id in isolated:
        result.graph.remove_node(node_id)
    logger.info(f"Removed {len(isolated)} isolated nodes")
    return result
