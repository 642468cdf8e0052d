"""
Routing on spatial networks.

This module computes shortest paths and cost matrices over weighted
edges, and blends external points into a network so that routes can
start and end exactly at them.
"""

import logging
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pandas as pd
import networkx as nx
from shapely.geometry import Point
from typing import Dict, List, Optional, Sequence, Tuple

from ..core.geometry_store import NODES, EDGES
from ..core.network import SpatialNetwork
from ..network_config import NETWORK_CONFIG, ROUTING_CONFIG, CRSError, NoPathError
from ..utils.attributes import merge_attributes
from ..utils.geometry import coords_coincide
from .creation import _as_frame

logger = logging.getLogger(__name__)


def edge_weights(network: SpatialNetwork, weight: Optional[str] = None) -> Dict[int, float]:
    """
    Weight of every edge.

    Parameters
    ----------
    network : SpatialNetwork
        Network to weigh
    weight : str, optional
        Edge attribute holding the weight. None gives every edge weight 1
        (hop count). The configured length attribute falls back to the
        geometric length for edges that do not store it.

    Returns
    -------
    dict
        Edge handle -> weight

    Raises
    ------
    ValueError
        If an edge misses the attribute or has a negative weight
    """
    graph = network.graph
    length_attr = NETWORK_CONFIG['length_attribute']
    weights = {}
    for edge_id in graph.edge_ids():
        if weight is None:
            weights[edge_id] = 1.0
            continue
        attrs = graph.edge_attributes(edge_id)
        value = attrs.get(weight)
        if value is None and weight == length_attr:
            value = graph.edge_length(edge_id)
        if value is None:
            raise ValueError(f"Edge {edge_id} has no {weight!r} attribute")
        value = float(value)
        if value < 0 or np.isnan(value):
            raise ValueError(f"Edge {edge_id} has invalid weight {value} for {weight!r}")
        weights[edge_id] = value
    return weights


def routing_graph(network: SpatialNetwork, weights: Dict[int, float]):
    """
    Simple networkx graph for routing.

    Multiple edges between two nodes collapse to the cheapest one (lowest
    handle on ties), stored under the ``edge`` attribute. Loops are dropped.
    """
    graph = network.graph
    G = nx.DiGraph() if graph.directed else nx.Graph()
    G.add_nodes_from(graph.node_ids())
    for edge_id in sorted(graph.edge_ids()):
        u, v = graph.endpoints(edge_id)
        if u == v:
            continue
        w = weights[edge_id]
        if G.has_edge(u, v):
            current = G[u][v]
            if (w, edge_id) >= (current['weight'], current['edge']):
                continue
        G.add_edge(u, v, weight=w, edge=edge_id)
    return G


def resolve_node(network: SpatialNetwork, location) -> int:
    """
    Node handle for a handle or a point.

    Points resolve to the nearest node.
    """
    if isinstance(location, Point):
        node_id = network.index.nearest(location, NODES)
        if node_id is None:
            raise ValueError("Cannot resolve a point on a network without nodes")
        return node_id
    node_id = int(location)
    if not network.graph.has_node(node_id):
        raise KeyError(f"Node {node_id} does not exist")
    return node_id


def nearest_node(network: SpatialNetwork, point: Point) -> Optional[int]:
    """Handle of the node nearest to ``point``."""
    return network.index.nearest(point, NODES)


def nearest_edge(network: SpatialNetwork, point: Point) -> Optional[int]:
    """Handle of the edge nearest to ``point``."""
    return network.index.nearest(point, EDGES)


def shortest_path(network: SpatialNetwork, source, target, weight: Optional[str] = None,
                  strict: Optional[bool] = None) -> Tuple[List[int], List[int]]:
    """
    Shortest path between two nodes.

    Parameters
    ----------
    network : SpatialNetwork
        Network to route on
    source, target : int or shapely.geometry.Point
        Node handles, or points resolved to their nearest node
    weight : str, optional
        Edge attribute used as weight; None routes by hop count
    strict : bool, optional
        Raise NoPathError when no path exists instead of returning empty
        sequences; defaults to the routing configuration

    Returns
    -------
    tuple of list
        (node handles, edge handles) along the path; both empty when the
        target cannot be reached
    """
    if strict is None:
        strict = ROUTING_CONFIG['strict']
    source = resolve_node(network, source)
    target = resolve_node(network, target)
    if source == target:
        return [source], []

    G = routing_graph(network, edge_weights(network, weight))
    try:
        if weight is None:
            nodes = nx.shortest_path(G, source, target)
        else:
            nodes = nx.dijkstra_path(G, source, target, weight='weight')
    except nx.NetworkXNoPath:
        if strict:
            raise NoPathError(f"No path from node {source} to node {target}")
        logger.debug(f"No path from node {source} to node {target}")
        return [], []

    edges = [G[u][v]['edge'] for u, v in zip(nodes[:-1], nodes[1:])]
    return list(nodes), edges


def path_cost(network: SpatialNetwork, edge_ids: Sequence[int], weight: Optional[str] = None) -> float:
    """Total weight of a sequence of edges."""
    weights = edge_weights(network, weight)
    return float(sum(weights[e] for e in edge_ids))


def _distances_from(G, origin, weighted):
    if weighted:
        return nx.single_source_dijkstra_path_length(G, origin, weight='weight')
    return nx.single_source_shortest_path_length(G, origin)


def cost_matrix(network: SpatialNetwork, sources, targets, weight: Optional[str] = None,
                num_workers: Optional[int] = None) -> np.ndarray:
    """
    Cost of the shortest path between every source and every target.

    One single-source search runs per member of the smaller of the two
    sets; when that is the target set of a directed network the search
    runs on the reversed graph.

    Parameters
    ----------
    network : SpatialNetwork
        Network to route on
    sources, targets : sequence of int or Point
        Node handles or points resolved to their nearest node
    weight : str, optional
        Edge attribute used as weight; None counts hops
    num_workers : int, optional
        Threads running the independent searches; defaults to the routing
        configuration

    Returns
    -------
    numpy.ndarray
        Array of shape (len(sources), len(targets)); unreachable pairs are
        ``inf``
    """
    if num_workers is None:
        num_workers = ROUTING_CONFIG['num_workers']
    sources = [resolve_node(network, s) for s in sources]
    targets = [resolve_node(network, t) for t in targets]

    G = routing_graph(network, edge_weights(network, weight))
    from_sources = len(sources) <= len(targets)
    if from_sources:
        origins, others, search_graph = sources, targets, G
    else:
        origins, others = targets, sources
        search_graph = G.reverse(copy=False) if G.is_directed() else G

    weighted = weight is not None

    def run(origin):
        dists = _distances_from(search_graph, origin, weighted)
        return np.array([dists.get(other, np.inf) for other in others], dtype=float)

    if num_workers and num_workers > 1 and len(origins) > 1:
        with ThreadPoolExecutor(max_workers=num_workers) as executor:
            rows = list(executor.map(run, origins))
    else:
        rows = [run(origin) for origin in origins]

    matrix = np.vstack(rows) if rows else np.zeros((0, len(others)))
    if not from_sources:
        matrix = matrix.T
    return matrix.reshape(len(sources), len(targets))


def cost_matrix_frame(network: SpatialNetwork, sources, targets, weight: Optional[str] = None,
                      num_workers: Optional[int] = None) -> pd.DataFrame:
    """Cost matrix labelled with the resolved source and target node handles."""
    source_ids = [resolve_node(network, s) for s in sources]
    target_ids = [resolve_node(network, t) for t in targets]
    matrix = cost_matrix(network, source_ids, target_ids, weight=weight, num_workers=num_workers)
    return pd.DataFrame(matrix, index=pd.Index(source_ids, name='source'),
                        columns=pd.Index(target_ids, name='target'))


def blend(network: SpatialNetwork, points, tolerance: Optional[float] = None) -> SpatialNetwork:
    """
    Insert points into the network at their projection on the nearest edge.

    Points are processed in order. For each one the nearest edge is looked
    up in an index that reflects all earlier insertions, the point is
    projected onto that edge and the edge is split there; the new node
    receives the point's attributes. A projection that lands on an end of
    the edge adds the attributes to the existing node instead.

    Parameters
    ----------
    network : SpatialNetwork
        Network to blend into
    points : GeoDataFrame, GeoSeries or sequence of Point
        Points to blend; GeoDataFrame columns become node attributes
    tolerance : float, optional
        Distance under which a projection counts as an edge end

    Returns
    -------
    SpatialNetwork
        Copy with the points blended in

    Raises
    ------
    CRSError
        If the points and the network carry different CRSs
    """
    if tolerance is None:
        tolerance = max(NETWORK_CONFIG['coincidence_tolerance'], NETWORK_CONFIG['endpoint_tolerance'])
    frame = _as_frame(points, network.crs)
    if frame.crs is not None and network.crs is not None and frame.crs != network.crs:
        raise CRSError(f"Points are in {frame.crs} but the network is in {network.crs}")

    result = network.copy()
    graph = result.graph
    geom_col = frame.geometry.name
    split = 0

    for _, row in frame.iterrows():
        point = row[geom_col]
        attrs = {k: v for k, v in row.items() if k != geom_col}
        edge_id = result.index.nearest(point, EDGES)
        if edge_id is None:
            raise ValueError("Cannot blend points into a network without edges")

        line = graph.edge_geometry(edge_id)
        distance = line.project(point)
        projected = line.interpolate(distance).coords[0]
        source, target = graph.endpoints(edge_id)

        if distance <= 0 or coords_coincide(projected, line.coords[0], tolerance):
            node_id = source
        elif distance >= line.length or coords_coincide(projected, line.coords[-1], tolerance):
            node_id = target
        else:
            graph.split_edge(edge_id, point=point, node_attrs=attrs)
            split += 1
            continue

        node = graph.node(node_id)
        node.attributes = merge_attributes([node.attributes, attrs])

    logger.info(f"Blended {len(frame)} points, splitting {split} edges")
    return result
