"""
Analysis functions for spatial networks.

This module adds derived columns (edge length, circuity, degree,
centrality) to network tables, joins external layers onto them, and
summarises network structure.
"""

import logging

import numpy as np
import pandas as pd
import geopandas as gpd
import networkx as nx

from ..core.network import Table
from ..network_config import NETWORK_CONFIG, CRSError
from ..utils.geometry import line_circuity
from .routing import edge_weights, routing_graph

logger = logging.getLogger(__name__)


def edge_length(network, name=None):
    """
    Add the geometric length of every edge.

    Parameters
    ----------
    network : SpatialNetwork
        Network to measure
    name : str, optional
        Column name; defaults to the configured length attribute

    Returns
    -------
    SpatialNetwork
        Copy with the length column
    """
    name = name or NETWORK_CONFIG['length_attribute']
    return network.mutate(Table.EDGES, **{name: lambda edges: edges.geometry.length})


def edge_circuity(network, name='circuity'):
    """
    Add the circuity of every edge.

    Circuity is the ratio between the length of the edge geometry and the
    straight distance between its ends; loops get ``inf``.
    """
    return network.mutate(
        Table.EDGES, **{name: lambda edges: edges.geometry.apply(line_circuity)}
    )


def node_degree(network, name='degree', mode='all'):
    """
    Add the degree of every node.

    Parameters
    ----------
    mode : str, optional
        'in', 'out' or 'all'; loops count twice for 'all'
    """
    graph = network.graph
    counters = {'in': graph.in_degree, 'out': graph.out_degree, 'all': graph.degree}
    if mode not in counters:
        raise ValueError(f"Unknown degree mode {mode!r}")
    return network.mutate(
        Table.NODES, **{name: lambda nodes: [counters[mode](int(n)) for n in nodes.index]}
    )


def betweenness_centrality(network, weight=None, name='betweenness', normalized=True):
    """
    Add node betweenness centrality computed with networkx.

    Multiple edges between two nodes count once, through the cheapest.
    """
    G = routing_graph(network, edge_weights(network, weight))
    values = nx.betweenness_centrality(G, weight='weight' if weight else None, normalized=normalized)
    return network.mutate(Table.NODES, **{name: pd.Series(values)})


def closeness_centrality(network, weight=None, name='closeness'):
    """Add node closeness centrality computed with networkx."""
    G = routing_graph(network, edge_weights(network, weight))
    values = nx.closeness_centrality(G, distance='weight' if weight else None)
    return network.mutate(Table.NODES, **{name: pd.Series(values)})


def _check_crs(network, gdf):
    if gdf.crs is not None and network.crs is not None and gdf.crs != network.crs:
        raise CRSError(f"Layer is in {gdf.crs} but the network is in {network.crs}")


def _attach(network, table, joined, columns, how):
    """Copy joined columns onto a table; with how='inner' unmatched rows are dropped."""
    joined = joined[~joined.index.duplicated(keep='first')]
    result = network
    if columns:
        result = result.mutate(table, **{c: joined[c].where(joined[c].notna(), None) for c in columns})
    if how == 'inner':
        matched = joined['index_right'].notna()
        result = result.filter(table, matched)
    return result


def join_nodes(network, gdf, how='left', max_distance=None):
    """
    Join the attributes of the nearest feature of a layer onto the nodes.

    Parameters
    ----------
    network : SpatialNetwork
        Network whose nodes receive the attributes
    gdf : GeoDataFrame
        Layer to join, in the network CRS
    how : str, optional
        'left' keeps every node; 'inner' drops nodes without a match
    max_distance : float, optional
        Features further away than this do not match

    Returns
    -------
    SpatialNetwork
        Copy with the joined columns
    """
    if how not in ('left', 'inner'):
        raise ValueError(f"Unsupported join type {how!r}")
    _check_crs(network, gdf)
    gdf = gdf.rename_axis(None)
    nodes = network.nodes_table()[['geometry']]
    joined = gpd.sjoin_nearest(nodes, gdf, how='left', max_distance=max_distance)
    columns = [c for c in gdf.columns if c != gdf.geometry.name]
    return _attach(network, Table.NODES, joined, columns, how)


def join_edges(network, gdf, how='left', predicate='intersects'):
    """
    Join the attributes of intersecting features of a layer onto the edges.

    When several features match an edge the first one is used.
    """
    if how not in ('left', 'inner'):
        raise ValueError(f"Unsupported join type {how!r}")
    _check_crs(network, gdf)
    gdf = gdf.rename_axis(None)
    edges = network.edges_table()[['geometry']]
    joined = gpd.sjoin(edges, gdf, how='left', predicate=predicate)
    columns = [c for c in gdf.columns if c != gdf.geometry.name]
    return _attach(network, Table.EDGES, joined, columns, how)


def summary(network):
    """
    Calculate structural metrics of a spatial network.

    Parameters
    ----------
    network : SpatialNetwork
        Network to analyse

    Returns
    -------
    dict
        Dictionary of network metrics
    """
    graph = network.graph
    metrics = {}

    # Number of nodes and edges
    metrics['num_nodes'] = graph.number_of_nodes()
    metrics['num_edges'] = graph.number_of_edges()
    metrics['directed'] = graph.directed
    metrics['total_length'] = graph.total_length()

    # Connectivity, ignoring direction
    G = nx.Graph()
    G.add_nodes_from(graph.node_ids())
    G.add_edges_from(graph.endpoints(e) for e in graph.edge_ids())
    components = list(nx.connected_components(G)) if metrics['num_nodes'] else []
    metrics['num_components'] = len(components)
    metrics['largest_component_size'] = len(max(components, key=len)) if components else 0

    # Node degree statistics
    degrees = [graph.degree(n) for n in graph.node_ids()]
    if degrees:
        metrics['avg_degree'] = float(np.mean(degrees))
        metrics['min_degree'] = min(degrees)
        metrics['max_degree'] = max(degrees)
        if graph.directed:
            pseudo = [n for n in graph.node_ids() if graph.in_degree(n) == 1 and graph.out_degree(n) == 1]
        else:
            pseudo = [n for n in graph.node_ids() if len(graph.incident_edges(n)) == 2]
        metrics['num_pseudo_nodes'] = len(pseudo)

    # Edge geometry statistics
    lengths = [graph.edge_length(e) for e in graph.edge_ids()]
    if lengths:
        metrics['avg_edge_length'] = float(np.mean(lengths))
        metrics['num_loops'] = sum(1 for e in graph.edge_ids() if graph.endpoints(e)[0] == graph.endpoints(e)[1])

    return metrics
