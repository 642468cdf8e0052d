"""
Functions for creating spatial networks.

This module builds SpatialNetwork instances from line and point layers,
from node and edge tables, from networkx graphs, and from point patterns
through random geometric, Delaunay and Gabriel graph generators.
"""

import logging

import numpy as np
import geopandas as gpd
from scipy.spatial import Delaunay, cKDTree
from scipy.spatial.distance import cdist
from shapely.geometry import LineString, Point, box
from typing import Optional

from ..core.network import SpatialNetwork
from ..network_config import NETWORK_CONFIG
from ..utils.geometry import coord_key, coords_coincide, reverse_line, snap_line_endpoints

logger = logging.getLogger(__name__)


def _as_frame(features, crs=None):
    """Wrap a GeoDataFrame, GeoSeries, array or list of geometries as a GeoDataFrame."""
    if isinstance(features, gpd.GeoDataFrame):
        return features
    if isinstance(features, gpd.GeoSeries):
        return gpd.GeoDataFrame(geometry=features, crs=features.crs if crs is None else crs)
    if isinstance(features, np.ndarray) and features.ndim == 2:
        return gpd.GeoDataFrame(geometry=gpd.points_from_xy(features[:, 0], features[:, 1]), crs=crs)
    return gpd.GeoDataFrame(geometry=list(features), crs=crs)


def _attributes(row, geom_col):
    return {k: v for k, v in row.items() if k != geom_col}


def from_lines(lines, directed: bool = True, crs=None, tolerance: Optional[float] = None,
               name: Optional[str] = None) -> SpatialNetwork:
    """
    Create a spatial network from line geometries.

    Every line becomes an edge; nodes are created at line ends, with ends
    that coincide sharing one node.

    Parameters
    ----------
    lines : GeoDataFrame, GeoSeries or sequence of LineString
        Edge geometries. GeoDataFrame columns become edge attributes and
        MultiLineStrings are split into their parts.
    directed : bool, optional
        Whether edges are directed from the first to the last coordinate
    crs : optional
        CRS to use when ``lines`` does not carry one
    tolerance : float, optional
        Distance under which line ends share a node; defaults to the
        configured coincidence tolerance
    name : str, optional
        Name of the network

    Returns
    -------
    SpatialNetwork
        The network
    """
    if tolerance is None:
        tolerance = NETWORK_CONFIG['coincidence_tolerance']
    frame = _as_frame(lines, crs)
    if frame.crs is None and crs is not None:
        frame = frame.set_crs(crs)
    frame = frame.explode(index_parts=False)

    network = SpatialNetwork(directed=directed, crs=frame.crs, name=name)
    graph = network.graph
    node_at = {}
    geom_col = frame.geometry.name

    def node_for(xy):
        key = coord_key(xy, tolerance)
        if key not in node_at:
            node_at[key] = graph.add_node(Point(xy))
        return node_at[key]

    for _, row in frame.iterrows():
        line = row[geom_col]
        if line is None or line.is_empty:
            continue
        if not isinstance(line, LineString):
            raise TypeError(f"Expecting LineString geometry but found {line.geom_type} geometry.")
        coords = list(line.coords)
        source = node_for(coords[0])
        target = node_for(coords[-1])
        line = snap_line_endpoints(
            line, graph.node_geometry(source).coords[0], graph.node_geometry(target).coords[0]
        )
        graph.add_edge(source, target, line, _attributes(row, geom_col))

    logger.info(f"Created network with {graph.number_of_nodes()} nodes and {graph.number_of_edges()} edges")
    return network


def from_points(points, directed: bool = True, crs=None, name: Optional[str] = None) -> SpatialNetwork:
    """
    Create a spatial network connecting consecutive points.

    Parameters
    ----------
    points : GeoDataFrame, GeoSeries, sequence of Point or (n, 2) array
        Node locations in order; GeoDataFrame columns become node attributes
    directed : bool, optional
        Whether edges are directed
    crs : optional
        CRS to use when ``points`` does not carry one
    name : str, optional
        Name of the network

    Returns
    -------
    SpatialNetwork
        The network
    """
    frame = _as_frame(points, crs)
    network = SpatialNetwork(directed=directed, crs=frame.crs if frame.crs is not None else crs, name=name)
    geom_col = frame.geometry.name

    previous = None
    for _, row in frame.iterrows():
        node_id = network.graph.add_node(row[geom_col], _attributes(row, geom_col))
        if previous is not None:
            network.graph.add_edge(previous, node_id)
        previous = node_id
    return network


def from_tables(nodes, edges, directed: bool = True, source: str = 'from', target: str = 'to',
                name: Optional[str] = None) -> SpatialNetwork:
    """
    Create a spatial network from a node table and an edge table.

    Edges without line geometries get straight lines between their nodes.

    Parameters
    ----------
    nodes : GeoDataFrame
        Point geometries
    edges : DataFrame or GeoDataFrame
        Edge table whose ``source``/``target`` columns refer to the node index
    directed : bool, optional
        Whether edges are directed
    source, target : str, optional
        Names of the endpoint columns

    Returns
    -------
    SpatialNetwork
        The network
    """
    return SpatialNetwork.from_geodataframes(nodes, edges, directed=directed, name=name,
                                             source=source, target=target)


def from_networkx(graph, crs=None, name: Optional[str] = None) -> SpatialNetwork:
    """
    Create a spatial network from a networkx graph.

    Nodes need a ``geometry`` Point attribute or ``x`` and ``y``
    attributes; edge ``geometry`` attributes are optional.

    Parameters
    ----------
    graph : networkx.Graph
        Any networkx graph; multigraph keys are not kept
    crs : optional
        CRS of the coordinates; defaults to ``graph.graph['crs']``

    Returns
    -------
    SpatialNetwork
        The network
    """
    if crs is None:
        crs = graph.graph.get('crs')
    network = SpatialNetwork(directed=graph.is_directed(), crs=crs, name=name or graph.graph.get('name'))

    handle_of = {}
    used = set()
    for key, data in graph.nodes(data=True):
        data = dict(data)
        point = data.pop('geometry', None)
        if point is None:
            if 'x' not in data or 'y' not in data:
                raise KeyError(f'Encountered node missing "geometry" or "x"/"y" attributes at node {key}.')
            point = Point(data['x'], data['y'])
        data.pop('x', None)
        data.pop('y', None)
        node_id = None
        if isinstance(key, (int, np.integer)) and int(key) not in used:
            node_id = int(key)
        else:
            data.setdefault('name', key)
        handle_of[key] = network.graph.add_node(point, data, node_id=node_id)
        used.add(handle_of[key])

    for u, v, data in graph.edges(data=True):
        data = dict(data)
        line = data.pop('geometry', None)
        source, target = handle_of[u], handle_of[v]
        if line is not None and not graph.is_directed():
            # Undirected graphs may store the geometry in either direction
            start = network.graph.node_geometry(source).coords[0]
            if not coords_coincide(line.coords[0], start, network.graph.endpoint_tolerance):
                line = reverse_line(line)
        network.graph.add_edge(source, target, line, data)

    return network


# ----------------------------------------------------------------------
# Graph generators


def _as_polygon(bounds):
    """Polygon and CRS from a polygon, bounding box tuple or GeoDataFrame/GeoSeries."""
    if isinstance(bounds, (gpd.GeoDataFrame, gpd.GeoSeries)):
        return bounds.geometry.union_all(), bounds.crs
    if hasattr(bounds, 'geom_type'):
        return bounds, None
    minx, miny, maxx, maxy = bounds
    return box(minx, miny, maxx, maxy), None


def sample_points(n: int, bounds, seed=None) -> np.ndarray:
    """
    Sample ``n`` points uniformly inside a polygon by rejection.

    Returns
    -------
    numpy.ndarray
        Array of shape (n, 2)
    """
    polygon, _ = _as_polygon(bounds)
    rng = np.random.default_rng(seed)
    minx, miny, maxx, maxy = polygon.bounds
    is_box = polygon.equals(box(minx, miny, maxx, maxy))

    accepted = []
    while len(accepted) < n:
        batch = max(2 * (n - len(accepted)), 16)
        xs = rng.uniform(minx, maxx, batch)
        ys = rng.uniform(miny, maxy, batch)
        for x, y in zip(xs, ys):
            if is_box or polygon.contains(Point(x, y)):
                accepted.append((x, y))
                if len(accepted) == n:
                    break
    return np.array(accepted, dtype=float).reshape(n, 2)


def random_geometric_network(n: int, dist: float, bounds, directed: bool = True, seed=None,
                             crs=None) -> SpatialNetwork:
    """
    Create a random geometric network.

    Samples ``n`` points inside ``bounds`` and connects every pair closer
    than ``dist``. Directed networks get an edge in both directions;
    undirected networks get one edge per pair. No loop edges are created.

    Parameters
    ----------
    n : int
        Number of nodes
    dist : float
        Distance threshold, in CRS units
    bounds : Polygon, tuple or GeoDataFrame
        Area to sample in; a bounding box tuple is (minx, miny, maxx, maxy)
    directed : bool, optional
        Whether the network is directed
    seed : int, optional
        Seed of the random generator
    crs : optional
        CRS of the bounds when they do not carry one

    Returns
    -------
    SpatialNetwork
        The network, with a ``length`` attribute on every edge
    """
    _, bounds_crs = _as_polygon(bounds)
    coords = sample_points(n, bounds, seed=seed)
    dists = cdist(coords, coords)
    np.fill_diagonal(dists, np.inf)
    if not directed:
        dists[np.tril_indices(n)] = np.inf

    network = SpatialNetwork(directed=directed, crs=bounds_crs if bounds_crs is not None else crs,
                             name='random_geometric')
    for x, y in coords:
        network.graph.add_node(Point(x, y))

    length_attr = NETWORK_CONFIG['length_attribute']
    for i, j in sorted(zip(*np.nonzero(dists < dist))):
        network.graph.add_edge(int(i), int(j), attrs={length_attr: float(dists[i, j])})

    logger.info(f"Random geometric network: {n} nodes, {network.number_of_edges()} edges")
    return network


def _point_network(points, pairs, name, crs=None):
    frame = _as_frame(points, crs)
    coords = np.column_stack([frame.geometry.x.values, frame.geometry.y.values])
    network = SpatialNetwork(directed=False, crs=frame.crs if frame.crs is not None else crs, name=name)
    geom_col = frame.geometry.name
    for _, row in frame.iterrows():
        network.graph.add_node(row[geom_col], _attributes(row, geom_col))

    length_attr = NETWORK_CONFIG['length_attribute']
    for i, j in sorted(pairs):
        network.graph.add_edge(int(i), int(j), attrs={length_attr: float(np.hypot(*(coords[i] - coords[j])))})
    return network


def _delaunay_pairs(coords):
    if len(coords) < 3:
        raise ValueError("At least 3 points are required for Delaunay triangulation")
    tri = Delaunay(coords)
    pairs = set()
    for simplex in tri.simplices:
        for a in range(3):
            for b in range(a + 1, 3):
                i, j = sorted((int(simplex[a]), int(simplex[b])))
                pairs.add((i, j))
    return pairs


def _point_coords(points, crs=None):
    frame = _as_frame(points, crs)
    return np.column_stack([frame.geometry.x.values, frame.geometry.y.values])


def delaunay_network(points, crs=None) -> SpatialNetwork:
    """
    Create an undirected network of the Delaunay triangulation of points.

    Parameters
    ----------
    points : GeoDataFrame, GeoSeries, sequence of Point or (n, 2) array
        Node locations; GeoDataFrame columns become node attributes

    Returns
    -------
    SpatialNetwork
        The network, with a ``length`` attribute on every edge
    """
    pairs = _delaunay_pairs(_point_coords(points, crs))
    return _point_network(points, pairs, 'delaunay', crs)


def gabriel_network(points, crs=None) -> SpatialNetwork:
    """
    Create an undirected Gabriel graph of points.

    Two points are joined when no other point lies strictly inside the
    circle that has the segment between them as diameter. Every Gabriel
    edge is a Delaunay edge, so candidates come from the triangulation.

    Returns
    -------
    SpatialNetwork
        The network, with a ``length`` attribute on every edge
    """
    coords = _point_coords(points, crs)
    tree = cKDTree(coords)
    pairs = set()
    for i, j in _delaunay_pairs(coords):
        centre = (coords[i] + coords[j]) / 2.0
        radius = np.hypot(*(coords[i] - coords[j])) / 2.0
        inside = [
            k for k in tree.query_ball_point(centre, radius)
            if k not in (i, j) and np.hypot(*(coords[k] - centre)) < radius
        ]
        if not inside:
            pairs.add((i, j))
    return _point_network(points, pairs, 'gabriel', crs)
