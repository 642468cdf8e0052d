"""
Geometry storage for spatial networks.

This module keeps the point geometries of nodes and the line geometries
of edges, keyed by the same integer handles the graph store uses, in one
declared coordinate reference system.
"""

import geopandas as gpd
from pyproj import CRS
from pyproj.exceptions import CRSError as ProjCRSError

from ..network_config import CRSError
from ..utils.geometry import snap_line_endpoints


NODES = 'nodes'
EDGES = 'edges'


def normalize_crs(crs):
    """
    Parse a CRS given as EPSG string, integer, WKT or pyproj object.

    Returns None when ``crs`` is None.
    """
    if crs is None:
        return None
    try:
        return CRS.from_user_input(crs)
    except ProjCRSError as e:
        raise CRSError(f"Invalid coordinate reference system {crs!r}: {e}") from e


class GeometryStore:
    """
    Node points and edge lines sharing one coordinate reference system.
    """

    def __init__(self, crs=None):
        """
        Initialize a GeometryStore.

        Parameters
        ----------
        crs : str, int or pyproj.CRS, optional
            Coordinate reference system of every stored geometry
        """
        self.crs = normalize_crs(crs)
        self._nodes = {}
        self._edges = {}

    def _table(self, table):
        if table == NODES:
            return self._nodes
        if table == EDGES:
            return self._edges
        raise ValueError(f"Unknown table {table!r}")

    def get(self, geom_id, table):
        return self._table(table)[geom_id]

    def set(self, geom_id, geometry, table):
        self._table(table)[geom_id] = geometry

    def get_node(self, node_id):
        return self._nodes[node_id]

    def set_node(self, node_id, point):
        self._nodes[node_id] = point

    def remove_node(self, node_id):
        del self._nodes[node_id]

    def get_edge(self, edge_id):
        return self._edges[edge_id]

    def set_edge(self, edge_id, line):
        self._edges[edge_id] = line

    def remove_edge(self, edge_id):
        del self._edges[edge_id]

    def node_items(self):
        return self._nodes.items()

    def edge_items(self):
        return self._edges.items()

    def copy(self):
        """Shallow copy; shapely geometries are immutable."""
        store = GeometryStore()
        store.crs = self.crs
        store._nodes = dict(self._nodes)
        store._edges = dict(self._edges)
        return store

    def reproject(self, target_crs, endpoints=None):
        """
        Transform every node and edge geometry to another CRS.

        Parameters
        ----------
        target_crs : str, int or pyproj.CRS
            CRS to transform into
        endpoints : dict, optional
            Mapping edge id -> (source id, target id). When given, the
            transformed edge ends are snapped onto the transformed node
            points so the two tables stay consistent.

        Returns
        -------
        GeometryStore
            New store in ``target_crs``

        Raises
        ------
        CRSError
            If the store has no CRS or the target is invalid
        """
        if self.crs is None:
            raise CRSError("Cannot reproject: the source coordinate reference system is undefined")
        target = normalize_crs(target_crs)
        if target is None:
            raise CRSError("Cannot reproject: no target coordinate reference system given")

        node_ids = list(self._nodes)
        edge_ids = list(self._edges)

        # Both tables go through the same transformation in one call each
        nodes = gpd.GeoSeries([self._nodes[i] for i in node_ids], index=node_ids, crs=self.crs)
        edges = gpd.GeoSeries([self._edges[i] for i in edge_ids], index=edge_ids, crs=self.crs)
        nodes = nodes.to_crs(target)
        edges = edges.to_crs(target)

        store = GeometryStore(target)
        store._nodes = {i: geom for i, geom in zip(node_ids, nodes)}
        store._edges = {i: geom for i, geom in zip(edge_ids, edges)}

        if endpoints:
            for edge_id, (source, target_node) in endpoints.items():
                store._edges[edge_id] = snap_line_endpoints(
                    store._edges[edge_id],
                    store._nodes[source].coords[0],
                    store._nodes[target_node].coords[0],
                )

        return store

    def __len__(self):
        return len(self._nodes) + len(self._edges)

    def __repr__(self):
        return f"GeometryStore(crs={self.crs}, nodes={len(self._nodes)}, edges={len(self._edges)})"
