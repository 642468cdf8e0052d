"""
Spatial index over the node and edge geometries of a spatial network.
"""

import logging

import numpy as np
from shapely.strtree import STRtree

from .geometry_store import NODES, EDGES

logger = logging.getLogger(__name__)


class SpatialIndex:
    """
    STR-tree index of one GraphStore snapshot.

    The index remembers the store version it was built from; callers
    rebuild it once the store has changed (see ``is_stale``).
    """

    def __init__(self, graph_store):
        """
        Build the index.

        Parameters
        ----------
        graph_store : GraphStore
            Store whose current geometries are indexed
        """
        self.version = graph_store.version
        self._store_id = id(graph_store)
        self._ids = {}
        self._geoms = {}
        self._trees = {}

        for table, items in ((NODES, graph_store.geometry.node_items()),
                             (EDGES, graph_store.geometry.edge_items())):
            ordered = sorted(items, key=lambda item: item[0])
            self._ids[table] = np.array([i for i, _ in ordered], dtype=np.int64)
            self._geoms[table] = [geom for _, geom in ordered]
            self._trees[table] = STRtree(self._geoms[table]) if ordered else None

        logger.debug(
            f"Built spatial index over {len(self._ids[NODES])} nodes and {len(self._ids[EDGES])} edges"
        )

    def is_stale(self, graph_store):
        """Whether ``graph_store`` changed since the index was built."""
        return id(graph_store) != self._store_id or graph_store.version != self.version

    def _tree(self, table):
        if table not in self._trees:
            raise ValueError(f"Unknown table {table!r}")
        return self._trees[table]

    def nearest(self, point, table=NODES):
        """
        Handle of the geometry nearest to ``point``.

        Ties are broken by the lowest handle.

        Parameters
        ----------
        point : shapely.geometry.Point
            Query location
        table : str, optional
            'nodes' or 'edges'

        Returns
        -------
        int or None
            Handle, or None if the table is empty
        """
        tree = self._tree(table)
        if tree is None:
            return None
        positions = tree.query_nearest(point, all_matches=True)
        return int(self._ids[table][positions].min())

    def nearest_edge(self, point):
        return self.nearest(point, EDGES)

    def within(self, geometry, table=NODES, predicate='intersects'):
        """
        Handles of the geometries satisfying ``predicate`` with ``geometry``.

        The predicate is evaluated exactly on candidates from the tree, so
        the result has neither false positives nor false negatives.

        Returns
        -------
        set of int
            Matching handles
        """
        tree = self._tree(table)
        if tree is None:
            return set()
        positions = tree.query(geometry, predicate=predicate)
        return {int(i) for i in self._ids[table][positions]}

    def __repr__(self):
        return f"SpatialIndex(nodes={len(self._ids[NODES])}, edges={len(self._ids[EDGES])}, version={self.version})"
