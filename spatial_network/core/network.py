"""
Spatial network data structure.

This module provides the SpatialNetwork class, which couples a GraphStore
(topology and geometry) with a lazily rebuilt SpatialIndex and exposes
table verbs (filter, mutate, select) on either its nodes or its edges.
"""

import logging
from enum import Enum

import networkx as nx
import numpy as np
import pandas as pd
import geopandas as gpd

from .geometry_store import NODES, EDGES
from .graph_store import GraphStore
from .index import SpatialIndex

logger = logging.getLogger(__name__)


class Table(Enum):
    """The table a tabular operation applies to."""
    NODES = NODES
    EDGES = EDGES


def as_table(table):
    """Coerce a Table member or 'nodes'/'edges' string to a Table."""
    if isinstance(table, Table):
        return table
    try:
        return Table(str(table).lower())
    except ValueError:
        raise ValueError(f"Unknown table {table!r}; use 'nodes' or 'edges'")


RESERVED_COLUMNS = {
    Table.NODES: {'geometry'},
    Table.EDGES: {'geometry', 'source', 'target'},
}

# Predicates named from the point of view of the network features,
# translated to the STR-tree query direction
SPATIAL_PREDICATES = {
    'intersects': 'intersects',
    'within': 'contains',
    'contains': 'within',
    'covered_by': 'covers',
    'covers': 'covered_by',
    'touches': 'touches',
    'crosses': 'crosses',
    'overlaps': 'overlaps',
}


class SpatialNetwork:
    """
    A graph whose nodes are points and whose edges are line strings.
    """

    def __init__(self, directed=True, crs=None, name=None, graph_store=None):
        """
        Initialize a SpatialNetwork.

        Parameters
        ----------
        directed : bool, optional
            Whether edges are directed
        crs : str, int or pyproj.CRS, optional
            Coordinate reference system of all geometries
        name : str, optional
            Name of the network
        graph_store : GraphStore, optional
            Existing store to wrap; ``directed`` and ``crs`` are then ignored
        """
        self.name = name
        self.graph = graph_store if graph_store is not None else GraphStore(crs=crs, directed=directed)
        self._index = None

    # ------------------------------------------------------------------
    # Structure

    @property
    def directed(self):
        return self.graph.directed

    @property
    def crs(self):
        return self.graph.crs

    @property
    def index(self):
        """Spatial index, rebuilt whenever the graph has changed."""
        if self._index is None or self._index.is_stale(self.graph):
            self._index = SpatialIndex(self.graph)
        return self._index

    def number_of_nodes(self):
        return self.graph.number_of_nodes()

    def number_of_edges(self):
        return self.graph.number_of_edges()

    def node_ids(self):
        return sorted(self.graph.node_ids())

    def edge_ids(self):
        return sorted(self.graph.edge_ids())

    def add_node(self, geometry, **attrs):
        return self.graph.add_node(geometry, attrs)

    def add_edge(self, source, target, geometry=None, **attrs):
        return self.graph.add_edge(source, target, geometry, attrs)

    def copy(self, name=None):
        return SpatialNetwork(name=name or self.name, graph_store=self.graph.copy())

    def __repr__(self):
        kind = 'directed' if self.directed else 'undirected'
        crs = self.crs.to_string() if self.crs is not None else None
        return (f"SpatialNetwork(name={self.name}, {kind}, nodes={self.number_of_nodes()}, "
                f"edges={self.number_of_edges()}, crs={crs})")

    # ------------------------------------------------------------------
    # Tables

    def nodes_table(self):
        """
        Node table.

        Returns
        -------
        GeoDataFrame
            One row per node, indexed by node handle
        """
        node_ids = self.node_ids()
        records = []
        for node_id in node_ids:
            record = dict(self.graph.node_attributes(node_id))
            record['geometry'] = self.graph.node_geometry(node_id)
            records.append(record)
        index = pd.Index(node_ids, name='node_id', dtype='int64')
        if not records:
            return gpd.GeoDataFrame({'geometry': gpd.GeoSeries([], crs=self.crs)}, index=index, crs=self.crs)
        return gpd.GeoDataFrame(records, index=index, geometry='geometry', crs=self.crs)

    def edges_table(self):
        """
        Edge table.

        Returns
        -------
        GeoDataFrame
            One row per edge, indexed by edge handle, with ``source`` and
            ``target`` node handles
        """
        edge_ids = self.edge_ids()
        records = []
        for edge_id in edge_ids:
            source, target = self.graph.endpoints(edge_id)
            record = {'source': source, 'target': target}
            record.update(self.graph.edge_attributes(edge_id))
            record['geometry'] = self.graph.edge_geometry(edge_id)
            records.append(record)
        index = pd.Index(edge_ids, name='edge_id', dtype='int64')
        if not records:
            return gpd.GeoDataFrame(
                {'source': pd.Series([], dtype='int64'), 'target': pd.Series([], dtype='int64'),
                 'geometry': gpd.GeoSeries([], crs=self.crs)},
                index=index, crs=self.crs,
            )
        return gpd.GeoDataFrame(records, index=index, geometry='geometry', crs=self.crs)

    def table(self, table):
        if as_table(table) is Table.NODES:
            return self.nodes_table()
        return self.edges_table()

    def to_geodataframes(self):
        """
        Convert the network to GeoDataFrames.

        Returns
        -------
        tuple of GeoDataFrame
            (nodes_gdf, edges_gdf)
        """
        return self.nodes_table(), self.edges_table()

    # ------------------------------------------------------------------
    # Table verbs

    def _row_mask(self, table, condition, frame):
        if callable(condition):
            condition = condition(frame)
        if isinstance(condition, pd.Series):
            mask = condition.reindex(frame.index).fillna(False).astype(bool)
        else:
            values = np.asarray(condition, dtype=bool)
            if values.shape != (len(frame),):
                raise ValueError(
                    f"Condition has {values.size} values but the {table.value} table has {len(frame)} rows"
                )
            mask = pd.Series(values, index=frame.index)
        return mask

    def filter(self, table, condition):
        """
        Keep the rows of one table that satisfy a condition.

        Filtering nodes removes the edges incident to dropped nodes;
        filtering edges keeps every node.

        Parameters
        ----------
        table : Table or str
            Table to filter
        condition : callable, Series or array-like of bool
            A callable receives the table as a GeoDataFrame

        Returns
        -------
        SpatialNetwork
            Filtered copy
        """
        table = as_table(table)
        frame = self.table(table)
        mask = self._row_mask(table, condition, frame)
        drop = [int(i) for i in frame.index[~mask.values]]
        return self._without(table, drop)

    def _without(self, table, drop):
        result = self.copy()
        for handle in drop:
            if table is Table.NODES:
                result.graph.remove_node(handle, policy='cascade')
            else:
                result.graph.remove_edge(handle)
        logger.debug(f"Removed {len(drop)} {table.value}")
        return result

    def mutate(self, table, **columns):
        """
        Add or replace attribute columns of one table.

        Values may be scalars, sequences with one value per row, Series
        aligned on the table index, or callables receiving the table.

        Returns
        -------
        SpatialNetwork
            Copy with the new columns
        """
        table = as_table(table)
        reserved = RESERVED_COLUMNS[table] & set(columns)
        if reserved:
            raise ValueError(f"Cannot mutate reserved column(s) {sorted(reserved)}")

        result = self.copy()
        frame = self.table(table)
        for name, value in columns.items():
            if callable(value):
                value = value(frame)
            if isinstance(value, pd.Series):
                series = value.reindex(frame.index)
            elif np.ndim(value) == 0:
                series = pd.Series([value] * len(frame), index=frame.index, dtype=object)
            else:
                values = list(value)
                if len(values) != len(frame):
                    raise ValueError(
                        f"Column {name!r} has {len(values)} values but the table has {len(frame)} rows"
                    )
                series = pd.Series(values, index=frame.index, dtype=object)
            frame[name] = series
            for handle, item in series.items():
                attrs = (result.graph.node_attributes(int(handle)) if table is Table.NODES
                         else result.graph.edge_attributes(int(handle)))
                attrs[name] = item.item() if isinstance(item, np.generic) else item
        return result

    def select(self, table, *columns):
        """
        Keep only the named attribute columns of one table.

        Geometry and edge endpoints are always kept.
        """
        table = as_table(table)
        keep = set(columns)
        result = self.copy()
        handles = result.graph.node_ids() if table is Table.NODES else result.graph.edge_ids()
        for handle in handles:
            attrs = (result.graph.node_attributes(handle) if table is Table.NODES
                     else result.graph.edge_attributes(handle))
            for key in [k for k in attrs if k not in keep]:
                del attrs[key]
        return result

    def filter_spatial(self, table, geometry, predicate='intersects'):
        """
        Keep the rows of one table whose geometry satisfies a spatial predicate.

        Parameters
        ----------
        table : Table or str
            Table to filter
        geometry : shapely.geometry
            Geometry to test against, in the network CRS
        predicate : str, optional
            Relationship of each network feature to ``geometry``, e.g.
            'intersects' or 'within'

        Returns
        -------
        SpatialNetwork
            Filtered copy
        """
        table = as_table(table)
        try:
            query_predicate = SPATIAL_PREDICATES[predicate]
        except KeyError:
            raise ValueError(f"Unsupported predicate {predicate!r}; use one of {sorted(SPATIAL_PREDICATES)}")
        keep = self.index.within(geometry, table.value, predicate=query_predicate)
        handles = self.graph.node_ids() if table is Table.NODES else self.graph.edge_ids()
        return self._without(table, sorted(set(handles) - keep))

    def to_crs(self, crs):
        """
        Reproject every node and edge geometry.

        Raises
        ------
        CRSError
            If the network has no CRS
        """
        result = self.copy()
        endpoints = {e: self.graph.endpoints(e) for e in self.graph.edge_ids()}
        result.graph.set_geometry_store(self.graph.geometry.reproject(crs, endpoints=endpoints))
        return result

    # ------------------------------------------------------------------
    # Conversions

    def to_networkx(self):
        """
        Convert the network to a networkx multigraph.

        Edge keys are edge handles; node and edge attributes are copied and
        geometries stored under ``geometry``.

        Returns
        -------
        networkx.MultiDiGraph or networkx.MultiGraph
        """
        G = nx.MultiDiGraph() if self.directed else nx.MultiGraph()
        G.graph['crs'] = self.crs
        G.graph['name'] = self.name
        for node_id in self.node_ids():
            point = self.graph.node_geometry(node_id)
            G.add_node(node_id, **self.graph.node_attributes(node_id),
                       geometry=point, x=point.x, y=point.y)
        for edge_id in self.edge_ids():
            source, target = self.graph.endpoints(edge_id)
            G.add_edge(source, target, key=edge_id, **self.graph.edge_attributes(edge_id),
                       geometry=self.graph.edge_geometry(edge_id))
        return G

    @classmethod
    def from_geodataframes(cls, nodes_gdf, edges_gdf, directed=True, name=None,
                           source='source', target='target'):
        """
        Create a SpatialNetwork from node and edge tables.

        Parameters
        ----------
        nodes_gdf : GeoDataFrame
            Point geometries; the index becomes the node handles when it
            holds unique integers
        edges_gdf : DataFrame or GeoDataFrame
            Edge table with source and target columns referring to the
            node index; line geometries are optional
        directed : bool, optional
            Whether edges are directed
        name : str, optional
            Name of the network
        source, target : str, optional
            Names of the endpoint columns

        Returns
        -------
        SpatialNetwork
            A new SpatialNetwork instance
        """
        network = cls(directed=directed, crs=nodes_gdf.crs, name=name)

        use_index = pd.api.types.is_integer_dtype(nodes_gdf.index) and nodes_gdf.index.is_unique
        handle_of = {}
        geom_col = nodes_gdf.geometry.name
        for position, (label, row) in enumerate(nodes_gdf.iterrows()):
            attributes = row.drop([geom_col]).to_dict()
            node_id = int(label) if use_index else None
            handle_of[label] = network.graph.add_node(row[geom_col], attributes, node_id=node_id)

        edge_geom_col = None
        if isinstance(edges_gdf, gpd.GeoDataFrame):
            try:
                edge_geom_col = edges_gdf.geometry.name
            except AttributeError:
                edge_geom_col = None
        for _, row in edges_gdf.iterrows():
            exclude = [c for c in (source, target, edge_geom_col) if c is not None]
            attributes = row.drop(exclude).to_dict()
            geometry = row[edge_geom_col] if edge_geom_col is not None else None
            if geometry is not None and geometry.is_empty:
                geometry = None
            network.graph.add_edge(handle_of[row[source]], handle_of[row[target]], geometry, attributes)

        return network
