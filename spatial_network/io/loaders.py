"""
Functions for loading spatial networks from files and map-data providers.
"""

import os
import logging

import pandas as pd
import geopandas as gpd
from shapely.geometry import LineString, MultiLineString, box

from ..core.network import SpatialNetwork
from ..network.creation import from_lines

logger = logging.getLogger(__name__)


def load_geodataframe(filepath, layer=None):
    """
    Load a GeoDataFrame from a file.

    Parameters
    ----------
    filepath : str
        Path to the file
    layer : str, optional
        Layer name for multi-layer files (e.g., GeoPackage)

    Returns
    -------
    GeoDataFrame
        Loaded data
    """
    if not os.path.exists(filepath):
        raise FileNotFoundError(f"File not found: {filepath}")

    _, ext = os.path.splitext(filepath)

    if ext.lower() in ['.gpkg', '.sqlite']:
        if layer is None:
            available_layers = list(gpd.list_layers(filepath)['name'])
            if len(available_layers) == 0:
                raise ValueError(f"No layers found in {filepath}")
            elif len(available_layers) == 1:
                layer = available_layers[0]
            else:
                raise ValueError(f"Multiple layers found in {filepath}, please specify one: {available_layers}")
        return gpd.read_file(filepath, layer=layer)
    elif ext.lower() in ['.shp', '.geojson', '.json']:
        return gpd.read_file(filepath)
    else:
        raise ValueError(f"Unsupported file format: {ext}")


def load_network(filepath, layer=None, directed=False, name=None):
    """
    Load a line layer as a spatial network.

    Parameters
    ----------
    filepath : str
        Path to a file holding line geometries
    layer : str, optional
        Layer name for multi-layer files
    directed : bool, optional
        Whether edges are directed along their digitizing order
    name : str, optional
        Name of the network (defaults to the file or layer name)

    Returns
    -------
    SpatialNetwork
        The network
    """
    gdf = load_geodataframe(filepath, layer=layer)
    if name is None:
        name = layer or os.path.splitext(os.path.basename(filepath))[0]
    return from_lines(gdf, directed=directed, name=name)


def read_network(filepath, directed=False, name=None):
    """
    Read a network written by ``export_network`` to a GeoPackage.

    The ``nodes`` and ``edges`` layers must carry the ``node_id`` and
    ``source``/``target`` columns written on export.
    """
    nodes = gpd.read_file(filepath, layer='nodes').set_index('node_id')
    edges = gpd.read_file(filepath, layer='edges')
    if 'edge_id' in edges.columns:
        edges = edges.set_index('edge_id')
    return SpatialNetwork.from_geodataframes(nodes, edges, directed=directed, name=name)


def _region_polygon(region):
    """Polygon from a polygon, bounding box (minx, miny, maxx, maxy) or GeoDataFrame."""
    if isinstance(region, (gpd.GeoDataFrame, gpd.GeoSeries)):
        return region.to_crs('EPSG:4326').geometry.union_all() if region.crs else region.geometry.union_all()
    if hasattr(region, 'geom_type'):
        return region
    if len(region) == 4:
        minx, miny, maxx, maxy = region
        return box(minx, miny, maxx, maxy)
    raise ValueError(f"Cannot interpret region {region!r}")


def osm_provider(region, tags):
    """
    Query OpenStreetMap features with osmnx.

    Parameters
    ----------
    region : str or shapely.geometry.Polygon
        Place name or polygon in WGS84
    tags : dict
        OSM tag filter, e.g. ``{'highway': True}``

    Returns
    -------
    GeoDataFrame
        Features returned by the Overpass API
    """
    try:
        import osmnx as ox
    except ImportError:
        raise ImportError("osmnx package is required for OSM data loading. Install it with: pip install osmnx")

    if isinstance(region, str):
        return ox.features_from_place(region, tags=tags)
    return ox.features_from_polygon(region, tags=tags)


def fetch_lines(region, tags, provider=None):
    """
    Retrieve line geometries and their attributes from a map-data provider.

    Provider errors (network, API) are raised unchanged.

    Parameters
    ----------
    region : str, Polygon, tuple or GeoDataFrame
        Area to query; a place name is passed to the provider as is
    tags : dict
        Tag filter understood by the provider
    provider : callable, optional
        Function ``provider(region, tags)`` returning a GeoDataFrame or an
        iterable of (geometry, attributes) pairs. Defaults to
        ``osm_provider``.

    Returns
    -------
    list of tuple
        (LineString, dict) pairs; multi-part lines are split and
        non-line features dropped
    """
    if provider is None:
        provider = osm_provider
    if not isinstance(region, str):
        region = _region_polygon(region)

    features = provider(region, tags)
    if isinstance(features, gpd.GeoDataFrame):
        geom_col = features.geometry.name
        features = [
            (row[geom_col], {k: v for k, v in row.items() if k != geom_col and not _missing(v)})
            for _, row in features.iterrows()
        ]

    records = []
    skipped = 0
    for geometry, attributes in features:
        if isinstance(geometry, LineString):
            records.append((geometry, dict(attributes)))
        elif isinstance(geometry, MultiLineString):
            records.extend((part, dict(attributes)) for part in geometry.geoms)
        else:
            skipped += 1

    if skipped:
        logger.warning(f"Dropped {skipped} non-line features")
    logger.info(f"Fetched {len(records)} lines")
    return records


def _missing(value):
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def lines_to_network(records, directed=False, crs='EPSG:4326', name=None):
    """
    Build a spatial network from (geometry, attributes) pairs.

    Parameters
    ----------
    records : iterable of tuple
        Output of ``fetch_lines``
    directed : bool, optional
        Whether edges are directed
    crs : optional
        CRS of the geometries

    Returns
    -------
    SpatialNetwork
        The network
    """
    records = list(records)
    gdf = gpd.GeoDataFrame(
        [dict(attrs) for _, attrs in records],
        geometry=[geometry for geometry, _ in records],
        crs=crs,
    )
    return from_lines(gdf, directed=directed, name=name)
