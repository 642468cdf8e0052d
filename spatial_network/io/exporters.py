"""
Functions for exporting spatial networks to files.
"""

import os
import logging

import numpy as np

logger = logging.getLogger(__name__)


DRIVERS = {
    '.gpkg': 'GPKG',
    '.sqlite': 'SQLite',
    '.shp': 'ESRI Shapefile',
    '.geojson': 'GeoJSON',
    '.json': 'GeoJSON',
}


def export_geodataframe(gdf, filepath, layer=None, driver=None):
    """
    Export a GeoDataFrame to a file.

    Parameters
    ----------
    gdf : GeoDataFrame
        Data to export
    filepath : str
        Path to the output file
    layer : str, optional
        Layer name for multi-layer formats
    driver : str, optional
        OGR driver name (auto-detected from extension if not provided)
    """
    _, ext = os.path.splitext(filepath)
    if driver is None:
        driver = DRIVERS.get(ext.lower())
        if driver is None:
            raise ValueError(f"Unsupported file format: {ext}")

    # Create directory if it doesn't exist
    os.makedirs(os.path.dirname(os.path.abspath(filepath)), exist_ok=True)

    if layer and driver in ['GPKG', 'SQLite']:
        gdf.to_file(filepath, layer=layer, driver=driver)
    else:
        gdf.to_file(filepath, driver=driver)


def _writable(gdf):
    """Turn attribute values that file formats cannot store (lists, dicts) into strings."""
    gdf = gdf.copy()
    for column in gdf.columns:
        if column == gdf.geometry.name or gdf[column].dtype != object:
            continue
        gdf[column] = gdf[column].apply(
            lambda v: str(v) if isinstance(v, (list, tuple, dict, set, np.ndarray)) else v
        )
    return gdf


def export_network(network, filepath, driver=None):
    """
    Export a spatial network to files.

    Multi-layer formats (GeoPackage, SQLite) receive a ``nodes`` and an
    ``edges`` layer in one file. Other formats are written to two files
    with ``_nodes`` and ``_edges`` suffixes.

    Parameters
    ----------
    network : SpatialNetwork
        Network to export
    filepath : str
        Path to the output file
    driver : str, optional
        OGR driver name

    Returns
    -------
    list of str
        Paths written
    """
    nodes_gdf, edges_gdf = network.to_geodataframes()
    nodes_gdf = _writable(nodes_gdf.reset_index())
    edges_gdf = _writable(edges_gdf.reset_index())

    base, ext = os.path.splitext(filepath)
    if driver is None:
        driver = DRIVERS.get(ext.lower())

    if driver in ['GPKG', 'SQLite']:
        export_geodataframe(nodes_gdf, filepath, layer='nodes', driver=driver)
        export_geodataframe(edges_gdf, filepath, layer='edges', driver=driver)
        written = [filepath]
    else:
        nodes_path = f"{base}_nodes{ext}"
        edges_path = f"{base}_edges{ext}"
        export_geodataframe(nodes_gdf, nodes_path, driver=driver)
        export_geodataframe(edges_gdf, edges_path, driver=driver)
        written = [nodes_path, edges_path]

    logger.info(f"Exported {network.number_of_nodes()} nodes and {network.number_of_edges()} edges to {written}")
    return written
