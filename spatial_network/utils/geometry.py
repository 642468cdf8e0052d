"""
Geometry helpers for network edges.

Line strings are the edge geometries of a spatial network. The functions
here reverse, weld, split and snap them without touching graph structure.
"""

import math

import numpy as np
from shapely.geometry import LineString, Point

from ..network_config import GeometryMismatchError


def coord_key(xy, tolerance=0.0):
    """
    Hashable key under which coincident coordinates collapse.

    Parameters
    ----------
    xy : sequence of float
        Coordinate (only x and y are used)
    tolerance : float, optional
        Grid size. With 0 the key is the exact coordinate.

    Returns
    -------
    tuple
        Key for the coordinate
    """
    x, y = float(xy[0]), float(xy[1])
    if not tolerance:
        return (x, y)
    return (round(x / tolerance), round(y / tolerance))


def coords_coincide(a, b, tolerance=0.0):
    """Whether two coordinates are the same vertex under ``tolerance``."""
    if not tolerance:
        return float(a[0]) == float(b[0]) and float(a[1]) == float(b[1])
    return math.hypot(a[0] - b[0], a[1] - b[1]) <= tolerance


def straight_line(start, end):
    """Two-vertex line between two points or coordinates."""
    if isinstance(start, Point):
        start = start.coords[0]
    if isinstance(end, Point):
        end = end.coords[0]
    return LineString([start, end])


def reverse_line(line):
    """Line with its vertex order reversed."""
    return LineString(list(line.coords)[::-1])


def orient_line(line, start_xy, tolerance=0.0):
    """
    Return ``line`` oriented so that it starts at ``start_xy``.

    Raises
    ------
    GeometryMismatchError
        If neither end of the line is at ``start_xy``
    """
    coords = list(line.coords)
    if coords_coincide(coords[0], start_xy, tolerance):
        return line
    if coords_coincide(coords[-1], start_xy, tolerance):
        return LineString(coords[::-1])
    raise GeometryMismatchError(
        f"Line {line.wkt} has no end at {tuple(start_xy)}"
    )


def concatenate_lines(first, second, tolerance=0.0):
    """
    Weld two lines where the end of ``first`` meets the start of ``second``.

    The shared coordinate appears once in the result.

    Parameters
    ----------
    first : shapely.geometry.LineString
        Line traversed first
    second : shapely.geometry.LineString
        Line traversed second
    tolerance : float, optional
        Distance under which the join coordinates are considered equal

    Returns
    -------
    shapely.geometry.LineString
        Concatenated line

    Raises
    ------
    GeometryMismatchError
        If the lines do not share the join coordinate
    """
    coords_a = list(first.coords)
    coords_b = list(second.coords)
    if not coords_coincide(coords_a[-1], coords_b[0], tolerance):
        raise GeometryMismatchError(
            f"Cannot concatenate lines: {coords_a[-1]} != {coords_b[0]}"
        )
    return LineString(coords_a + coords_b[1:])


def snap_line_endpoints(line, start_xy, end_xy):
    """Line with its first and last coordinates replaced."""
    coords = list(line.coords)
    coords[0] = tuple(start_xy)
    coords[-1] = tuple(end_xy)
    return LineString(coords)


def split_line_at_vertex(line, vertex_index):
    """
    Split a line at one of its interior vertices.

    Returns
    -------
    tuple of LineString
        (left, right), both containing the split vertex
    """
    coords = list(line.coords)
    if not 0 < vertex_index < len(coords) - 1:
        raise ValueError(
            f"Vertex index {vertex_index} is not interior to a line with {len(coords)} vertices"
        )
    return LineString(coords[:vertex_index + 1]), LineString(coords[vertex_index:])


def split_line_at_distance(line, distance):
    """
    Split a line at a distance along it.

    When the distance falls on an existing vertex the line is cut there and
    no new vertex is inserted.

    Parameters
    ----------
    line : shapely.geometry.LineString
        Line to split
    distance : float
        Distance from the start of the line, strictly inside (0, length)

    Returns
    -------
    tuple
        (left, right, split_coordinate)
    """
    coords = list(line.coords)
    if distance <= 0 or distance >= line.length:
        raise ValueError(f"Distance {distance} is not interior to the line")

    travelled = 0.0
    for i in range(1, len(coords)):
        segment = math.hypot(coords[i][0] - coords[i - 1][0], coords[i][1] - coords[i - 1][1])
        if travelled + segment >= distance:
            point = line.interpolate(distance)
            split_xy = (point.x, point.y)
            if coords_coincide(split_xy, coords[i]) and i < len(coords) - 1:
                return LineString(coords[:i + 1]), LineString(coords[i:]), coords[i]
            if coords_coincide(split_xy, coords[i - 1]) and i > 1:
                return LineString(coords[:i]), LineString(coords[i - 1:]), coords[i - 1]
            left = coords[:i] + [split_xy]
            right = [split_xy] + coords[i:]
            return LineString(left), LineString(right), split_xy
        travelled += segment

    # Floating point overshoot at the very end of the line
    raise ValueError(f"Distance {distance} could not be located on the line")


def line_circuity(line):
    """
    Ratio of a line's length to the straight distance between its ends.

    Loops (zero straight distance) have infinite circuity.
    """
    coords = np.asarray(line.coords)
    straight = float(np.hypot(*(coords[-1][:2] - coords[0][:2])))
    if straight == 0:
        return math.inf
    return line.length / straight
