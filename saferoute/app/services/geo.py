"""
Geospatial primitives for route adherence.

Distances are great-circle meters on a spherical Earth. Projection onto a
path is done segment by segment in a local equirectangular frame, which is
accurate to well under a meter at the segment lengths routes are made of.
"""

import math
from typing import NamedTuple, Optional, Sequence

# Mean Earth radius in meters
EARTH_RADIUS_M = 6371000.0


class LatLng(NamedTuple):
    latitude: float
    longitude: float


class PathProjection(NamedTuple):
    """Closest point of a path to a query point."""
    index: int  # start vertex of the nearest segment
    distance: float  # meters from the query point
    point: LatLng  # the projected point itself


def haversine_distance(a, b) -> float:
    """
    Calculate the great-circle distance between two points.

    Args:
        a, b: (latitude, longitude) pairs in degrees

    Returns:
        Distance in meters
    """
    lat1_rad = math.radians(a[0])
    lat2_rad = math.radians(b[0])
    dlat = lat2_rad - lat1_rad
    dlon = math.radians(b[1] - a[1])

    h = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    # Rounding can push h a hair past 1 for antipodal points
    h = min(1.0, max(0.0, h))
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_M * c


def bearing(a, b) -> float:
    """Initial bearing from a to b in degrees, normalised to [0, 360)."""
    lat1 = math.radians(a[0])
    lat2 = math.radians(b[0])
    dlon = math.radians(b[1] - a[1])
    y = math.sin(dlon) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(dlon)
    return (math.degrees(math.atan2(y, x)) + 360.0) % 360.0


def destination(origin, bearing_deg: float, distance_m: float) -> LatLng:
    """Point reached by travelling distance_m from origin along bearing_deg."""
    lat1 = math.radians(origin[0])
    lon1 = math.radians(origin[1])
    theta = math.radians(bearing_deg)
    delta = distance_m / EARTH_RADIUS_M

    lat2 = math.asin(
        math.sin(lat1) * math.cos(delta) + math.cos(lat1) * math.sin(delta) * math.cos(theta)
    )
    lon2 = lon1 + math.atan2(
        math.sin(theta) * math.sin(delta) * math.cos(lat1),
        math.cos(delta) - math.sin(lat1) * math.sin(lat2),
    )
    lon_deg = (math.degrees(lon2) + 540.0) % 360.0 - 180.0
    return LatLng(math.degrees(lat2), lon_deg)


def _project_onto_segment(point, start, end) -> LatLng:
    # Local equirectangular frame centred on the segment start
    cos_lat = math.cos(math.radians(start[0]))
    ex = (end[1] - start[1]) * cos_lat
    ey = end[0] - start[0]
    px = (point[1] - start[1]) * cos_lat
    py = point[0] - start[0]

    length_sq = ex * ex + ey * ey
    if length_sq == 0:
        return LatLng(start[0], start[1])

    t = max(0.0, min(1.0, (px * ex + py * ey) / length_sq))
    return LatLng(start[0] + t * (end[0] - start[0]), start[1] + t * (end[1] - start[1]))


def closest_point_on_path(point, path: Sequence) -> Optional[PathProjection]:
    """
    Project a point onto a polyline path.

    Args:
        point: (latitude, longitude) of the sample
        path: decoded path vertices

    Returns:
        PathProjection of the nearest segment, or None for an empty path
    """
    if not path:
        return None

    if len(path) == 1:
        vertex = LatLng(path[0][0], path[0][1])
        return PathProjection(0, haversine_distance(point, vertex), vertex)

    best = None
    for i in range(len(path) - 1):
        projected = _project_onto_segment(point, path[i], path[i + 1])
        distance = haversine_distance(point, projected)
        if best is None or distance < best.distance:
            best = PathProjection(i, distance, projected)
    return best
