"""
Geographic utility functions.

This module provides core geospatial calculations used throughout the application.
Coordinates travel as ``[longitude, latitude]`` pairs on the wire; the helpers
below take latitude first, like the haversine formula is usually written.
"""

from math import radians, degrees, cos, sin, asin, sqrt
from typing import Optional, Sequence, Tuple

EARTH_RADIUS_METERS = 6371000

# Average speeds in km/h used for rough duration estimates
VEHICLE_SPEEDS_KMH = {
    "bike": 15,
    "scooter": 25,
    "car": 30,
    "van": 25,
}


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate distance between two points in meters using Haversine formula.

    Args:
        lat1: Latitude of first point
        lon1: Longitude of first point
        lat2: Latitude of second point
        lon2: Longitude of second point

    Returns:
        Distance in meters
    """
    lat1, lon1, lat2, lon2 = map(radians, [float(lat1), float(lon1), float(lat2), float(lon2)])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    c = 2 * asin(sqrt(min(1.0, a)))
    return c * EARTH_RADIUS_METERS


def distance_between(coord_a: Sequence[float], coord_b: Sequence[float]) -> float:
    """Distance in meters between two ``[lng, lat]`` pairs."""
    return calculate_distance(coord_a[1], coord_a[0], coord_b[1], coord_b[0])


def is_valid_coordinate(lng, lat) -> bool:
    try:
        lng, lat = float(lng), float(lat)
    except (TypeError, ValueError):
        return False
    return -180.0 <= lng <= 180.0 and -90.0 <= lat <= 90.0


def bounding_box(lat: float, lon: float, radius_meters: float) -> Tuple[Optional[Tuple[float, float]], Optional[Tuple[float, float]]]:
    """
    Approximate lat/lon ranges that contain the circle around a point.

    Returns ``(lat_range, lon_range)``. A range is None when bounding that axis
    would wrap a pole or the antimeridian; callers then skip the prefilter on it.
    """
    angular = radius_meters / EARTH_RADIUS_METERS
    lat_delta = degrees(angular)
    lat_range = (lat - lat_delta, lat + lat_delta)
    if lat_range[0] < -90.0 or lat_range[1] > 90.0:
        return None, None

    cos_lat = cos(radians(lat))
    if cos_lat < 1e-6:
        return lat_range, None
    # Widest longitude span of the circle, reached north or south of the centre
    lon_delta = degrees(asin(min(1.0, sin(angular) / cos_lat)))
    lon_range = (lon - lon_delta, lon + lon_delta)
    if lon_range[0] < -180.0 or lon_range[1] > 180.0:
        return lat_range, None
    return lat_range, lon_range


def estimate_duration_minutes(distance_meters: Optional[float], vehicle_type: str = "bike") -> Optional[int]:
    """
    Rough delivery time for a trip, including a 10-20 minute handling buffer.
    """
    if not distance_meters:
        return None
    speed = VEHICLE_SPEEDS_KMH.get(vehicle_type, VEHICLE_SPEEDS_KMH["bike"])
    minutes = round((distance_meters / 1000.0) / speed * 60)
    buffer_minutes = max(10, min(20, minutes * 0.3))
    return round(minutes + buffer_minutes)
