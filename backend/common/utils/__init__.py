"""Common utility functions."""

from .geo import (
    calculate_distance,
    distance_between,
    is_valid_coordinate,
    bounding_box,
    estimate_duration_minutes,
)

__all__ = [
    "calculate_distance",
    "distance_between",
    "is_valid_coordinate",
    "bounding_box",
    "estimate_duration_minutes",
]
