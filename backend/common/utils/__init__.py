"""Common utility functions."""

from .geo import calculate_distance, is_valid_coordinate, EARTH_RADIUS_KM

__all__ = [
    "calculate_distance",
    "is_valid_coordinate",
    "EARTH_RADIUS_KM",
]
