"""Common utility functions."""

from .geo import calculate_distance, detect_fake_gps

__all__ = [
    "calculate_distance",
    "detect_fake_gps",
]
