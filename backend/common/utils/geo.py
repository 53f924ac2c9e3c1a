"""
Geographic utility functions.

Straight-line distances are used for ranking delivery persons; routed
distances (from the maps provider) are used for pricing only.
"""

from datetime import datetime
from math import radians, cos, sin, asin, sqrt
from typing import Optional, Tuple

EARTH_RADIUS_KM = 6371.0

# Faster than any courier vehicle; anything above is treated as spoofed GPS
MAX_PLAUSIBLE_SPEED_KMH = 200.0


def calculate_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate distance between two points in kilometers using Haversine formula.

    Args:
        lat1: Latitude of first point
        lon1: Longitude of first point
        lat2: Latitude of second point
        lon2: Longitude of second point

    Returns:
        Distance in kilometers
    """
    lat1, lon1, lat2, lon2 = map(radians, [float(lat1), float(lon1), float(lat2), float(lon2)])
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    c = 2 * asin(sqrt(a))
    return c * EARTH_RADIUS_KM


def detect_fake_gps(
    prev_lat: Optional[float],
    prev_lon: Optional[float],
    prev_timestamp: Optional[datetime],
    lat: float,
    lon: float,
    timestamp: datetime,
) -> Tuple[bool, str]:
    """
    Flag location jumps no vehicle could make.

    Returns:
        (is_fake, reason) - reason is empty when the update looks plausible
    """
    if prev_lat is None or prev_lon is None or prev_timestamp is None:
        return False, ""

    elapsed = (timestamp - prev_timestamp).total_seconds()
    if elapsed < 1:
        return False, ""

    distance_km = calculate_distance(prev_lat, prev_lon, lat, lon)
    speed_kmh = distance_km / elapsed * 3600

    if speed_kmh > MAX_PLAUSIBLE_SPEED_KMH:
        return True, f"Impossible speed detected: {speed_kmh:.1f} km/h"

    # More than 500 m in under 3 seconds
    if distance_km > 0.5 and elapsed < 3:
        return True, f"Position jump detected: {distance_km * 1000:.0f} m in {elapsed:.1f} s"

    return False, ""
