"""Geometry utilities for bearings and angles around road junctions."""

import math
from typing import Sequence, Tuple


EARTH_RADIUS_M = 6371000


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate great circle distance between two GPS points in meters."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(delta_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def bearing(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate initial great-circle bearing from point 1 to point 2 (0-360)."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_lambda = math.radians(lon2 - lon1)

    x = math.sin(delta_lambda) * math.cos(phi2)
    y = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(
        delta_lambda
    )

    bearing_rad = math.atan2(x, y)
    # The modulo can yield exactly 360.0 for tiny negative inputs
    return ((math.degrees(bearing_rad) + 360) % 360) % 360


def angle_difference(angle1: float, angle2: float) -> float:
    """Calculate smallest difference between two angles in degrees (-180 to 180)."""
    diff = (angle2 - angle1 + 180) % 360 - 180
    return diff


def clockwise_gap(from_bearing: float, to_bearing: float) -> float:
    """Angle swept turning clockwise from one bearing to another (0-360)."""
    return (to_bearing - from_bearing) % 360


def sector_gaps(bearings: Sequence[float]) -> Tuple[float, float, float]:
    """
    Angles of the three sectors formed by three bearings.

    Bearings are visited in clockwise order and the gap between each pair of
    consecutive bearings is measured, wrapping through north. The result is
    in clockwise order starting from the smallest bearing and sums to 360.
    """
    if len(bearings) != 3:
        raise ValueError(f"Expected 3 bearings, got {len(bearings)}")

    b = sorted(bearings)
    return (
        clockwise_gap(b[0], b[1]),
        clockwise_gap(b[1], b[2]),
        360.0 - clockwise_gap(b[0], b[2]),
    )


def mean_bearing(bearing1: float, bearing2: float) -> float:
    """
    Direction halfway between two bearings along the shorter arc (0-360).

    Naive averaging fails across north: the mean of 350 and 10 is 0, not 180.
    """
    mid = bearing1 + angle_difference(bearing1, bearing2) / 2
    return mid % 360
