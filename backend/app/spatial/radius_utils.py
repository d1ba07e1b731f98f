"""
radius_utils.py — Great-circle distance for proximity alerting.

Provides:
    - Haversine distance between two (lat, lon) points
    - Inclusive point-in-radius check used by the subscription matcher

All distances are in **kilometers**. Coordinates are in **decimal degrees**.

Mathematical Foundation — Haversine Formula
============================================
Given two points P₁(φ₁, λ₁) and P₂(φ₂, λ₂):

    a = sin²(Δφ / 2) + cos(φ₁) · cos(φ₂) · sin²(Δλ / 2)
    c = 2 · atan2(√a, √(1 − a))
    d = R · c

Where:
    φ  = latitude in radians
    λ  = longitude in radians
    R  = Earth's mean radius = 6,371 km

The result is symmetric in its arguments and exactly 0.0 for identical
points. Non-finite inputs propagate as NaN; callers that need a boolean
answer go through ``is_within_radius``, which treats NaN as "outside".
"""

from __future__ import annotations

import math
import numbers

EARTH_RADIUS_KM: float = 6_371.0


def _is_number(value: object) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


def distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Great-circle distance between two points using the Haversine formula.

    Examples
    --------
    >>> distance_km(0.0, 0.0, 0.0, 0.0)
    0.0
    >>> round(distance_km(0.0, 0.0, 1.0, 0.0), 2)
    111.19
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = (
        math.sin(d_phi / 2.0) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    )
    # Rounding can push a a hair past 1.0 for antipodal points
    a = min(1.0, a)

    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))
    return EARTH_RADIUS_KM * c


def is_within_radius(
    center_lat: float,
    center_lon: float,
    point_lat: float,
    point_lon: float,
    radius_km: float,
) -> bool:
    """
    True when the point lies within ``radius_km`` of the center (inclusive).

    Any coordinate or radius that is not a finite real number (strings
    included), or a radius that is not positive, yields False instead of
    raising.
    """
    values = (center_lat, center_lon, point_lat, point_lon, radius_km)
    if not all(_is_number(v) for v in values):
        return False
    lat1, lon1, lat2, lon2, radius = (float(v) for v in values)
    if not all(math.isfinite(v) for v in (lat1, lon1, lat2, lon2, radius)):
        return False
    if radius <= 0:
        return False

    return distance_km(lat1, lon1, lat2, lon2) <= radius
