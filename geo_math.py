from __future__ import annotations

import math


EARTH_RADIUS_KM = 6371.0

# ETA sentinels returned in place of "<n> minutes"
ETA_STOPPED = "Stopped"
ETA_ARRIVED = "Arrived"
ETA_UNKNOWN = "Unknown"


def distance_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance in kilometres between two lat/lon points."""
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(lat1))
        * math.cos(math.radians(lat2))
        * math.sin(dlon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def _round_half_up(value: float) -> int:
    # round() in Python is banker's rounding; dashboards expect 2.5 -> 3
    return int(math.floor(value + 0.5))


def eta_minutes(distance: float, speed_kmh: float) -> int:
    return _round_half_up(distance / speed_kmh * 60.0)


def eta(lat: float, lon: float, dest_lat: float, dest_lon: float, speed_kmh: float) -> str:
    """Human-readable ETA to a destination at the current speed.

    Returns ``ETA_STOPPED`` when the vehicle is not moving, ``ETA_ARRIVED``
    once the rounded minutes reach zero, otherwise ``"<n> minutes"``.
    """
    if speed_kmh == 0:
        return ETA_STOPPED
    minutes = eta_minutes(distance_km(lat, lon, dest_lat, dest_lon), speed_kmh)
    if minutes <= 0:
        return ETA_ARRIVED
    return f"{minutes} minutes"


__all__ = [
    "EARTH_RADIUS_KM",
    "ETA_ARRIVED",
    "ETA_STOPPED",
    "ETA_UNKNOWN",
    "distance_km",
    "eta",
    "eta_minutes",
]
