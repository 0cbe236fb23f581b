"""Geospatial helper functions."""

from __future__ import annotations

import math
from typing import Iterable

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute distance between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_KM * c


def bearing_degrees(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate the initial bearing from (lat1, lon1) to (lat2, lon2)."""

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_lambda = math.radians(lon2 - lon1)
    y = math.sin(delta_lambda) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(delta_lambda)
    bearing = math.degrees(math.atan2(y, x))
    return (bearing + 360) % 360


def path_length_km(coordinates: Iterable[tuple[float, float]]) -> float:
    """Sum of haversine legs along (lat, lon) pairs."""

    total = 0.0
    previous: tuple[float, float] | None = None
    for lat, lon in coordinates:
        if previous is not None:
            total += haversine_km(previous[0], previous[1], lat, lon)
        previous = (lat, lon)
    return total


def google_maps_search_url(lat: float, lon: float) -> str:
    return f"https://www.google.com/maps/search/?api=1&query={lat},{lon}"


def google_maps_directions_url(coordinates: Iterable[tuple[float, float]]) -> str | None:
    waypoints = "/".join(f"{lat},{lon}" for lat, lon in coordinates)
    if not waypoints:
        return None
    return f"https://www.google.com/maps/dir/{waypoints}"
