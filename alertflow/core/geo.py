"""Geographic calculations - Pure functions.

This module provides distance calculations and proximity ranking for
alert and subscriber locations. All functions are pure with no side effects.
"""

import math
from dataclasses import dataclass

from alertflow.core.alert import Alert


# Earth's radius in kilometers
EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class NearbyAlert:
    """An alert together with its distance from a query point.

    Attributes:
        alert: The alert
        distance_km: Great-circle distance from the query point
    """
    alert: Alert
    distance_km: float


def is_valid_latitude(latitude: float) -> bool:
    """Latitude lies in [-90, 90]."""
    return -90.0 <= latitude <= 90.0


def is_valid_longitude(longitude: float) -> bool:
    """Longitude lies in [-180, 180]."""
    return -180.0 <= longitude <= 180.0


def calculate_distance(
    lat1: float,
    lon1: float,
    lat2: float,
    lon2: float,
) -> float:
    """Calculate distance between two points using Haversine formula.

    Pure function.

    Args:
        lat1: Latitude of first point
        lon1: Longitude of first point
        lat2: Latitude of second point
        lon2: Longitude of second point

    Returns:
        Distance in kilometers
    """
    # Convert to radians
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    delta_lat = math.radians(lat2 - lat1)
    delta_lon = math.radians(lon2 - lon1)

    # Haversine formula
    a = (
        math.sin(delta_lat / 2) ** 2
        + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(delta_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_KM * c


def distance_to_alert(
    alert: Alert,
    latitude: float,
    longitude: float,
) -> float | None:
    """Distance from a point to an alert, or None if the alert has no fix.

    Pure function.
    """
    coords = alert.coordinates
    if coords is None:
        return None
    return calculate_distance(latitude, longitude, coords[0], coords[1])


def rank_alerts_by_distance(
    alerts: list[Alert],
    latitude: float,
    longitude: float,
    radius_km: float,
) -> list[NearbyAlert]:
    """Select alerts within a radius, nearest first.

    Pure function. Alerts without coordinates are never "nearby".

    Args:
        alerts: Candidate alerts
        latitude: Query point latitude
        longitude: Query point longitude
        radius_km: Inclusive search radius in kilometers

    Returns:
        Nearby alerts sorted ascending by distance
    """
    nearby = []

    for alert in alerts:
        distance = distance_to_alert(alert, latitude, longitude)
        if distance is not None and distance <= radius_km:
            nearby.append(NearbyAlert(alert=alert, distance_km=distance))

    return sorted(nearby, key=lambda n: n.distance_km)
