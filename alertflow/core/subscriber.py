"""Subscriber data models and merge rules - Pure functions.

This module defines subscribers, their notification preferences and the
"last known good" merge applied when a subscriber registers again.
Persistence lives in the shell (SubscriberDirectory).
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any

from alertflow.core.alert import SEVERITY_LEVELS
from alertflow.core.errors import ValidationError
from alertflow.core.geo import calculate_distance, is_valid_latitude, is_valid_longitude


@dataclass(frozen=True)
class QuietHours:
    """Window during which a subscriber prefers not to be disturbed.

    Stored and returned, but not consulted when targeting.
    """
    enabled: bool = False
    start: str = "22:00"
    end: str = "07:00"


@dataclass(frozen=True)
class Preferences:
    """Notification preferences.

    An empty set means "no filter": every type or severity matches.

    Attributes:
        disaster_types: Lower-cased disaster types of interest
        severity_levels: Severity levels of interest
        notifications_enabled: Master switch for push delivery
        quiet_hours: Optional quiet-hours window
    """
    disaster_types: frozenset[str] = field(default_factory=frozenset)
    severity_levels: frozenset[str] = field(default_factory=frozenset)
    notifications_enabled: bool = True
    quiet_hours: QuietHours | None = None


@dataclass(frozen=True)
class SubscriberLocation:
    """Last known location of a subscriber."""
    latitude: float
    longitude: float
    last_updated: datetime | None = None


@dataclass(frozen=True)
class Subscriber:
    """A registered notification recipient.

    Attributes:
        user_id: Externally supplied, stable primary key
        push_token: Transport token (None means push is impossible)
        location: Last known location, if any
        preferences: Notification preferences
        registered_at: First registration time
        last_active_at: Bumped on every mutation
    """
    user_id: str
    push_token: str | None = None
    location: SubscriberLocation | None = None
    preferences: Preferences = field(default_factory=Preferences)
    registered_at: datetime | None = None
    last_active_at: datetime | None = None

    @property
    def can_receive_push(self) -> bool:
        return bool(self.push_token) and self.preferences.notifications_enabled


@dataclass(frozen=True)
class SubscriberRegistration:
    """Incoming registration or re-registration for a subscriber.

    Any field left as None keeps the stored value on an existing subscriber.
    """
    user_id: str
    push_token: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    preferences: Preferences | None = None


@dataclass(frozen=True)
class PushTarget:
    """A push-capable subscriber as seen by targeting and dispatch."""
    token: str
    user_id: str
    preferences: Preferences = field(default_factory=Preferences)


def validate_location(latitude: Any, longitude: Any) -> tuple[float, float]:
    """Check that both coordinates are present and in range.

    Pure function.

    Returns:
        (latitude, longitude) as floats

    Raises:
        ValidationError: If a coordinate is missing, non-numeric or out of range
    """
    if latitude is None or longitude is None:
        raise ValidationError("location", "latitude and longitude are required")

    try:
        lat = float(latitude)
        lon = float(longitude)
    except (TypeError, ValueError):
        raise ValidationError("location", "latitude and longitude must be numbers")

    if not is_valid_latitude(lat):
        raise ValidationError("latitude", f"{lat} out of range [-90, 90]")
    if not is_valid_longitude(lon):
        raise ValidationError("longitude", f"{lon} out of range [-180, 180]")

    return lat, lon


def _string_set(value: Any, field_name: str) -> frozenset[str]:
    if value is None:
        return frozenset()
    if isinstance(value, str) or not isinstance(value, (list, tuple, set, frozenset)):
        raise ValidationError(field_name, "must be a list of strings")
    items = set()
    for item in value:
        if not isinstance(item, str):
            raise ValidationError(field_name, f"non-string entry {item!r}")
        if item.strip():
            items.add(item.strip().lower())
    return frozenset(items)


def parse_quiet_hours(data: Any) -> QuietHours | None:
    """Parse a quiet-hours mapping. Pure function."""
    if not data:
        return None
    if not isinstance(data, dict):
        raise ValidationError("quietHours", "must be an object")
    return QuietHours(
        enabled=bool(data.get("enabled", False)),
        start=str(data.get("start", "22:00")),
        end=str(data.get("end", "07:00")),
    )


def parse_preferences(data: dict[str, Any] | None, strict: bool = True) -> Preferences:
    """Parse preferences from an API payload or stored document.

    Pure function. Disaster types are lower-cased for matching.

    Args:
        data: Preferences mapping in document shape
        strict: Reject unknown severity levels instead of dropping them

    Raises:
        ValidationError: On malformed lists, or unknown severity levels when strict
    """
    if not data:
        return Preferences()

    severity_levels = _string_set(data.get("severityLevels"), "severityLevels")
    unknown = severity_levels - set(SEVERITY_LEVELS)
    if unknown and strict:
        raise ValidationError(
            "severityLevels",
            f"unknown severity levels: {', '.join(sorted(unknown))}",
        )
    severity_levels -= unknown

    enabled = data.get("notificationsEnabled", data.get("enableNotifications", True))

    return Preferences(
        disaster_types=_string_set(data.get("disasterTypes"), "disasterTypes"),
        severity_levels=severity_levels,
        notifications_enabled=bool(enabled),
        quiet_hours=parse_quiet_hours(data.get("quietHours")),
    )


def preferences_to_document(preferences: Preferences) -> dict[str, Any]:
    """Convert preferences to their stored document shape."""
    quiet = preferences.quiet_hours
    return {
        "disasterTypes": sorted(preferences.disaster_types),
        "severityLevels": sorted(preferences.severity_levels),
        "notificationsEnabled": preferences.notifications_enabled,
        "quietHours": (
            {"enabled": quiet.enabled, "start": quiet.start, "end": quiet.end}
            if quiet is not None else None
        ),
    }


def subscriber_to_document(subscriber: Subscriber) -> dict[str, Any]:
    """Convert a subscriber to its stored document shape."""
    location = None
    if subscriber.location is not None:
        location = {
            "latitude": subscriber.location.latitude,
            "longitude": subscriber.location.longitude,
            "lastUpdated": subscriber.location.last_updated,
        }

    return {
        "userId": subscriber.user_id,
        "pushToken": subscriber.push_token,
        "location": location,
        "preferences": preferences_to_document(subscriber.preferences),
        "registeredAt": subscriber.registered_at,
        "lastActiveAt": subscriber.last_active_at,
    }


def _iso(value: Any) -> Any:
    return value.isoformat() if isinstance(value, datetime) else value


def subscriber_to_dict(subscriber: Subscriber) -> dict[str, Any]:
    """Convert a subscriber to a JSON-serializable dict for API responses."""
    doc = subscriber_to_document(subscriber)
    doc["registeredAt"] = _iso(doc["registeredAt"])
    doc["lastActiveAt"] = _iso(doc["lastActiveAt"])
    if doc["location"] is not None:
        doc["location"]["lastUpdated"] = _iso(doc["location"]["lastUpdated"])
    return doc


def subscriber_from_document(doc_id: str, data: dict[str, Any]) -> Subscriber:
    """Rebuild a subscriber from a stored document.

    Stored documents are trusted: unknown severity levels are dropped,
    and preferences that cannot be read at all fall back to defaults.
    """
    location = None
    loc = data.get("location") or {}
    if loc.get("latitude") is not None and loc.get("longitude") is not None:
        location = SubscriberLocation(
            latitude=float(loc["latitude"]),
            longitude=float(loc["longitude"]),
            last_updated=loc.get("lastUpdated"),
        )

    try:
        preferences = parse_preferences(data.get("preferences"), strict=False)
    except ValidationError:
        preferences = Preferences()

    return Subscriber(
        user_id=data.get("userId") or doc_id,
        push_token=data.get("pushToken") or None,
        location=location,
        preferences=preferences,
        registered_at=data.get("registeredAt"),
        last_active_at=data.get("lastActiveAt"),
    )


def merge_subscriber(
    existing: Subscriber | None,
    registration: SubscriberRegistration,
    now: datetime,
) -> Subscriber:
    """Apply a registration to a (possibly missing) stored subscriber.

    Pure function. Token and location are overwritten only when the
    registration supplies usable values; otherwise the stored ones are
    kept ("last known good").

    Args:
        existing: Stored subscriber, or None on first registration
        registration: Incoming registration
        now: Time of the mutation

    Returns:
        The subscriber to store

    Raises:
        ValidationError: If the user ID is empty, only one coordinate is given,
            or coordinates are out of range
    """
    if not registration.user_id or not registration.user_id.strip():
        raise ValidationError("userId", "required field is missing")

    has_lat = registration.latitude is not None
    has_lon = registration.longitude is not None
    if has_lat != has_lon:
        raise ValidationError("location", "latitude and longitude must be provided together")

    location = None
    if has_lat and has_lon:
        lat, lon = validate_location(registration.latitude, registration.longitude)
        location = SubscriberLocation(latitude=lat, longitude=lon, last_updated=now)

    token = registration.push_token.strip() if registration.push_token else None

    if existing is None:
        return Subscriber(
            user_id=registration.user_id,
            push_token=token or None,
            location=location,
            preferences=registration.preferences or Preferences(),
            registered_at=now,
            last_active_at=now,
        )

    return replace(
        existing,
        push_token=token or existing.push_token,
        location=location or existing.location,
        preferences=registration.preferences or existing.preferences,
        last_active_at=now,
    )


def subscribers_within_radius(
    subscribers: list[Subscriber],
    latitude: float,
    longitude: float,
    radius_km: float,
) -> list[tuple[Subscriber, float]]:
    """Select subscribers whose last known location is within a radius.

    Pure function.

    Returns:
        List of (subscriber, distance_km) tuples, nearest first
    """
    matches = []

    for subscriber in subscribers:
        if subscriber.location is None:
            continue
        distance = calculate_distance(
            latitude,
            longitude,
            subscriber.location.latitude,
            subscriber.location.longitude,
        )
        if distance <= radius_km:
            matches.append((subscriber, distance))

    return sorted(matches, key=lambda m: m[1])
