"""Alert data model - Pure data structures.

This module defines the typed Alert entity and its mapping to and from
stored documents. All functions are pure with no side effects.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any


SEVERITY_LOW = "low"
SEVERITY_MEDIUM = "medium"
SEVERITY_HIGH = "high"
SEVERITY_CRITICAL = "critical"

# Ordered from least to most urgent
SEVERITY_LEVELS = (
    SEVERITY_LOW,
    SEVERITY_MEDIUM,
    SEVERITY_HIGH,
    SEVERITY_CRITICAL,
)


@dataclass(frozen=True)
class Alert:
    """Immutable disaster alert.

    Only the notification and active flags change after storage, and
    those changes happen in the store, never on this object.

    Attributes:
        id: Unique alert ID, generated at normalization time
        disaster_type: Category as reported by the source (original casing)
        location: Human-readable place description
        date: Calendar date string of the event
        time: Time-of-day string of the event
        magnitude: Opaque magnitude text (may be "Unknown")
        severity: One of SEVERITY_LEVELS, always derived
        created_at: Normalization instant (UTC)
        expires_at: End of the validity window (UTC)
        latitude: Event latitude, None when the source gave no fix
        longitude: Event longitude, None when the source gave no fix
        is_active: False once the expiry sweep has deactivated it
        source: Provenance tag of the ingestion origin
        notification_sent: True once a dispatch had at least one success
        notification_sent_at: When notification_sent was set
    """
    id: str
    disaster_type: str
    location: str
    date: str
    time: str
    magnitude: str
    severity: str
    created_at: datetime
    expires_at: datetime
    latitude: float | None = None
    longitude: float | None = None
    is_active: bool = True
    source: str = "USGS"
    notification_sent: bool = False
    notification_sent_at: datetime | None = None

    @property
    def disaster_key(self) -> str:
        """Canonical lower-case disaster type used for matching."""
        return self.disaster_type.strip().lower()

    @property
    def coordinates(self) -> tuple[float, float] | None:
        """Return (latitude, longitude), or None unless both are known."""
        if self.latitude is None or self.longitude is None:
            return None
        return (self.latitude, self.longitude)


def alert_to_document(alert: Alert) -> dict[str, Any]:
    """Convert an Alert into its stored document shape.

    Pure function.

    Args:
        alert: Alert to convert

    Returns:
        Document dict with camelCase field names
    """
    return {
        "id": alert.id,
        "disasterType": alert.disaster_type,
        "disasterTypeKey": alert.disaster_key,
        "latitude": alert.latitude,
        "longitude": alert.longitude,
        "location": alert.location,
        "date": alert.date,
        "time": alert.time,
        "magnitude": alert.magnitude,
        "severity": alert.severity,
        "createdAt": alert.created_at,
        "expiresAt": alert.expires_at,
        "isActive": alert.is_active,
        "source": alert.source,
        "notificationSent": alert.notification_sent,
        "notificationSentAt": alert.notification_sent_at,
    }


def _optional_float(value: Any) -> float | None:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def alert_from_document(doc_id: str, data: dict[str, Any]) -> Alert:
    """Rebuild an Alert from a stored document.

    Pure function.

    Args:
        doc_id: Document ID (used when the document lacks an "id" field)
        data: Stored document fields

    Returns:
        Alert object
    """
    return Alert(
        id=data.get("id") or doc_id,
        disaster_type=data.get("disasterType", ""),
        location=data.get("location", ""),
        date=data.get("date", ""),
        time=data.get("time", ""),
        magnitude=str(data.get("magnitude", "")),
        severity=data.get("severity", SEVERITY_MEDIUM),
        created_at=data.get("createdAt"),
        expires_at=data.get("expiresAt"),
        latitude=_optional_float(data.get("latitude")),
        longitude=_optional_float(data.get("longitude")),
        is_active=bool(data.get("isActive", False)),
        source=data.get("source", ""),
        notification_sent=bool(data.get("notificationSent", False)),
        notification_sent_at=data.get("notificationSentAt"),
    )


def alert_to_dict(alert: Alert) -> dict[str, Any]:
    """Convert an Alert to a JSON-serializable dict for API responses."""
    doc = alert_to_document(alert)
    for key in ("createdAt", "expiresAt", "notificationSentAt"):
        if doc[key] is not None:
            doc[key] = doc[key].isoformat()
    return doc


def summarize_alert(alert: Alert) -> dict[str, str]:
    """Short summary used in pipeline results."""
    return {
        "id": alert.id,
        "type": alert.disaster_type,
        "location": alert.location,
        "severity": alert.severity,
    }
