"""Push notification formatting - Pure functions.

This module formats alerts into transport-neutral push payloads.
All functions are pure with no side effects.
"""

from dataclasses import dataclass

from alertflow.core.alert import (
    Alert,
    SEVERITY_CRITICAL,
    SEVERITY_HIGH,
    SEVERITY_LOW,
    SEVERITY_MEDIUM,
)


SEVERITY_EMOJI = {
    SEVERITY_LOW: "🟡",
    SEVERITY_MEDIUM: "🟠",
    SEVERITY_HIGH: "🔴",
    SEVERITY_CRITICAL: "🚨",
}

SEVERITY_COLORS = {
    SEVERITY_LOW: "#FFA500",       # Orange
    SEVERITY_MEDIUM: "#FF6B35",    # Red-orange
    SEVERITY_HIGH: "#FF0000",      # Red
    SEVERITY_CRITICAL: "#8B0000",  # Dark red
}

# Android notification priority per severity
ANDROID_NOTIFICATION_PRIORITY = {
    SEVERITY_LOW: "default",
    SEVERITY_MEDIUM: "high",
    SEVERITY_HIGH: "high",
    SEVERITY_CRITICAL: "max",
}

ANDROID_CHANNEL_ID = "disaster_alerts"
CLICK_ACTION = "ALERT_DETAIL"


@dataclass(frozen=True)
class PushNotification:
    """Transport-neutral push payload.

    Attributes:
        title: Notification title
        body: Notification body
        data: String-only data map delivered to the app
        color: Accent color for the severity
        android_priority: Android notification priority
        urgent: Whether to deliver with high message priority
    """
    title: str
    body: str
    data: dict[str, str]
    color: str
    android_priority: str
    urgent: bool


def format_title(alert: Alert, is_test: bool = False) -> str:
    """Format the notification title, e.g. "🚨 EARTHQUAKE Alert".

    Pure function.
    """
    emoji = SEVERITY_EMOJI.get(alert.severity, "⚠️")
    prefix = "[TEST] " if is_test else ""
    return f"{prefix}{emoji} {alert.disaster_type.upper()} Alert"


def format_body(alert: Alert) -> str:
    """Format the notification body.

    Pure function. The magnitude clause is left out when unknown.
    """
    body = f"{alert.disaster_type} detected in {alert.location}"

    if alert.magnitude and alert.magnitude != "Unknown":
        body += f" (Magnitude: {alert.magnitude})"

    return body + ". Tap for details."


def build_data(alert: Alert) -> dict[str, str]:
    """Build the string-only data map sent alongside the notification.

    Pure function.
    """
    return {
        "alertId": alert.id,
        "disasterType": alert.disaster_type,
        "severity": alert.severity,
        "location": alert.location,
        "magnitude": alert.magnitude,
        "latitude": "" if alert.latitude is None else str(alert.latitude),
        "longitude": "" if alert.longitude is None else str(alert.longitude),
        "createdAt": alert.created_at.isoformat(),
        "clickAction": CLICK_ACTION,
    }


def build_push_notification(alert: Alert, is_test: bool = False) -> PushNotification:
    """Format an alert as a push payload.

    Pure function.

    Args:
        alert: Alert to format
        is_test: Mark the title as a test message

    Returns:
        PushNotification for the transport
    """
    return PushNotification(
        title=format_title(alert, is_test=is_test),
        body=format_body(alert),
        data=build_data(alert),
        color=SEVERITY_COLORS.get(alert.severity, SEVERITY_COLORS[SEVERITY_LOW]),
        android_priority=ANDROID_NOTIFICATION_PRIORITY.get(alert.severity, "default"),
        urgent=alert.severity in (SEVERITY_HIGH, SEVERITY_CRITICAL),
    )
