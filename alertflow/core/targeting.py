"""Notification targeting - Pure functions.

Decides which push-capable subscribers receive a given alert, based on
their disaster-type and severity preferences. All functions are pure
with no side effects.
"""

from alertflow.core.alert import Alert
from alertflow.core.subscriber import Preferences, PushTarget


def matches_disaster_type(preferences: Preferences, alert: Alert) -> bool:
    """Check the disaster-type preference.

    Pure function. An empty preference set matches every type.
    """
    if not preferences.disaster_types:
        return True
    return alert.disaster_key in preferences.disaster_types


def matches_severity(preferences: Preferences, alert: Alert) -> bool:
    """Check the severity preference.

    Pure function. An empty preference set matches every severity.
    """
    if not preferences.severity_levels:
        return True
    return alert.severity in preferences.severity_levels


def matches_preferences(preferences: Preferences, alert: Alert) -> bool:
    """Check whether preferences admit an alert.

    Pure function. Quiet hours are deliberately not consulted.

    Args:
        preferences: Subscriber preferences
        alert: Alert being distributed

    Returns:
        True if both the type and severity filters admit the alert
    """
    return matches_disaster_type(preferences, alert) and matches_severity(preferences, alert)


def select_targets(targets: list[PushTarget], alert: Alert) -> list[PushTarget]:
    """Select the subscribers that should receive an alert.

    Pure function. Order of the input is preserved.

    Args:
        targets: All push-capable subscribers
        alert: Alert being distributed

    Returns:
        Subscribers whose preferences admit the alert
    """
    return [t for t in targets if matches_preferences(t.preferences, alert)]
