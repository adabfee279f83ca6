"""Alert validation - Pure functions.

Structural and range checks applied to normalized alerts before they
are stored. Validation never mutates the alert and never raises; it
returns a result carrying the reason for rejection.
"""

from dataclasses import dataclass

from alertflow.core.alert import Alert
from alertflow.core.errors import ValidationError
from alertflow.core.geo import is_valid_latitude, is_valid_longitude


REQUIRED_FIELDS = ("id", "disaster_type", "location", "created_at", "expires_at")


@dataclass(frozen=True)
class AlertValidation:
    """Result of validating one alert.

    Attributes:
        alert: The alert that was checked
        error: Why it was rejected (None if valid)
    """
    alert: Alert
    error: ValidationError | None = None

    @property
    def valid(self) -> bool:
        return self.error is None

    @property
    def reason(self) -> str | None:
        return str(self.error) if self.error else None


def _is_missing(value: object) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return False


def validate_alert(alert: Alert) -> AlertValidation:
    """Check an alert's required fields and coordinate ranges.

    Pure function. Absent coordinates are valid; present ones must lie
    within [-90, 90] / [-180, 180].

    Args:
        alert: Candidate alert

    Returns:
        AlertValidation for the alert
    """
    for field_name in REQUIRED_FIELDS:
        if _is_missing(getattr(alert, field_name)):
            return AlertValidation(
                alert=alert,
                error=ValidationError(field_name, "required field is missing"),
            )

    if alert.latitude is not None and not is_valid_latitude(alert.latitude):
        return AlertValidation(
            alert=alert,
            error=ValidationError("latitude", f"{alert.latitude} out of range [-90, 90]"),
        )

    if alert.longitude is not None and not is_valid_longitude(alert.longitude):
        return AlertValidation(
            alert=alert,
            error=ValidationError("longitude", f"{alert.longitude} out of range [-180, 180]"),
        )

    return AlertValidation(alert=alert)


def partition_valid(alerts: list[Alert]) -> tuple[list[Alert], list[AlertValidation]]:
    """Split alerts into valid ones and rejected validation results.

    Pure function. Order is preserved within each group.

    Returns:
        Tuple of (valid alerts, rejected validations)
    """
    valid = []
    rejected = []

    for alert in alerts:
        result = validate_alert(alert)
        if result.valid:
            valid.append(alert)
        else:
            rejected.append(result)

    return valid, rejected
