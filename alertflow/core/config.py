"""Configuration models - Pure data structures.

These are domain models for configuration. The actual loading
(I/O) is handled by the shell layer.
"""

from dataclasses import dataclass, field

from alertflow.core.alert import SEVERITY_LEVELS
from alertflow.core.dispatch import (
    DEFAULT_BROADCAST_SEVERITIES,
    DEFAULT_MAX_RECIPIENTS_PER_CALL,
    DEFAULT_TOPIC_PREFIX,
)
from alertflow.core.normalizer import DEFAULT_SOURCE, DEFAULT_VALIDITY_HOURS


@dataclass
class FirestoreSettings:
    """Where alerts and subscribers are stored.

    Attributes:
        project_id: GCP project ID (None for default)
        database: Firestore database name (None for default database)
        alerts_collection: Collection holding alert documents
        subscribers_collection: Collection holding subscriber documents
    """
    project_id: str | None = None
    database: str | None = None
    alerts_collection: str = "alerts"
    subscribers_collection: str = "users"


@dataclass
class AlertSettings:
    """Alert lifecycle and query settings.

    Attributes:
        validity_hours: How long a new alert stays active
        source: Provenance tag stamped on ingested alerts
        active_limit: Default cap for active-alert queries
        nearby_scan_limit: Active alerts scanned by proximity queries
        default_radius_km: Default radius for proximity queries
    """
    validity_hours: float = DEFAULT_VALIDITY_HOURS
    source: str = DEFAULT_SOURCE
    active_limit: int = 50
    nearby_scan_limit: int = 200
    default_radius_km: float = 50.0


@dataclass
class NotificationSettings:
    """Push distribution settings.

    Attributes:
        max_recipients_per_call: Transport fan-out ceiling per multicast call
        max_parallel_chunks: Chunks sent concurrently (1 = sequential)
        broadcast_severities: Severities that are also sent to a topic
        topic_prefix: Prefix of severity topic names
        prune_unregistered_tokens: Clear tokens the transport reports as gone
        firebase_credentials_path: Service account file (None for ADC)
        firebase_project_id: Firebase project ID (None for default)
    """
    max_recipients_per_call: int = DEFAULT_MAX_RECIPIENTS_PER_CALL
    max_parallel_chunks: int = 1
    broadcast_severities: tuple[str, ...] = DEFAULT_BROADCAST_SEVERITIES
    topic_prefix: str = DEFAULT_TOPIC_PREFIX
    prune_unregistered_tokens: bool = True
    firebase_credentials_path: str | None = None
    firebase_project_id: str | None = None


@dataclass
class ExtractionSettings:
    """External text-extraction service settings.

    Attributes:
        api_key: API key for the extraction service
        model: Model name
        timeout_seconds: Request timeout
    """
    api_key: str | None = None
    model: str = "gemini-2.0-flash"
    timeout_seconds: int = 60


@dataclass
class Config:
    """Application configuration.

    This is a pure data structure - no I/O or side effects.
    """
    firestore: FirestoreSettings = field(default_factory=FirestoreSettings)
    alerts: AlertSettings = field(default_factory=AlertSettings)
    notifications: NotificationSettings = field(default_factory=NotificationSettings)
    extraction: ExtractionSettings = field(default_factory=ExtractionSettings)


@dataclass
class ConfigIssue:
    """A configuration validation problem.

    Attributes:
        field: The field that has a problem
        message: Human-readable description
        severity: 'error' or 'warning'
    """
    field: str
    message: str
    severity: str = "error"


@dataclass
class ConfigValidation:
    """Result of validating configuration.

    Attributes:
        valid: True if no errors (warnings are OK)
        issues: List of errors and warnings
    """
    valid: bool
    issues: list[ConfigIssue] = field(default_factory=list)

    @property
    def warnings(self) -> list[ConfigIssue]:
        """Get only warnings."""
        return [i for i in self.issues if i.severity == "warning"]

    @property
    def critical_errors(self) -> list[ConfigIssue]:
        """Get only critical errors."""
        return [i for i in self.issues if i.severity == "error"]


def validate_config(config: Config) -> ConfigValidation:
    """Validate configuration for errors and warnings.

    Pure function.

    Args:
        config: Configuration to validate

    Returns:
        ConfigValidation with any problems found
    """
    issues: list[ConfigIssue] = []
    notifications = config.notifications

    if not 1 <= notifications.max_recipients_per_call <= DEFAULT_MAX_RECIPIENTS_PER_CALL:
        issues.append(ConfigIssue(
            field="notifications.max_recipients_per_call",
            message=(
                f"Must be between 1 and {DEFAULT_MAX_RECIPIENTS_PER_CALL}, "
                f"got {notifications.max_recipients_per_call}"
            ),
        ))

    if notifications.max_parallel_chunks < 1:
        issues.append(ConfigIssue(
            field="notifications.max_parallel_chunks",
            message=f"Must be at least 1, got {notifications.max_parallel_chunks}",
        ))

    unknown = [s for s in notifications.broadcast_severities if s not in SEVERITY_LEVELS]
    if unknown:
        issues.append(ConfigIssue(
            field="notifications.broadcast_severities",
            message=f"Unknown severities: {', '.join(unknown)}",
        ))

    if config.alerts.validity_hours <= 0:
        issues.append(ConfigIssue(
            field="alerts.validity_hours",
            message=f"Validity window must be positive, got {config.alerts.validity_hours}",
        ))

    if config.alerts.active_limit < 1:
        issues.append(ConfigIssue(
            field="alerts.active_limit",
            message=f"Must be at least 1, got {config.alerts.active_limit}",
        ))

    if config.alerts.default_radius_km <= 0:
        issues.append(ConfigIssue(
            field="alerts.default_radius_km",
            message=f"Radius must be positive, got {config.alerts.default_radius_km}",
        ))

    api_key = config.extraction.api_key
    if not api_key or api_key.startswith("${"):
        issues.append(ConfigIssue(
            field="extraction.api_key",
            message="Extraction API key not resolved; source ingestion is disabled",
            severity="warning",
        ))

    has_critical = any(i.severity == "error" for i in issues)

    return ConfigValidation(
        valid=not has_critical,
        issues=issues,
    )
