"""Orchestrator - Wires Functional Core and Imperative Shell.

This module coordinates the flow of data between the pure functional
core and the I/O-performing shell components. One pass per extraction
payload:

    received -> normalized -> validated -> stored -> dispatched
             -> status_updated -> completed

Anything before "stored" that fails ends the run as "failed". Once the
alerts are stored, later failures are recorded as non-fatal errors and
the run still succeeds.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from alertflow.core.alert import Alert, summarize_alert
from alertflow.core.config import Config
from alertflow.core.dispatch import DispatchReport, SendResult, failed_chunk
from alertflow.core.errors import (
    DocumentNotFoundError,
    ExtractionError,
    StorageError,
    TransportUnavailableError,
    ValidationError,
)
from alertflow.core.geo import NearbyAlert, rank_alerts_by_distance
from alertflow.core.normalizer import normalize_extraction
from alertflow.core.subscriber import PushTarget, validate_location
from alertflow.core.targeting import select_targets
from alertflow.core.validator import partition_valid
from alertflow.dispatcher import NotificationDispatcher
from alertflow.shell.alert_store import AlertStore
from alertflow.shell.extraction_client import ExtractionClient, ExtractionConfig
from alertflow.shell.fcm_client import FCMClient, FCMConfig
from alertflow.shell.firestore_client import FirestoreClient, FirestoreConfig
from alertflow.shell.subscriber_directory import SubscriberDirectory


logger = logging.getLogger(__name__)


STAGE_RECEIVED = "received"
STAGE_NORMALIZED = "normalized"
STAGE_VALIDATED = "validated"
STAGE_STORED = "stored"
STAGE_DISPATCHED = "dispatched"
STAGE_STATUS_UPDATED = "status_updated"
STAGE_COMPLETED = "completed"
STAGE_FAILED = "failed"

FAILURE_EXTRACTION = "extraction_failed"
FAILURE_NO_VALID_ALERTS = "no_valid_alerts"
FAILURE_STORAGE = "storage_error"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PipelineResult:
    """Result of one pipeline run.

    Attributes:
        stage: Last stage reached (STAGE_COMPLETED or STAGE_FAILED at the end)
        success: False only if the run failed before alerts were stored
        total: Alerts produced by normalization
        valid: Alerts that passed validation
        stored: Alerts persisted
        notifications_sent: Recipients the transport accepted
        notifications_failed: Recipients that failed
        parse_errors: Fragments of the payload that could not be parsed
        invalid: Alerts rejected by validation
        swept: Expired alerts deactivated at the end of the run
        alerts_summary: Short description of each stored alert
        reports: Dispatch report per stored alert
        errors: Non-fatal errors after storage
        failure_reason: Why the run failed (None on success)
    """
    stage: str = STAGE_RECEIVED
    success: bool = False
    total: int = 0
    valid: int = 0
    stored: int = 0
    notifications_sent: int = 0
    notifications_failed: int = 0
    parse_errors: int = 0
    invalid: int = 0
    swept: int = 0
    alerts_summary: list[dict[str, str]] = field(default_factory=list)
    reports: list[DispatchReport] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    failure_reason: str | None = None

    @property
    def processed_counts(self) -> dict[str, int]:
        return {
            "total": self.total,
            "valid": self.valid,
            "stored": self.stored,
            "notificationsSent": self.notifications_sent,
            "notificationsFailed": self.notifications_failed,
        }

    @property
    def summary(self) -> str:
        """Human-readable summary of the pipeline result."""
        if not self.success:
            return f"Failed: {self.failure_reason}"
        return (
            f"Processed {self.total} alerts, "
            f"{self.stored} stored, "
            f"{self.notifications_sent} notifications sent, "
            f"{self.notifications_failed} failed, "
            f"{self.swept} expired alerts swept"
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-serializable form for API responses."""
        response: dict[str, Any] = {
            "success": self.success,
            "stage": self.stage,
            "processedCounts": self.processed_counts,
            "parseErrors": self.parse_errors,
            "invalid": self.invalid,
            "swept": self.swept,
            "alertsSummary": self.alerts_summary,
        }
        if self.failure_reason:
            response["failureReason"] = self.failure_reason
        if self.errors:
            response["errors"] = self.errors
        return response


def _fail(result: PipelineResult, reason: str, message: str) -> PipelineResult:
    logger.error("Pipeline failed at %s: %s", result.stage, message)
    result.success = False
    result.failure_reason = reason
    result.errors.append(message)
    result.stage = STAGE_FAILED
    return result


def _unreachable_report(alert: Alert, targets: list[PushTarget], error: str) -> DispatchReport:
    """Report for an alert whose dispatch could not start at all."""
    report = DispatchReport(alert_id=alert.id, targeted=len(targets))
    if targets:
        report.chunks = [failed_chunk(0, [t.token for t in targets], error)]
    return report


class PipelineOrchestrator:
    """Coordinates alert ingestion and notification distribution.

    This class wires together:
    - Core functions (normalization, validation, targeting)
    - Alert store and subscriber directory (Firestore)
    - Notification dispatcher (FCM)
    - Extraction client (Gemini), for ingesting raw source text
    """

    def __init__(
        self,
        config: Config,
        alert_store: AlertStore | None = None,
        directory: SubscriberDirectory | None = None,
        dispatcher: NotificationDispatcher | None = None,
        extraction_client: ExtractionClient | None = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        """Initialize orchestrator with configuration.

        Args:
            config: Application configuration
            alert_store: Alert store (created if not provided)
            directory: Subscriber directory (created if not provided)
            dispatcher: Notification dispatcher (created if not provided)
            extraction_client: Extraction client (created if not provided)
            clock: Returns the current UTC time
        """
        self.config = config
        self.clock = clock

        if alert_store is None or directory is None:
            document_store = FirestoreClient(FirestoreConfig(
                project_id=config.firestore.project_id,
                database=config.firestore.database,
            ))
            alert_store = alert_store or AlertStore(
                document_store, config.firestore.alerts_collection, clock=clock
            )
            directory = directory or SubscriberDirectory(
                document_store, config.firestore.subscribers_collection, clock=clock
            )

        self.alert_store = alert_store
        self.directory = directory

        notifications = config.notifications
        self.dispatcher = dispatcher or NotificationDispatcher(
            FCMClient(FCMConfig(
                credentials_path=notifications.firebase_credentials_path,
                project_id=notifications.firebase_project_id,
                max_recipients_per_call=notifications.max_recipients_per_call,
            )),
            max_recipients_per_call=notifications.max_recipients_per_call,
            max_parallel_chunks=notifications.max_parallel_chunks,
            broadcast_severities=notifications.broadcast_severities,
            topic_prefix=notifications.topic_prefix,
        )
        self.extraction_client = extraction_client or ExtractionClient(ExtractionConfig(
            api_key=config.extraction.api_key,
            model=config.extraction.model,
            timeout=config.extraction.timeout_seconds,
        ))

    def _dispatch_all(self, alerts: list[Alert], result: PipelineResult) -> None:
        """Target and dispatch every stored alert, recording into result."""
        try:
            pushable = self.directory.list_pushable_tokens()
        except StorageError as e:
            result.errors.append(f"Failed to list subscribers: {e}")
            logger.error("Skipping dispatch, subscribers unavailable: %s", str(e))
            return

        user_by_token = {t.token: t.user_id for t in pushable}
        unregistered_users: list[str] = []

        for alert in alerts:
            targets = select_targets(pushable, alert)
            logger.info(
                "Alert %s (%s, %s) targets %d of %d subscribers",
                alert.id,
                alert.disaster_type,
                alert.severity,
                len(targets),
                len(pushable),
            )

            try:
                report = self.dispatcher.dispatch(alert, targets)
            except TransportUnavailableError as e:
                result.errors.append(f"Push transport unavailable for alert {alert.id}: {e}")
                report = _unreachable_report(alert, targets, str(e))

            if report.topic_error:
                result.errors.append(f"Topic broadcast failed for alert {alert.id}")

            result.reports.append(report)
            result.notifications_sent += report.total_sent
            result.notifications_failed += report.total_failed
            unregistered_users.extend(
                user_by_token[token]
                for token in report.unregistered_tokens
                if token in user_by_token
            )

        if unregistered_users and self.config.notifications.prune_unregistered_tokens:
            try:
                self.directory.clear_push_tokens(unregistered_users)
            except StorageError as e:
                result.errors.append(f"Failed to clear unregistered tokens: {e}")

    def _update_status(self, result: PipelineResult) -> None:
        for report in result.reports:
            try:
                self.alert_store.mark_notified(report.alert_id, sent=report.any_sent)
            except StorageError as e:
                result.errors.append(f"Failed to update status of alert {report.alert_id}: {e}")
                logger.error("Status update for %s failed: %s", report.alert_id, str(e))

    def process_extraction(self, text: str) -> PipelineResult:
        """Run the pipeline on one raw extraction payload.

        This is the main entry point that:
        1. Normalizes the payload into alerts
        2. Validates them
        3. Stores the valid ones in one atomic batch
        4. Targets and dispatches notifications
        5. Records notification status
        6. Sweeps expired alerts

        Returns:
            PipelineResult; never raises for StorageError or DispatchError
        """
        result = PipelineResult()

        # Step 1: Normalize (pure core function)
        normalization = normalize_extraction(
            text or "",
            now=self.clock(),
            validity_hours=self.config.alerts.validity_hours,
            source=self.config.alerts.source,
        )
        for error in normalization.errors:
            logger.warning("Skipped unparseable fragment: %s", error)

        result.total = len(normalization.alerts)
        result.parse_errors = normalization.parse_error_count
        result.stage = STAGE_NORMALIZED
        logger.info(
            "Normalized %d alerts (%d fragments skipped)",
            result.total,
            result.parse_errors,
        )

        # Step 2: Validate (pure core function)
        valid, rejected = partition_valid(normalization.alerts)
        for rejection in rejected:
            logger.warning("Rejected alert %s: %s", rejection.alert.id, rejection.reason)

        result.valid = len(valid)
        result.invalid = len(rejected)
        result.stage = STAGE_VALIDATED

        if not valid:
            return _fail(result, FAILURE_NO_VALID_ALERTS, "No valid alerts after validation")

        # Step 3: Store (durability point)
        try:
            stored_ids = self.alert_store.store_batch(valid)
        except StorageError as e:
            return _fail(result, FAILURE_STORAGE, f"Failed to store alerts: {e}")

        result.stored = len(stored_ids)
        result.alerts_summary = [summarize_alert(a) for a in valid]
        result.success = True
        result.stage = STAGE_STORED

        # Step 4: Target and dispatch
        self._dispatch_all(valid, result)
        result.stage = STAGE_DISPATCHED

        # Step 5: Record notification status
        self._update_status(result)
        result.stage = STAGE_STATUS_UPDATED

        # Step 6: Sweep expired alerts
        try:
            result.swept = self.alert_store.sweep_expired()
        except StorageError as e:
            result.errors.append(f"Failed to sweep expired alerts: {e}")
        result.stage = STAGE_COMPLETED
        logger.info("Completed: %s", result.summary)
        return result

    def ingest_source(self, source_text: str) -> PipelineResult:
        """Extract alerts from raw source text, then run the pipeline.

        Returns:
            PipelineResult; a failed extraction ends the run as failed
        """
        try:
            extracted = self.extraction_client.extract(source_text)
        except ExtractionError as e:
            return _fail(PipelineResult(), FAILURE_EXTRACTION, f"Extraction failed: {e}")

        return self.process_extraction(extracted)

    def get_active_alerts(
        self,
        severity: str | None = None,
        limit: int | None = None,
    ) -> list[Alert]:
        """Active alerts, optionally of one severity.

        Raises:
            ValidationError: If the severity or limit is invalid
            StorageError: If the query fails
        """
        if limit is None:
            limit = self.config.alerts.active_limit
        if limit < 1:
            raise ValidationError("limit", f"must be at least 1, got {limit}")

        if severity:
            return self.alert_store.list_active_by_severity(severity.lower(), limit=limit)
        return self.alert_store.list_active(limit=limit)

    def get_nearby_alerts(
        self,
        latitude: float,
        longitude: float,
        radius_km: float | None = None,
    ) -> list[NearbyAlert]:
        """Active alerts within a radius of a point, nearest first.

        Raises:
            ValidationError: If the point or radius is invalid
            StorageError: If the query fails
        """
        lat, lon = validate_location(latitude, longitude)

        if radius_km is None:
            radius_km = self.config.alerts.default_radius_km
        if radius_km <= 0:
            raise ValidationError("radius", f"must be positive, got {radius_km}")

        alerts = self.alert_store.list_active(limit=self.config.alerts.nearby_scan_limit)
        return rank_alerts_by_distance(alerts, lat, lon, radius_km)

    def get_nearby_alerts_for_subscriber(
        self,
        user_id: str,
        radius_km: float | None = None,
    ) -> list[NearbyAlert]:
        """Active alerts near a subscriber's last known location.

        Raises:
            DocumentNotFoundError: If the subscriber is not registered
            ValidationError: If no location is recorded or the radius is invalid
            StorageError: If a query fails
        """
        subscriber = self.directory.get_subscriber(user_id)
        if subscriber is None:
            raise DocumentNotFoundError(f"Subscriber {user_id} is not registered")
        if subscriber.location is None:
            raise ValidationError("location", "no location recorded for subscriber")

        return self.get_nearby_alerts(
            subscriber.location.latitude,
            subscriber.location.longitude,
            radius_km=radius_km,
        )

    def send_test_notification(self, token: str) -> SendResult:
        """Send a synthetic test alert to one device.

        Raises:
            ValidationError: If the token is empty
            TransportUnavailableError: If the push transport cannot be set up
        """
        return self.dispatcher.send_test(token, now=self.clock())

    def sweep(self) -> int:
        """Deactivate expired alerts.

        Raises:
            StorageError: If the sweep fails
        """
        return self.alert_store.sweep_expired()
