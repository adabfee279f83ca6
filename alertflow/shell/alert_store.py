"""Alert Store - Imperative Shell.

Persistence of alerts with a bounded validity window. Alerts are written
once, in atomic batches, under their own ID. Afterwards only the
notification flags and the active flag change; alerts are never deleted.

Lifecycle rules (active/expired) are expressed here as store queries;
the document mapping lives in core.alert.
"""

import logging
from datetime import datetime, timezone
from typing import Callable

from alertflow.core.alert import (
    Alert,
    SEVERITY_LEVELS,
    alert_from_document,
    alert_to_document,
)
from alertflow.core.errors import ValidationError
from alertflow.shell.firestore_client import FirestoreClient


logger = logging.getLogger(__name__)


DEFAULT_COLLECTION = "alerts"

_ACTIVE_ORDER = [("expiresAt", "desc"), ("createdAt", "desc")]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AlertStore:
    """Durable alert storage with active/expired lifecycle queries.

    This is part of the imperative shell - it handles database I/O.
    """

    def __init__(
        self,
        document_store: FirestoreClient,
        collection: str = DEFAULT_COLLECTION,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        """Initialize alert store.

        Args:
            document_store: Document store adapter
            collection: Collection holding alert documents
            clock: Returns the current UTC time
        """
        self.document_store = document_store
        self.collection = collection
        self.clock = clock

    def store_batch(self, alerts: list[Alert]) -> list[str]:
        """Persist alerts in one atomic batch.

        Raises:
            StorageError: If the batch could not be committed; nothing is written
        """
        docs = {alert.id: alert_to_document(alert) for alert in alerts}
        ids = self.document_store.add_many(self.collection, docs)
        logger.info("Stored %d alerts", len(ids))
        return ids

    def _query_active(self, extra_filters: list, limit: int) -> list[Alert]:
        filters = [
            ("isActive", "==", True),
            *extra_filters,
            ("expiresAt", ">", self.clock()),
        ]
        rows = self.document_store.query(
            self.collection,
            filters=filters,
            order_by=_ACTIVE_ORDER,
            limit=limit,
        )
        return [alert_from_document(doc_id, data) for doc_id, data in rows]

    def list_active(self, limit: int = 50) -> list[Alert]:
        """Active, unexpired alerts, latest-expiring first.

        Raises:
            StorageError: If the query fails
        """
        return self._query_active([], limit)

    def list_active_by_severity(self, severity: str, limit: int = 20) -> list[Alert]:
        """Active, unexpired alerts of exactly one severity.

        Raises:
            ValidationError: If severity is not a known level
            StorageError: If the query fails
        """
        if severity not in SEVERITY_LEVELS:
            raise ValidationError("severity", f"unknown severity {severity!r}")
        return self._query_active([("severity", "==", severity)], limit)

    def get_alert(self, alert_id: str) -> Alert | None:
        """Fetch one alert by ID, or None if it does not exist."""
        data = self.document_store.get(self.collection, alert_id)
        if data is None:
            return None
        return alert_from_document(alert_id, data)

    def mark_notified(self, alert_id: str, sent: bool = True) -> None:
        """Record the outcome of dispatching an alert.

        Safe to call repeatedly for the same alert.

        Raises:
            DocumentNotFoundError: If the alert was never stored
            StorageError: If the update fails
        """
        fields: dict = {"notificationSent": sent}
        if sent:
            fields["notificationSentAt"] = self.clock()
        self.document_store.update(self.collection, alert_id, fields)

    def sweep_expired(self) -> int:
        """Deactivate every active alert whose validity window has elapsed.

        Only ever flips isActive from true to false, and only for alerts
        already expired when the sweep starts, so it may run alongside
        store_batch. Calling it again without new expiries returns 0.

        Returns:
            Number of alerts deactivated

        Raises:
            StorageError: If the query or the update fails
        """
        now = self.clock()
        rows = self.document_store.query(
            self.collection,
            filters=[("isActive", "==", True), ("expiresAt", "<=", now)],
        )

        if not rows:
            return 0

        updates = {doc_id: {"isActive": False, "deactivatedAt": now} for doc_id, _ in rows}
        count = self.document_store.update_many(self.collection, updates)

        logger.info("Deactivated %d expired alerts", count)
        return count
