"""Notification Dispatcher - Wires dispatch accounting to the push transport.

Targeted subscribers are split into chunks no larger than the transport's
per-call ceiling. Each chunk is one multicast call; a failed call counts
every recipient in that chunk as failed and dispatch moves on to the next
chunk. High-severity alerts are additionally broadcast to a severity topic,
outside the per-recipient totals.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone

from alertflow.core.alert import Alert, SEVERITY_MEDIUM
from alertflow.core.dispatch import (
    ChunkResult,
    DEFAULT_BROADCAST_SEVERITIES,
    DEFAULT_MAX_RECIPIENTS_PER_CALL,
    DEFAULT_TOPIC_PREFIX,
    DispatchReport,
    SendResult,
    account_chunk,
    chunk_tokens,
    failed_chunk,
    should_broadcast,
    topic_for_severity,
)
from alertflow.core.errors import DispatchError, TransportUnavailableError, ValidationError
from alertflow.core.notification import PushNotification, build_push_notification
from alertflow.core.subscriber import PushTarget
from alertflow.shell.fcm_client import FCMClient


logger = logging.getLogger(__name__)


def build_test_alert(now: datetime) -> Alert:
    """Synthetic medium-severity alert used to check delivery to a device."""
    return Alert(
        id=f"test-alert-{int(now.timestamp() * 1000)}",
        disaster_type="Test Alert",
        location="Test Location",
        date=now.date().isoformat(),
        time=now.strftime("%H:%M:%S"),
        magnitude="5.0",
        severity=SEVERITY_MEDIUM,
        created_at=now,
        expires_at=now + timedelta(hours=1),
        latitude=37.7749,
        longitude=-122.4194,
        source="test",
    )


class NotificationDispatcher:
    """Distributes one alert to its targeted subscribers.

    Never raises for per-chunk or topic failures; those are folded into
    the returned DispatchReport. Only TransportUnavailableError escapes.
    """

    def __init__(
        self,
        transport: FCMClient,
        max_recipients_per_call: int = DEFAULT_MAX_RECIPIENTS_PER_CALL,
        max_parallel_chunks: int = 1,
        broadcast_severities: tuple[str, ...] = DEFAULT_BROADCAST_SEVERITIES,
        topic_prefix: str = DEFAULT_TOPIC_PREFIX,
    ) -> None:
        """Initialize dispatcher.

        Args:
            transport: Push transport
            max_recipients_per_call: Ceiling on recipients per multicast call
            max_parallel_chunks: Chunks sent concurrently (1 = sequential)
            broadcast_severities: Severities also sent to their topic
            topic_prefix: Prefix of severity topic names
        """
        if max_recipients_per_call < 1:
            raise ValueError("max_recipients_per_call must be positive")

        self.transport = transport
        self.max_recipients_per_call = max_recipients_per_call
        self.max_parallel_chunks = max(1, max_parallel_chunks)
        self.broadcast_severities = broadcast_severities
        self.topic_prefix = topic_prefix

    def _send_chunk(
        self,
        index: int,
        tokens: list[str],
        notification: PushNotification,
    ) -> ChunkResult:
        try:
            results = self.transport.send_many(tokens, notification)
        except TransportUnavailableError:
            raise
        except DispatchError as e:
            logger.warning("Chunk %d (%d recipients) failed: %s", index, len(tokens), str(e))
            return failed_chunk(index, tokens, str(e))

        chunk = account_chunk(index, tokens, results)
        if chunk.failed:
            logger.warning(
                "Chunk %d: %d of %d recipients failed",
                index,
                chunk.failed,
                chunk.size,
            )
        return chunk

    def _send_chunks(
        self,
        chunks: list[list[str]],
        notification: PushNotification,
    ) -> list[ChunkResult]:
        if self.max_parallel_chunks == 1 or len(chunks) < 2:
            return [
                self._send_chunk(index, tokens, notification)
                for index, tokens in enumerate(chunks)
            ]

        workers = min(self.max_parallel_chunks, len(chunks))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [
                pool.submit(self._send_chunk, index, tokens, notification)
                for index, tokens in enumerate(chunks)
            ]
            # Results are merged only once every chunk has finished
            return [future.result() for future in futures]

    def _broadcast(self, alert: Alert, notification: PushNotification, report: DispatchReport) -> None:
        report.topic = topic_for_severity(alert.severity, self.topic_prefix)
        try:
            report.topic_message_id = self.transport.send_to_topic(report.topic, notification)
        except TransportUnavailableError:
            raise
        except DispatchError as e:
            logger.warning("Topic broadcast to %s failed: %s", report.topic, str(e))
            report.topic_error = str(e)

    def dispatch(self, alert: Alert, targets: list[PushTarget]) -> DispatchReport:
        """Send an alert to its targeted subscribers.

        Args:
            alert: Alert being distributed
            targets: Subscribers selected by targeting

        Returns:
            DispatchReport with per-chunk accounting and the topic outcome

        Raises:
            TransportUnavailableError: If the push transport cannot be set up
        """
        notification = build_push_notification(alert)
        report = DispatchReport(alert_id=alert.id, targeted=len(targets))

        chunks = chunk_tokens([t.token for t in targets], self.max_recipients_per_call)
        if chunks:
            logger.info(
                "Dispatching alert %s to %d subscribers in %d chunks",
                alert.id,
                len(targets),
                len(chunks),
            )
            report.chunks = self._send_chunks(chunks, notification)

        if should_broadcast(alert, self.broadcast_severities):
            self._broadcast(alert, notification, report)

        logger.info(
            "Alert %s dispatched: %d sent, %d failed",
            alert.id,
            report.total_sent,
            report.total_failed,
        )
        return report

    def send_test(self, token: str, now: datetime | None = None) -> SendResult:
        """Send a synthetic test alert to a single device.

        Raises:
            ValidationError: If the token is empty
            TransportUnavailableError: If the push transport cannot be set up
        """
        if not token or not token.strip():
            raise ValidationError("token", "required field is missing")

        alert = build_test_alert(now or datetime.now(timezone.utc))
        notification = build_push_notification(alert, is_test=True)

        result = self.transport.send_one(token.strip(), notification)
        if result.success:
            logger.info("Test notification sent: %s", result.message_id)
        else:
            logger.warning("Test notification failed: %s", result.error)
        return result
