"""FCM Client - Imperative Shell.

This module delivers push notifications through Firebase Cloud Messaging.
All I/O is contained here; payload formatting is in core.notification and
chunking/accounting in core.dispatch.

Every firebase_admin failure is converted into DispatchError (or
TransportUnavailableError when the app cannot be set up at all).
"""

import logging
import threading
from dataclasses import dataclass

import firebase_admin
from firebase_admin import credentials, messaging
from firebase_admin import exceptions as firebase_exceptions

from alertflow.core.dispatch import DEFAULT_MAX_RECIPIENTS_PER_CALL, SendResult
from alertflow.core.errors import DispatchError, TransportUnavailableError
from alertflow.core.notification import ANDROID_CHANNEL_ID, PushNotification


logger = logging.getLogger(__name__)


# Name of the firebase_admin app owned by this client
APP_NAME = "alertflow"

APNS_CATEGORY = "DISASTER_ALERT"

# firebase_admin apps are process-wide, so setup is serialized across clients
_app_lock = threading.Lock()


@dataclass
class FCMConfig:
    """Configuration for FCM client.

    Attributes:
        credentials_path: Service account JSON file (None for application default)
        project_id: Firebase project ID (None for default)
        max_recipients_per_call: Ceiling enforced on multicast sends
    """
    credentials_path: str | None = None
    project_id: str | None = None
    max_recipients_per_call: int = DEFAULT_MAX_RECIPIENTS_PER_CALL


def build_android_config(notification: PushNotification) -> messaging.AndroidConfig:
    """Android delivery options for a push payload."""
    return messaging.AndroidConfig(
        priority="high" if notification.urgent else "normal",
        notification=messaging.AndroidNotification(
            icon="ic_notification",
            color=notification.color,
            channel_id=ANDROID_CHANNEL_ID,
            priority=notification.android_priority,
            default_sound=True,
            default_vibrate_timings=True,
        ),
    )


def build_apns_config(notification: PushNotification) -> messaging.APNSConfig:
    """iOS delivery options for a push payload."""
    return messaging.APNSConfig(
        payload=messaging.APNSPayload(
            aps=messaging.Aps(
                alert=messaging.ApsAlert(
                    title=notification.title,
                    body=notification.body,
                ),
                sound="default",
                badge=1,
                category=APNS_CATEGORY,
            ),
        ),
    )


def _notification_fields(notification: PushNotification) -> dict:
    return {
        "notification": messaging.Notification(
            title=notification.title,
            body=notification.body,
        ),
        "data": dict(notification.data),
        "android": build_android_config(notification),
        "apns": build_apns_config(notification),
    }


def _send_result(response: messaging.SendResponse) -> SendResult:
    if response.success:
        return SendResult(success=True, message_id=response.message_id)

    error = response.exception
    return SendResult(
        success=False,
        error=str(error) if error else "unknown error",
        unregistered=isinstance(error, messaging.UnregisteredError),
    )


class FCMClient:
    """Client for Firebase Cloud Messaging.

    This is part of the imperative shell - it handles push I/O.
    """

    def __init__(self, config: FCMConfig | None = None) -> None:
        """Initialize FCM client.

        Args:
            config: FCM configuration
        """
        self.config = config or FCMConfig()
        self._app: firebase_admin.App | None = None

    @property
    def app(self) -> firebase_admin.App:
        """Lazy initialization of the firebase_admin app.

        Safe to call from several threads; the app is set up once.

        Raises:
            TransportUnavailableError: If credentials cannot be loaded
        """
        if self._app is None:
            with _app_lock:
                if self._app is None:
                    self._app = self._resolve_app()
        return self._app

    def _resolve_app(self) -> firebase_admin.App:
        try:
            return firebase_admin.get_app(APP_NAME)
        except ValueError:
            return self._initialize_app()

    def _initialize_app(self) -> firebase_admin.App:
        options = {}
        if self.config.project_id:
            options["projectId"] = self.config.project_id

        try:
            if self.config.credentials_path:
                cred = credentials.Certificate(self.config.credentials_path)
            else:
                cred = credentials.ApplicationDefault()
            app = firebase_admin.initialize_app(cred, options, name=APP_NAME)
        except ValueError as e:
            if "already exists" in str(e):
                # Registered by another client between lookup and init
                logger.info("Firebase app already initialized, reusing it")
                return firebase_admin.get_app(APP_NAME)
            logger.error("Failed to initialize Firebase app: %s", str(e))
            raise TransportUnavailableError("Push transport could not be initialized") from e
        except (OSError, firebase_exceptions.FirebaseError) as e:
            logger.error("Failed to initialize Firebase app: %s", str(e))
            raise TransportUnavailableError("Push transport could not be initialized") from e

        logger.info("Firebase app initialized")
        return app

    def send_one(self, token: str, notification: PushNotification) -> SendResult:
        """Send a notification to a single device.

        A rejected token is reported in the result rather than raised.

        Raises:
            TransportUnavailableError: If the transport cannot be set up
        """
        message = messaging.Message(token=token, **_notification_fields(notification))

        try:
            message_id = messaging.send(message, app=self.app)
        except messaging.UnregisteredError as e:
            logger.warning("Push token is no longer registered")
            return SendResult(success=False, error=str(e), unregistered=True)
        except firebase_exceptions.FirebaseError as e:
            logger.error("Push send failed: %s", str(e))
            return SendResult(success=False, error=str(e))

        logger.info("Push sent: %s", message_id)
        return SendResult(success=True, message_id=message_id)

    def send_many(
        self,
        tokens: list[str],
        notification: PushNotification,
    ) -> list[SendResult]:
        """Send one notification to many devices in a single multicast call.

        Args:
            tokens: Recipient tokens, at most max_recipients_per_call
            notification: Payload to deliver

        Returns:
            One SendResult per token, in token order

        Raises:
            ValueError: If more tokens are given than one call accepts
            DispatchError: If the multicast call itself failed
            TransportUnavailableError: If the transport cannot be set up
        """
        if not tokens:
            return []

        if len(tokens) > self.config.max_recipients_per_call:
            raise ValueError(
                f"{len(tokens)} tokens exceed the per-call limit of "
                f"{self.config.max_recipients_per_call}"
            )

        message = messaging.MulticastMessage(
            tokens=list(tokens),
            **_notification_fields(notification),
        )

        try:
            batch = messaging.send_each_for_multicast(message, app=self.app)
        except firebase_exceptions.FirebaseError as e:
            logger.error("Multicast send of %d tokens failed: %s", len(tokens), str(e))
            raise DispatchError(f"Multicast send failed: {e}") from e

        logger.info(
            "Multicast sent: %d succeeded, %d failed",
            batch.success_count,
            batch.failure_count,
        )
        return [_send_result(r) for r in batch.responses]

    def send_to_topic(self, topic: str, notification: PushNotification) -> str:
        """Broadcast a notification to every device subscribed to a topic.

        Returns:
            Transport message ID

        Raises:
            DispatchError: If the send failed
            TransportUnavailableError: If the transport cannot be set up
        """
        message = messaging.Message(topic=topic, **_notification_fields(notification))

        try:
            message_id = messaging.send(message, app=self.app)
        except firebase_exceptions.FirebaseError as e:
            logger.error("Topic send to %s failed: %s", topic, str(e))
            raise DispatchError(f"Topic send to {topic} failed: {e}") from e

        logger.info("Topic notification sent to %s: %s", topic, message_id)
        return message_id
