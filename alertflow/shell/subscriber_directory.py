"""Subscriber Directory - Imperative Shell.

Persistence of subscribers: registration (upsert with "last known good"
merge), location, preference and token updates, and retrieval of
push-capable subscribers for targeting. Subscribers are never deleted here.

Merge and parsing rules live in core.subscriber.
"""

import logging
from datetime import datetime, timezone
from typing import Callable

from alertflow.core.errors import ValidationError
from alertflow.core.subscriber import (
    Preferences,
    PushTarget,
    Subscriber,
    SubscriberRegistration,
    merge_subscriber,
    preferences_to_document,
    subscriber_from_document,
    subscriber_to_document,
    subscribers_within_radius,
    validate_location,
)
from alertflow.shell.firestore_client import FirestoreClient


logger = logging.getLogger(__name__)


DEFAULT_COLLECTION = "users"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SubscriberDirectory:
    """Subscriber records keyed by user ID.

    This is part of the imperative shell - it handles database I/O.
    """

    def __init__(
        self,
        document_store: FirestoreClient,
        collection: str = DEFAULT_COLLECTION,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        """Initialize subscriber directory.

        Args:
            document_store: Document store adapter
            collection: Collection holding subscriber documents
            clock: Returns the current UTC time
        """
        self.document_store = document_store
        self.collection = collection
        self.clock = clock

    def list_pushable_tokens(self) -> list[PushTarget]:
        """Subscribers with a push token and notifications enabled.

        Raises:
            StorageError: If the query fails
        """
        rows = self.document_store.query(
            self.collection,
            filters=[("preferences.notificationsEnabled", "==", True)],
        )

        targets = []
        for doc_id, data in rows:
            subscriber = subscriber_from_document(doc_id, data)
            if subscriber.can_receive_push:
                targets.append(PushTarget(
                    token=subscriber.push_token,
                    user_id=subscriber.user_id,
                    preferences=subscriber.preferences,
                ))

        logger.info("Retrieved %d push tokens", len(targets))
        return targets

    def get_subscriber(self, user_id: str) -> Subscriber | None:
        """Fetch one subscriber, or None if not registered."""
        data = self.document_store.get(self.collection, user_id)
        if data is None:
            return None
        return subscriber_from_document(user_id, data)

    def upsert_subscriber(self, registration: SubscriberRegistration) -> Subscriber:
        """Create a subscriber or merge a re-registration into it.

        Token and location are only replaced by non-empty incoming values.

        Returns:
            The subscriber as stored

        Raises:
            ValidationError: If the registration is malformed
            StorageError: If the read or write fails
        """
        existing = self.get_subscriber(registration.user_id)
        subscriber = merge_subscriber(existing, registration, self.clock())

        self.document_store.set(
            self.collection,
            subscriber.user_id,
            subscriber_to_document(subscriber),
        )

        if existing is None:
            logger.info("New subscriber registered: %s", subscriber.user_id)
        else:
            logger.info("Subscriber updated: %s", subscriber.user_id)

        return subscriber

    def update_location(
        self,
        user_id: str,
        latitude: float | None,
        longitude: float | None,
    ) -> None:
        """Record a subscriber's current location.

        Raises:
            ValidationError: If a coordinate is missing or out of range
            DocumentNotFoundError: If the subscriber is not registered
            StorageError: If the update fails
        """
        lat, lon = validate_location(latitude, longitude)
        now = self.clock()

        self.document_store.update(self.collection, user_id, {
            "location": {"latitude": lat, "longitude": lon, "lastUpdated": now},
            "lastActiveAt": now,
        })
        logger.info("Location updated for subscriber %s", user_id)

    def update_preferences(self, user_id: str, preferences: Preferences) -> None:
        """Replace a subscriber's preferences.

        Raises:
            DocumentNotFoundError: If the subscriber is not registered
            StorageError: If the update fails
        """
        self.document_store.update(self.collection, user_id, {
            "preferences": preferences_to_document(preferences),
            "lastActiveAt": self.clock(),
        })
        logger.info("Preferences updated for subscriber %s", user_id)

    def update_push_token(self, user_id: str, push_token: str) -> None:
        """Replace a subscriber's push token.

        Raises:
            ValidationError: If the token is empty
            DocumentNotFoundError: If the subscriber is not registered
            StorageError: If the update fails
        """
        if not push_token or not push_token.strip():
            raise ValidationError("pushToken", "required field is missing")

        self.document_store.update(self.collection, user_id, {
            "pushToken": push_token.strip(),
            "lastActiveAt": self.clock(),
        })
        logger.info("Push token updated for subscriber %s", user_id)

    def clear_push_tokens(self, user_ids: list[str]) -> int:
        """Remove push tokens the transport reported as unregistered.

        The subscribers themselves are kept.

        Returns:
            Number of subscribers updated
        """
        if not user_ids:
            return 0

        updates = {user_id: {"pushToken": None} for user_id in dict.fromkeys(user_ids)}
        count = self.document_store.update_many(self.collection, updates)

        logger.info("Cleared %d unregistered push tokens", count)
        return count

    def list_subscribers_near(
        self,
        latitude: float,
        longitude: float,
        radius_km: float,
    ) -> list[tuple[Subscriber, float]]:
        """Subscribers whose last known location lies within a radius.

        Scans subscribers with a recorded location.

        Returns:
            List of (subscriber, distance_km) tuples, nearest first
        """
        lat, lon = validate_location(latitude, longitude)
        rows = self.document_store.query(
            self.collection,
            filters=[("location.latitude", "!=", None)],
        )
        subscribers = [subscriber_from_document(doc_id, data) for doc_id, data in rows]
        return subscribers_within_radius(subscribers, lat, lon, radius_km)
