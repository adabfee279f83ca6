"""Imperative Shell - I/O and side effects.

This module contains all code that interacts with external systems:
- Firestore document store, alert store and subscriber directory (database)
- Firebase Cloud Messaging client (push)
- Gemini extraction client (HTTP)
- Configuration loading (environment/files/Secret Manager)

Keep this layer thin and simple. All business logic should be in core.
"""

from alertflow.shell.firestore_client import FirestoreClient
from alertflow.shell.alert_store import AlertStore
from alertflow.shell.subscriber_directory import SubscriberDirectory
from alertflow.shell.fcm_client import FCMClient
from alertflow.shell.extraction_client import ExtractionClient
from alertflow.shell.config_loader import load_config, Config

__all__ = [
    "FirestoreClient",
    "AlertStore",
    "SubscriberDirectory",
    "FCMClient",
    "ExtractionClient",
    "load_config",
    "Config",
]
