"""Cloud Function Entry Point - Root Module.

This is the root-level entry point for Google Cloud Functions.
It imports from the alertflow package.
"""

from alertflow.main import (
    get_subscriber,
    ingest_source,
    process_extraction,
    query_alerts,
    register_subscriber,
    send_test_notification,
    subscriber_nearby_alerts,
    sweep_expired_alerts,
    update_subscriber_location,
    update_subscriber_preferences,
    update_subscriber_token,
)

__all__ = [
    "get_subscriber",
    "ingest_source",
    "process_extraction",
    "query_alerts",
    "register_subscriber",
    "send_test_notification",
    "subscriber_nearby_alerts",
    "sweep_expired_alerts",
    "update_subscriber_location",
    "update_subscriber_preferences",
    "update_subscriber_token",
]
