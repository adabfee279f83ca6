"""Cloud Function Entry Point.

This module provides the entry points for Google Cloud Functions.
They are thin wrappers that load configuration and invoke the orchestrator.
"""

import logging
import os
from typing import Any

import functions_framework
from flask import Request

from alertflow.core.alert import alert_to_dict
from alertflow.core.config import validate_config
from alertflow.core.errors import (
    DocumentNotFoundError,
    StorageError,
    TransportUnavailableError,
    ValidationError,
)
from alertflow.core.geo import NearbyAlert
from alertflow.core.subscriber import (
    SubscriberRegistration,
    parse_preferences,
    subscriber_to_dict,
)
from alertflow.orchestrator import (
    FAILURE_EXTRACTION,
    FAILURE_NO_VALID_ALERTS,
    FAILURE_STORAGE,
    PipelineOrchestrator,
    PipelineResult,
)
from alertflow.shell.config_loader import load_config, load_config_from_env


# Configure logging
log_level = os.environ.get("LOG_LEVEL", "INFO").upper()
logging.basicConfig(
    level=getattr(logging, log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


_FAILURE_STATUS = {
    FAILURE_NO_VALID_ALERTS: 422,
    FAILURE_STORAGE: 503,
    FAILURE_EXTRACTION: 502,
}


def _get_config():
    """Load configuration from file or environment."""
    config_path = os.environ.get("CONFIG_PATH")

    if config_path:
        config = load_config(config_path)
    elif os.environ.get("GEMINI_API_KEY") or os.environ.get("FIREBASE_CREDENTIALS_PATH"):
        # Simple env-based config
        config = load_config_from_env()
    else:
        # Try default config path
        config = load_config()

    validation = validate_config(config)
    for issue in validation.warnings:
        logger.warning("Config %s: %s", issue.field, issue.message)
    if not validation.valid:
        messages = "; ".join(f"{i.field}: {i.message}" for i in validation.critical_errors)
        raise ValueError(f"Invalid configuration: {messages}")

    return config


def _read_payload(request: Request) -> str:
    """Raw text from the request body, or the "text" field of a JSON body."""
    body = request.get_json(silent=True)
    if isinstance(body, dict) and isinstance(body.get("text"), str):
        return body["text"]
    return request.get_data(as_text=True) or ""


def _json_body(request: Request) -> dict[str, Any]:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _require_user_id(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("userId", "required field is missing")
    return value.strip()


def _string_field(body: dict[str, Any], name: str) -> str | None:
    value = body.get(name)
    if value is not None and not isinstance(value, str):
        raise ValidationError(name, "must be a string")
    return value


def _object_field(body: dict[str, Any], name: str) -> dict[str, Any] | None:
    value = body.get(name)
    if value is not None and not isinstance(value, dict):
        raise ValidationError(name, "must be an object")
    return value


def _nearby_to_dicts(nearby: list[NearbyAlert]) -> list[dict[str, Any]]:
    return [
        {**alert_to_dict(n.alert), "distanceKm": round(n.distance_km, 2)}
        for n in nearby
    ]


def _error_response(e: Exception, action: str) -> tuple[dict[str, Any], int]:
    """Map a failure to a response body and HTTP status.

    Must be called from inside the except block handling e.
    """
    body = {"success": False, "message": str(e)}

    if isinstance(e, ValidationError):
        return body, 400
    if isinstance(e, DocumentNotFoundError):
        return body, 404
    if isinstance(e, (StorageError, TransportUnavailableError)):
        logger.error("%s failed: %s", action, str(e))
        return body, 503

    logger.exception("Unexpected error: %s failed", action)
    return body, 500


def _pipeline_response(result: PipelineResult) -> tuple[dict[str, Any], int]:
    """Map a pipeline result to a response body and HTTP status."""
    if not result.success:
        return result.to_dict(), _FAILURE_STATUS.get(result.failure_reason, 500)

    status_code = 207 if result.errors else 200  # 207 = Multi-Status
    return result.to_dict(), status_code


@functions_framework.http
def process_extraction(request: Request) -> tuple[dict[str, Any], int]:
    """HTTP Cloud Function: run the pipeline on raw extraction output.

    The body is the extraction service's raw answer, either as plain text
    or as JSON {"text": "..."}.

    Args:
        request: Flask request object

    Returns:
        Tuple of (response dict, HTTP status code)
    """
    logger.info("Processing extraction payload")

    try:
        config = _get_config()
        orchestrator = PipelineOrchestrator(config)
        result = orchestrator.process_extraction(_read_payload(request))

        logger.info("Completed: %s", result.summary)
        return _pipeline_response(result)

    except Exception as e:
        logger.exception("Unexpected error processing extraction payload")
        return {
            "success": False,
            "message": str(e),
        }, 500


@functions_framework.http
def ingest_source(request: Request) -> tuple[dict[str, Any], int]:
    """HTTP Cloud Function: extract alerts from scraped text, then process them.

    Args:
        request: Flask request object; the body is the scraped source text

    Returns:
        Tuple of (response dict, HTTP status code)
    """
    logger.info("Ingesting source text")

    try:
        config = _get_config()
        orchestrator = PipelineOrchestrator(config)
        result = orchestrator.ingest_source(_read_payload(request))

        logger.info("Completed: %s", result.summary)
        return _pipeline_response(result)

    except Exception as e:
        logger.exception("Unexpected error ingesting source text")
        return {
            "success": False,
            "message": str(e),
        }, 500


@functions_framework.http
def query_alerts(request: Request) -> tuple[dict[str, Any], int]:
    """HTTP Cloud Function: active alerts, optionally near a point.

    Query parameters:
        severity: Only alerts of this severity
        limit: Maximum number of alerts
        lat, lng: Return alerts near this point, nearest first
        radius: Search radius in km (with lat/lng)

    Args:
        request: Flask request object

    Returns:
        Tuple of (response dict, HTTP status code)
    """
    args = request.args

    try:
        config = _get_config()
        orchestrator = PipelineOrchestrator(config)

        if "lat" in args or "lng" in args:
            radius = args.get("radius", type=float)
            nearby = orchestrator.get_nearby_alerts(
                args.get("lat", type=float),
                args.get("lng", type=float),
                radius_km=radius,
            )
            alerts = _nearby_to_dicts(nearby)
        else:
            active = orchestrator.get_active_alerts(
                severity=args.get("severity"),
                limit=args.get("limit", type=int),
            )
            alerts = [alert_to_dict(a) for a in active]

        return {"success": True, "count": len(alerts), "alerts": alerts}, 200

    except Exception as e:
        return _error_response(e, "Alert query")


@functions_framework.http
def register_subscriber(request: Request) -> tuple[dict[str, Any], int]:
    """HTTP Cloud Function: register a subscriber or refresh a registration.

    JSON body:
        userId: Stable subscriber ID (required)
        fcmToken: Push token
        latitude, longitude: Current location (both or neither)
        preferences: Notification preferences

    Omitted fields keep their stored values on a re-registration.

    Args:
        request: Flask request object

    Returns:
        Tuple of (response dict, HTTP status code)
    """
    body = _json_body(request)

    try:
        preferences = _object_field(body, "preferences")
        registration = SubscriberRegistration(
            user_id=_require_user_id(body.get("userId")),
            push_token=_string_field(body, "fcmToken"),
            latitude=body.get("latitude"),
            longitude=body.get("longitude"),
            preferences=parse_preferences(preferences) if preferences is not None else None,
        )

        orchestrator = PipelineOrchestrator(_get_config())
        subscriber = orchestrator.directory.upsert_subscriber(registration)

        return {"success": True, "subscriber": subscriber_to_dict(subscriber)}, 200

    except Exception as e:
        return _error_response(e, "Subscriber registration")


@functions_framework.http
def update_subscriber_location(request: Request) -> tuple[dict[str, Any], int]:
    """HTTP Cloud Function: record a subscriber's current location.

    JSON body: userId, latitude, longitude (all required).
    """
    body = _json_body(request)

    try:
        user_id = _require_user_id(body.get("userId"))
        orchestrator = PipelineOrchestrator(_get_config())
        orchestrator.directory.update_location(
            user_id, body.get("latitude"), body.get("longitude")
        )
        return {"success": True, "message": "Location updated"}, 200

    except Exception as e:
        return _error_response(e, "Location update")


@functions_framework.http
def update_subscriber_preferences(request: Request) -> tuple[dict[str, Any], int]:
    """HTTP Cloud Function: replace a subscriber's preferences.

    JSON body: userId, preferences (both required).
    """
    body = _json_body(request)

    try:
        user_id = _require_user_id(body.get("userId"))
        preferences = _object_field(body, "preferences")
        if preferences is None:
            raise ValidationError("preferences", "required field is missing")

        orchestrator = PipelineOrchestrator(_get_config())
        orchestrator.directory.update_preferences(user_id, parse_preferences(preferences))
        return {"success": True, "message": "Preferences updated"}, 200

    except Exception as e:
        return _error_response(e, "Preferences update")


@functions_framework.http
def update_subscriber_token(request: Request) -> tuple[dict[str, Any], int]:
    """HTTP Cloud Function: replace a subscriber's push token.

    JSON body: userId, fcmToken (both required).
    """
    body = _json_body(request)

    try:
        user_id = _require_user_id(body.get("userId"))
        token = _string_field(body, "fcmToken")

        orchestrator = PipelineOrchestrator(_get_config())
        orchestrator.directory.update_push_token(user_id, token)
        return {"success": True, "message": "Push token updated"}, 200

    except Exception as e:
        return _error_response(e, "Push token update")


@functions_framework.http
def get_subscriber(request: Request) -> tuple[dict[str, Any], int]:
    """HTTP Cloud Function: fetch one subscriber.

    Query parameters:
        userId: Subscriber ID (required)
    """
    try:
        user_id = _require_user_id(request.args.get("userId"))

        orchestrator = PipelineOrchestrator(_get_config())
        subscriber = orchestrator.directory.get_subscriber(user_id)
        if subscriber is None:
            raise DocumentNotFoundError(f"Subscriber {user_id} is not registered")

        return {"success": True, "subscriber": subscriber_to_dict(subscriber)}, 200

    except Exception as e:
        return _error_response(e, "Subscriber lookup")


@functions_framework.http
def subscriber_nearby_alerts(request: Request) -> tuple[dict[str, Any], int]:
    """HTTP Cloud Function: active alerts near a subscriber's stored location.

    Query parameters:
        userId: Subscriber ID (required)
        radius: Search radius in km (default from config)
    """
    args = request.args

    try:
        user_id = _require_user_id(args.get("userId"))

        orchestrator = PipelineOrchestrator(_get_config())
        nearby = orchestrator.get_nearby_alerts_for_subscriber(
            user_id, radius_km=args.get("radius", type=float)
        )
        alerts = _nearby_to_dicts(nearby)

        return {"success": True, "count": len(alerts), "alerts": alerts}, 200

    except Exception as e:
        return _error_response(e, "Subscriber alert query")


@functions_framework.http
def send_test_notification(request: Request) -> tuple[dict[str, Any], int]:
    """HTTP Cloud Function: push a synthetic test alert to one device.

    JSON body: fcmToken (required). A token the transport rejects is
    reported as 502 with the transport's error.
    """
    body = _json_body(request)

    try:
        token = _string_field(body, "fcmToken")

        orchestrator = PipelineOrchestrator(_get_config())
        result = orchestrator.send_test_notification(token)

        if result.success:
            return {"success": True, "messageId": result.message_id}, 200
        return {
            "success": False,
            "message": result.error,
            "unregistered": result.unregistered,
        }, 502

    except Exception as e:
        return _error_response(e, "Test notification")


@functions_framework.cloud_event
def sweep_expired_alerts(cloud_event: Any) -> None:
    """Pub/Sub Cloud Function: deactivate expired alerts.

    Triggered by Cloud Scheduler via Pub/Sub.

    Args:
        cloud_event: CloudEvent from Pub/Sub
    """
    logger.info("Starting expired alert sweep (Pub/Sub trigger)")

    try:
        config = _get_config()
        orchestrator = PipelineOrchestrator(config)
        swept = orchestrator.sweep()
        logger.info("Sweep completed: %d alerts deactivated", swept)

    except Exception:
        logger.exception("Unexpected error sweeping expired alerts")
        raise
