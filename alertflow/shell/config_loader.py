"""Configuration Loader - Imperative Shell.

This module handles loading configuration from YAML files and
environment variables. All I/O is contained here.

Models (Config and its sections) are defined in alertflow/core/config.py
to avoid information leakage between layers.
"""

import logging
import os
import subprocess
from pathlib import Path
from typing import Any

import yaml

from alertflow.core.config import (
    AlertSettings,
    Config,
    ExtractionSettings,
    FirestoreSettings,
    NotificationSettings,
)
from alertflow.shell.secret_manager_client import SecretManagerClient, SecretManagerConfig


logger = logging.getLogger(__name__)


DEFAULT_CONFIG_PATH = "config/config.yaml"


def _detect_project_id() -> str | None:
    """GCP project from GCP_PROJECT, falling back to the gcloud CLI."""
    project_id = os.environ.get("GCP_PROJECT")
    if project_id:
        return project_id

    try:
        result = subprocess.run(
            ["gcloud", "config", "get-value", "project"],
            capture_output=True,
            text=True,
            timeout=2,
        )
    except (OSError, subprocess.SubprocessError):
        return None

    if result.returncode == 0 and result.stdout.strip():
        return result.stdout.strip()
    return None


def _get_secret_manager_client() -> SecretManagerClient | None:
    """Get or create a Secret Manager client.

    Returns None if no project can be determined (e.g., local development).
    """
    project_id = _detect_project_id()
    if project_id:
        return SecretManagerClient(SecretManagerConfig(project_id=project_id))
    return None


def _resolve_value(value: Any, secret_client: SecretManagerClient | None = None) -> Any:
    """Resolve a value that may contain secret or env var placeholders.

    Delegates to SecretManagerClient.resolve() when a client is available.

    Args:
        value: Value to resolve (may contain ${...} placeholders)
        secret_client: Client for resolving secrets

    Returns:
        Resolved value
    """
    if not isinstance(value, str):
        return value

    if secret_client:
        return secret_client.resolve(value)

    # No secret client - only handle env vars
    if value.startswith("${") and value.endswith("}"):
        var_spec = value[2:-1]
        if not var_spec.startswith("secret:"):
            env_value = os.environ.get(var_spec)
            if env_value:
                return env_value
            logger.warning("Environment variable %s not set", var_spec)

    return value


def _parse_firestore(data: dict[str, Any]) -> FirestoreSettings:
    defaults = FirestoreSettings()
    return FirestoreSettings(
        project_id=data.get("project_id"),
        database=data.get("database"),
        alerts_collection=data.get("alerts_collection", defaults.alerts_collection),
        subscribers_collection=data.get(
            "subscribers_collection", defaults.subscribers_collection
        ),
    )


def _parse_alerts(data: dict[str, Any]) -> AlertSettings:
    defaults = AlertSettings()
    return AlertSettings(
        validity_hours=float(data.get("validity_hours", defaults.validity_hours)),
        source=str(data.get("source", defaults.source)),
        active_limit=int(data.get("active_limit", defaults.active_limit)),
        nearby_scan_limit=int(data.get("nearby_scan_limit", defaults.nearby_scan_limit)),
        default_radius_km=float(data.get("default_radius_km", defaults.default_radius_km)),
    )


def _parse_notifications(
    data: dict[str, Any],
    secret_client: SecretManagerClient | None = None,
) -> NotificationSettings:
    defaults = NotificationSettings()

    severities = data.get("broadcast_severities", defaults.broadcast_severities)
    credentials_path = data.get("firebase_credentials_path")
    if credentials_path:
        credentials_path = _resolve_value(credentials_path, secret_client)

    return NotificationSettings(
        max_recipients_per_call=int(
            data.get("max_recipients_per_call", defaults.max_recipients_per_call)
        ),
        max_parallel_chunks=int(data.get("max_parallel_chunks", defaults.max_parallel_chunks)),
        broadcast_severities=tuple(str(s).lower() for s in severities),
        topic_prefix=str(data.get("topic_prefix", defaults.topic_prefix)),
        prune_unregistered_tokens=bool(
            data.get("prune_unregistered_tokens", defaults.prune_unregistered_tokens)
        ),
        firebase_credentials_path=credentials_path or None,
        firebase_project_id=data.get("firebase_project_id"),
    )


def _parse_extraction(
    data: dict[str, Any],
    secret_client: SecretManagerClient | None = None,
) -> ExtractionSettings:
    defaults = ExtractionSettings()

    api_key = data.get("api_key")
    if api_key:
        api_key = _resolve_value(api_key, secret_client)

    return ExtractionSettings(
        api_key=api_key or None,
        model=str(data.get("model", defaults.model)),
        timeout_seconds=int(data.get("timeout_seconds", defaults.timeout_seconds)),
    )


def load_config_from_dict(data: dict[str, Any]) -> Config:
    """Load configuration from a dictionary.

    This is a pure-ish function (only placeholder expansion has side effects).

    Args:
        data: Configuration dictionary

    Returns:
        Parsed Config object
    """
    secret_client = _get_secret_manager_client()

    return Config(
        firestore=_parse_firestore(data.get("firestore") or {}),
        alerts=_parse_alerts(data.get("alerts") or {}),
        notifications=_parse_notifications(data.get("notifications") or {}, secret_client),
        extraction=_parse_extraction(data.get("extraction") or {}, secret_client),
    )


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from a YAML file.

    This method performs file I/O.

    Args:
        config_path: Path to YAML config file.
                    If None, uses CONFIG_PATH env var or default.

    Returns:
        Parsed Config object

    Raises:
        yaml.YAMLError: If config file is invalid YAML
    """
    if config_path is None:
        config_path = os.environ.get("CONFIG_PATH", DEFAULT_CONFIG_PATH)

    path = Path(config_path)

    logger.info("Loading configuration from %s", path)

    if not path.exists():
        logger.warning("Config file not found: %s, using environment", path)
        return load_config_from_env()

    with open(path, "r") as f:
        data = yaml.safe_load(f)

    if data is None:
        logger.warning("Config file is empty, using defaults")
        return Config()

    config = load_config_from_dict(data)

    logger.info(
        "Loaded config: alerts in %s, subscribers in %s, %d recipients per call",
        config.firestore.alerts_collection,
        config.firestore.subscribers_collection,
        config.notifications.max_recipients_per_call,
    )

    return config


def load_config_from_env() -> Config:
    """Load configuration from environment variables.

    Useful for simple deployments without a YAML file.

    Environment variables:
        FIRESTORE_DATABASE: Firestore database name
        GEMINI_API_KEY: Extraction API key (or use Secret Manager)
        GEMINI_API_KEY_SECRET: Secret name in Secret Manager (default: gemini-api-key)
        FIREBASE_CREDENTIALS_PATH: Service account file for push delivery
        ALERT_VALIDITY_HOURS: How long new alerts stay active
        MAX_RECIPIENTS_PER_CALL: Push fan-out per multicast call

    Returns:
        Config object from environment
    """
    secret_client = _get_secret_manager_client()

    api_key = None
    secret_name = os.environ.get("GEMINI_API_KEY_SECRET", "gemini-api-key")
    if secret_client:
        api_key = secret_client.get_secret(secret_name)
        if api_key:
            logger.info("Using extraction API key from Secret Manager")

    if not api_key:
        api_key = os.environ.get("GEMINI_API_KEY")

    if not api_key:
        logger.warning("GEMINI_API_KEY not set and no secret found")

    defaults = Config()

    return Config(
        firestore=FirestoreSettings(
            project_id=os.environ.get("GCP_PROJECT"),
            database=os.environ.get("FIRESTORE_DATABASE"),
        ),
        alerts=AlertSettings(
            validity_hours=float(
                os.environ.get("ALERT_VALIDITY_HOURS", defaults.alerts.validity_hours)
            ),
        ),
        notifications=NotificationSettings(
            max_recipients_per_call=int(
                os.environ.get(
                    "MAX_RECIPIENTS_PER_CALL",
                    defaults.notifications.max_recipients_per_call,
                )
            ),
            firebase_credentials_path=os.environ.get("FIREBASE_CREDENTIALS_PATH"),
        ),
        extraction=ExtractionSettings(api_key=api_key),
    )
