"""Functional Core - Pure functions with no side effects.

This module contains all business logic as pure functions:
- Extraction output parsing and alert normalization
- Alert validation
- Geo/distance calculations
- Subscriber preference merging and targeting
- Dispatch chunking and accounting
- Push payload formatting

All functions here are deterministic and have no I/O.
"""

from alertflow.core.alert import Alert, SEVERITY_LEVELS
from alertflow.core.geo import calculate_distance, rank_alerts_by_distance
from alertflow.core.normalizer import determine_severity, normalize_extraction
from alertflow.core.validator import validate_alert
from alertflow.core.targeting import matches_preferences, select_targets
from alertflow.core.dispatch import chunk_tokens, topic_for_severity

__all__ = [
    # Alert
    "Alert",
    "SEVERITY_LEVELS",
    # Geo
    "calculate_distance",
    "rank_alerts_by_distance",
    # Normalizer
    "determine_severity",
    "normalize_extraction",
    # Validator
    "validate_alert",
    # Targeting
    "matches_preferences",
    "select_targets",
    # Dispatch
    "chunk_tokens",
    "topic_for_severity",
]
