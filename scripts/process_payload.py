#!/usr/bin/env python3
"""Run the alert pipeline on an extraction payload file.

⚠️  WARNING: Without --dry-run this writes alerts to Firestore and sends
    REAL push notifications to subscribers!

Usage:
    # Preview: normalize and validate only, nothing is stored or sent
    python scripts/process_payload.py payload.json --dry-run

    # Full run: store, dispatch, sweep
    python scripts/process_payload.py payload.json

    # Read the payload from stdin
    cat payload.json | python scripts/process_payload.py - --dry-run

Environment:
    CONFIG_PATH: Path to config file (default: config/config.yaml)
    GCP_PROJECT: GCP project ID for Secret Manager access
"""

import argparse
import json
import logging
import os
import sys

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from alertflow.core.alert import alert_to_dict
from alertflow.core.normalizer import normalize_extraction
from alertflow.core.validator import partition_valid
from alertflow.orchestrator import PipelineOrchestrator
from alertflow.shell.config_loader import load_config

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)


def read_payload(path: str) -> str:
    """Read the payload from a file, or stdin for "-"."""
    if path == "-":
        return sys.stdin.read()
    with open(path, "r") as f:
        return f.read()


def preview(text: str, validity_hours: float, source: str) -> int:
    """Normalize and validate a payload without touching any backend."""
    normalization = normalize_extraction(text, validity_hours=validity_hours, source=source)
    valid, rejected = partition_valid(normalization.alerts)

    logger.info("")
    logger.info("Normalized %d alerts", len(normalization.alerts))
    for error in normalization.errors:
        logger.warning("  Skipped fragment: %s", error)
    for rejection in rejected:
        logger.warning("  Rejected %s: %s", rejection.alert.id, rejection.reason)
    logger.info("")

    for alert in valid:
        logger.info(
            "  [%s] %s in %s (magnitude %s)",
            alert.severity.upper(),
            alert.disaster_type,
            alert.location,
            alert.magnitude,
        )

    print(json.dumps([alert_to_dict(a) for a in valid], indent=2))
    return 0 if valid else 1


def main():
    parser = argparse.ArgumentParser(
        description="Run the alert pipeline on an extraction payload",
        epilog="⚠️  WARNING: This sends REAL notifications! Use --dry-run first.",
    )
    parser.add_argument(
        "payload",
        help="Path to the payload file, or - for stdin",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Normalize and validate only; store and send nothing",
    )
    args = parser.parse_args()

    config = load_config()
    text = read_payload(args.payload)

    if args.dry_run:
        logger.info("DRY RUN - nothing will be stored or sent")
        return preview(text, config.alerts.validity_hours, config.alerts.source)

    orchestrator = PipelineOrchestrator(config)
    result = orchestrator.process_extraction(text)

    logger.info("")
    logger.info("Result: %s", result.summary)
    for error in result.errors:
        logger.warning("  %s", error)

    print(json.dumps(result.to_dict(), indent=2))
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
