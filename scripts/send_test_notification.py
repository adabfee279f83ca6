#!/usr/bin/env python3
"""Send a test push notification to a single device.

A synthetic medium-severity alert is formatted exactly like production
notifications, with a [TEST] marker in the title.

Usage:
    # Preview the payload only
    python scripts/send_test_notification.py --token <fcm-token> --dry-run

    # Send to one device
    python scripts/send_test_notification.py --token <fcm-token>

    # Send to a registered subscriber's device
    python scripts/send_test_notification.py --user-id user-123

Environment:
    CONFIG_PATH: Path to config file (default: config/config.yaml)
    GCP_PROJECT: GCP project ID for Secret Manager access
"""

import argparse
import json
import logging
import os
import sys
from datetime import datetime, timezone

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from alertflow.core.notification import build_push_notification
from alertflow.dispatcher import NotificationDispatcher, build_test_alert
from alertflow.orchestrator import PipelineOrchestrator
from alertflow.shell.config_loader import load_config

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")
logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(
        description="Send a test push notification to one device",
    )
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument(
        "--token",
        type=str,
        help="FCM registration token of the device",
    )
    target.add_argument(
        "--user-id",
        type=str,
        help="Look up the push token of a registered subscriber",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the payload without sending",
    )
    args = parser.parse_args()

    config = load_config()

    if args.dry_run:
        notification = build_push_notification(
            build_test_alert(datetime.now(timezone.utc)),
            is_test=True,
        )
        logger.info("DRY RUN - payload that would be sent:")
        print(json.dumps({
            "title": notification.title,
            "body": notification.body,
            "data": notification.data,
        }, indent=2, ensure_ascii=False))
        return 0

    orchestrator = PipelineOrchestrator(config)
    dispatcher: NotificationDispatcher = orchestrator.dispatcher

    token = args.token
    if args.user_id:
        subscriber = orchestrator.directory.get_subscriber(args.user_id)
        if subscriber is None:
            logger.error("Subscriber %s is not registered", args.user_id)
            return 1
        if not subscriber.push_token:
            logger.error("Subscriber %s has no push token", args.user_id)
            return 1
        token = subscriber.push_token

    result = dispatcher.send_test(token)

    if result.success:
        logger.info("✓ Test notification sent: %s", result.message_id)
        return 0

    logger.error("✗ Test notification failed: %s", result.error)
    if result.unregistered:
        logger.error("  The token is no longer registered with FCM")
    return 1


if __name__ == "__main__":
    sys.exit(main())
