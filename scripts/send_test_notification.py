"""Drive one delivery attempt for a synthetic notification.

Creates a pending notification for the given user, prints the device and
token resolution, runs one delivery attempt and prints the resulting
record. For manual verification of deduplication and the state machine.

Usage:
    python -m scripts.send_test_notification --data snapshot.json --user USER_ID --dry-run
    python -m scripts.send_test_notification --data snapshot.json --user USER_ID
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from src.logging_config import LogFormat, LoggingConfig, LogLevel, configure_logging
from src.notifications import (
    DeliveryRuntime,
    DryRunProvider,
    ExpoPushProvider,
    InMemoryDocumentStore,
    NotificationConfig,
    dedupe_tokens,
)
from src.settings import get_settings

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="python -m scripts.send_test_notification",
        description="Create a test notification and deliver it once",
    )
    parser.add_argument("--data", type=Path, required=True, help="JSON document snapshot")
    parser.add_argument("--user", required=True, help="User id to notify")
    parser.add_argument("--sender", default="Test Sender", help="Sender name on the notification")
    parser.add_argument(
        "--message", default="This is a test notification to check for duplicates",
        help="Notification message",
    )
    parser.add_argument(
        "--dry-run", action="store_true",
        help="Resolve targets and run the state machine without pushing",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    configure_logging(LoggingConfig(
        level=LogLevel(settings.log_level.upper()),
        format=LogFormat(settings.log_format.lower()),
    ), stream=sys.stderr)

    config = NotificationConfig.from_settings(settings)
    documents = InMemoryDocumentStore.from_documents(json.loads(args.data.read_text()))
    provider = DryRunProvider() if args.dry_run else ExpoPushProvider(config)

    with DeliveryRuntime(documents, provider, config) as runtime:
        print(f"Testing notifications for user: {args.user}")
        notification_id = runtime.notifications.create(
            args.user, "new_message", args.sender, args.message,
        )
        print(f"Created test notification: {notification_id}")

        devices = runtime.registry.list_devices(args.user)
        print(f"Found {len(devices)} device(s)")
        for device in devices:
            print(f"Device: {device.device_id}, Token: {device.push_token}")

        targets = dedupe_tokens(devices, config.token_prefix)
        print(
            f"Eligible tokens: {targets.total_eligible}, "
            f"unique tokens to send to: {targets.unique_count}"
        )

        report = runtime.worker.deliver(notification_id)
        record = runtime.notifications.get(notification_id)

    if report is None:
        print("Notification was claimed by another worker")
        return 1

    print(json.dumps(report.to_dict(), indent=2))
    print(json.dumps(record.to_dict(), indent=2))
    return 0 if record.pushed else 1


if __name__ == "__main__":
    sys.exit(main())
