"""Audit users' devices for duplicate push tokens.

Loads a document snapshot, runs the duplicate auditor over every user and
prints the users whose device records share tokens. Never modifies data.

Usage:
    python -m scripts.audit_duplicate_tokens --data snapshot.json
    python -m scripts.audit_duplicate_tokens --data snapshot.json --list-devices
    python -m scripts.audit_duplicate_tokens --data snapshot.json --json
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from src.logging_config import LogFormat, LoggingConfig, LogLevel, configure_logging
from src.notifications import DeliveryRuntime, DryRunProvider, InMemoryDocumentStore, NotificationConfig
from src.settings import get_settings

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="python -m scripts.audit_duplicate_tokens",
        description="Report users with duplicate push tokens",
    )
    parser.add_argument(
        "--data", type=Path, required=True,
        help="JSON snapshot mapping document paths to documents",
    )
    parser.add_argument(
        "--list-devices", action="store_true",
        help="Also print every user's device count and tokens",
    )
    parser.add_argument(
        "--json", action="store_true",
        help="Print the report as JSON",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    configure_logging(LoggingConfig(
        level=LogLevel(settings.log_level.upper()),
        format=LogFormat(settings.log_format.lower()),
    ), stream=sys.stderr)

    documents = InMemoryDocumentStore.from_documents(json.loads(args.data.read_text()))
    config = NotificationConfig.from_settings(settings)

    # Audits never push.
    with DeliveryRuntime(documents, DryRunProvider(), config) as runtime:
        report = runtime.auditor.run(include_devices=args.list_devices)

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        print(f"Scanned {report.users_scanned} users, {report.users_with_devices} with devices")
        for summary in report.devices:
            print(f"\nUser {summary.user_id} has {summary.device_count} device(s)")
            print(f"Active tokens: {', '.join(summary.tokens)}")
        for finding in report.findings:
            print(
                f"User {finding.user_id} has duplicates: "
                f"{finding.total_eligible} total, {finding.unique_count} unique"
            )
            print(f"  Duplicate tokens: {', '.join(finding.duplicate_tokens)}")
            print(f"  Redundant devices: {', '.join(finding.duplicate_device_ids)}")
        for user_id, error in report.errors.items():
            print(f"User {user_id} could not be audited: {error}")
        print("Check completed")

    return 1 if report.errors else 0


if __name__ == "__main__":
    sys.exit(main())
