"""Duplicate push-token audit.

Offline data-quality job: scans every user's devices and reports users
whose device records share push tokens. It never mutates the store.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from src.logging_config.performance import log_performance
from src.notifications.config import DEFAULT_NOTIFICATION_CONFIG, NotificationConfig
from src.notifications.dedup import dedupe_tokens
from src.notifications.devices import DeviceRegistry
from src.notifications.errors import NotificationError
from src.notifications.models import AuditReport, DeviceRecord, DeviceSummary, DuplicateFinding

logger = logging.getLogger(__name__)


class DuplicateAuditor:
    """Finds users with duplicate push tokens across their devices."""

    def __init__(self, registry: DeviceRegistry, config: Optional[NotificationConfig] = None):
        self.registry = registry
        self.config = config or DEFAULT_NOTIFICATION_CONFIG

    @log_performance(threshold_ms=30000)
    def run(self, include_devices: bool = False) -> AuditReport:
        """Scan all users.

        A store error for one user is recorded in ``report.errors`` and the
        scan moves on. Failing to list the users at all is raised.

        Args:
            include_devices: Also collect a per-user device/token inventory.
        """
        report = AuditReport()
        user_ids = self.registry.list_user_ids()
        logger.info("Auditing push tokens for %d users", len(user_ids))

        for user_id in user_ids:
            report.users_scanned += 1
            try:
                devices = self.registry.list_devices(user_id)
            except NotificationError as e:
                logger.error("Audit skipped user %s: %s", user_id, e.message)
                report.errors[user_id] = e.message
                continue

            if devices:
                report.users_with_devices += 1
                if include_devices:
                    report.devices.append(self._summarize(user_id, devices))

            finding = self._check(user_id, devices)
            if finding:
                report.findings.append(finding)

        report.finished_at = datetime.now(timezone.utc)
        logger.info(
            "Audit completed: %d users, %d with duplicates, %d errors",
            report.users_scanned, len(report.findings), len(report.errors),
        )
        return report

    def audit_user(self, user_id: str) -> Optional[DuplicateFinding]:
        """Audit a single user. Store errors propagate."""
        return self._check(user_id, self.registry.list_devices(user_id))

    def _check(self, user_id: str, devices: list[DeviceRecord]) -> Optional[DuplicateFinding]:
        result = dedupe_tokens(devices, self.config.token_prefix)
        if not result.has_duplicates:
            return None

        seen: set[str] = set()
        duplicate_device_ids = []
        for device in devices:
            token = device.push_token
            if token not in result.duplicates:
                continue
            if token in seen:
                duplicate_device_ids.append(device.device_id)
            else:
                seen.add(token)

        finding = DuplicateFinding(
            user_id=user_id,
            total_eligible=result.total_eligible,
            unique_count=result.unique_count,
            duplicate_tokens=list(result.duplicates),
            duplicate_device_ids=duplicate_device_ids,
        )
        logger.warning(
            "User %s has duplicates: %d total, %d unique",
            user_id, finding.total_eligible, finding.unique_count,
        )
        return finding

    def _summarize(self, user_id: str, devices: list[DeviceRecord]) -> DeviceSummary:
        return DeviceSummary(
            user_id=user_id,
            device_count=len(devices),
            tokens=[d.push_token for d in devices if d.push_token],
        )
