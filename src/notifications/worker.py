"""Notification delivery worker.

Drives one notification through ``pending -> sending -> {sent, failed}``:
claim with a compare-and-swap, resolve the unique device tokens, fan the
sends out concurrently, join, then finish with a second compare-and-swap.
"""

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import datetime, timezone
from typing import Optional

from src.logging_config.context import LogContext
from src.logging_config.performance import log_performance
from src.notifications.config import (
    DEFAULT_NOTIFICATION_CONFIG,
    FailureReason,
    NotificationConfig,
    NotificationStatus,
    TransitionResult,
)
from src.notifications.dedup import dedupe_tokens
from src.notifications.devices import DeviceRegistry
from src.notifications.errors import NotFound, SendError, StoreUnavailable
from src.notifications.models import (
    DeliveryReport,
    NotificationRecord,
    PushPayload,
    TargetResult,
)
from src.notifications.providers import PushProvider
from src.notifications.store import NotificationStore

logger = logging.getLogger(__name__)


class DeliveryWorker:
    """Delivers notifications to every unique device token of their user.

    Several workers may race on the same record; only the one whose claim
    transition applies proceeds, the rest return None without writing.

    Args:
        store: Notification store holding the records.
        registry: Device registry for target resolution.
        provider: Push provider used for every send.
        config: Delivery configuration (timeouts, attempt ceiling).
        executor: Pool for per-target sends. When omitted the worker owns
            one sized by ``config.max_concurrent_sends``.
    """

    def __init__(
        self,
        store: NotificationStore,
        registry: DeviceRegistry,
        provider: PushProvider,
        config: Optional[NotificationConfig] = None,
        executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.store = store
        self.registry = registry
        self.provider = provider
        self.config = config or DEFAULT_NOTIFICATION_CONFIG
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=self.config.max_concurrent_sends,
            thread_name_prefix="push-send",
        )

    # ── Public API ───────────────────────────────────────────────────

    @log_performance(threshold_ms=5000)
    def deliver(self, notification_id: str) -> Optional[DeliveryReport]:
        """Run one delivery attempt on a pending notification.

        Returns None when another worker owns the record (or it is no longer
        pending). Raises NotFound for unknown ids and StoreUnavailable when
        the store cannot be reached.
        """
        record = self.store.get(notification_id)

        with LogContext(notification_id=notification_id, user_id=record.user_id):
            claimed = self.store.transition(
                notification_id,
                NotificationStatus.PENDING,
                NotificationStatus.SENDING,
            )
            if claimed is TransitionResult.CONFLICT:
                logger.debug("Notification %s already claimed, skipping", notification_id)
                return None

            # The pre-claim read may predate another worker's full cycle.
            try:
                record = self.store.get(notification_id)
            except NotFound:
                logger.warning("Notification %s vanished after claim", notification_id)
                return DeliveryReport(notification_id=notification_id, user_id=record.user_id)

            return self._run_attempt(record)

    def deliver_pending(self, user_id: str) -> list[DeliveryReport]:
        """Deliver every pending notification of a user concurrently."""
        pending = self.store.list_by_status(user_id, NotificationStatus.PENDING)
        if not pending:
            return []

        max_workers = min(len(pending), self.config.max_concurrent_sends)
        with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="push-deliver") as pool:
            futures = [pool.submit(self.deliver, r.notification_id) for r in pending]
            reports = [future.result() for future in futures]

        return [r for r in reports if r is not None]

    def close(self) -> None:
        """Shut down the send pool if this worker owns it."""
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)

    # ── Attempt cycle ────────────────────────────────────────────────

    def _run_attempt(self, record: NotificationRecord) -> DeliveryReport:
        report = DeliveryReport(
            notification_id=record.notification_id,
            user_id=record.user_id,
        )

        try:
            devices = self.registry.list_devices(record.user_id)
        except StoreUnavailable:
            logger.error("Store unavailable while loading devices for %s", record.user_id)
            self._finish(record, report, NotificationStatus.FAILED, FailureReason.STORE_UNAVAILABLE)
            raise

        targets = dedupe_tokens(devices, self.config.token_prefix)
        report.total_eligible = targets.total_eligible
        report.targets = targets.tokens
        if targets.has_duplicates:
            logger.info(
                "User %s has %d eligible tokens, %d unique",
                record.user_id, targets.total_eligible, targets.unique_count,
            )

        if not targets.tokens:
            logger.info("No eligible push targets for user %s", record.user_id)
            return self._finish(record, report, NotificationStatus.FAILED, FailureReason.NO_ELIGIBLE_TARGETS)

        report.results = self._dispatch(targets.tokens, record.to_push_payload())

        for token in report.invalid_tokens:
            logger.warning(
                "Push token %s for user %s is invalid; device should be cleaned up",
                token, record.user_id,
            )

        if report.delivered:
            return self._finish(record, report, NotificationStatus.SENT)
        return self._finish(record, report, NotificationStatus.FAILED, FailureReason.ALL_TARGETS_FAILED)

    def _dispatch(self, targets: tuple[str, ...], payload: PushPayload) -> list[TargetResult]:
        """Send to all targets concurrently and join.

        Results come back in target order. Sends still running at the
        deadline, or cancelled by a pool shutdown, count as transient
        timeouts and their results are dropped.
        """
        timeout = self.config.send_timeout_seconds
        futures: list[Future] = [
            self._executor.submit(self._send_one, token, payload) for token in targets
        ]
        done, _ = wait(futures, timeout=timeout)

        results = []
        for token, future in zip(targets, futures):
            if future in done and not future.cancelled():
                results.append(future.result())
                continue
            if future in done:
                message = "Send cancelled before completion"
                logger.warning("Push to %s was cancelled", token)
            else:
                future.cancel()
                message = f"No provider response within {timeout}s"
                logger.warning("Push to %s timed out after %.1fs", token, timeout)
            results.append(
                TargetResult(
                    token=token,
                    success=False,
                    error_code="Timeout",
                    error_message=message,
                    transient=True,
                )
            )
        return results

    def _send_one(self, token: str, payload: PushPayload) -> TargetResult:
        start_time = time.time()
        try:
            message_id = self.provider.send(token, payload)
        except SendError as e:
            latency_ms = int((time.time() - start_time) * 1000)
            logger.info(
                "Push to %s failed (%s, %s): %s",
                token, e.error_code, "transient" if e.transient else "permanent", e.message,
            )
            return TargetResult(
                token=token,
                success=False,
                error_code=e.error_code or type(e).__name__,
                error_message=e.message,
                transient=e.transient,
                latency_ms=latency_ms,
            )
        except Exception as e:
            latency_ms = int((time.time() - start_time) * 1000)
            logger.exception("Unexpected error pushing to %s", token)
            return TargetResult(
                token=token,
                success=False,
                error_code=type(e).__name__,
                error_message=str(e),
                transient=True,
                latency_ms=latency_ms,
            )

        latency_ms = int((time.time() - start_time) * 1000)
        return TargetResult(token=token, success=True, message_id=message_id, latency_ms=latency_ms)

    def _finish(
        self,
        record: NotificationRecord,
        report: DeliveryReport,
        status: NotificationStatus,
        reason: Optional[FailureReason] = None,
    ) -> DeliveryReport:
        """Close the attempt cycle with one conditional write from ``sending``."""
        attempts = record.attempts + 1
        fields: dict = {"attempts": attempts}
        exhausted = False

        if status is NotificationStatus.SENT:
            fields.update(sentAt=datetime.now(timezone.utc), pushed=True, lastError=None)
        else:
            exhausted = attempts >= self.config.max_attempts
            fields.update(pushed=exhausted, exhausted=exhausted, lastError=reason.value)

        result = self.store.transition(
            record.notification_id,
            NotificationStatus.SENDING,
            status,
            fields,
        )
        report.finished_at = datetime.now(timezone.utc)

        if result is TransitionResult.CONFLICT:
            logger.warning(
                "Notification %s changed during delivery; attempt discarded",
                record.notification_id,
            )
            return report

        report.final_status = status
        report.attempts = attempts
        report.failure_reason = reason
        report.exhausted = exhausted
        logger.info(
            "Notification %s %s after attempt %d (%d/%d targets ok)",
            record.notification_id,
            status.value,
            attempts,
            sum(1 for r in report.results if r.success),
            len(report.targets),
        )
        return report
