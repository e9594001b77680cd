"""Configuration for push notification delivery."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


EXPO_TOKEN_PREFIX = "ExponentPushToken["
EXPO_PUSH_URL = "https://exp.host/--/api/v2/push/send"


class NotificationStatus(Enum):
    """Notification delivery status."""
    PENDING = "pending"
    SENDING = "sending"
    SENT = "sent"
    FAILED = "failed"


# Edges the delivery worker may take. failed -> pending is issued only by
# the external retry scheduler.
ALLOWED_TRANSITIONS: dict[NotificationStatus, frozenset[NotificationStatus]] = {
    NotificationStatus.PENDING: frozenset({NotificationStatus.SENDING}),
    NotificationStatus.SENDING: frozenset({NotificationStatus.SENT, NotificationStatus.FAILED}),
    NotificationStatus.SENT: frozenset(),
    NotificationStatus.FAILED: frozenset(),
}


class TransitionResult(Enum):
    """Outcome of a conditional status update."""
    APPLIED = "applied"
    CONFLICT = "conflict"


class FailureReason(Enum):
    """Why an attempt cycle ended in ``failed``."""
    NO_ELIGIBLE_TARGETS = "no_eligible_targets"
    ALL_TARGETS_FAILED = "all_targets_failed"
    STORE_UNAVAILABLE = "store_unavailable"


@dataclass
class NotificationConfig:
    """Notification delivery configuration."""

    # Delivery settings
    max_attempts: int = 3
    max_concurrent_sends: int = 16

    # Timeouts
    send_timeout_seconds: float = 10.0

    # Provider settings
    token_prefix: str = EXPO_TOKEN_PREFIX
    push_url: str = EXPO_PUSH_URL
    access_token: Optional[str] = None

    @classmethod
    def from_settings(cls, settings) -> "NotificationConfig":
        """Build a config from a loaded ``Settings`` instance."""
        return cls(
            max_attempts=settings.max_attempts,
            max_concurrent_sends=settings.max_concurrent_sends,
            send_timeout_seconds=settings.send_timeout_seconds,
            token_prefix=settings.token_prefix,
            push_url=settings.push_url,
            access_token=settings.expo_access_token or None,
        )


DEFAULT_NOTIFICATION_CONFIG = NotificationConfig()
