"""Push notification delivery and device-token deduplication.

Fans a single notification out to every device a user owns:
- Device lookup per user (read-only)
- Order-preserving push-token deduplication
- Compare-and-swap status transitions on notification records
- Concurrent per-target dispatch with a bounded join
- Offline duplicate-token audit
"""

from src.notifications.config import (
    ALLOWED_TRANSITIONS,
    DEFAULT_NOTIFICATION_CONFIG,
    EXPO_PUSH_URL,
    EXPO_TOKEN_PREFIX,
    FailureReason,
    NotificationConfig,
    NotificationStatus,
    TransitionResult,
)
from src.notifications.errors import (
    InvalidTransition,
    NotFound,
    NotificationError,
    SendError,
    SendPermanent,
    SendTransient,
    StoreUnavailable,
)
from src.notifications.models import (
    AuditReport,
    DedupResult,
    DeliveryReport,
    DeviceRecord,
    DeviceSummary,
    DuplicateFinding,
    NotificationRecord,
    PushPayload,
    TargetResult,
)
from src.notifications.documents import DocumentStore, InMemoryDocumentStore
from src.notifications.dedup import dedupe_tokens, is_eligible_token
from src.notifications.devices import DeviceRegistry
from src.notifications.store import NotificationStore
from src.notifications.providers import DryRunProvider, ExpoPushProvider, PushProvider
from src.notifications.worker import DeliveryWorker
from src.notifications.auditor import DuplicateAuditor
from src.notifications.runtime import DeliveryRuntime

__all__ = [
    # Config
    "ALLOWED_TRANSITIONS",
    "DEFAULT_NOTIFICATION_CONFIG",
    "EXPO_PUSH_URL",
    "EXPO_TOKEN_PREFIX",
    "FailureReason",
    "NotificationConfig",
    "NotificationStatus",
    "TransitionResult",
    # Errors
    "InvalidTransition",
    "NotFound",
    "NotificationError",
    "SendError",
    "SendPermanent",
    "SendTransient",
    "StoreUnavailable",
    # Models
    "AuditReport",
    "DedupResult",
    "DeliveryReport",
    "DeviceRecord",
    "DeviceSummary",
    "DuplicateFinding",
    "NotificationRecord",
    "PushPayload",
    "TargetResult",
    # Components
    "DocumentStore",
    "InMemoryDocumentStore",
    "dedupe_tokens",
    "is_eligible_token",
    "DeviceRegistry",
    "NotificationStore",
    "DryRunProvider",
    "ExpoPushProvider",
    "PushProvider",
    "DeliveryWorker",
    "DuplicateAuditor",
    "DeliveryRuntime",
]
