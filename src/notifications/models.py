"""Data models for push notification delivery."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional
import uuid

from src.notifications.config import FailureReason, NotificationStatus


def _new_id() -> str:
    return uuid.uuid4().hex[:20]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    # Snapshot documents may already carry ISO strings.
    return value.isoformat() if isinstance(value, datetime) else value


@dataclass
class DeviceRecord:
    """Registered device of a user, as stored under ``users/{uid}/devices``."""

    device_id: str
    user_id: str
    push_token: Optional[str] = None
    platform: Optional[str] = None
    last_seen_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, user_id: str, device_id: str, doc: dict) -> "DeviceRecord":
        token = doc.get("expoPushToken")
        return cls(
            device_id=device_id,
            user_id=user_id,
            push_token=token if isinstance(token, str) else None,
            platform=doc.get("platform"),
            last_seen_at=doc.get("lastSeenAt"),
        )


@dataclass(frozen=True)
class PushPayload:
    """Content handed to the push provider for every target."""

    notification_id: str
    type: Optional[str]
    sender_name: Optional[str]
    message: Optional[str]
    conversation_id: Optional[str] = None
    auction_id: Optional[str] = None

    @property
    def title(self) -> str:
        if self.sender_name:
            return f"Mesaj nou de la {self.sender_name}"
        return "Mesaj nou"

    @property
    def body(self) -> str:
        return self.message or "Ai primit un mesaj nou."

    def to_expo_message(self, token: str) -> dict:
        """Build one Expo push message addressed to ``token``."""
        return {
            "to": token,
            "title": self.title,
            "body": self.body,
            "data": {
                "conversationId": self.conversation_id,
                "auctionId": self.auction_id,
                "notificationId": self.notification_id,
                "type": self.type,
            },
        }


@dataclass
class NotificationRecord:
    """A notification, as stored under ``users/{uid}/notifications``."""

    user_id: str
    type: Optional[str]
    sender_name: Optional[str]
    message: Optional[str]
    notification_id: str = field(default_factory=_new_id)
    conversation_id: Optional[str] = None
    auction_id: Optional[str] = None
    status: NotificationStatus = NotificationStatus.PENDING
    pushed: bool = False
    attempts: int = 0
    read: bool = False
    created_at: datetime = field(default_factory=_now)
    sent_at: Optional[datetime] = None
    last_error: Optional[str] = None
    exhausted: bool = False

    @classmethod
    def from_document(cls, user_id: str, notification_id: str, doc: dict) -> "NotificationRecord":
        return cls(
            notification_id=notification_id,
            user_id=doc.get("userId", user_id),
            type=doc.get("type"),
            sender_name=doc.get("senderName"),
            message=doc.get("message"),
            conversation_id=doc.get("conversationId"),
            auction_id=doc.get("auctionId"),
            status=NotificationStatus(doc.get("status", NotificationStatus.PENDING.value)),
            pushed=bool(doc.get("pushed", False)),
            attempts=int(doc.get("attempts", 0)),
            read=bool(doc.get("read", False)),
            created_at=doc.get("createdAt") or _now(),
            sent_at=doc.get("sentAt"),
            last_error=doc.get("lastError"),
            exhausted=bool(doc.get("exhausted", False)),
        )

    def to_document(self) -> dict:
        return {
            "userId": self.user_id,
            "type": self.type,
            "senderName": self.sender_name,
            "message": self.message,
            "conversationId": self.conversation_id,
            "auctionId": self.auction_id,
            "status": self.status.value,
            "pushed": self.pushed,
            "attempts": self.attempts,
            "read": self.read,
            "createdAt": self.created_at,
            "sentAt": self.sent_at,
            "lastError": self.last_error,
            "exhausted": self.exhausted,
        }

    def to_push_payload(self) -> PushPayload:
        """Convert to the provider-facing payload."""
        return PushPayload(
            notification_id=self.notification_id,
            type=self.type,
            sender_name=self.sender_name,
            message=self.message,
            conversation_id=self.conversation_id,
            auction_id=self.auction_id,
        )

    def to_dict(self) -> dict:
        return {
            "notification_id": self.notification_id,
            "user_id": self.user_id,
            "type": self.type,
            "sender_name": self.sender_name,
            "status": self.status.value,
            "pushed": self.pushed,
            "attempts": self.attempts,
            "created_at": _iso(self.created_at),
            "sent_at": _iso(self.sent_at),
            "last_error": self.last_error,
            "exhausted": self.exhausted,
        }


@dataclass(frozen=True)
class DedupResult:
    """Unique eligible push targets derived from a device list."""

    tokens: tuple[str, ...] = ()
    total_eligible: int = 0
    malformed: int = 0
    duplicates: dict[str, int] = field(default_factory=dict)  # token -> extra occurrences

    @property
    def unique_count(self) -> int:
        return len(self.tokens)

    @property
    def has_duplicates(self) -> bool:
        return self.total_eligible > self.unique_count


@dataclass
class TargetResult:
    """Result of sending a notification to one push token."""

    token: str
    success: bool
    message_id: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    transient: Optional[bool] = None
    latency_ms: Optional[int] = None

    @property
    def permanent_failure(self) -> bool:
        return not self.success and self.transient is False

    def to_dict(self) -> dict:
        return {
            "token": self.token,
            "success": self.success,
            "message_id": self.message_id,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "transient": self.transient,
            "latency_ms": self.latency_ms,
        }


@dataclass
class DeliveryReport:
    """Outcome of one attempt cycle on a notification.

    ``final_status`` is None when the finishing transition lost a race;
    in that case nothing was written for the attempt.
    """

    notification_id: str
    user_id: str
    final_status: Optional[NotificationStatus] = None
    attempts: int = 0
    total_eligible: int = 0
    targets: tuple[str, ...] = ()
    results: list[TargetResult] = field(default_factory=list)
    failure_reason: Optional[FailureReason] = None
    exhausted: bool = False
    started_at: datetime = field(default_factory=_now)
    finished_at: Optional[datetime] = None

    @property
    def delivered(self) -> bool:
        return any(r.success for r in self.results)

    @property
    def conflicted(self) -> bool:
        return self.final_status is None

    @property
    def invalid_tokens(self) -> list[str]:
        """Tokens the provider rejected permanently, for device cleanup."""
        return [r.token for r in self.results if r.permanent_failure]

    def to_dict(self) -> dict:
        return {
            "notification_id": self.notification_id,
            "user_id": self.user_id,
            "final_status": self.final_status.value if self.final_status else None,
            "attempts": self.attempts,
            "total_eligible": self.total_eligible,
            "targets": list(self.targets),
            "results": [r.to_dict() for r in self.results],
            "failure_reason": self.failure_reason.value if self.failure_reason else None,
            "exhausted": self.exhausted,
            "invalid_tokens": self.invalid_tokens,
            "started_at": _iso(self.started_at),
            "finished_at": _iso(self.finished_at),
        }


@dataclass
class DuplicateFinding:
    """A user whose devices share push tokens."""

    user_id: str
    total_eligible: int
    unique_count: int
    duplicate_tokens: list[str] = field(default_factory=list)
    duplicate_device_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "total_eligible": self.total_eligible,
            "unique_count": self.unique_count,
            "duplicate_tokens": self.duplicate_tokens,
            "duplicate_device_ids": self.duplicate_device_ids,
        }


@dataclass
class DeviceSummary:
    """Device inventory line for one user."""

    user_id: str
    device_count: int
    tokens: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "device_count": self.device_count,
            "tokens": self.tokens,
        }


@dataclass
class AuditReport:
    """Result of a duplicate-token scan across all users."""

    users_scanned: int = 0
    users_with_devices: int = 0
    findings: list[DuplicateFinding] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)  # user_id -> error message
    devices: list[DeviceSummary] = field(default_factory=list)
    started_at: datetime = field(default_factory=_now)
    finished_at: Optional[datetime] = None

    @property
    def clean(self) -> bool:
        return not self.findings and not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "users_scanned": self.users_scanned,
            "users_with_devices": self.users_with_devices,
            "findings": [f.to_dict() for f in self.findings],
            "errors": dict(self.errors),
            "devices": [d.to_dict() for d in self.devices],
            "started_at": _iso(self.started_at),
            "finished_at": _iso(self.finished_at),
        }
