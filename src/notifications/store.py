"""Notification record persistence and status transitions."""

import logging
from typing import Any, Optional

from src.notifications.config import (
    ALLOWED_TRANSITIONS,
    NotificationStatus,
    TransitionResult,
)
from src.notifications.documents import DocumentStore, join_path
from src.notifications.errors import InvalidTransition, NotFound
from src.notifications.models import NotificationRecord

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"
NOTIFICATIONS_COLLECTION = "notifications"


class NotificationStore:
    """CRUD and compare-and-swap status changes over notification records.

    ``transition`` is the only write path for ``status``. It applies its
    update only while the stored status still equals the expected one, which
    is what keeps two workers from both claiming the same record.

    Example:
        store = NotificationStore(InMemoryDocumentStore())
        nid = store.create("user1", "new_message", "Ana", "Salut")
        store.transition(nid, NotificationStatus.PENDING, NotificationStatus.SENDING)
    """

    def __init__(self, documents: DocumentStore):
        self.documents = documents

    @staticmethod
    def _collection(user_id: str) -> str:
        return join_path(USERS_COLLECTION, user_id, NOTIFICATIONS_COLLECTION)

    def _path(self, notification_id: str) -> Optional[str]:
        return self.documents.find_in_group(NOTIFICATIONS_COLLECTION, notification_id)

    def create(
        self,
        user_id: str,
        type: str,
        sender_name: Optional[str],
        message: Optional[str],
        *,
        conversation_id: Optional[str] = None,
        auction_id: Optional[str] = None,
    ) -> str:
        """Create a pending notification. Returns its id."""
        record = NotificationRecord(
            user_id=user_id,
            type=type,
            sender_name=sender_name,
            message=message,
            conversation_id=conversation_id,
            auction_id=auction_id,
        )
        self.documents.add(
            self._collection(user_id),
            record.to_document(),
            doc_id=record.notification_id,
        )
        logger.info("Created notification %s for user %s", record.notification_id, user_id)
        return record.notification_id

    def get(self, notification_id: str) -> NotificationRecord:
        """Get a notification by id. Raises NotFound if absent."""
        path = self._path(notification_id)
        doc = self.documents.get(path) if path else None
        if doc is None:
            raise NotFound(
                f"Notification {notification_id} not found",
                resource_type="notification",
                resource_id=notification_id,
            )
        user_id = path.split("/")[1]
        return NotificationRecord.from_document(user_id, notification_id, doc)

    def list_by_status(self, user_id: str, status: NotificationStatus) -> list[NotificationRecord]:
        """Get a user's notifications in the given status, in storage order."""
        return [
            NotificationRecord.from_document(user_id, nid, doc)
            for nid, doc in self.documents.list(self._collection(user_id))
            if doc.get("status") == status.value
        ]

    def transition(
        self,
        notification_id: str,
        expected_status: NotificationStatus,
        next_status: NotificationStatus,
        fields: Optional[dict[str, Any]] = None,
    ) -> TransitionResult:
        """Move a record from ``expected_status`` to ``next_status``.

        ``fields`` are written in the same conditional update. Reports
        CONFLICT when the stored status has moved on or the record vanished;
        never overwrites unconditionally.
        """
        if next_status not in ALLOWED_TRANSITIONS[expected_status]:
            raise InvalidTransition(expected_status.value, next_status.value)

        path = self._path(notification_id)
        if path is None:
            logger.debug("Notification %s vanished before %s", notification_id, next_status.value)
            return TransitionResult.CONFLICT

        updates = dict(fields or {})
        updates["status"] = next_status.value
        applied = self.documents.update_if(path, "status", expected_status.value, updates)
        if not applied:
            logger.debug(
                "Conflict moving notification %s %s -> %s",
                notification_id, expected_status.value, next_status.value,
            )
            return TransitionResult.CONFLICT

        logger.debug(
            "Notification %s %s -> %s",
            notification_id, expected_status.value, next_status.value,
        )
        return TransitionResult.APPLIED
