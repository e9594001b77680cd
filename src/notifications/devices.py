"""Read-only access to users' registered devices."""

import logging

from src.notifications.documents import DocumentStore, join_path
from src.notifications.models import DeviceRecord

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"
DEVICES_COLLECTION = "devices"


class DeviceRegistry:
    """Lists the devices registered under ``users/{uid}/devices``.

    No ordering beyond storage order is guaranteed. Store failures
    (``StoreUnavailable``) propagate unchanged; the registry never retries.
    """

    def __init__(self, store: DocumentStore):
        self.store = store

    def list_devices(self, user_id: str) -> list[DeviceRecord]:
        """Get all devices for a user."""
        collection = join_path(USERS_COLLECTION, user_id, DEVICES_COLLECTION)
        devices = [
            DeviceRecord.from_document(user_id, device_id, doc)
            for device_id, doc in self.store.list(collection)
        ]
        logger.debug("User %s has %d device record(s)", user_id, len(devices))
        return devices

    def list_user_ids(self) -> list[str]:
        """Get every user id known to the store."""
        return self.store.list_ids(USERS_COLLECTION)
