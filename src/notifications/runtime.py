"""Delivery runtime: the explicitly constructed process context.

Owns the document store client, the push provider and the send pool.
Open it once at process start and close it on exit; components receive
their collaborators from it instead of reaching for module globals.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Optional

from src.notifications.auditor import DuplicateAuditor
from src.notifications.config import DEFAULT_NOTIFICATION_CONFIG, NotificationConfig
from src.notifications.devices import DeviceRegistry
from src.notifications.documents import DocumentStore, InMemoryDocumentStore
from src.notifications.providers import ExpoPushProvider, PushProvider
from src.notifications.store import NotificationStore
from src.notifications.worker import DeliveryWorker

logger = logging.getLogger(__name__)


class DeliveryRuntime:
    """Wires the delivery components around shared clients.

    Example:
        with DeliveryRuntime(documents=store, provider=ExpoPushProvider()) as rt:
            rt.worker.deliver(notification_id)
    """

    def __init__(
        self,
        documents: Optional[DocumentStore] = None,
        provider: Optional[PushProvider] = None,
        config: Optional[NotificationConfig] = None,
    ):
        self.config = config or DEFAULT_NOTIFICATION_CONFIG
        self.documents = documents or InMemoryDocumentStore()
        self.provider = provider or ExpoPushProvider(self.config)
        self._executor: Optional[ThreadPoolExecutor] = None
        self._worker: Optional[DeliveryWorker] = None
        self._auditor: Optional[DuplicateAuditor] = None
        self.registry = DeviceRegistry(self.documents)
        self.notifications = NotificationStore(self.documents)

    @property
    def is_open(self) -> bool:
        return self._executor is not None

    def open(self) -> "DeliveryRuntime":
        """Start the send pool and build the worker and auditor."""
        if self.is_open:
            return self
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.max_concurrent_sends,
            thread_name_prefix="push-send",
        )
        self._worker = DeliveryWorker(
            self.notifications,
            self.registry,
            self.provider,
            self.config,
            executor=self._executor,
        )
        self._auditor = DuplicateAuditor(self.registry, self.config)
        logger.info(
            "Delivery runtime opened (provider=%s, max_concurrent_sends=%d)",
            self.provider.name, self.config.max_concurrent_sends,
        )
        return self

    def close(self) -> None:
        """Stop the send pool and release provider and store clients."""
        if self._executor is not None:
            self._executor.shutdown(wait=True, cancel_futures=True)
        self._executor = None
        self._worker = None
        self._auditor = None
        self.provider.close()
        self.documents.close()
        logger.info("Delivery runtime closed")

    @property
    def worker(self) -> DeliveryWorker:
        if self._worker is None:
            raise RuntimeError("DeliveryRuntime is not open")
        return self._worker

    @property
    def auditor(self) -> DuplicateAuditor:
        if self._auditor is None:
            raise RuntimeError("DeliveryRuntime is not open")
        return self._auditor

    def __enter__(self) -> "DeliveryRuntime":
        return self.open()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
