"""Document store abstraction.

Documents are addressed by slash-separated paths such as
``users/{uid}/notifications/{id}``; a collection path has an odd number of
segments and a document path an even number.
"""

from __future__ import annotations

import logging
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Any, Optional

from src.notifications.errors import StoreUnavailable

logger = logging.getLogger(__name__)


def join_path(*segments: str) -> str:
    """Join path segments, rejecting empty ones and embedded slashes."""
    for segment in segments:
        if not segment or "/" in segment:
            raise ValueError(f"Invalid path segment: {segment!r}")
    return "/".join(segments)


def split_path(path: str) -> tuple[str, str]:
    """Split a document path into (collection path, document id)."""
    collection, _, doc_id = path.rpartition("/")
    return collection, doc_id


class DocumentStore(ABC):
    """Transactional key/value + query service holding all records."""

    @abstractmethod
    def add(self, collection: str, data: dict[str, Any], doc_id: Optional[str] = None) -> str:
        """Insert a document into a collection. Returns the document id."""

    @abstractmethod
    def get(self, path: str) -> Optional[dict[str, Any]]:
        """Read a document, or None if absent."""

    @abstractmethod
    def list(self, collection: str) -> list[tuple[str, dict[str, Any]]]:
        """List (doc_id, data) pairs of a collection in storage order."""

    @abstractmethod
    def list_ids(self, collection: str) -> list[str]:
        """List document ids of a collection, including documents that
        only exist as parents of subcollections."""

    @abstractmethod
    def find_in_group(self, group: str, doc_id: str) -> Optional[str]:
        """Find the path of ``doc_id`` in any collection named ``group``."""

    @abstractmethod
    def update_if(
        self,
        path: str,
        field: str,
        expected: Any,
        updates: dict[str, Any],
    ) -> bool:
        """Apply ``updates`` only if ``data[field] == expected`` at write time.

        Returns False when the document is missing or the field differs.
        """

    def close(self) -> None:
        """Release client resources."""


class InMemoryDocumentStore(DocumentStore):
    """Thread-safe in-memory document store.

    All reads and the conditional update run under one reentrant lock, so
    ``update_if`` is atomic with respect to concurrent writers.

    Example:
        store = InMemoryDocumentStore()
        store.add("users/u1/devices", {"expoPushToken": "ExponentPushToken[abc]"})
        store.list("users/u1/devices")
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._docs: dict[str, dict[str, Any]] = {}
        self._available = True
        self._closed = False

    @classmethod
    def from_documents(cls, documents: dict[str, dict[str, Any]]) -> "InMemoryDocumentStore":
        """Build a store from a ``{document path: data}`` snapshot."""
        store = cls()
        for path, data in documents.items():
            collection, doc_id = split_path(path)
            if len(path.split("/")) % 2:
                raise ValueError(f"Not a document path: {path!r}")
            store.add(collection, data, doc_id=doc_id)
        return store

    def set_available(self, available: bool) -> None:
        """Simulate the backing service going down or coming back."""
        self._available = available
        logger.info("In-memory store availability set to %s", available)

    def _check(self) -> None:
        if self._closed:
            raise StoreUnavailable("Document store client is closed")
        if not self._available:
            raise StoreUnavailable()

    def add(self, collection: str, data: dict[str, Any], doc_id: Optional[str] = None) -> str:
        doc_id = doc_id or uuid.uuid4().hex[:20]
        path = join_path(*collection.split("/"), doc_id)
        with self._lock:
            self._check()
            self._docs[path] = dict(data)
        logger.debug("Added document %s", path)
        return doc_id

    def get(self, path: str) -> Optional[dict[str, Any]]:
        with self._lock:
            self._check()
            doc = self._docs.get(path)
            return dict(doc) if doc is not None else None

    def list(self, collection: str) -> list[tuple[str, dict[str, Any]]]:
        with self._lock:
            self._check()
            result = []
            for path, doc in self._docs.items():
                parent, doc_id = split_path(path)
                if parent == collection:
                    result.append((doc_id, dict(doc)))
            return result

    def list_ids(self, collection: str) -> list[str]:
        prefix = collection + "/"
        with self._lock:
            self._check()
            ids: dict[str, None] = {}
            for path in self._docs:
                if path.startswith(prefix):
                    ids.setdefault(path[len(prefix):].split("/", 1)[0], None)
            return list(ids)

    def find_in_group(self, group: str, doc_id: str) -> Optional[str]:
        with self._lock:
            self._check()
            for path in self._docs:
                parent, candidate = split_path(path)
                if candidate == doc_id and split_path(parent)[1] == group:
                    return path
            return None

    def update_if(
        self,
        path: str,
        field: str,
        expected: Any,
        updates: dict[str, Any],
    ) -> bool:
        with self._lock:
            self._check()
            doc = self._docs.get(path)
            if doc is None or doc.get(field) != expected:
                return False
            doc.update(updates)
            return True

    def delete(self, path: str) -> bool:
        """Remove a document. Used by external cleanup flows and tests."""
        with self._lock:
            self._check()
            return self._docs.pop(path, None) is not None

    def close(self) -> None:
        with self._lock:
            self._closed = True
        logger.debug("In-memory store closed")
