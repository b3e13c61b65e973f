"""
In-Memory Document Store

A complete DocumentStoreInterface backed by plain dicts. Used by the test
suite and for offline runs when no Google Sheets spreadsheet is configured.

Writes are applied to a working copy first and only swapped in once every
operation of a batch has succeeded, so a failing batch leaves nothing
behind. Snapshots are delivered synchronously after each committed write,
one per affected collection.
"""

import asyncio
import copy
from typing import Any, Optional

import structlog

from fintrack.services.storage.interface import (
    BatchOperation,
    ConnectionError,
    Document,
    DocumentStoreInterface,
    SnapshotHandler,
    StorageError,
    apply_operations,
    sort_documents,
)
from fintrack.services.subscription import Subscription


logger = structlog.get_logger(__name__)


class _Listener:
    def __init__(self, handler: SnapshotHandler, order_by: Optional[str], descending: bool):
        self.handler = handler
        self.order_by = order_by
        self.descending = descending


class InMemoryDocumentStore(DocumentStoreInterface):
    """
    Dict-backed document store with atomic batches and live snapshots.

    Collections are keyed by their full path (`users/{uid}/accounts`).
    """

    def __init__(self):
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._listeners: dict[str, list[_Listener]] = {}
        self._lock = asyncio.Lock()
        self._fail_next: Optional[StorageError] = None
        self._fail_after_apply = False
        self.commit_count = 0

    # ------------------------------------------------------------------
    # Fault injection
    # ------------------------------------------------------------------

    def fail_next_commit(
        self,
        error: Optional[StorageError] = None,
        applied: bool = False,
    ) -> None:
        """
        Make the next write raise `error`.

        With `applied=True` the write lands (and is delivered to
        subscribers) before the error is raised, like a commit whose
        acknowledgement was lost on the way back.
        """
        self._fail_next = error or ConnectionError("simulated store outage")
        self._fail_after_apply = applied

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _snapshot(
        self,
        path: str,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[Document]:
        docs = [
            Document(id=doc_id, data=copy.deepcopy(data))
            for doc_id, data in self._collections.get(path, {}).items()
        ]
        return sort_documents(docs, order_by, descending)

    async def get_collection(
        self,
        path: str,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[Document]:
        return self._snapshot(path, order_by, descending)

    def get_document(self, path: str, doc_id: str) -> Optional[dict[str, Any]]:
        """Direct lookup, mostly for assertions in tests."""
        data = self._collections.get(path, {}).get(doc_id)
        return copy.deepcopy(data) if data is not None else None

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe_collection(
        self,
        path: str,
        handler: SnapshotHandler,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> Subscription:
        listener = _Listener(handler, order_by, descending)
        self._listeners.setdefault(path, []).append(listener)

        def _remove() -> None:
            listeners = self._listeners.get(path, [])
            if listener in listeners:
                listeners.remove(listener)

        subscription = Subscription(_remove)
        handler(self._snapshot(path, order_by, descending))
        return subscription

    def _notify(self, paths: set[str]) -> None:
        for path in sorted(paths):
            # Copy: handlers may cancel their own subscription
            for listener in list(self._listeners.get(path, [])):
                try:
                    listener.handler(
                        self._snapshot(path, listener.order_by, listener.descending)
                    )
                except Exception:
                    logger.exception("snapshot_handler_failed", path=path)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def upsert_document(
        self,
        path: str,
        doc_id: str,
        data: dict[str, Any],
        merge: bool = False,
    ) -> None:
        await self.commit_batch([BatchOperation.upsert(path, doc_id, data, merge=merge)])

    async def delete_document(self, path: str, doc_id: str) -> None:
        await self.commit_batch([BatchOperation.delete(path, doc_id)])

    async def commit_batch(self, operations: list[BatchOperation]) -> None:
        lost_ack: Optional[StorageError] = None
        async with self._lock:
            if self._fail_next is not None:
                error, self._fail_next = self._fail_next, None
                if not self._fail_after_apply:
                    raise error
                lost_ack = error

            affected = {op.path for op in operations}
            working = {
                path: copy.deepcopy(self._collections.get(path, {}))
                for path in affected
            }

            apply_operations(working, operations)

            self._collections.update(working)
            self.commit_count += 1

        self._notify(affected)
        if lost_ack is not None:
            raise lost_ack
