"""Operation queue for offline writes.

This module provides:
- OperationQueue: Ordered, durable queue of pending operations

Operations are kept in insertion order (FIFO) in an ordered dict keyed by
operation id. Every mutation rewrites the pending-operations key of the
QueueStore while holding the store lock, so the store always mirrors the
in-memory queue.

Usage:
    store = QueueStore(path)
    queue = OperationQueue(store)
    queue.load()
    op_id = queue.enqueue(OperationType.TASK, {"title": "Buy milk"}, "insert")
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Iterable, Iterator, Mapping
from typing import TYPE_CHECKING, Any

from offlinesync.client.sync.types import (
    Operation,
    OperationMethod,
    OperationType,
    StorageUsage,
)
from offlinesync.core.errors import PersistenceFailure, UnsupportedOperationType

if TYPE_CHECKING:
    from offlinesync.client.state import QueueStore

logger = logging.getLogger(__name__)

EnqueueListener = Callable[[Operation], None]


class OperationQueue:
    """Ordered mapping of operation id -> Operation, mirrored to the store."""

    def __init__(self, store: QueueStore) -> None:
        """Initialize the queue.

        Args:
            store: Durable store (its lock guards every mutation)
        """
        self._store = store
        self._lock = store.lock
        self._operations: dict[str, Operation] = {}
        self._listeners: list[EnqueueListener] = []

    def add_listener(self, listener: EnqueueListener) -> None:
        """Call listener(op) after each enqueue."""
        self._listeners.append(listener)

    def load(self) -> int:
        """Hydrate the queue from the store.

        A missing or unparseable key yields an empty queue.

        Returns:
            Number of operations loaded
        """
        key = self._store.keys.pending_operations
        operations: dict[str, Operation] = {}
        try:
            raw = self._store.get(key)
            entries = json.loads(raw) if raw else []
        except (PersistenceFailure, ValueError):
            logger.exception("Error loading pending operations, starting empty")
            entries = []

        for entry in entries if isinstance(entries, list) else []:
            try:
                op = Operation.from_dict(entry)
            except (UnsupportedOperationType, KeyError, TypeError, ValueError) as e:
                logger.error("Skipping unreadable pending operation %r: %s", entry, e)
                continue
            operations[op.id] = op

        with self._lock:
            self._operations = operations

        if operations:
            logger.info("Loaded %d pending operations", len(operations))
        return len(operations)

    def _persist(self) -> None:
        """Write the whole queue to the store (caller holds the lock)."""
        data = json.dumps([op.to_dict() for op in self._operations.values()])
        try:
            self._store.set(self._store.keys.pending_operations, data)
        except PersistenceFailure:
            logger.exception("Error saving pending operations")

    def enqueue(
        self,
        op_type: OperationType | str,
        payload: Mapping[str, Any] | None = None,
        method: OperationMethod | str = OperationMethod.UPSERT,
    ) -> str:
        """Append a new operation.

        Args:
            op_type: Entity type (session, settings, stats, task, note)
            payload: Entity fields
            method: insert, update, delete or upsert

        Returns:
            The new operation id

        Raises:
            UnsupportedOperationType: If op_type is unknown
        """
        op = Operation.create(op_type, payload, method)
        with self._lock:
            self._operations[op.id] = op
            self._persist()
            size = len(self._operations)

        logger.debug("Queued %r (queue size: %d)", op, size)
        for listener in self._listeners:
            listener(op)
        return op.id

    def enqueue_dict(self, data: Mapping[str, Any]) -> str:
        """Enqueue from a mapping with "type", "payload" and optional "method"."""
        return self.enqueue(
            data["type"],
            data.get("payload") or data.get("data"),
            data.get("method") or OperationMethod.UPSERT,
        )

    def readmit(self, op: Operation) -> None:
        """Append an existing operation again, keeping its id."""
        with self._lock:
            self._operations.pop(op.id, None)
            self._operations[op.id] = op
            self._persist()
        logger.debug("Re-admitted %r", op)

    def remove(self, ids: Iterable[str]) -> int:
        """Remove operations by id. Unknown ids are ignored.

        Returns:
            Number of operations removed
        """
        with self._lock:
            removed = 0
            for op_id in set(ids):
                if self._operations.pop(op_id, None) is not None:
                    removed += 1
            if removed:
                self._persist()
        if removed:
            logger.debug("Removed %d operations from queue", removed)
        return removed

    def clear(self) -> int:
        """Remove all operations.

        Returns:
            Number of operations removed
        """
        with self._lock:
            count = len(self._operations)
            self._operations.clear()
            self._persist()
        logger.info("Cleared %d pending operations", count)
        return count

    def get(self, op_id: str) -> Operation | None:
        """Get a pending operation by id."""
        with self._lock:
            return self._operations.get(op_id)

    def snapshot(self) -> list[Operation]:
        """Ordered copy of the pending operations."""
        with self._lock:
            return list(self._operations.values())

    def snapshot_usage(self, conflicts: Iterable[Any] = ()) -> StorageUsage:
        """Estimate the serialized size of the queue and conflicts.

        Args:
            conflicts: Open ConflictEntry objects to account for
        """
        with self._lock:
            pending = json.dumps([op.to_dict() for op in self._operations.values()])
        conflict_data = json.dumps([c.to_dict() for c in conflicts])
        return StorageUsage(
            pending_bytes=len(pending),
            offline_data_bytes=self._store.size_of(self._store.keys.offline_data),
            conflict_bytes=len(conflict_data),
        )

    def __contains__(self, op_id: object) -> bool:
        with self._lock:
            return op_id in self._operations

    def __len__(self) -> int:
        """Get number of pending operations."""
        with self._lock:
            return len(self._operations)

    def __iter__(self) -> Iterator[Operation]:
        """Iterate over pending operations in FIFO order (does not remove them)."""
        return iter(self.snapshot())

    def __bool__(self) -> bool:
        """Check if queue has operations."""
        with self._lock:
            return bool(self._operations)
