"""Conflict ledger.

Holds operations the server rejected with a uniqueness violation, together
with the server's current record, until the caller resolves them:

- keep_server: the local operation is discarded
- keep_local: the operation goes back to the queue (same id) for a retry

Conflicts never expire. They are persisted on every change and survive
restarts.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from offlinesync.client.sync.types import ConflictEntry, Operation, Resolution
from offlinesync.core.errors import PersistenceFailure, UnsupportedOperationType

if TYPE_CHECKING:
    from offlinesync.client.state import QueueStore
    from offlinesync.client.sync.queue import OperationQueue

logger = logging.getLogger(__name__)


class ConflictLedger:
    """Ordered store of open conflicts keyed by operation id."""

    def __init__(self, store: QueueStore, queue: OperationQueue) -> None:
        """Initialize the ledger.

        Args:
            store: Durable store (its lock guards every mutation)
            queue: Queue that keep_local resolutions re-admit into
        """
        self._store = store
        self._queue = queue
        self._lock = store.lock
        self._entries: dict[str, ConflictEntry] = {}

    def load(self) -> int:
        """Hydrate the ledger from the store.

        Returns:
            Number of conflicts loaded
        """
        try:
            raw = self._store.get(self._store.keys.conflicts)
            items = json.loads(raw) if raw else []
        except (PersistenceFailure, ValueError):
            logger.exception("Error loading conflicts, starting empty")
            items = []

        entries: dict[str, ConflictEntry] = {}
        for item in items if isinstance(items, list) else []:
            try:
                entry = ConflictEntry.from_dict(item)
            except (UnsupportedOperationType, KeyError, TypeError, ValueError) as e:
                logger.error("Skipping unreadable conflict %r: %s", item, e)
                continue
            entries[entry.operation.id] = entry

        with self._lock:
            self._entries = entries
        if entries:
            logger.info("Loaded %d open conflicts", len(entries))
        return len(entries)

    def _persist(self) -> None:
        data = json.dumps([e.to_dict() for e in self._entries.values()])
        try:
            self._store.set(self._store.keys.conflicts, data)
        except PersistenceFailure:
            logger.exception("Error saving conflicts")

    def record(self, operation: Operation, server_data: dict[str, Any] | None) -> bool:
        """Add a conflict for an operation.

        Recording an operation that already has a conflict keeps the first one.

        Returns:
            True if a new entry was added
        """
        with self._lock:
            if operation.id in self._entries:
                logger.debug("Conflict for %s already recorded", operation.id)
                return False
            self._entries[operation.id] = ConflictEntry(operation, server_data)
            self._persist()
        logger.warning("Conflict recorded for %r", operation)
        return True

    def resolve(self, operation_id: str, resolution: Resolution | str) -> ConflictEntry | None:
        """Resolve a conflict.

        Args:
            operation_id: Id of the conflicting operation
            resolution: keep_local (retry the local write) or keep_server (drop it)

        Returns:
            The resolved entry, or None if no conflict has that id
        """
        resolution = Resolution.parse(resolution)
        with self._lock:
            entry = self._entries.get(operation_id)
            if entry is None:
                logger.debug("No conflict for %s, nothing to resolve", operation_id)
                return None

            try:
                with self._store.transaction():
                    self._apply(entry, resolution)
            except PersistenceFailure:
                # Nothing was committed; persist each key on its own
                logger.exception("Error resolving conflict %s atomically", operation_id)
                self._apply(entry, resolution)

        logger.info("Resolved conflict %s with %s", operation_id, resolution.value)
        return entry

    def _apply(self, entry: ConflictEntry, resolution: Resolution) -> None:
        """Update queue and ledger for a resolution. Safe to repeat."""
        if resolution == Resolution.KEEP_LOCAL:
            self._queue.readmit(entry.operation)
        self._entries.pop(entry.operation.id, None)
        self._persist()

    def discard(self, operation_ids: set[str]) -> int:
        """Drop entries without resolving them (used after a restart)."""
        with self._lock:
            removed = [i for i in operation_ids if self._entries.pop(i, None)]
            if removed:
                self._persist()
        return len(removed)

    def clear(self) -> int:
        """Remove all conflicts."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._persist()
        return count

    def get(self, operation_id: str) -> ConflictEntry | None:
        with self._lock:
            return self._entries.get(operation_id)

    def entries(self) -> list[ConflictEntry]:
        """Open conflicts, oldest first."""
        with self._lock:
            return list(self._entries.values())

    def __contains__(self, operation_id: object) -> bool:
        with self._lock:
            return operation_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
