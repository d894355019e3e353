"""Durable key-value store for the sync engine.

This module provides:
- QueueStore: SQLite-based namespaced string store
- StoreKeys: The logical keys used by the engine

Architecture:
    Every value is an opaque string (JSON for structured data). The queue
    and the conflict ledger rewrite their whole key on every mutation, so
    the store always reflects the in-memory state after each write.

    The store owns the lock shared by the queue and the ledger. Holding it
    across a mutation and its persistence keeps writers from interleaving.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from offlinesync.core.errors import PersistenceFailure

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoreKeys:
    """Namespaced keys of the durable store.

    Attributes:
        pending_operations: Serialized list of queued operations.
        last_sync: ISO timestamp of the last fully successful pass.
        offline_data: Opaque blob, only used for size accounting.
        conflicts: Serialized list of open conflicts.
    """

    pending_operations: str
    last_sync: str
    offline_data: str
    conflicts: str

    @classmethod
    def for_namespace(cls, namespace: str) -> StoreKeys:
        """Build the key set for a namespace (e.g. "lumos")."""
        return cls(
            pending_operations=f"{namespace}-pending-operations",
            last_sync=f"{namespace}-last-sync",
            offline_data=f"{namespace}-offline-data",
            conflicts=f"{namespace}-conflicts",
        )


class QueueStore:
    """SQLite-based durable string store.

    Pass ``":memory:"`` as db_path for a throwaway store.
    """

    def __init__(
        self,
        db_path: Path | str,
        namespace: str = "lumos",
        timeout: float = 5.0,
    ) -> None:
        """Open (or create) the store.

        Args:
            db_path: Path to SQLite database file.
            namespace: Prefix for the logical keys.
            timeout: Seconds to wait for a lock held by another connection.
        """
        self._db_path = str(db_path)
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)

        self.keys = StoreKeys.for_namespace(namespace)

        # Shared with OperationQueue and ConflictLedger
        self.lock = threading.RLock()
        self._depth = 0

        self._conn = sqlite3.connect(
            self._db_path,
            check_same_thread=False,
            isolation_level=None,  # Autocommit mode
            timeout=timeout,
        )
        if self._db_path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)

    def close(self) -> None:
        """Close the database connection."""
        with self.lock:
            self._conn.close()

    def __enter__(self) -> QueueStore:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def get(self, key: str) -> str | None:
        """Get a value.

        Raises:
            PersistenceFailure: If the database cannot be read.
        """
        try:
            with self.lock:
                row = self._conn.execute(
                    "SELECT value FROM kv_store WHERE key = ?",
                    (key,),
                ).fetchone()
        except sqlite3.Error as e:
            raise PersistenceFailure(f"Cannot read {key}: {e}") from e
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        """Set a value (upsert).

        Raises:
            PersistenceFailure: If the database cannot be written.
        """
        try:
            with self.lock:
                self._conn.execute(
                    "INSERT OR REPLACE INTO kv_store (key, value) VALUES (?, ?)",
                    (key, value),
                )
        except sqlite3.Error as e:
            raise PersistenceFailure(f"Cannot write {key}: {e}") from e

    def remove(self, key: str) -> None:
        """Remove a key. Missing keys are ignored."""
        try:
            with self.lock:
                self._conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        except sqlite3.Error as e:
            raise PersistenceFailure(f"Cannot remove {key}: {e}") from e

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Group several writes into one atomic commit.

        Nested calls join the outermost transaction.
        """
        with self.lock:
            if self._depth:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return

            try:
                self._conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise PersistenceFailure(f"Cannot begin transaction: {e}") from e
            self._depth = 1
            try:
                yield
            except BaseException:
                self._depth = 0
                self._rollback()
                raise
            self._depth = 0
            try:
                self._conn.execute("COMMIT")
            except sqlite3.Error as e:
                # A failed COMMIT leaves the transaction open
                self._rollback()
                raise PersistenceFailure(f"Cannot commit transaction: {e}") from e

    def _rollback(self) -> None:
        if not self._conn.in_transaction:
            return
        try:
            self._conn.execute("ROLLBACK")
        except sqlite3.Error:
            logger.exception("Error rolling back transaction")

    def size_of(self, key: str) -> int:
        """Length of a stored value in characters (0 if missing or unreadable)."""
        try:
            value = self.get(key)
        except PersistenceFailure:
            logger.warning("Cannot read %s for size accounting", key)
            return 0
        return len(value) if value else 0
