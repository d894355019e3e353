"""Caller-facing offline sync engine.

OfflineSync wires the durable store, the operation queue, the conflict
ledger, the dispatcher, the connectivity monitor, the scheduler and the
coordinator together, and exposes the API an application uses:

    engine = OfflineSync.open(db_path, ServerConfig(url, api_key))
    engine.set_caller("user-1")
    engine.start()

    op_id = engine.queue_operation("task", {"title": "Buy milk"}, "insert")
    engine.sync_now()
    for conflict in engine.conflicts:
        engine.resolve_conflict(conflict.operation.id, "server")

    engine.close()
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from offlinesync.client.api import RestRecordClient
from offlinesync.client.connectivity import ConnectivityMonitor
from offlinesync.client.state import QueueStore
from offlinesync.client.sync.conflicts import ConflictLedger
from offlinesync.client.sync.coordinator import SyncCoordinator
from offlinesync.client.sync.dispatcher import OperationDispatcher
from offlinesync.client.sync.queue import OperationQueue
from offlinesync.client.sync.scheduler import PassScheduler
from offlinesync.client.sync.types import (
    ConflictEntry,
    Operation,
    OperationMethod,
    OperationType,
    PassResult,
    PassTrigger,
    Resolution,
    StorageUsage,
    SyncContext,
    SyncState,
)
from offlinesync.core.config import ServerConfig, SyncConfig
from offlinesync.core.errors import PersistenceFailure
from offlinesync.core.types import SyncStatus

if TYPE_CHECKING:
    from offlinesync.client.api import RecordService

logger = logging.getLogger(__name__)


class OfflineSync:
    """Offline-first operation queue with background synchronization."""

    def __init__(
        self,
        store: QueueStore,
        service: RecordService,
        config: SyncConfig | None = None,
        monitor: ConnectivityMonitor | None = None,
        dispatcher: OperationDispatcher | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Build the engine and load its durable state.

        Args:
            store: Durable store
            service: Remote record backend
            config: Timings and limits
            monitor: Connectivity monitor (defaults to probing service.health_check)
            dispatcher: Operation dispatcher (defaults to all built-in handlers)
            sleep: Pause function between operations of a pass
        """
        self._config = config or SyncConfig()
        self._store = store
        self._service = service

        self.queue = OperationQueue(store)
        self.ledger = ConflictLedger(store, self.queue)
        self.monitor = monitor or ConnectivityMonitor(
            probe=getattr(service, "health_check", None),
            probe_interval=self._config.probe_interval,
        )
        self.dispatcher = dispatcher or OperationDispatcher(service)
        self.coordinator = SyncCoordinator(
            store,
            self.queue,
            self.ledger,
            self.dispatcher,
            self.monitor,
            config=self._config,
            sleep=sleep,
        )
        self.scheduler = PassScheduler(
            self.coordinator.run_pass,
            periodic_interval=self._config.periodic_interval,
            on_tick=self.coordinator.tick,
        )
        self.coordinator.attach_scheduler(self.scheduler)

        self.load()

    @classmethod
    def open(
        cls,
        db_path: Path | str,
        server_config: ServerConfig,
        config: SyncConfig | None = None,
    ) -> OfflineSync:
        """Create an engine backed by SQLite and the REST record client."""
        config = config or SyncConfig()
        store = QueueStore(db_path, namespace=config.namespace)
        return cls(store, RestRecordClient(server_config), config=config)

    def load(self) -> None:
        """Load queue, conflicts and last sync time from the store."""
        self.queue.load()
        self.ledger.load()

        # A keep_local resolution interrupted between re-admission and
        # conflict removal leaves the operation in both places
        readmitted = {e.operation.id for e in self.ledger.entries()} & {
            op.id for op in self.queue.snapshot()
        }
        if readmitted:
            self.ledger.discard(readmitted)
            logger.info("Dropped %d conflicts already re-admitted", len(readmitted))

        self.coordinator.load()

    # === Lifecycle ===

    def start(self) -> None:
        """Start background scheduling and connectivity probing."""
        self.scheduler.start()
        self.monitor.start()

    def stop(self) -> None:
        """Stop background threads. Pending operations stay queued."""
        self.monitor.stop()
        self.scheduler.stop()

    def close(self) -> None:
        """Stop threads and release the store and the service."""
        self.stop()
        close_service = getattr(self._service, "close", None)
        if close_service is not None:
            close_service()
        self._store.close()

    def __enter__(self) -> OfflineSync:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # === Caller identity ===

    def set_caller(
        self,
        caller_id: str,
        settings: Mapping[str, Any] | None = None,
    ) -> None:
        """Set the signed-in caller. Passes only run while one is set."""
        self.coordinator.set_context(SyncContext(caller_id, dict(settings or {})))

    def clear_caller(self) -> None:
        """Sign out: pending operations stay queued until a caller is set."""
        self.coordinator.set_context(None)

    # === Actions ===

    def queue_operation(
        self,
        op_type: OperationType | str,
        payload: Mapping[str, Any] | None = None,
        method: OperationMethod | str = OperationMethod.UPSERT,
    ) -> str:
        """Queue a local change for synchronization.

        Returns:
            The operation id

        Raises:
            UnsupportedOperationType: If op_type is unknown
        """
        return self.queue.enqueue(op_type, payload, method)

    def sync_now(self, strict: bool = False) -> PassResult | None:
        """Run a pass now on the calling thread.

        Args:
            strict: Raise PassRejected when the pass cannot start

        Returns:
            The pass result, or None if no pass ran
        """
        return self.coordinator.run_pass(PassTrigger.MANUAL, strict=strict)

    def resolve_conflict(self, operation_id: str, resolution: Resolution | str) -> bool:
        """Resolve a conflict with keep_local/"local" or keep_server/"server".

        Returns:
            True if a conflict was resolved
        """
        resolution = Resolution.parse(resolution)
        entry = self.ledger.resolve(operation_id, resolution)
        if entry is None:
            return False
        if resolution == Resolution.KEEP_LOCAL:
            self.coordinator.notify_readmitted()
        return True

    def clear_pending_operations(self) -> None:
        """Drop every pending operation and conflict. Use with caution."""
        try:
            with self._store.transaction():
                self.queue.clear()
                self.ledger.clear()
        except PersistenceFailure:
            logger.exception("Error clearing pending operations atomically")
            self.queue.clear()
            self.ledger.clear()
        self.coordinator.reset()

    def get_storage_usage(self) -> StorageUsage:
        """Serialized size of queued operations, offline data and conflicts."""
        return self.queue.snapshot_usage(self.ledger.entries())

    # === Observable state ===

    @property
    def is_online(self) -> bool:
        return self.monitor.is_online

    @property
    def state(self) -> SyncState:
        return self.coordinator.state

    @property
    def status(self) -> SyncStatus:
        return self.coordinator.status

    @property
    def progress(self) -> float:
        return self.coordinator.progress

    @property
    def last_sync_time(self) -> datetime | None:
        return self.coordinator.last_sync_time

    @property
    def pending_operations(self) -> list[Operation]:
        return self.queue.snapshot()

    @property
    def conflicts(self) -> list[ConflictEntry]:
        return self.ledger.entries()

    @property
    def has_pending_operations(self) -> bool:
        return bool(self.queue)

    @property
    def has_conflicts(self) -> bool:
        return len(self.ledger) > 0

    @property
    def can_sync(self) -> bool:
        """Online, signed in, and something to send."""
        return (
            self.is_online
            and self.coordinator.context is not None
            and self.has_pending_operations
        )
