"""Sync coordinator for draining the operation queue.

This module provides:
- SyncCoordinator: Runs sync passes and owns the observable SyncState

The coordinator is the "brain" of the engine:
1. Admits a pass only if online, a caller identity is set, the queue is
   non-empty and no other pass is running (single-flight)
2. Processes a snapshot of the queue strictly in FIFO order, one operation
   at a time, with a fixed pause between operations
3. Classifies each outcome and updates the queue and the conflict ledger
4. Persists the last sync time or schedules a retry with backoff

Outcome handling:
    | Outcome  | Queue                     | Ledger        | Pass      |
    |----------|---------------------------|---------------|-----------|
    | Success  | removed at end of pass    | -             | -         |
    | Conflict | removed immediately       | entry added   | -         |
    | Failure  | kept (retried next pass)  | -             | degraded  |

State machine: idle -> syncing -> success | error. Losing connectivity
resets the status to idle; a pass already running finishes classifying
its snapshot but reports neither success nor error.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime
from typing import TYPE_CHECKING

from offlinesync.client.sync.retry import RetryPolicy
from offlinesync.client.sync.types import (
    Conflict,
    ConflictEntry,
    Failure,
    Operation,
    PassResult,
    PassTrigger,
    Success,
    SyncContext,
    SyncState,
    utcnow,
)
from offlinesync.core.config import SyncConfig
from offlinesync.core.errors import (
    ConnectivityUnavailable,
    PassRejected,
    PersistenceFailure,
)
from offlinesync.core.types import SyncStatus

if TYPE_CHECKING:
    from offlinesync.client.connectivity import ConnectivityMonitor
    from offlinesync.client.state import QueueStore
    from offlinesync.client.sync.conflicts import ConflictLedger
    from offlinesync.client.sync.dispatcher import OperationDispatcher
    from offlinesync.client.sync.queue import OperationQueue
    from offlinesync.client.sync.scheduler import SchedulerProtocol

logger = logging.getLogger(__name__)


class SyncCoordinator:
    """Runs sync passes over the operation queue.

    Usage:
        coordinator = SyncCoordinator(store, queue, ledger, dispatcher, monitor)
        coordinator.set_context(SyncContext(caller_id="user-1"))
        result = coordinator.run_pass(PassTrigger.MANUAL)
    """

    def __init__(
        self,
        store: QueueStore,
        queue: OperationQueue,
        ledger: ConflictLedger,
        dispatcher: OperationDispatcher,
        monitor: ConnectivityMonitor,
        config: SyncConfig | None = None,
        scheduler: SchedulerProtocol | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize the coordinator.

        Args:
            store: Durable store (last sync time, transactions)
            queue: Pending operations
            ledger: Open conflicts
            dispatcher: Applies operations remotely
            monitor: Connectivity state
            config: Timings and limits
            scheduler: Receives delayed pass requests
            sleep: Used for the pause between operations
        """
        self._store = store
        self._queue = queue
        self._ledger = ledger
        self._dispatcher = dispatcher
        self._monitor = monitor
        self._config = config or SyncConfig()
        self._scheduler = scheduler
        self._sleep = sleep
        self._retry = RetryPolicy(self._config.max_retries, self._config.backoff_base)

        self._lock = threading.RLock()
        self._state = SyncState()
        self._context: SyncContext | None = None
        self._pass_active = False
        self._offline_during_pass = False

        self._on_conflict: Callable[[ConflictEntry], None] | None = None

        queue.add_listener(self._on_enqueued)
        monitor.add_listener(self._on_connectivity)

    # === Properties ===

    @property
    def state(self) -> SyncState:
        """Copy of the current state."""
        with self._lock:
            return replace(self._state)

    @property
    def status(self) -> SyncStatus:
        return self._state.status

    @property
    def progress(self) -> float:
        return self._state.progress

    @property
    def last_sync_time(self) -> datetime | None:
        return self._state.last_sync_time

    @property
    def retry_count(self) -> int:
        return self._state.retry_count

    @property
    def is_syncing(self) -> bool:
        """True while a pass is running."""
        return self._pass_active

    @property
    def context(self) -> SyncContext | None:
        return self._context

    @property
    def retry_policy(self) -> RetryPolicy:
        return self._retry

    # === Setup ===

    def attach_scheduler(self, scheduler: SchedulerProtocol) -> None:
        """Set the scheduler that receives delayed pass requests."""
        self._scheduler = scheduler

    def set_context(self, context: SyncContext | None) -> None:
        """Set (or clear) the caller identity used by passes."""
        with self._lock:
            self._context = context
        if context is None:
            logger.info("Caller identity cleared")
        else:
            logger.info("Caller identity set: %s", context.caller_id)

    def set_on_conflict(self, callback: Callable[[ConflictEntry], None]) -> None:
        """Set callback for newly recorded conflicts."""
        self._on_conflict = callback

    def load(self) -> None:
        """Restore the last sync time from the store."""
        try:
            raw = self._store.get(self._store.keys.last_sync)
            last_sync = datetime.fromisoformat(raw) if raw else None
        except (PersistenceFailure, ValueError):
            logger.exception("Error loading last sync time")
            last_sync = None
        with self._lock:
            self._state.last_sync_time = last_sync

    def reset(self) -> None:
        """Back to idle with no retry pending (after clearing the queue)."""
        with self._lock:
            self._state.status = SyncStatus.IDLE
            self._state.progress = 0.0
            self._state.retry_count = 0

    # === Triggers ===

    def request_pass(self, delay: float, trigger: PassTrigger) -> None:
        """Ask the scheduler for a pass in delay seconds."""
        if self._scheduler is None:
            logger.debug("No scheduler attached, dropping %s request", trigger.name)
            return
        self._scheduler.request(delay, trigger)

    def _on_enqueued(self, op: Operation) -> None:
        if self._monitor.is_online and self._context is not None:
            self.request_pass(self._config.debounce_delay, PassTrigger.DEBOUNCE)

    def notify_readmitted(self) -> None:
        """An operation went back to the queue after a keep_local resolution."""
        if self._monitor.is_online and self._context is not None:
            self.request_pass(self._config.debounce_delay, PassTrigger.DEBOUNCE)

    def _on_connectivity(self, online: bool) -> None:
        if online:
            if self._context is not None:
                self.request_pass(self._config.settle_delay, PassTrigger.RECONNECT)
            return

        with self._lock:
            self._state.status = SyncStatus.IDLE
            if self._pass_active:
                self._offline_during_pass = True

    def tick(self) -> None:
        """Periodic tick: sync if online with pending operations."""
        if self._monitor.is_online and self._context is not None and self._queue:
            self.run_pass(PassTrigger.PERIODIC)

    # === Pass execution ===

    def _admit(self, trigger: PassTrigger) -> tuple[list[Operation], SyncContext]:
        """Check the entry guard and mark the pass as running.

        Raises:
            PassRejected: If a pass may not start now
        """
        with self._lock:
            if not self._monitor.is_online:
                raise ConnectivityUnavailable()
            context = self._context
            if context is None:
                raise PassRejected("no caller identity")
            if self._pass_active:
                raise PassRejected("a pass is already running")
            snapshot = self._queue.snapshot()
            if not snapshot:
                raise PassRejected("queue is empty")

            self._pass_active = True
            self._offline_during_pass = False
            self._state.status = SyncStatus.SYNCING
            self._state.progress = 0.0
            if trigger != PassTrigger.RETRY:
                self._state.retry_count = 0
            return snapshot, context

    def run_pass(
        self,
        trigger: PassTrigger = PassTrigger.MANUAL,
        strict: bool = False,
    ) -> PassResult | None:
        """Run one pass over the current queue snapshot.

        Args:
            trigger: What requested the pass
            strict: Re-raise PassRejected instead of returning None

        Returns:
            The pass classification, or None if the pass was not admitted
        """
        try:
            snapshot, context = self._admit(trigger)
        except PassRejected as e:
            logger.debug("Sync pass (%s) not started: %s", trigger.name, e.reason)
            if strict:
                raise
            return None

        logger.info(
            "Sync pass started (%s): %d operations", trigger.name, len(snapshot)
        )
        result = PassResult(trigger=trigger)
        try:
            self._execute(snapshot, context, result)
        except Exception:
            logger.exception("Sync pass aborted")
            done = set(result.completed) | set(result.conflicted) | set(result.failed)
            result.failed.extend(op.id for op in snapshot if op.id not in done)
        finally:
            self._finish(result)
        return result

    def _execute(
        self,
        snapshot: list[Operation],
        context: SyncContext,
        result: PassResult,
    ) -> None:
        total = len(snapshot)
        for index, op in enumerate(snapshot):
            outcome = self._dispatcher.process(op, context)

            if isinstance(outcome, Success):
                result.completed.append(op.id)
            elif isinstance(outcome, Conflict):
                self._isolate(op, outcome.server_data)
                result.conflicted.append(op.id)
            elif isinstance(outcome, Failure):
                result.failed.append(op.id)
            else:
                raise TypeError(f"Unexpected outcome: {outcome!r}")

            with self._lock:
                self._state.progress = (index + 1) / total * 100

            if index < total - 1 and self._config.operation_delay > 0:
                self._sleep(self._config.operation_delay)

        # Conflicts were already removed; this is a no-op for them
        self._queue.remove(result.completed + result.conflicted)

    def _isolate(self, op: Operation, server_data: dict | None) -> None:
        """Move a conflicting operation from the queue to the ledger atomically."""
        try:
            with self._store.transaction():
                recorded = self._ledger.record(op, server_data)
                self._queue.remove([op.id])
        except PersistenceFailure:
            logger.exception("Error persisting conflict for %s", op.id)
            recorded = self._ledger.record(op, server_data)
            self._queue.remove([op.id])

        entry = self._ledger.get(op.id)
        if recorded and entry is not None and self._on_conflict:
            self._on_conflict(entry)

    def _finish(self, result: PassResult) -> None:
        retry_delay: float | None = None
        with self._lock:
            self._pass_active = False
            offline = self._offline_during_pass
            self._offline_during_pass = False

            if result.ok:
                now = utcnow()
                self._state.last_sync_time = now
                self._state.retry_count = 0
                self._persist_last_sync(now)
                if not offline:
                    self._state.status = SyncStatus.SUCCESS
            elif not offline:
                self._state.status = SyncStatus.ERROR
                if self._retry.should_retry(self._state.retry_count):
                    self._state.retry_count += 1
                    retry_delay = self._retry.delay_for(self._state.retry_count)
            retry_count = self._state.retry_count
            context = self._context

        logger.info(
            "Sync pass finished: %d completed, %d conflicts, %d failed%s",
            len(result.completed),
            len(result.conflicted),
            len(result.failed),
            " (connectivity lost)" if offline else "",
        )
        if retry_delay is not None:
            logger.warning(
                "Retrying sync in %.0fs (attempt %d/%d)",
                retry_delay,
                retry_count,
                self._retry.max_retries,
            )
            self.request_pass(retry_delay, PassTrigger.RETRY)
        else:
            if result.failed and not offline:
                logger.error(
                    "Sync failed after %d retries, waiting for next trigger",
                    self._retry.max_retries,
                )
            if not offline and context is not None and self._enqueued_during(result):
                # Their debounce request may have been rejected by this pass
                self.request_pass(self._config.debounce_delay, PassTrigger.DEBOUNCE)

    def _enqueued_during(self, result: PassResult) -> bool:
        """True if the queue holds operations the pass did not see."""
        seen = {*result.completed, *result.conflicted, *result.failed}
        return any(op.id not in seen for op in self._queue.snapshot())

    def _persist_last_sync(self, when: datetime) -> None:
        try:
            self._store.set(self._store.keys.last_sync, when.isoformat())
        except PersistenceFailure:
            logger.exception("Error saving last sync time")
