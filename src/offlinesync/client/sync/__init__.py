"""Offline operation synchronization.

Architecture:
    OperationQueue → SyncCoordinator → OperationDispatcher → RecordService
                          ↓
                    ConflictLedger

Components:
- **OperationQueue**: Ordered, durable queue of local changes
- **SyncCoordinator**: Single-flight sync passes, outcome classification, backoff
- **PassScheduler**: APScheduler jobs for debounce, periodic, reconnect and retry
- **OperationDispatcher**: Maps operation types to backend calls
- **ConflictLedger**: Operations rejected by uniqueness violations, awaiting resolution

All public symbols are re-exported here.
"""

from offlinesync.client.sync.conflicts import ConflictLedger
from offlinesync.client.sync.coordinator import SyncCoordinator
from offlinesync.client.sync.dispatcher import (
    OperationDispatcher,
    OperationHandler,
    SessionHandler,
    SettingsHandler,
    StatsHandler,
    default_handlers,
)
from offlinesync.client.sync.queue import OperationQueue
from offlinesync.client.sync.retry import (
    DEFAULT_BACKOFF_BASE,
    DEFAULT_MAX_RETRIES,
    RetryPolicy,
)
from offlinesync.client.sync.scheduler import PassScheduler, SchedulerProtocol
from offlinesync.client.sync.types import (
    TARGETS,
    Conflict,
    ConflictEntry,
    Failure,
    Operation,
    OperationMethod,
    OperationType,
    Outcome,
    PassResult,
    PassTrigger,
    Resolution,
    StorageUsage,
    Success,
    SyncContext,
    SyncState,
)

__all__ = [
    # Retry
    "DEFAULT_BACKOFF_BASE",
    "DEFAULT_MAX_RETRIES",
    "RetryPolicy",
    # Types and dataclasses
    "TARGETS",
    "Conflict",
    "ConflictEntry",
    "Failure",
    "Operation",
    "OperationMethod",
    "OperationType",
    "Outcome",
    "PassResult",
    "PassTrigger",
    "Resolution",
    "StorageUsage",
    "Success",
    "SyncContext",
    "SyncState",
    # Queue, ledger & coordinator
    "ConflictLedger",
    "OperationQueue",
    "PassScheduler",
    "SchedulerProtocol",
    "SyncCoordinator",
    # Dispatcher
    "OperationDispatcher",
    "OperationHandler",
    "SessionHandler",
    "SettingsHandler",
    "StatsHandler",
    "default_handlers",
]
