"""Shared types and dataclasses for the sync engine.

This module provides:
- OperationType, OperationMethod: The closed set of queued mutations
- Operation: A queued local mutation awaiting remote application
- Success, Conflict, Failure: Per-operation outcomes (Outcome)
- ConflictEntry, Resolution: Conflict ledger types
- SyncState, PassTrigger, PassResult: Coordinator state
- StorageUsage: Storage budget diagnostics
- SyncContext: Explicit caller identity passed to the engine
"""

from __future__ import annotations

import random
import string
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum, auto
from typing import Any, Union

from offlinesync.core.errors import UnsupportedOperationType
from offlinesync.core.types import SyncStatus

_ID_ALPHABET = string.digits + string.ascii_lowercase


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def generate_operation_id() -> str:
    """Generate an operation id: millisecond timestamp + random base-36 suffix."""
    suffix = "".join(random.choices(_ID_ALPHABET, k=9))
    return f"{int(time.time() * 1000)}{suffix}"


# =============================================================================
# Operations
# =============================================================================


class OperationType(str, Enum):
    """Kind of entity an operation mutates.

    Each type selects a dispatcher handler and implies a target table.
    """

    SESSION = "session"
    SETTINGS = "settings"
    STATS = "stats"
    TASK = "task"
    NOTE = "note"

    @property
    def target(self) -> str:
        """Backend table for this type."""
        return TARGETS[self]

    @classmethod
    def parse(cls, value: OperationType | str) -> OperationType:
        """Convert a string to an OperationType.

        Raises:
            UnsupportedOperationType: If the value is not a known type.
        """
        try:
            return cls(value)
        except ValueError:
            raise UnsupportedOperationType(value) from None


TARGETS: dict[OperationType, str] = {
    OperationType.SESSION: "sessions",
    OperationType.SETTINGS: "user_settings",
    OperationType.STATS: "user_stats",
    OperationType.TASK: "tasks",
    OperationType.NOTE: "notes",
}


class OperationMethod(str, Enum):
    """Write method applied to the target table."""

    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    UPSERT = "upsert"


@dataclass
class Operation:
    """A queued local mutation.

    Attributes:
        id: Unique id assigned at enqueue time, never reused
        timestamp: Creation time (ISO-8601)
        type: Operation type (selects the handler)
        method: Write method (default upsert)
        payload: Entity fields
    """

    id: str
    timestamp: str
    type: OperationType
    method: OperationMethod = OperationMethod.UPSERT
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def target(self) -> str:
        """Logical table implied by the type."""
        return self.type.target

    @classmethod
    def create(
        cls,
        op_type: OperationType | str,
        payload: Mapping[str, Any] | None = None,
        method: OperationMethod | str = OperationMethod.UPSERT,
    ) -> Operation:
        """Create a new Operation with auto-generated id and timestamp.

        Raises:
            UnsupportedOperationType: If op_type is unknown.
            ValueError: If method is unknown.
        """
        return cls(
            id=generate_operation_id(),
            timestamp=utcnow().isoformat(),
            type=OperationType.parse(op_type),
            method=OperationMethod(method),
            payload=dict(payload or {}),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the durable store."""
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "type": self.type.value,
            "method": self.method.value,
            "target": self.target,
            "payload": self.payload,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> Operation:
        """Deserialize from the durable store.

        Raises:
            UnsupportedOperationType: If the stored type is unknown.
            KeyError: If a required field is missing.
        """
        return cls(
            id=str(data["id"]),
            timestamp=data["timestamp"],
            type=OperationType.parse(data["type"]),
            method=OperationMethod(data.get("method") or OperationMethod.UPSERT),
            payload=dict(data.get("payload") or {}),
        )

    def __repr__(self) -> str:
        """Human-readable representation."""
        return f"Operation({self.type.value}.{self.method.value}, id={self.id!r})"


# =============================================================================
# Outcomes
# =============================================================================


@dataclass(frozen=True)
class Success:
    """The operation was applied remotely."""

    data: Any = None


@dataclass(frozen=True)
class Conflict:
    """The server rejected the operation with a uniqueness violation."""

    server_data: dict[str, Any] | None = None


@dataclass(frozen=True)
class Failure:
    """The operation could not be applied.

    Attributes:
        error: Human-readable error message
        code: Backend error code, if any
        permanent: True when retrying cannot help (unsupported type)
    """

    error: str
    code: str | None = None
    permanent: bool = False


Outcome = Union[Success, Conflict, Failure]


# =============================================================================
# Conflicts
# =============================================================================


class Resolution(str, Enum):
    """How a caller resolves a conflict."""

    KEEP_LOCAL = "keep_local"
    KEEP_SERVER = "keep_server"

    @classmethod
    def parse(cls, value: Resolution | str) -> Resolution:
        """Accept "local"/"server" as well as the enum values."""
        if isinstance(value, Resolution):
            return value
        aliases = {"local": cls.KEEP_LOCAL, "server": cls.KEEP_SERVER}
        if value in aliases:
            return aliases[value]
        return cls(value)


@dataclass
class ConflictEntry:
    """An operation held back because of a server conflict."""

    operation: Operation
    server_data: dict[str, Any] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"operation": self.operation.to_dict(), "serverData": self.server_data}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ConflictEntry:
        return cls(
            operation=Operation.from_dict(data["operation"]),
            server_data=data.get("serverData"),
        )


# =============================================================================
# Coordinator Types
# =============================================================================


class PassTrigger(IntEnum):
    """What requested a sync pass."""

    DEBOUNCE = auto()  # After an enqueue
    PERIODIC = auto()  # Periodic tick
    RECONNECT = auto()  # Connectivity restored
    MANUAL = auto()  # Explicit sync_now()
    RETRY = auto()  # Backoff timer after a failed pass


@dataclass
class SyncState:
    """Observable state of the coordinator.

    Attributes:
        status: Current status
        progress: Percentage (0-100) of the current pass processed
        last_sync_time: End of the last fully successful pass
        retry_count: Consecutive failed passes retried automatically
    """

    status: SyncStatus = SyncStatus.IDLE
    progress: float = 0.0
    last_sync_time: datetime | None = None
    retry_count: int = 0


@dataclass
class PassResult:
    """Classification of one pass."""

    trigger: PassTrigger
    completed: list[str] = field(default_factory=list)
    conflicted: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.completed) + len(self.conflicted) + len(self.failed)

    @property
    def ok(self) -> bool:
        """True if no operation failed."""
        return not self.failed


@dataclass(frozen=True)
class StorageUsage:
    """Serialized size of the engine's durable data, in bytes."""

    pending_bytes: int = 0
    offline_data_bytes: int = 0
    conflict_bytes: int = 0

    @property
    def total_bytes(self) -> int:
        return self.pending_bytes + self.offline_data_bytes + self.conflict_bytes

    def kilobytes(self) -> dict[str, int]:
        """Rounded KB view."""
        return {
            "pending_operations": round(self.pending_bytes / 1024),
            "offline_data": round(self.offline_data_bytes / 1024),
            "conflicts": round(self.conflict_bytes / 1024),
            "total": round(self.total_bytes / 1024),
        }


@dataclass(frozen=True)
class SyncContext:
    """Explicit caller identity for a pass.

    Attributes:
        caller_id: Id of the signed-in user (stamped as user_id)
        settings: Snapshot of the caller's settings
    """

    caller_id: str
    settings: Mapping[str, Any] = field(default_factory=dict)
