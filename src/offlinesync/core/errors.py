"""Error taxonomy for the sync engine.

- SyncError: base class
- PassRejected / ConnectivityUnavailable: a pass was not attempted
- ConflictDetected: the server reported a uniqueness violation
- OperationFailure: a transient per-operation failure, retried via backoff
- UnsupportedOperationType: no handler exists for an operation type
- PersistenceFailure: the durable store could not be read or written
"""

from __future__ import annotations

from typing import Any


class SyncError(Exception):
    """Base exception for sync engine errors."""


class PassRejected(SyncError):
    """A sync pass was refused by the entry guard."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class ConnectivityUnavailable(PassRejected):
    """The backend is unreachable, so no pass was attempted."""

    def __init__(self, reason: str = "offline") -> None:
        super().__init__(reason)


class ConflictDetected(SyncError):
    """The server rejected a write because of a uniqueness violation.

    Attributes:
        code: Backend error code (e.g. "23505")
        server_data: Current server record, when the raiser already has it
    """

    def __init__(
        self,
        message: str = "Unique constraint violation",
        code: str | None = "23505",
        server_data: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.server_data = server_data


class OperationFailure(SyncError):
    """A single operation could not be applied. Retried on a later pass."""


class UnsupportedOperationType(OperationFailure, ValueError):
    """No handler exists for the operation type."""

    def __init__(self, op_type: object) -> None:
        super().__init__(f"Unsupported operation type: {op_type}")
        self.op_type = op_type


class PersistenceFailure(SyncError):
    """Reading or writing the durable queue store failed."""
