"""Core module - Shared configuration, errors and types."""

from offlinesync.core.config import ServerConfig, SyncConfig
from offlinesync.core.errors import (
    ConflictDetected,
    ConnectivityUnavailable,
    OperationFailure,
    PassRejected,
    PersistenceFailure,
    SyncError,
    UnsupportedOperationType,
)
from offlinesync.core.types import SyncStatus

__all__ = [
    # Config
    "ServerConfig",
    "SyncConfig",
    # Errors
    "ConflictDetected",
    "ConnectivityUnavailable",
    "OperationFailure",
    "PassRejected",
    "PersistenceFailure",
    "SyncError",
    "UnsupportedOperationType",
    # Types
    "SyncStatus",
]
