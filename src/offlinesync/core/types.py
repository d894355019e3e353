"""Shared types for offlinesync.

This module defines enums used by both the engine and the CLI.
"""

from __future__ import annotations

from enum import Enum


class SyncStatus(str, Enum):
    """Status of the sync engine.

    Reported by the coordinator and displayed by the CLI.
    """

    IDLE = "idle"
    SYNCING = "syncing"
    SUCCESS = "success"
    ERROR = "error"
