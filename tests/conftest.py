"""Shared fixtures for offlinesync tests.

Provides an in-memory RecordService fake, a scheduler that records
requests instead of running them, and engine factories backed by a
temporary SQLite store.
"""

from __future__ import annotations

from collections.abc import Callable, Generator, Mapping
from pathlib import Path
from typing import Any

import pytest

from offlinesync.client.api import TransportFailure
from offlinesync.client.connectivity import ConnectivityMonitor
from offlinesync.client.engine import OfflineSync
from offlinesync.client.state import QueueStore
from offlinesync.client.sync.types import PassTrigger
from offlinesync.core.config import SyncConfig
from offlinesync.core.errors import ConflictDetected


class FakeRecordService:
    """In-memory record backend.

    Tables map a primary key value ("id", or "user_id" when the row has no
    id) to a row. Inserting an existing key raises ConflictDetected like a
    unique constraint would. Exceptions queued with fail_next() are raised
    by the next write calls, in order.
    """

    def __init__(self) -> None:
        self.tables: dict[str, dict[Any, dict[str, Any]]] = {}
        self.calls: list[tuple[str, str, dict[str, Any]]] = []
        self.failures: list[Exception] = []
        self.reachable = True

    def fail_next(self, error: Exception, times: int = 1) -> None:
        self.failures.extend([error] * times)

    def seed(self, target: str, row: dict[str, Any]) -> None:
        self.tables.setdefault(target, {})[self._pk(row)] = dict(row)

    @staticmethod
    def _pk(row: Mapping[str, Any]) -> Any:
        return row.get("id", row.get("user_id"))

    def _write(self, method: str, target: str, data: Mapping[str, Any]) -> None:
        self.calls.append((method, target, dict(data)))
        if not self.reachable:
            raise TransportFailure("connection refused")
        if self.failures:
            raise self.failures.pop(0)

    def insert(self, target: str, payload: Mapping[str, Any]) -> list[dict[str, Any]]:
        self._write("insert", target, payload)
        table = self.tables.setdefault(target, {})
        pk = self._pk(payload)
        if pk is not None and pk in table:
            raise ConflictDetected(f"duplicate key value violates unique constraint on {target}")
        table[pk] = dict(payload)
        return [dict(payload)]

    def upsert(self, target: str, payload: Mapping[str, Any]) -> list[dict[str, Any]]:
        self._write("upsert", target, payload)
        table = self.tables.setdefault(target, {})
        pk = self._pk(payload)
        table[pk] = {**table.get(pk, {}), **payload}
        return [table[pk]]

    def update(
        self, target: str, key: Mapping[str, Any], payload: Mapping[str, Any]
    ) -> list[dict[str, Any]]:
        self._write("update", target, {**key, **payload})
        table = self.tables.setdefault(target, {})
        pk = next(iter(key.values()))
        if pk not in table:
            return []
        table[pk].update(payload)
        return [table[pk]]

    def delete(self, target: str, key: Mapping[str, Any]) -> list[dict[str, Any]]:
        self._write("delete", target, dict(key))
        row = self.tables.setdefault(target, {}).pop(next(iter(key.values())), None)
        return [row] if row else []

    def fetch(self, target: str, key: Mapping[str, Any]) -> dict[str, Any] | None:
        row = self.tables.get(target, {}).get(next(iter(key.values())))
        return dict(row) if row else None

    def health_check(self) -> bool:
        return self.reachable


class RecordingScheduler:
    """Scheduler that only records pass requests."""

    def __init__(self) -> None:
        self.requests: list[tuple[float, PassTrigger]] = []

    def request(self, delay: float, trigger: PassTrigger) -> None:
        self.requests.append((delay, trigger))

    @property
    def delays(self) -> list[float]:
        return [delay for delay, _ in self.requests]


@pytest.fixture
def store(tmp_path: Path) -> Generator[QueueStore, None, None]:
    """Create a QueueStore in a temporary directory."""
    s = QueueStore(tmp_path / "queue.db")
    yield s
    s.close()


@pytest.fixture
def service() -> FakeRecordService:
    """Create an empty fake backend."""
    return FakeRecordService()


@pytest.fixture
def recording_scheduler() -> RecordingScheduler:
    """Create a scheduler that only records requests."""
    return RecordingScheduler()


@pytest.fixture
def sync_config() -> SyncConfig:
    """Engine config without the pause between operations."""
    return SyncConfig(operation_delay=0.0)


@pytest.fixture
def make_engine(
    tmp_path: Path,
    service: FakeRecordService,
    sync_config: SyncConfig,
) -> Generator[Callable[..., OfflineSync], None, None]:
    """Factory for engines sharing one database file.

    Calling it again after closing an engine simulates a restart.
    """
    engines: list[OfflineSync] = []

    def factory(online: bool = True, caller: str | None = "user-1") -> OfflineSync:
        engine = OfflineSync(
            QueueStore(tmp_path / "engine.db"),
            service,
            config=sync_config,
            monitor=ConnectivityMonitor(online=online),
        )
        if caller:
            engine.set_caller(caller)
        engines.append(engine)
        return engine

    yield factory

    # Closing an already-closed engine is harmless
    for engine in engines:
        engine.close()
