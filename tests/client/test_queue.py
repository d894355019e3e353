"""Tests for the operation queue."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from offlinesync.client.state import QueueStore
from offlinesync.client.sync.queue import OperationQueue
from offlinesync.client.sync.types import Operation, OperationMethod, OperationType
from offlinesync.core.errors import UnsupportedOperationType


@pytest.fixture
def queue(store: QueueStore) -> OperationQueue:
    """Create an empty queue on the test store."""
    return OperationQueue(store)


class TestEnqueue:
    """Tests for OperationQueue.enqueue."""

    def test_enqueue_returns_id(self, queue: OperationQueue) -> None:
        """Should assign an id and keep the operation."""
        op_id = queue.enqueue(OperationType.TASK, {"title": "Buy milk"}, "insert")

        op = queue.get(op_id)
        assert op is not None
        assert op.type == OperationType.TASK
        assert op.method == OperationMethod.INSERT
        assert op.target == "tasks"
        assert op.payload == {"title": "Buy milk"}
        assert op.timestamp

    def test_default_method_is_upsert(self, queue: OperationQueue) -> None:
        """Method defaults to upsert."""
        op_id = queue.enqueue("note", {"id": "n1"})
        assert queue.get(op_id).method == OperationMethod.UPSERT

    def test_ids_are_unique(self, queue: OperationQueue) -> None:
        """Ids are never reused."""
        ids = {queue.enqueue("stats", {"streak": i}) for i in range(50)}
        assert len(ids) == 50

    def test_fifo_order(self, queue: OperationQueue) -> None:
        """Snapshot keeps insertion order."""
        ids = [queue.enqueue("task", {"n": i}) for i in range(5)]
        assert [op.id for op in queue.snapshot()] == ids
        assert [op.id for op in queue] == ids

    def test_unknown_type_rejected(self, queue: OperationQueue) -> None:
        """Unknown types are refused up front, never queued."""
        with pytest.raises(UnsupportedOperationType):
            queue.enqueue("achievement", {})
        assert len(queue) == 0

    def test_persists_on_every_enqueue(self, queue: OperationQueue, store: QueueStore) -> None:
        """The store mirrors the queue after each mutation."""
        op_id = queue.enqueue("task", {"title": "a"})

        stored = json.loads(store.get(store.keys.pending_operations))
        assert [entry["id"] for entry in stored] == [op_id]
        assert stored[0]["target"] == "tasks"

    def test_listener_called(self, queue: OperationQueue) -> None:
        """Listeners see each new operation."""
        seen: list[Operation] = []
        queue.add_listener(seen.append)

        op_id = queue.enqueue("task", {})

        assert [op.id for op in seen] == [op_id]

    def test_enqueue_dict(self, queue: OperationQueue) -> None:
        """Mappings with type/payload/method are accepted."""
        op_id = queue.enqueue_dict({"type": "note", "method": "delete", "payload": {"id": "n1"}})
        op = queue.get(op_id)
        assert op.type == OperationType.NOTE
        assert op.method == OperationMethod.DELETE


class TestRemove:
    """Tests for removal."""

    def test_remove_only_given_ids(self, queue: OperationQueue) -> None:
        """Only listed ids are removed; order of the rest is kept."""
        a = queue.enqueue("task", {"n": 1})
        b = queue.enqueue("task", {"n": 2})
        c = queue.enqueue("task", {"n": 3})

        assert queue.remove({a, c}) == 2
        assert [op.id for op in queue.snapshot()] == [b]

    def test_remove_unknown_ids_is_noop(self, queue: OperationQueue) -> None:
        """Removing twice or unknown ids does nothing."""
        a = queue.enqueue("task", {})
        queue.remove([a])
        assert queue.remove([a, "missing"]) == 0

    def test_clear(self, queue: OperationQueue, store: QueueStore) -> None:
        """Clear drops everything and persists an empty list."""
        queue.enqueue("task", {})
        queue.enqueue("note", {})

        assert queue.clear() == 2
        assert len(queue) == 0
        assert json.loads(store.get(store.keys.pending_operations)) == []

    def test_readmit_keeps_id_and_appends(self, queue: OperationQueue) -> None:
        """Re-admitted operations keep their id and go to the tail."""
        a = queue.enqueue("task", {"n": 1})
        op = queue.get(a)
        queue.remove([a])
        b = queue.enqueue("task", {"n": 2})

        queue.readmit(op)

        assert [o.id for o in queue.snapshot()] == [b, a]


class TestLoad:
    """Tests for hydrating from the store."""

    def test_load_restores_order(self, tmp_path: Path) -> None:
        """A new queue on the same database sees the same operations."""
        db_path = tmp_path / "queue.db"
        with QueueStore(db_path) as store:
            queue = OperationQueue(store)
            ids = [queue.enqueue("task", {"n": i}) for i in range(3)]

        with QueueStore(db_path) as store:
            restored = OperationQueue(store)
            assert restored.load() == 3
            assert [op.id for op in restored.snapshot()] == ids
            assert restored.snapshot()[1].payload == {"n": 1}

    def test_load_empty_store(self, queue: OperationQueue) -> None:
        """Nothing stored means an empty queue."""
        assert queue.load() == 0

    def test_load_corrupt_json_is_empty(self, queue: OperationQueue, store: QueueStore) -> None:
        """Unparseable data yields an empty queue instead of crashing."""
        store.set(store.keys.pending_operations, "{not json")
        assert queue.load() == 0
        assert len(queue) == 0

    def test_load_skips_unknown_types(self, queue: OperationQueue, store: QueueStore) -> None:
        """Entries with unknown types are skipped, others kept."""
        good = Operation.create("task", {"title": "ok"}).to_dict()
        bad = {**good, "id": "x", "type": "achievement"}
        store.set(store.keys.pending_operations, json.dumps([bad, good]))

        assert queue.load() == 1
        assert queue.snapshot()[0].id == good["id"]


class TestUsage:
    """Tests for storage usage diagnostics."""

    def test_usage_counts_queue_and_offline_data(
        self, queue: OperationQueue, store: QueueStore
    ) -> None:
        """Sizes reflect the serialized queue and the offline blob."""
        queue.enqueue("note", {"body": "x" * 100})
        store.set(store.keys.offline_data, "y" * 2048)

        usage = queue.snapshot_usage()

        assert usage.pending_bytes > 100
        assert usage.offline_data_bytes == 2048
        assert usage.conflict_bytes == len("[]")
        assert usage.total_bytes == (
            usage.pending_bytes + usage.offline_data_bytes + usage.conflict_bytes
        )
        assert usage.kilobytes()["offline_data"] == 2

    def test_empty_usage(self, queue: OperationQueue) -> None:
        """An empty queue serializes to an empty list."""
        usage = queue.snapshot_usage()
        assert usage.pending_bytes == len("[]")
        assert usage.offline_data_bytes == 0
