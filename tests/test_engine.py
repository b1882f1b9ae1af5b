from __future__ import annotations

import logging
import sqlite3
import threading
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest

from pystorekit.exceptions import BackendUnavailableError
from pystorekit.persistence.engine import EngineContext, SqliteEngine
from pystorekit.persistence.events import ChangeKind, CommitEvent
from pystorekit.persistence.executor import SerialExecutor


def _now() -> datetime:
    return datetime(2026, 1, 1, tzinfo=UTC)


def _upsert(context: EngineContext, key: str, payload: bytes = b"1", entity: str = "Cache") -> None:
    with context.transaction():
        context.upsert(key, payload, _now(), entity=entity)


class _FlakyConnection:
    """sqlite3 connection whose commit can be made to fail."""

    def __init__(self, connection: sqlite3.Connection) -> None:
        self._connection = connection
        self.fail_commits = False

    def execute(self, *args: Any) -> sqlite3.Cursor:
        return self._connection.execute(*args)

    def commit(self) -> None:
        if self.fail_commits:
            raise sqlite3.OperationalError("disk I/O error")
        self._connection.commit()

    def rollback(self) -> None:
        self._connection.rollback()

    def close(self) -> None:
        self._connection.close()


def test_executor_runs_work_on_its_own_thread() -> None:
    executor = SerialExecutor("test-worker")
    try:
        name = executor.run(lambda: threading.current_thread().name)
        assert name.startswith("test-worker")
        assert not executor.is_current()
        assert executor.run(executor.is_current) is True
    finally:
        executor.shutdown()


def test_executor_runs_nested_work_inline() -> None:
    executor = SerialExecutor()
    try:
        assert executor.run(lambda: executor.run(lambda: 5)) == 5
    finally:
        executor.shutdown()


def test_executor_propagates_errors_to_caller() -> None:
    executor = SerialExecutor()

    def _boom() -> None:
        raise KeyError("boom")

    try:
        with pytest.raises(KeyError):
            executor.run(_boom)
    finally:
        executor.shutdown()


def test_executor_rejects_work_after_shutdown() -> None:
    executor = SerialExecutor()
    executor.shutdown()

    with pytest.raises(BackendUnavailableError):
        executor.run(lambda: None)


def test_engine_connection_lives_on_designated_thread(engine: SqliteEngine) -> None:
    name = engine.perform(lambda context: threading.current_thread().name)

    assert name.startswith("pystorekit-engine")
    assert engine.is_available
    # Touching the connection from here must fail: sqlite3 enforces thread affinity.
    assert engine.context is not None
    with pytest.raises(sqlite3.ProgrammingError):
        engine.context.fetch_one("k", entity="Cache")


def test_upsert_keeps_one_record_per_key(engine: SqliteEngine) -> None:
    engine.perform(lambda context: _upsert(context, "k", b"first"))
    engine.perform(lambda context: _upsert(context, "k", b"second"))

    records = engine.perform(lambda context: context.fetch_all(entity="Cache"))

    assert len(records) == 1
    assert records[0].payload == b"second"
    assert records[0].updated_at == _now()


def test_records_are_scoped_by_entity(engine: SqliteEngine) -> None:
    engine.perform(lambda context: _upsert(context, "k", b"cache"))
    engine.perform(lambda context: _upsert(context, "k", b"other", entity="Other"))

    cache = engine.perform(lambda context: context.fetch_one("k", entity="Cache"))
    other = engine.perform(lambda context: context.fetch_one("k", entity="Other"))

    assert cache is not None and cache.payload == b"cache"
    assert other is not None and other.payload == b"other"


def test_commit_events_classify_changes(engine: SqliteEngine) -> None:
    events: list[CommitEvent] = []
    engine.subscribe(events.append)

    engine.perform(lambda context: _upsert(context, "k"))
    engine.perform(lambda context: _upsert(context, "k", b"2"))

    def _delete(context: EngineContext) -> None:
        with context.transaction():
            context.delete_matching("k", entity="Cache")

    engine.perform(_delete)

    assert [[(kind, record.key) for kind, record in event.changes()] for event in events] == [
        [(ChangeKind.INSERTED, "k")],
        [(ChangeKind.UPDATED, "k")],
        [(ChangeKind.DELETED, "k")],
    ]
    assert events[2].deleted[0].payload == b"2"


def test_commit_without_changes_publishes_nothing(engine: SqliteEngine) -> None:
    events: list[CommitEvent] = []
    engine.subscribe(events.append)

    def _noop(context: EngineContext) -> int:
        with context.transaction():
            return context.delete_matching("missing", entity="Cache")

    assert engine.perform(_noop) == 0
    assert events == []


def test_insert_then_delete_in_one_transaction_is_not_reported(engine: SqliteEngine) -> None:
    events: list[CommitEvent] = []
    engine.subscribe(events.append)

    def _churn(context: EngineContext) -> None:
        with context.transaction():
            context.upsert("tmp", b"1", _now(), entity="Cache")
            context.delete_matching("tmp", entity="Cache")

    engine.perform(_churn)

    assert events == []


def test_delete_all_marks_entity_cleared(engine: SqliteEngine) -> None:
    engine.perform(lambda context: _upsert(context, "a"))
    engine.perform(lambda context: _upsert(context, "b"))
    events: list[CommitEvent] = []
    engine.subscribe(events.append)

    def _clear(context: EngineContext) -> int:
        with context.transaction():
            return context.delete_all(entity="Cache")

    assert engine.perform(_clear) == 2
    (event,) = events
    assert event.cleared == frozenset({"Cache"})
    assert sorted(record.key for record in event.deleted) == ["a", "b"]
    assert all(event.is_bulk_delete(kind, record) for kind, record in event.changes())


def test_transaction_rolls_back_on_error(engine: SqliteEngine) -> None:
    def _fail(context: EngineContext) -> None:
        with context.transaction():
            context.upsert("k", b"1", _now(), entity="Cache")
            raise RuntimeError("abort")

    with pytest.raises(RuntimeError):
        engine.perform(_fail)

    assert engine.perform(lambda context: context.fetch_one("k", entity="Cache")) is None
    assert engine.perform(lambda context: context.has_pending_changes) is False


def test_failed_commit_propagates_and_rolls_back() -> None:
    connections: list[_FlakyConnection] = []

    def _connect(path: str) -> Any:
        connection = _FlakyConnection(sqlite3.connect(path))
        connections.append(connection)
        return connection

    engine = SqliteEngine(connect=_connect)
    try:
        events: list[CommitEvent] = []
        engine.subscribe(events.append)
        connections[0].fail_commits = True

        with pytest.raises(sqlite3.OperationalError):
            engine.perform(lambda context: _upsert(context, "k"))

        connections[0].fail_commits = False
        assert engine.perform(lambda context: context.fetch_one("k", entity="Cache")) is None
        assert events == []
    finally:
        engine.close()


def test_failing_subscriber_does_not_break_commit(engine: SqliteEngine, caplog: pytest.LogCaptureFixture) -> None:
    events: list[CommitEvent] = []

    def _broken(event: CommitEvent) -> None:
        raise ValueError("handler bug")

    engine.subscribe(_broken)
    engine.subscribe(events.append)

    with caplog.at_level(logging.WARNING):
        engine.perform(lambda context: _upsert(context, "k"))

    assert len(events) == 1
    assert "Commit handler" in caplog.text


def test_publish_logs_commit_time(engine: SqliteEngine, caplog: pytest.LogCaptureFixture) -> None:
    engine.subscribe(lambda event: None)

    with caplog.at_level(logging.DEBUG, logger="pystorekit.persistence.engine"):
        engine.perform(lambda context: _upsert(context, "k"))

    assert "committed_at=" in caplog.text
    assert "inserted=1" in caplog.text


def test_unsubscribe_stops_delivery(engine: SqliteEngine) -> None:
    events: list[CommitEvent] = []
    unsubscribe = engine.subscribe(events.append)
    unsubscribe()
    unsubscribe()

    engine.perform(lambda context: _upsert(context, "k"))

    assert events == []


def test_engine_that_failed_to_load_is_unavailable(tmp_path: Path) -> None:
    engine = SqliteEngine(tmp_path / "missing" / "cache.sqlite3")
    try:
        assert engine.context is None
        assert not engine.is_available
        with pytest.raises(BackendUnavailableError):
            engine.perform(lambda context: None)
    finally:
        engine.close()


def test_closed_engine_is_unavailable() -> None:
    engine = SqliteEngine()
    engine.close()
    engine.close()

    assert not engine.is_available
    with pytest.raises(BackendUnavailableError):
        engine.perform(lambda context: None)


def test_records_survive_reopen(tmp_path: Path) -> None:
    path = tmp_path / "cache.sqlite3"
    with SqliteEngine(path) as engine:
        engine.perform(lambda context: _upsert(context, "k", b"kept"))

    with SqliteEngine(path) as reopened:
        record = reopened.perform(lambda context: context.fetch_one("k", entity="Cache"))

    assert record is not None
    assert record.payload == b"kept"
    assert record.updated_at == _now()
