"""SQLite persistence engine with a commit-event feed.

The engine owns one `sqlite3` connection, opened on (and only ever used
from) its `SerialExecutor` thread. All reads and writes go through the
`EngineContext`, which tracks the rows touched since the last commit and
publishes them as a `CommitEvent` once the commit succeeds.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime
from os import PathLike
from typing import Any, TypeVar

from pystorekit.exceptions import BackendUnavailableError
from pystorekit.persistence.events import CacheRecord, ChangeKind, CommitEvent
from pystorekit.persistence.executor import SerialExecutor

_T = TypeVar("_T")

CommitHandler = Callable[[CommitEvent], None]

_logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS records (
    entity TEXT NOT NULL,
    key TEXT NOT NULL,
    payload BLOB NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (entity, key)
)
"""

_SELECT_COLUMNS = "SELECT entity, key, payload, updated_at FROM records"


def _to_record(row: tuple[Any, ...]) -> CacheRecord:
    entity, key, payload, updated_at = row
    return CacheRecord(
        entity=entity,
        key=key,
        payload=bytes(payload),
        updated_at=datetime.fromisoformat(updated_at),
    )


class EngineContext:
    """Mutation context bound to the engine's designated thread."""

    def __init__(self, connection: sqlite3.Connection, publish: CommitHandler) -> None:
        self._connection = connection
        self._publish = publish
        self._pending: dict[tuple[str, str], tuple[ChangeKind, CacheRecord]] = {}
        self._cleared: set[str] = set()

    @property
    def has_pending_changes(self) -> bool:
        return bool(self._pending)

    def fetch_one(self, key: str, *, entity: str) -> CacheRecord | None:
        row = self._connection.execute(
            f"{_SELECT_COLUMNS} WHERE entity = ? AND key = ?",
            (entity, key),
        ).fetchone()
        return _to_record(row) if row is not None else None

    def fetch_all(self, *, entity: str) -> list[CacheRecord]:
        rows = self._connection.execute(f"{_SELECT_COLUMNS} WHERE entity = ? ORDER BY key", (entity,)).fetchall()
        return [_to_record(row) for row in rows]

    def upsert(self, key: str, payload: bytes, updated_at: datetime, *, entity: str) -> CacheRecord:
        """Create the record for ``key`` or overwrite its payload and timestamp."""
        existing = self.fetch_one(key, entity=entity)
        record = CacheRecord(entity=entity, key=key, payload=payload, updated_at=updated_at)
        self._connection.execute(
            "INSERT INTO records (entity, key, payload, updated_at) VALUES (?, ?, ?, ?) "
            "ON CONFLICT (entity, key) DO UPDATE SET payload = excluded.payload, updated_at = excluded.updated_at",
            (entity, key, record.payload, record.updated_at.isoformat()),
        )
        self._track(ChangeKind.UPDATED if existing is not None else ChangeKind.INSERTED, record)
        return record

    def delete_matching(self, key: str, *, entity: str) -> int:
        """Delete the record for ``key``; returns the number of rows removed."""
        existing = self.fetch_one(key, entity=entity)
        if existing is None:
            return 0
        self._connection.execute("DELETE FROM records WHERE entity = ? AND key = ?", (entity, key))
        self._track(ChangeKind.DELETED, existing)
        return 1

    def delete_all(self, *, entity: str) -> int:
        records = self.fetch_all(entity=entity)
        if not records:
            return 0
        self._connection.execute("DELETE FROM records WHERE entity = ?", (entity,))
        self._cleared.add(entity)
        for record in records:
            self._track(ChangeKind.DELETED, record)
        return len(records)

    def commit(self) -> CommitEvent | None:
        """Commit pending work and publish the resulting event.

        Returns the published event, or None when nothing changed. A
        failed commit rolls the transaction back and re-raises.
        """
        try:
            self._connection.commit()
        except sqlite3.Error:
            self.rollback()
            raise

        event = CommitEvent(
            inserted=tuple(r for kind, r in self._pending.values() if kind is ChangeKind.INSERTED),
            updated=tuple(r for kind, r in self._pending.values() if kind is ChangeKind.UPDATED),
            deleted=tuple(r for kind, r in self._pending.values() if kind is ChangeKind.DELETED),
            cleared=frozenset(self._cleared),
        )
        self._pending.clear()
        self._cleared.clear()
        if not event.has_changes:
            return None
        self._publish(event)
        return event

    def rollback(self) -> None:
        self._pending.clear()
        self._cleared.clear()
        self._connection.rollback()

    @contextmanager
    def transaction(self) -> Iterator[EngineContext]:
        """Commit on success, roll back and re-raise on error."""
        try:
            yield self
        except BaseException:
            self.rollback()
            raise
        self.commit()

    def close(self) -> None:
        self._pending.clear()
        self._cleared.clear()
        self._connection.close()

    def _track(self, kind: ChangeKind, record: CacheRecord) -> None:
        ident = (record.entity, record.key)
        previous = self._pending.get(ident)
        if previous is not None:
            previous_kind = previous[0]
            if previous_kind is ChangeKind.INSERTED and kind is ChangeKind.DELETED:
                # Created and removed inside one transaction: nothing to report.
                del self._pending[ident]
                return
            if previous_kind is ChangeKind.INSERTED:
                kind = ChangeKind.INSERTED
            elif previous_kind is ChangeKind.DELETED and kind is ChangeKind.INSERTED:
                kind = ChangeKind.UPDATED
        self._pending[ident] = (kind, record)


class SqliteEngine:
    """Transactional record store with a single designated thread.

    Any number of stores (and other writers, such as a sync component) may
    share one engine. Every successful commit is published to all
    subscribers, whoever made it.
    """

    def __init__(
        self,
        path: str | PathLike[str] = ":memory:",
        *,
        thread_name: str = "pystorekit-engine",
        connect: Callable[[str], sqlite3.Connection] = sqlite3.connect,
        logger: logging.Logger | None = None,
    ) -> None:
        self._path = str(path)
        self._connect = connect
        self._logger = logger or _logger
        self._context: EngineContext | None = None
        self._subscribers: list[CommitHandler] = []
        self._subscribers_lock = threading.Lock()
        self._executor = SerialExecutor(thread_name, logger=self._logger)
        self._executor.run(self._load)

    def _load(self) -> None:
        try:
            connection = self._connect(self._path)
            connection.execute(_SCHEMA)
            connection.commit()
        except sqlite3.Error:
            self._logger.exception("Failed to load persistent store at %s", self._path)
            return
        self._context = EngineContext(connection, self._publish)
        self._logger.debug("Persistent store loaded path=%s", self._path)

    @property
    def path(self) -> str:
        return self._path

    @property
    def executor(self) -> SerialExecutor:
        return self._executor

    @property
    def context(self) -> EngineContext | None:
        """The mutation context, or None when the store is not available."""
        return self._context

    @property
    def is_available(self) -> bool:
        return self._context is not None and not self._executor.is_closed

    def perform(self, work: Callable[[EngineContext], _T]) -> _T:
        """Run ``work`` against the mutation context on the designated thread.

        Blocks until the work is done and returns its result.

        Raises
        ------
        BackendUnavailableError
            The store failed to load or the engine is closed.
        """

        def _body() -> _T:
            context = self._context
            if context is None:
                raise BackendUnavailableError(f"Persistent store at {self._path} is not available")
            return work(context)

        return self._executor.run(_body)

    def subscribe(self, handler: CommitHandler) -> Callable[[], None]:
        """Register a commit handler; returns a callable that removes it.

        Handlers run on the designated thread right after the commit and
        should hand real work off elsewhere.
        """
        with self._subscribers_lock:
            self._subscribers.append(handler)

        def unsubscribe() -> None:
            with self._subscribers_lock:
                if handler in self._subscribers:
                    self._subscribers.remove(handler)

        return unsubscribe

    def _publish(self, event: CommitEvent) -> None:
        with self._subscribers_lock:
            handlers = list(self._subscribers)
        self._logger.debug(
            "Publishing commit committed_at=%s inserted=%s updated=%s deleted=%s handlers=%s",
            event.committed_at.isoformat(),
            len(event.inserted),
            len(event.updated),
            len(event.deleted),
            len(handlers),
        )
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                self._logger.warning("Commit handler %r failed", handler, exc_info=True)

    def close(self) -> None:
        """Close the connection and stop the designated thread."""
        if self._executor.is_closed:
            return

        def _close() -> None:
            context = self._context
            self._context = None
            if context is not None:
                context.close()

        self._executor.run(_close)
        self._executor.shutdown()
        self._logger.debug("Persistent store closed path=%s", self._path)

    def __enter__(self) -> SqliteEngine:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()
