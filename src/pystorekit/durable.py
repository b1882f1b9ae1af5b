"""Durable store backed by the SQLite engine.

Every operation runs on the engine's designated thread; callers on other
threads block until it completes, so each call is synchronous from the
caller's point of view and has committed before it returns.

Observers are driven by the engine's commit feed rather than by this
store's own write path. Any writer sharing the engine (another store, a
sync component using `SqliteEngine.perform`) therefore notifies them.
Notifications are dispatched after commit and are asynchronous with
respect to the write that caused them. Deleting a key that has no record
commits nothing, so `delete_data` notifies that key's observers itself.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from pystorekit._dispatch import Dispatcher, SerialDispatcher
from pystorekit._observers import ObservationHandler, ObserverRegistry
from pystorekit.codec import Codec, JsonCodec
from pystorekit.persistence.engine import EngineContext, SqliteEngine
from pystorekit.persistence.events import CommitEvent
from pystorekit.store import Store, decode_value, encode_value

_logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class DurableStore(Store):
    """Store whose records live in a `SqliteEngine`."""

    def __init__(
        self,
        engine: SqliteEngine,
        *,
        entity: str = "Cache",
        codec: Codec | None = None,
        dispatcher: Dispatcher | None = None,
        notify_on_clear: bool = False,
        clock: Callable[[], datetime] = _utcnow,
        owns_engine: bool = False,
        logger: logging.Logger | None = None,
    ) -> None:
        self._engine = engine
        self._entity = entity
        self._codec = codec or JsonCodec()
        self._logger = logger or _logger
        self._owns_dispatcher = dispatcher is None
        self._dispatcher = dispatcher or SerialDispatcher(logger=self._logger)
        self._notify_on_clear = notify_on_clear
        self._clock = clock
        self._owns_engine = owns_engine
        self._observers = ObserverRegistry()
        self._closed = False
        self._unsubscribe = engine.subscribe(self._on_commit)

    @property
    def engine(self) -> SqliteEngine:
        return self._engine

    @property
    def entity(self) -> str:
        return self._entity

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    def save(self, key: str, value: Any) -> None:
        payload = encode_value(self._codec, key, value)

        def _save(context: EngineContext) -> None:
            with context.transaction():
                existing = context.fetch_one(key, entity=self._entity)
                updated_at = self._clock()
                # Keep updated_at non-decreasing if the wall clock stepped back.
                if existing is not None and existing.updated_at > updated_at:
                    updated_at = existing.updated_at
                context.upsert(key, payload, updated_at, entity=self._entity)

        self._engine.perform(_save)

    def data(self, key: str, type_: Any = Any) -> Any | None:
        record = self._engine.perform(lambda context: context.fetch_one(key, entity=self._entity))
        if record is None:
            return None
        return decode_value(self._codec, key, record.payload, type_)

    def last_updated_at(self, key: str) -> datetime | None:
        record = self._engine.perform(lambda context: context.fetch_one(key, entity=self._entity))
        return record.updated_at if record is not None else None

    def delete_data(self, key: str) -> None:
        def _delete(context: EngineContext) -> int:
            with context.transaction():
                return context.delete_matching(key, entity=self._entity)

        removed = self._engine.perform(_delete)
        if removed == 0:
            # Nothing was committed, so the commit feed stays silent for this key.
            for handler in self._observers.matching(key):
                self._dispatcher.dispatch(handler)

    def start_observing_updates(self, key: str, callback: ObservationHandler) -> None:
        self._observers.register(key, callback)

    def clear(self) -> None:
        def _clear(context: EngineContext) -> int:
            with context.transaction():
                return context.delete_all(entity=self._entity)

        removed = self._engine.perform(_clear)
        self._logger.debug("Cleared %s records entity=%s", removed, self._entity)

    def _on_commit(self, event: CommitEvent) -> None:
        if not self._observers:
            return
        for kind, record in event.changes():
            if record.entity != self._entity:
                continue
            if event.is_bulk_delete(kind, record) and not self._notify_on_clear:
                continue
            for handler in self._observers.matching(record.key):
                self._dispatcher.dispatch(handler)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._unsubscribe()
        if self._owns_dispatcher:
            self._dispatcher.close()
        if self._owns_engine:
            self._engine.close()
