"""Ephemeral store backed by a flat preference map.

No thread marshaling: the preference backend locks internally, so every
call runs on the caller's thread. Observers are notified inline by this
instance's own writes; the map has no external change feed. Timestamps are
not tracked, so `last_updated_at` always returns None.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from pystorekit._dispatch import InlineDispatcher
from pystorekit._observers import ObservationHandler, ObserverRegistry
from pystorekit.codec import Codec, JsonCodec
from pystorekit.preferences import MemoryPreferences, PreferenceBackend
from pystorekit.store import Store, decode_value, encode_value

_logger = logging.getLogger(__name__)


class EphemeralStore(Store):
    def __init__(
        self,
        preferences: PreferenceBackend | None = None,
        *,
        namespace: str = "pystorekit",
        codec: Codec | None = None,
        notify_on_clear: bool = False,
        logger: logging.Logger | None = None,
    ) -> None:
        self._preferences = preferences if preferences is not None else MemoryPreferences()
        self._prefix = f"{namespace}."
        self._codec = codec or JsonCodec()
        self._notify_on_clear = notify_on_clear
        self._logger = logger or _logger
        self._dispatcher = InlineDispatcher(logger=self._logger)
        self._observers = ObserverRegistry()

    @property
    def preferences(self) -> PreferenceBackend:
        return self._preferences

    def _storage_key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def save(self, key: str, value: Any) -> None:
        payload = encode_value(self._codec, key, value)
        self._preferences.set(self._storage_key(key), payload)
        self._notify(key)

    def data(self, key: str, type_: Any = Any) -> Any | None:
        payload = self._preferences.get(self._storage_key(key))
        if payload is None:
            return None
        return decode_value(self._codec, key, payload, type_)

    def last_updated_at(self, key: str) -> datetime | None:
        return None

    def delete_data(self, key: str) -> None:
        self._preferences.remove(self._storage_key(key))
        self._notify(key)

    def start_observing_updates(self, key: str, callback: ObservationHandler) -> None:
        self._observers.register(key, callback)

    def clear(self) -> None:
        removed: list[str] = []
        for storage_key in self._preferences.keys():
            if not storage_key.startswith(self._prefix):
                continue
            self._preferences.remove(storage_key)
            removed.append(storage_key[len(self._prefix) :])
        self._logger.debug("Cleared %s preference keys prefix=%s", len(removed), self._prefix)

        if self._notify_on_clear:
            for key in removed:
                self._notify(key)

    def _notify(self, key: str) -> None:
        for handler in self._observers.matching(key):
            self._dispatcher.dispatch(handler)
