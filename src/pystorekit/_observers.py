"""Per-key observer registry shared by both store variants."""

from __future__ import annotations

import threading
from collections.abc import Callable

ObservationHandler = Callable[[], None]


class ObserverRegistry:
    """Ordered (key, callback) registrations.

    Registrations are never deduplicated or removed: registering the same
    callback twice means it is invoked twice. Lookups return snapshots, so
    callers may iterate while other threads keep registering.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handlers: dict[str, list[ObservationHandler]] = {}

    def register(self, key: str, handler: ObservationHandler) -> None:
        with self._lock:
            self._handlers.setdefault(key, []).append(handler)

    def matching(self, key: str) -> tuple[ObservationHandler, ...]:
        with self._lock:
            return tuple(self._handlers.get(key, ()))

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._handlers)

    def __len__(self) -> int:
        with self._lock:
            return sum(len(handlers) for handlers in self._handlers.values())

    def __bool__(self) -> bool:
        with self._lock:
            return bool(self._handlers)
