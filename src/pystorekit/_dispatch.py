"""Caller-facing execution contexts for observer callbacks.

Commit events arrive on the engine's worker thread. Observer callbacks
must not run there (a callback that reads the store would queue behind
itself), so durable stores hand them to a dispatcher instead.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from typing import Protocol

_logger = logging.getLogger(__name__)


class Dispatcher(Protocol):
    def dispatch(self, callback: Callable[[], None]) -> None: ...

    def close(self) -> None: ...


def _invoke(callback: Callable[[], None], logger: logging.Logger) -> None:
    try:
        callback()
    except Exception:
        logger.warning("Observer callback %r failed", callback, exc_info=True)


class SerialDispatcher:
    """Run callbacks one at a time, in dispatch order, on a dedicated thread."""

    def __init__(self, name: str = "pystorekit-notify", *, logger: logging.Logger | None = None) -> None:
        self._logger = logger or _logger
        self._thread_ident: int | None = None
        self._pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix=name, initializer=self._bind_thread)

    def _bind_thread(self) -> None:
        self._thread_ident = threading.get_ident()

    def is_current(self) -> bool:
        """Whether the calling thread is the notification thread."""
        return self._thread_ident is not None and threading.get_ident() == self._thread_ident

    def dispatch(self, callback: Callable[[], None]) -> None:
        try:
            self._pool.submit(_invoke, callback, self._logger)
        except RuntimeError:
            self._logger.debug("Dispatcher closed; dropping callback %r", callback)

    def flush(self, timeout: float | None = None) -> None:
        """Block until every callback dispatched so far has run."""
        self._pool.submit(lambda: None).result(timeout=timeout)

    def close(self) -> None:
        if self.is_current():
            # A callback closing its own store; joining this thread would deadlock.
            self._pool.shutdown(wait=False)
            return
        self._pool.shutdown(wait=True)


class LoopDispatcher:
    """Run callbacks on an asyncio event loop (thread-safe)."""

    def __init__(self, loop: asyncio.AbstractEventLoop, *, logger: logging.Logger | None = None) -> None:
        self._loop = loop
        self._logger = logger or _logger

    def dispatch(self, callback: Callable[[], None]) -> None:
        if self._loop.is_closed():
            self._logger.debug("Event loop closed; dropping callback %r", callback)
            return
        self._loop.call_soon_threadsafe(_invoke, callback, self._logger)

    def close(self) -> None:
        return None


class InlineDispatcher:
    """Run callbacks immediately on the dispatching thread."""

    def __init__(self, *, logger: logging.Logger | None = None) -> None:
        self._logger = logger or _logger

    def dispatch(self, callback: Callable[[], None]) -> None:
        _invoke(callback, self._logger)

    def close(self) -> None:
        return None
