"""Designated execution context for thread-affine resources.

`sqlite3` connections may only be used from the thread that created them.
`SerialExecutor` owns that thread: work submitted from anywhere runs on
it one unit at a time, and callers block on a future until it is done.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, TypeVar

from pystorekit.exceptions import BackendUnavailableError

_T = TypeVar("_T")

_logger = logging.getLogger(__name__)


class SerialExecutor:
    """Single worker thread consuming a queue of work items."""

    def __init__(self, name: str = "pystorekit-engine", *, logger: logging.Logger | None = None) -> None:
        self._name = name
        self._logger = logger or _logger
        self._thread_ident: int | None = None
        self._closed = False
        self._pool = ThreadPoolExecutor(
            max_workers=1,
            thread_name_prefix=name,
            initializer=self._bind_thread,
        )
        # Start the worker now so `is_current()` is meaningful before the first call.
        self._pool.submit(lambda: None).result()

    def _bind_thread(self) -> None:
        self._thread_ident = threading.get_ident()

    @property
    def name(self) -> str:
        return self._name

    @property
    def is_closed(self) -> bool:
        return self._closed

    def is_current(self) -> bool:
        """Whether the calling thread is the designated worker thread."""
        return self._thread_ident is not None and threading.get_ident() == self._thread_ident

    def submit(self, fn: Callable[..., _T], *args: Any) -> Future[_T]:
        """Queue work without waiting for it."""
        try:
            return self._pool.submit(fn, *args)
        except RuntimeError as exc:
            raise BackendUnavailableError(f"Executor {self._name!r} is shut down") from exc

    def run(self, fn: Callable[..., _T], *args: Any) -> _T:
        """Run work on the designated thread and return its result.

        Runs inline when already on the designated thread. Otherwise the
        caller blocks until the worker finishes; exceptions raised by the
        work are re-raised in the caller.
        """
        if self.is_current():
            return fn(*args)
        self._logger.debug(
            "Executor %s accessed from thread %s; marshaling onto worker",
            self._name,
            threading.current_thread().name,
        )
        return self.submit(fn, *args).result()

    def shutdown(self, *, wait: bool = True) -> None:
        """Stop accepting work; pending work still runs."""
        if self._closed:
            return
        self._closed = True
        if self.is_current():
            # Joining our own thread would deadlock.
            self._pool.shutdown(wait=False)
            return
        self._pool.shutdown(wait=wait)
