from __future__ import annotations

from collections.abc import Iterator

import pytest

from pystorekit._dispatch import SerialDispatcher
from pystorekit.persistence.engine import SqliteEngine


@pytest.fixture
def engine() -> Iterator[SqliteEngine]:
    engine = SqliteEngine()
    yield engine
    engine.close()


@pytest.fixture
def dispatcher() -> Iterator[SerialDispatcher]:
    dispatcher = SerialDispatcher()
    yield dispatcher
    dispatcher.close()
