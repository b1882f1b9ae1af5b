"""Build configured stores."""

from __future__ import annotations

import logging

from pystorekit._dispatch import Dispatcher
from pystorekit.codec import Codec
from pystorekit.config import StoreConfig
from pystorekit.durable import DurableStore
from pystorekit.ephemeral import EphemeralStore
from pystorekit.persistence.engine import SqliteEngine
from pystorekit.preferences import JsonFilePreferences, MemoryPreferences, PreferenceBackend


def create_durable_store(
    config: StoreConfig | None = None,
    *,
    engine: SqliteEngine | None = None,
    codec: Codec | None = None,
    dispatcher: Dispatcher | None = None,
    logger: logging.Logger | None = None,
) -> DurableStore:
    """Create a durable store.

    Without an explicit ``engine`` a new one is opened at
    ``config.database_path`` and closed together with the store.
    """
    config = config or StoreConfig()
    owns_engine = engine is None
    if engine is None:
        engine = SqliteEngine(config.database_path, thread_name=config.engine_thread_name, logger=logger)
    return DurableStore(
        engine,
        entity=config.entity,
        codec=codec,
        dispatcher=dispatcher,
        notify_on_clear=config.notify_on_clear,
        owns_engine=owns_engine,
        logger=logger,
    )


def create_ephemeral_store(
    config: StoreConfig | None = None,
    *,
    preferences: PreferenceBackend | None = None,
    codec: Codec | None = None,
    logger: logging.Logger | None = None,
) -> EphemeralStore:
    """Create an ephemeral store.

    Uses a JSON preferences file when ``config.preferences_path`` is set,
    otherwise an in-memory map.
    """
    config = config or StoreConfig()
    if preferences is None:
        if config.preferences_path:
            preferences = JsonFilePreferences(config.preferences_path, logger=logger)
        else:
            preferences = MemoryPreferences()
    return EphemeralStore(
        preferences,
        namespace=config.namespace,
        codec=codec,
        notify_on_clear=config.notify_on_clear,
        logger=logger,
    )
