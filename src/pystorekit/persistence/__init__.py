"""Persistence layer.

The SQLite engine, its designated execution context, and the records and
commit events it publishes. Durable stores are built on top of this
package; other writers (e.g. a sync component) may use it directly.
"""

from pystorekit.persistence.engine import EngineContext, SqliteEngine
from pystorekit.persistence.events import CacheRecord, ChangeKind, CommitEvent
from pystorekit.persistence.executor import SerialExecutor

__all__ = [
    "CacheRecord",
    "ChangeKind",
    "CommitEvent",
    "EngineContext",
    "SerialExecutor",
    "SqliteEngine",
]
