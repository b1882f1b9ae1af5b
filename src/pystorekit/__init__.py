"""pystorekit - Key-value cache stores with durable and ephemeral backends."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("pystorekit")
except PackageNotFoundError:
    __version__ = "0+local"
from pystorekit._dispatch import InlineDispatcher, LoopDispatcher, SerialDispatcher
from pystorekit.codec import Codec, JsonCodec
from pystorekit.config import StoreConfig
from pystorekit.durable import DurableStore
from pystorekit.ephemeral import EphemeralStore
from pystorekit.exceptions import (
    BackendUnavailableError,
    DecodingError,
    EncodingError,
    StoreCodecError,
    StoreConfigError,
    StoreError,
)
from pystorekit.factory import create_durable_store, create_ephemeral_store
from pystorekit.persistence import CacheRecord, ChangeKind, CommitEvent, SqliteEngine
from pystorekit.preferences import JsonFilePreferences, MemoryPreferences, PreferenceBackend
from pystorekit.store import Store

__all__ = [
    "__version__",
    "BackendUnavailableError",
    "CacheRecord",
    "ChangeKind",
    "Codec",
    "CommitEvent",
    "DecodingError",
    "DurableStore",
    "EncodingError",
    "EphemeralStore",
    "InlineDispatcher",
    "JsonCodec",
    "JsonFilePreferences",
    "LoopDispatcher",
    "MemoryPreferences",
    "PreferenceBackend",
    "SerialDispatcher",
    "SqliteEngine",
    "Store",
    "StoreCodecError",
    "StoreConfig",
    "StoreConfigError",
    "StoreError",
    "create_durable_store",
    "create_ephemeral_store",
]
