"""Store configuration for pystorekit."""

from __future__ import annotations

import dataclasses
import os
from typing import Any

from pystorekit.exceptions import StoreConfigError


def _env_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    normalized = value.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclasses.dataclass(frozen=True)
class StoreConfig:
    """Store configuration.

    Parameters
    ----------
    database_path : str
        SQLite database file backing the durable store. ``":memory:"``
        keeps the database in memory for the engine's lifetime.
    entity : str
        Record type name tracked by the durable store. Stores sharing an
        engine only observe records of their own entity.
    preferences_path : str or None
        JSON file backing the ephemeral store. ``None`` selects an
        in-memory preference map.
    namespace : str
        Key prefix the ephemeral store uses inside its preference map, so
        that ``clear()`` only removes its own keys.
    notify_on_clear : bool
        Notify observers when ``clear()`` removes their key. Off by default:
        bulk clear bypasses per-key observation.
    engine_thread_name : str
        Name prefix of the engine's designated worker thread.
    """

    database_path: str = ":memory:"
    entity: str = "Cache"
    preferences_path: str | None = None
    namespace: str = "pystorekit"
    notify_on_clear: bool = False
    engine_thread_name: str = "pystorekit-engine"

    def __post_init__(self) -> None:
        if not self.entity.strip():
            raise StoreConfigError("entity must be non-empty")
        if not self.namespace.strip():
            raise StoreConfigError("namespace must be non-empty")

    @classmethod
    def from_env(cls, **overrides: Any) -> StoreConfig:
        """Create configuration from environment variables.

        Reads optional ``PYSTOREKIT_*`` variables. Explicit keyword
        arguments override environment values.

        Parameters
        ----------
        **overrides
            Explicit field values that take precedence over env vars.

        Returns
        -------
        StoreConfig
            Populated configuration.
        """
        env = os.environ

        _ENV_CONFIG_MAP = {
            "PYSTOREKIT_DATABASE_PATH": "database_path",
            "PYSTOREKIT_ENTITY": "entity",
            "PYSTOREKIT_PREFERENCES_PATH": "preferences_path",
            "PYSTOREKIT_NAMESPACE": "namespace",
            "PYSTOREKIT_ENGINE_THREAD_NAME": "engine_thread_name",
        }
        config_kwargs: dict[str, Any] = {}
        for env_key, field_name in _ENV_CONFIG_MAP.items():
            val = env.get(env_key)
            if val is not None:
                config_kwargs[field_name] = val

        if "notify_on_clear" not in overrides:
            config_kwargs["notify_on_clear"] = _env_bool(env.get("PYSTOREKIT_NOTIFY_ON_CLEAR"), False)

        unknown = set(overrides) - {f.name for f in dataclasses.fields(cls)}
        if unknown:
            raise StoreConfigError(f"Unknown configuration fields: {', '.join(sorted(unknown))}")

        config_kwargs.update(overrides)

        return cls(**config_kwargs)
