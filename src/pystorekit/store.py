"""The Store contract shared by durable and ephemeral stores."""

from __future__ import annotations

import abc
from datetime import datetime
from typing import Any

from pystorekit._observers import ObservationHandler
from pystorekit.codec import Codec
from pystorekit.exceptions import DecodingError, EncodingError


class Store(abc.ABC):
    """Key-value cache of codec-encoded values.

    Observation is an optional capability: the default
    `start_observing_updates` accepts the registration and never calls it.
    """

    @abc.abstractmethod
    def save(self, key: str, value: Any) -> None:
        """Encode ``value`` and store it under ``key``, replacing any previous value."""

    @abc.abstractmethod
    def data(self, key: str, type_: Any = Any) -> Any | None:
        """Return the value stored under ``key`` decoded as ``type_``, or None."""

    @abc.abstractmethod
    def last_updated_at(self, key: str) -> datetime | None:
        """Return when ``key`` was last written, or None if unknown."""

    @abc.abstractmethod
    def delete_data(self, key: str) -> None:
        """Remove ``key``. Removing a missing key is not an error."""

    def start_observing_updates(self, key: str, callback: ObservationHandler) -> None:  # noqa: B027
        """Call ``callback`` whenever ``key`` is created, updated or deleted.

        The callback gets no arguments; re-read the value with `data`.
        """

    @abc.abstractmethod
    def clear(self) -> None:
        """Remove every value held by this store."""

    def close(self) -> None:  # noqa: B027
        """Release resources owned by the store."""

    def __enter__(self) -> Store:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()


def encode_value(codec: Codec, key: str, value: Any) -> bytes:
    try:
        return codec.encode(value)
    except EncodingError as exc:
        exc.key = key
        raise
    except (TypeError, ValueError) as exc:
        raise EncodingError(f"Cannot encode value for key {key!r}: {exc}", key=key) from exc


def decode_value(codec: Codec, key: str, payload: bytes, type_: Any) -> Any:
    try:
        return codec.decode(payload, type_)
    except DecodingError as exc:
        exc.key = key
        raise
    except (TypeError, ValueError) as exc:
        raise DecodingError(f"Cannot decode value for key {key!r}: {exc}", key=key) from exc
