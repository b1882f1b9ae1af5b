"""Custom exception hierarchy for pystorekit."""

from __future__ import annotations


class StoreError(Exception):
    """Base exception for all pystorekit errors."""


class StoreConfigError(StoreError):
    """Invalid or missing configuration."""


class BackendUnavailableError(StoreError):
    """The persistence context could not be obtained.

    Raised when the engine failed to load its database, has been closed,
    or its designated worker thread no longer accepts work. Calls are
    never retried internally.
    """


class StoreCodecError(StoreError):
    """Serialization codec rejected a value or a payload."""

    def __init__(self, message: str, *, key: str = "") -> None:
        self.key = key
        super().__init__(message)


class EncodingError(StoreCodecError):
    """A value could not be encoded into a byte payload."""


class DecodingError(StoreCodecError):
    """A stored payload could not be decoded into the requested type."""
