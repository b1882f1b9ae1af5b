"""Serialization codecs turning cached values into byte payloads."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from pydantic import TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError, to_json

from pystorekit.exceptions import DecodingError, EncodingError


@runtime_checkable
class Codec(Protocol):
    """Encode values to bytes and decode them back."""

    def encode(self, value: Any) -> bytes: ...

    def decode(self, payload: bytes, type_: Any = Any) -> Any: ...


class JsonCodec:
    """JSON codec backed by pydantic.

    Anything pydantic can serialize (models, dataclasses, datetimes,
    containers of those) encodes. Decoding validates the payload against
    ``type_``; with the default ``Any`` the plain JSON value comes back.
    """

    def __init__(self, *, by_alias: bool = False) -> None:
        self._by_alias = by_alias

    def encode(self, value: Any) -> bytes:
        try:
            return to_json(value, by_alias=self._by_alias)
        except (PydanticSerializationError, TypeError, ValueError) as exc:
            raise EncodingError(f"Cannot encode value of type {type(value).__name__}: {exc}") from exc

    def decode(self, payload: bytes, type_: Any = Any) -> Any:
        try:
            return TypeAdapter(type_).validate_json(payload)
        except ValidationError as exc:
            raise DecodingError(f"Cannot decode payload as {_type_name(type_)}: {exc}") from exc


def _type_name(type_: Any) -> str:
    return getattr(type_, "__name__", None) or repr(type_)
