"""Flat preference maps backing the ephemeral store."""

from __future__ import annotations

import base64
import binascii
import json
import logging
import os
import threading
from pathlib import Path
from typing import Protocol

from pystorekit.exceptions import BackendUnavailableError

_logger = logging.getLogger(__name__)


class PreferenceBackend(Protocol):
    """Minimal key → bytes map."""

    def set(self, key: str, payload: bytes) -> None: ...

    def get(self, key: str) -> bytes | None: ...

    def remove(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...


class MemoryPreferences:
    """Process-local preference map."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._values: dict[str, bytes] = {}

    def set(self, key: str, payload: bytes) -> None:
        with self._lock:
            self._values[key] = bytes(payload)

    def get(self, key: str) -> bytes | None:
        with self._lock:
            return self._values.get(key)

    def remove(self, key: str) -> None:
        with self._lock:
            self._values.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._values)


class JsonFilePreferences:
    """Preference map persisted as one JSON object of base64 payloads.

    The whole file is rewritten on every change (write to a temporary file,
    then `os.replace`), so a crash never leaves a half-written map behind.
    """

    def __init__(self, path: str | os.PathLike[str], *, logger: logging.Logger | None = None) -> None:
        self._path = Path(path)
        self._logger = logger or _logger
        self._lock = threading.Lock()
        self._values = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, bytes]:
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            raise BackendUnavailableError(f"Cannot read preferences at {self._path}: {exc}") from exc

        try:
            decoded = json.loads(raw) if raw.strip() else {}
        except json.JSONDecodeError as exc:
            raise BackendUnavailableError(f"Preferences file {self._path} is not valid JSON: {exc}") from exc
        if not isinstance(decoded, dict):
            raise BackendUnavailableError(f"Preferences file {self._path} is not a JSON object")

        values: dict[str, bytes] = {}
        for key, value in decoded.items():
            if not isinstance(value, str):
                continue
            try:
                values[key] = base64.b64decode(value, validate=True)
            except binascii.Error:
                self._logger.debug("Skipping undecodable preference key=%s", key)
        return values

    def _flush(self, values: dict[str, bytes]) -> None:
        serialized = {key: base64.b64encode(value).decode("ascii") for key, value in values.items()}
        tmp_path = self._path.with_name(f"{self._path.name}.tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(serialized, sort_keys=True), encoding="utf-8")
            os.replace(tmp_path, self._path)
        except OSError as exc:
            raise BackendUnavailableError(f"Cannot write preferences at {self._path}: {exc}") from exc

    def set(self, key: str, payload: bytes) -> None:
        with self._lock:
            values = {**self._values, key: bytes(payload)}
            self._flush(values)
            self._values = values

    def get(self, key: str) -> bytes | None:
        with self._lock:
            return self._values.get(key)

    def remove(self, key: str) -> None:
        with self._lock:
            if key not in self._values:
                return
            values = {k: v for k, v in self._values.items() if k != key}
            self._flush(values)
            self._values = values

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._values)
