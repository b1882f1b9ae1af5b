"""Persisted records and the commit events the engine publishes.

Every successful commit that changed rows produces one `CommitEvent`.
Events are engine-wide: they carry records of every entity and every
writer, and subscribers filter them locally.
"""

from __future__ import annotations

from collections.abc import Iterator
from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ChangeKind(StrEnum):
    INSERTED = "inserted"
    UPDATED = "updated"
    DELETED = "deleted"


class CacheRecord(BaseModel):
    """A persisted (key, payload, timestamp) triple."""

    model_config = ConfigDict(frozen=True)

    entity: str = Field(..., description="Record type name")
    key: str
    payload: bytes = Field(..., description="Opaque codec-produced bytes")
    updated_at: datetime

    @field_validator("updated_at")
    @classmethod
    def _ensure_tz_aware(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value


class CommitEvent(BaseModel):
    """Records changed by one committed transaction."""

    model_config = ConfigDict(frozen=True)

    inserted: tuple[CacheRecord, ...] = ()
    updated: tuple[CacheRecord, ...] = ()
    deleted: tuple[CacheRecord, ...] = ()
    cleared: frozenset[str] = Field(
        default_factory=frozenset,
        description="Entities bulk-deleted in this transaction",
    )
    committed_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def has_changes(self) -> bool:
        return bool(self.inserted or self.updated or self.deleted)

    def changes(self) -> Iterator[tuple[ChangeKind, CacheRecord]]:
        """Iterate over every changed record with its change kind."""
        for record in self.inserted:
            yield ChangeKind.INSERTED, record
        for record in self.updated:
            yield ChangeKind.UPDATED, record
        for record in self.deleted:
            yield ChangeKind.DELETED, record

    def is_bulk_delete(self, kind: ChangeKind, record: CacheRecord) -> bool:
        """Whether ``record`` was removed by clearing its whole entity."""
        return kind is ChangeKind.DELETED and record.entity in self.cleared
