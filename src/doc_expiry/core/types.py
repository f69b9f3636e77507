"""Common type definitions for the expiry engine.

Defines the values passed between the store, the index and the engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# Core primitive types
DocId = str
Rev = str
Seconds = int
IndexKey = int
Body = dict[str, Any]


@dataclass(frozen=True)
class Leaf:
    """One revision of a document.

    A document can have several leaves after concurrent writes; a leaf
    with ``deleted=True`` is a tombstone.
    """

    doc_id: DocId
    rev: Rev
    body: Body = field(default_factory=dict)
    deleted: bool = False

    @property
    def generation(self) -> int:
        return int(self.rev.split("-", 1)[0])


@dataclass(frozen=True, order=True)
class IndexEntry:
    """Row of the expiry index, ordered by ``(key, doc_id)``."""

    key: IndexKey
    doc_id: DocId
    timestamp: Seconds | None = field(default=None, compare=False)
    ttl: Seconds | None = field(default=None, compare=False)

    @property
    def value(self) -> dict[str, Seconds | None]:
        return {"timestamp": self.timestamp, "ttl": self.ttl}


@dataclass(frozen=True)
class IndexDefinition:
    """Declarative description of a store-maintained index."""

    name: str
    key_field: str = "timestamp"
    ttl_field: str | None = "ttl"
    value_fields: tuple[str, ...] = ("timestamp", "ttl")
    hide_expired: bool = True


@dataclass(frozen=True)
class Change:
    """A live record delivered by the change cursor."""

    key: IndexKey
    doc_id: DocId
    doc: Body


class _EndOfStream:
    """Marker passed to change callbacks once the cursor is exhausted."""

    _instance: _EndOfStream | None = None

    def __new__(cls) -> _EndOfStream:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "END_OF_STREAM"


END_OF_STREAM = _EndOfStream()


class DeleteOutcome(Enum):
    """Result of a conflict-safe delete."""

    OK = "ok"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"


class ExpiryCheck(Enum):
    """Result of a read-only expiry check.

    Only ``EXPIRED`` is truthy.
    """

    EXPIRED = "expired"
    LIVE = "live"
    NOT_FOUND = "not_found"

    def __bool__(self) -> bool:
        return self is ExpiryCheck.EXPIRED


@dataclass
class SweepReport:
    """Counters for one ``clean_expired`` invocation."""

    passes: int = 0
    examined: int = 0
    expired: int = 0
    deleted: int = 0
    not_found: int = 0
    conflicts: int = 0
    failed: int = 0
