"""Protocol definition for the expiry index."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from typing import Protocol

from ..core.types import Body, DocId, IndexEntry, IndexKey


class ExpiryIndex(Protocol):
    """Sorted secondary index of documents by expiry key."""

    def update(self, doc_id: DocId, body: Body) -> None:
        """Insert or replace the entry derived from a document body."""
        ...

    def remove(self, doc_id: DocId) -> None:
        """Drop a document's entry if present."""
        ...

    def rebuild(self, docs: Iterable[tuple[DocId, Body]]) -> None:
        """Replace all entries."""
        ...

    def scan_page(self, limit: int) -> list[IndexEntry]:
        """Return up to ``limit`` entries from the start, ascending."""
        ...

    def scan_from(
        self, start_key: IndexKey | None = None, *, after: IndexEntry | None = None
    ) -> Iterator[IndexEntry]:
        """Iterate entries expiring at or after ``start_key`` in ascending order."""
        ...
