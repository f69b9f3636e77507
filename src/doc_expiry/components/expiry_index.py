"""Sorted expiry index implementation.

Uses sortedcontainers.SortedDict for efficient ordered scans.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sortedcontainers import SortedDict

from ..core.types import IndexDefinition, IndexEntry

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from ..core.types import Body, DocId, IndexKey


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class SortedExpiryIndex:
    """Secondary index over documents ordered by their expiry instant.

    The key is ``key_field + ttl_field`` when the document carries an integer
    TTL, else ``key_field`` alone. Documents on the default TTL all share
    one offset, so they still sort in expiry order among themselves.

    Args:
        definition: Which body fields form the key and which fields are
            copied into each entry

    Invariants:
        - Entries are kept in ascending ``(key, doc_id)`` order
        - At most one entry per document
        - Documents without an integer key field have no entry
    """

    def __init__(self, definition: IndexDefinition):
        self.definition = definition
        self._entries: SortedDict = SortedDict()
        self._keys_by_doc: dict[DocId, tuple[IndexKey, DocId]] = {}

    def update(self, doc_id: DocId, body: Body) -> None:
        """Insert or replace the entry derived from ``body``."""
        self.remove(doc_id)

        key = body.get(self.definition.key_field)
        # keys must stay mutually comparable
        if not _is_int(key):
            return
        if self.definition.ttl_field is not None:
            ttl = body.get(self.definition.ttl_field)
            if _is_int(ttl):
                key += ttl

        values = {name: body.get(name) for name in self.definition.value_fields}
        entry = IndexEntry(
            key=key,
            doc_id=doc_id,
            timestamp=values.get("timestamp"),
            ttl=values.get("ttl"),
        )
        sort_key = (key, doc_id)
        self._entries[sort_key] = entry
        self._keys_by_doc[doc_id] = sort_key

    def remove(self, doc_id: DocId) -> None:
        """Drop the entry for ``doc_id`` if present."""
        sort_key = self._keys_by_doc.pop(doc_id, None)
        if sort_key is not None:
            del self._entries[sort_key]

    def rebuild(self, docs: Iterable[tuple[DocId, Body]]) -> None:
        """Replace all entries with ones derived from ``docs``."""
        self.clear()
        for doc_id, body in docs:
            self.update(doc_id, body)

    def scan_page(self, limit: int) -> list[IndexEntry]:
        """Return up to ``limit`` entries from the start of the index."""
        if limit <= 0:
            return []
        return list(self._entries.values()[:limit])

    def scan_from(
        self, start_key: IndexKey | None = None, *, after: IndexEntry | None = None
    ) -> Iterator[IndexEntry]:
        """Iterate entries expiring at or after ``start_key`` in ascending order.

        Args:
            start_key: Expiry instant to start at (inclusive), or None for beginning
            after: Resume strictly after this previously returned entry;
                takes precedence over ``start_key``
        """
        if after is not None:
            sort_keys = self._entries.irange(
                minimum=(after.key, after.doc_id), inclusive=(False, True)
            )
        elif start_key is None:
            sort_keys = self._entries.irange()
        else:
            # (k,) sorts before every (k, doc_id)
            sort_keys = self._entries.irange(minimum=(start_key,))

        for sort_key in sort_keys:
            yield self._entries[sort_key]

    def clear(self) -> None:
        self._entries.clear()
        self._keys_by_doc.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, doc_id: object) -> bool:
        return doc_id in self._keys_by_doc
