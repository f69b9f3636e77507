"""Protocol definitions for the document store the engine consumes."""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from typing import Protocol

from ..core.types import Body, DocId, IndexDefinition, IndexEntry, IndexKey, Leaf, Rev

ReadFilter = Callable[[Body], bool]


class DatabaseHandle(Protocol):
    """Open connection to one database."""

    name: str
    admin: bool

    def open_doc(self, doc_id: DocId) -> Body:
        """Return the winning live revision or raise NotFoundError.

        Non-admin handles apply installed read filters.
        """
        ...

    def open_revs(self, doc_id: DocId) -> list[Leaf]:
        """Return every current leaf, each flagged deleted or live."""
        ...

    def update_leaves(self, leaves: Sequence[Leaf]) -> list[Rev]:
        """Atomically write new revisions of the given leaves.

        Invariants:
            - All-or-nothing
            - Raises ConflictError if any leaf was modified since it was read
        """
        ...

    def install_index(self, definition: IndexDefinition, read_filter: ReadFilter | None = None) -> None:
        """Install or overwrite an index definition (admin only)."""
        ...

    def index_definition(self, name: str) -> IndexDefinition | None:
        """Return the installed definition, or None."""
        ...

    def scan_index_page(self, name: str, limit: int) -> list[IndexEntry]:
        """Return up to ``limit`` entries from the start of an index."""
        ...

    def scan_index_from(self, name: str, start_key: IndexKey | None = None) -> Iterator[IndexEntry]:
        """Lazily scan an index from the expiry instant ``start_key`` (inclusive)."""
        ...

    def close(self) -> None:
        """Release the handle."""
        ...


class StoreServer(Protocol):
    """Opens databases by name."""

    def open_db(self, name: str, admin: bool = False) -> DatabaseHandle:
        """Open a handle; raises StoreUnavailableError if the database is missing."""
        ...
