"""In-memory revisioned document store.

Reference implementation of the store the expiry engine runs against:
multi-leaf documents with tombstones, optimistic concurrency on writes,
store-maintained expiry indexes and per-index read filters.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator, Sequence
from itertools import islice
from typing import Any
from uuid import uuid4

from ..core.errors import (
    ConflictError,
    NotFoundError,
    StoreError,
    StoreUnavailableError,
    UnauthorizedError,
)
from ..core.types import Body, DocId, IndexDefinition, IndexEntry, IndexKey, Leaf, Rev
from .expiry_index import SortedExpiryIndex

logger = logging.getLogger(__name__)

ReadFilter = Callable[[Body], bool]

SCAN_BATCH_SIZE = 100


def _new_rev(generation: int) -> Rev:
    return f"{generation}-{uuid4().hex}"


def _winner(leaves: dict[Rev, Leaf]) -> Leaf | None:
    """Pick the winning leaf: live before deleted, then highest generation, then rev."""
    if not leaves:
        return None
    return max(leaves.values(), key=lambda leaf: (not leaf.deleted, leaf.generation, leaf.rev))


def _strip_meta(body: Body) -> Body:
    return {k: v for k, v in body.items() if k not in ("_id", "_rev")}


class MemoryDatabase:
    """A named collection of revisioned documents.

    Args:
        name: Database name

    Invariants:
        - Every document keeps one or more leaves once written
        - Mutations are serialised by one lock; ``update_leaves`` is all-or-nothing
        - Indexes are updated in the same critical section as the documents
    """

    def __init__(self, name: str):
        self.name = name
        self._lock = threading.Lock()
        self._docs: dict[DocId, dict[Rev, Leaf]] = {}
        self._indexes: dict[str, SortedExpiryIndex] = {}
        self._read_filters: dict[str, ReadFilter] = {}
        self.open_handles = 0

    # -- writes ---------------------------------------------------------

    def put(self, doc_id: DocId, body: Body, rev: Rev | None = None) -> Rev:
        """Create or update a document.

        ``rev`` must name a live leaf when the document exists; creating over
        a deleted document extends its winning tombstone.
        """
        with self._lock:
            leaves = self._docs.get(doc_id, {})
            if rev is None:
                if any(not leaf.deleted for leaf in leaves.values()):
                    raise ConflictError(f"Document {doc_id} already exists")
                parent = _winner(leaves)
            else:
                parent = leaves.get(rev)
                if parent is None or parent.deleted:
                    raise ConflictError(f"Revision {rev} of {doc_id} is not a live leaf")

            generation = parent.generation + 1 if parent else 1
            leaf = Leaf(doc_id, _new_rev(generation), _strip_meta(body))
            if parent is not None:
                del leaves[parent.rev]
            leaves[leaf.rev] = leaf
            self._docs[doc_id] = leaves
            self._reindex_locked(doc_id)
            return leaf.rev

    def delete(self, doc_id: DocId, rev: Rev) -> Rev:
        """Replace the live leaf ``rev`` with a tombstone."""
        with self._lock:
            leaves = self._docs.get(doc_id, {})
            parent = leaves.get(rev)
            if parent is None or parent.deleted:
                raise ConflictError(f"Revision {rev} of {doc_id} is not a live leaf")
            tombstone = Leaf(doc_id, _new_rev(parent.generation + 1), {}, deleted=True)
            del leaves[rev]
            leaves[tombstone.rev] = tombstone
            self._reindex_locked(doc_id)
            return tombstone.rev

    def put_conflict(self, doc_id: DocId, body: Body) -> Rev:
        """Add a sibling leaf without a parent check, as a replicator would."""
        with self._lock:
            leaves = self._docs.setdefault(doc_id, {})
            winner = _winner(leaves)
            generation = winner.generation if winner else 1
            leaf = Leaf(doc_id, _new_rev(generation), _strip_meta(body))
            leaves[leaf.rev] = leaf
            self._reindex_locked(doc_id)
            return leaf.rev

    def update_leaves(self, leaves: Sequence[Leaf]) -> list[Rev]:
        """Atomically replace each leaf by a new revision of itself.

        Each ``leaf.rev`` names the parent it was read from. If any parent is
        no longer a current leaf nothing is written.

        Raises:
            ConflictError: A parent leaf was modified concurrently
        """
        with self._lock:
            for leaf in leaves:
                if leaf.rev not in self._docs.get(leaf.doc_id, {}):
                    raise ConflictError(
                        f"Leaf {leaf.rev} of {leaf.doc_id} was modified concurrently"
                    )

            new_revs = []
            touched = set()
            for leaf in leaves:
                current = self._docs[leaf.doc_id]
                body = {} if leaf.deleted else _strip_meta(leaf.body)
                updated = Leaf(leaf.doc_id, _new_rev(leaf.generation + 1), body, leaf.deleted)
                del current[leaf.rev]
                current[updated.rev] = updated
                new_revs.append(updated.rev)
                touched.add(leaf.doc_id)

            for doc_id in touched:
                self._reindex_locked(doc_id)
            return new_revs

    # -- reads ----------------------------------------------------------

    def open_doc(self, doc_id: DocId, apply_filters: bool = True) -> Body:
        """Return the winning live revision of a document.

        Raises:
            NotFoundError: Missing, deleted, or hidden by a read filter
        """
        with self._lock:
            leaves = self._docs.get(doc_id)
            winner = _winner(leaves or {})
            if winner is None:
                raise NotFoundError(doc_id, "missing")
            if winner.deleted:
                raise NotFoundError(doc_id, "deleted")
            filters = list(self._read_filters.values()) if apply_filters else []

        doc = {"_id": doc_id, "_rev": winner.rev, **winner.body}
        for allowed in filters:
            if not allowed(doc):
                raise NotFoundError(doc_id, "expired")
        return doc

    def open_revs(self, doc_id: DocId) -> list[Leaf]:
        """Return every current leaf of a document, live or deleted."""
        with self._lock:
            leaves = self._docs.get(doc_id, {})
            return [
                Leaf(leaf.doc_id, leaf.rev, dict(leaf.body), leaf.deleted)
                for leaf in sorted(leaves.values(), key=lambda leaf: leaf.rev)
            ]

    def doc_count(self) -> int:
        """Number of documents with a live winning leaf."""
        with self._lock:
            return sum(1 for _ in self._live_bodies_locked())

    # -- indexes --------------------------------------------------------

    def install_index(self, definition: IndexDefinition, read_filter: ReadFilter | None = None) -> None:
        """Install or replace an index definition and rebuild it."""
        with self._lock:
            index = SortedExpiryIndex(definition)
            index.rebuild(self._live_bodies_locked())
            self._indexes[definition.name] = index
            if definition.hide_expired and read_filter is not None:
                self._read_filters[definition.name] = read_filter
            else:
                self._read_filters.pop(definition.name, None)
        logger.info(f"Installed index {definition.name} on {self.name} ({len(index)} entries)")

    def index_definition(self, name: str) -> IndexDefinition | None:
        with self._lock:
            index = self._indexes.get(name)
            return index.definition if index is not None else None

    def scan_index_page(self, name: str, limit: int) -> list[IndexEntry]:
        with self._lock:
            return self._index_locked(name).scan_page(limit)

    def scan_index_from(
        self, name: str, start_key: IndexKey | None = None, batch_size: int = SCAN_BATCH_SIZE
    ) -> Iterator[IndexEntry]:
        """Lazily scan an index from ``start_key`` in locked batches.

        Writes between batches are visible; each batch resumes strictly after
        the last entry returned.
        """
        after = None
        while True:
            with self._lock:
                index = self._index_locked(name)
                batch = list(islice(index.scan_from(start_key, after=after), batch_size))
            yield from batch
            if len(batch) < batch_size:
                return
            after = batch[-1]

    def _index_locked(self, name: str) -> SortedExpiryIndex:
        index = self._indexes.get(name)
        if index is None:
            raise StoreError(f"No index named {name} in {self.name}")
        return index

    def _live_bodies_locked(self) -> Iterator[tuple[DocId, Body]]:
        for doc_id, leaves in self._docs.items():
            winner = _winner(leaves)
            if winner is not None and not winner.deleted:
                yield doc_id, winner.body

    def _reindex_locked(self, doc_id: DocId) -> None:
        winner = _winner(self._docs.get(doc_id, {}))
        for index in self._indexes.values():
            if winner is None or winner.deleted:
                index.remove(doc_id)
            else:
                index.update(doc_id, winner.body)


class DatabaseHandle:
    """Scoped access to one database with a fixed privilege level.

    Args:
        db: Database to operate on
        admin: Admin handles bypass read filters and may install indexes
    """

    def __init__(self, db: MemoryDatabase, admin: bool = False):
        self._db = db
        self.admin = admin
        self._closed = False

    @property
    def name(self) -> str:
        return self._db.name

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> MemoryDatabase:
        if self._closed:
            raise StoreUnavailableError(f"Handle to {self._db.name} is closed")
        return self._db

    def open_doc(self, doc_id: DocId) -> Body:
        return self._check_open().open_doc(doc_id, apply_filters=not self.admin)

    def open_revs(self, doc_id: DocId) -> list[Leaf]:
        return self._check_open().open_revs(doc_id)

    def update_leaves(self, leaves: Sequence[Leaf]) -> list[Rev]:
        return self._check_open().update_leaves(leaves)

    def put(self, doc_id: DocId, body: Body, rev: Rev | None = None) -> Rev:
        return self._check_open().put(doc_id, body, rev)

    def delete(self, doc_id: DocId, rev: Rev) -> Rev:
        return self._check_open().delete(doc_id, rev)

    def put_conflict(self, doc_id: DocId, body: Body) -> Rev:
        return self._check_open().put_conflict(doc_id, body)

    def install_index(self, definition: IndexDefinition, read_filter: ReadFilter | None = None) -> None:
        db = self._check_open()
        if not self.admin:
            raise UnauthorizedError(f"Installing index {definition.name} requires an admin handle")
        db.install_index(definition, read_filter)

    def index_definition(self, name: str) -> IndexDefinition | None:
        return self._check_open().index_definition(name)

    def scan_index_page(self, name: str, limit: int) -> list[IndexEntry]:
        return self._check_open().scan_index_page(name, limit)

    def scan_index_from(self, name: str, start_key: IndexKey | None = None) -> Iterator[IndexEntry]:
        return self._check_open().scan_index_from(name, start_key)

    def close(self) -> None:
        """Release the handle. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        with self._db._lock:
            self._db.open_handles -= 1

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


class MemoryServer:
    """Registry of in-memory databases, opened by name."""

    def __init__(self):
        self._lock = threading.Lock()
        self._dbs: dict[str, MemoryDatabase] = {}

    def create_db(self, name: str) -> MemoryDatabase:
        with self._lock:
            if name in self._dbs:
                raise StoreError(f"Database {name} already exists")
            db = MemoryDatabase(name)
            self._dbs[name] = db
        logger.info(f"Created database {name}")
        return db

    def delete_db(self, name: str) -> None:
        with self._lock:
            if self._dbs.pop(name, None) is None:
                raise StoreUnavailableError(f"Database {name} does not exist")
        logger.info(f"Deleted database {name}")

    def get_db(self, name: str) -> MemoryDatabase:
        with self._lock:
            db = self._dbs.get(name)
        if db is None:
            raise StoreUnavailableError(f"Database {name} does not exist")
        return db

    def open_db(self, name: str, admin: bool = False) -> DatabaseHandle:
        """Open a handle to ``name``; the caller must close it."""
        db = self.get_db(name)
        with db._lock:
            db.open_handles += 1
        return DatabaseHandle(db, admin=admin)

    def list_dbs(self) -> list[str]:
        with self._lock:
            return sorted(self._dbs)

    def __repr__(self) -> str:
        return f"MemoryServer(dbs={self.list_dbs()!r})"


def make_doc(timestamp: int | None = None, ttl: int | None = None, **fields: Any) -> Body:
    """Build a document body carrying the optional expiry fields."""
    body: Body = dict(fields)
    if timestamp is not None:
        body["timestamp"] = timestamp
    if ttl is not None:
        body["ttl"] = ttl
    return body
