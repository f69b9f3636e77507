"""Expiry engine - main public API.

Orchestrates index bootstrap, the sweep loop, the lookup gate and the
change cursor over one database.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING, TypeVar

from ..components.bootstrap import ensure_expiry_index
from ..components.cursor import changes_since
from ..components.deleter import delete_if_live
from ..components.gate import check_expired, open_if_live
from ..components.predicate import is_doc_expired, now_seconds
from ..components.sweeper import Sweeper
from .config import ExpiryConfig, Settings

if TYPE_CHECKING:
    from ..components.cursor import ChangeCallback
    from ..interfaces.store import DatabaseHandle, StoreServer
    from .types import Body, DeleteOutcome, DocId, ExpiryCheck, IndexKey, Seconds, SweepReport

logger = logging.getLogger(__name__)

Acc = TypeVar("Acc")


class ExpiryEngine:
    """TTL expiry for the documents of one database.

    Args:
        server: Store to open the database from
        db_name: Database name
        settings: Live settings holding the default TTL
        config: Static tuning parameters
        clock: Returns wall-clock seconds; sampled once per operation

    Public API:
        - clean_expired(): Passive sweep of expired documents
        - open_doc(doc_id): Read a document, deleting it if expired
        - is_expired(doc_id): Read-only expiry check
        - changes_since(start_key, callback, acc): Fold over live documents
        - delete_doc(doc_id): Conflict-safe delete

    Invariants:
        - Every operation opens its own admin handle and closes it on exit
        - The default TTL is re-read by every operation
        - The expiry index definition is verified on every open
    """

    def __init__(
        self,
        server: StoreServer,
        db_name: str,
        settings: Settings | None = None,
        config: ExpiryConfig | None = None,
        clock: Callable[[], Seconds] = now_seconds,
    ):
        self.server = server
        self.db_name = db_name
        self.settings = settings or Settings()
        self.config = config or ExpiryConfig()
        self._clock = clock
        self._sweeper = Sweeper(self.open_db, self.settings.default_ttl, self.config)

    @contextmanager
    def open_db(self) -> Iterator[DatabaseHandle]:
        """Yield an admin handle with the expiry index in place."""
        handle = self.server.open_db(self.db_name, admin=True)
        try:
            ensure_expiry_index(handle, self._read_filter, self.config.index_name)
            yield handle
        finally:
            handle.close()

    def _read_filter(self, doc: Body) -> bool:
        """Store-side read filter: allow only documents that are not expired."""
        return not is_doc_expired(doc, self.settings.default_ttl(), self._clock())

    def ensure_index(self) -> bool:
        """Install or upgrade the expiry index; True if it was written."""
        handle = self.server.open_db(self.db_name, admin=True)
        try:
            return ensure_expiry_index(handle, self._read_filter, self.config.index_name)
        finally:
            handle.close()

    def clean_expired(self, now_provider: Callable[[], Seconds] | None = None) -> SweepReport:
        """Delete expired documents in bounded batches."""
        return self._sweeper.clean_expired(now_provider or self._clock)

    def open_doc(self, doc_id: DocId) -> Body:
        """Return a document, or raise NotFoundError if missing or expired."""
        default_ttl = self.settings.default_ttl()
        with self.open_db() as db:
            return open_if_live(db, doc_id, default_ttl, self._clock())

    def is_expired(self, doc_id: DocId) -> ExpiryCheck:
        """Check a document without deleting it."""
        default_ttl = self.settings.default_ttl()
        with self.open_db() as db:
            return check_expired(db, doc_id, default_ttl, self._clock())

    def changes_since(
        self, start_key: IndexKey | None, callback: ChangeCallback[Acc], acc: Acc
    ) -> Acc:
        """Fold ``callback`` over live documents in expiry-key order."""
        default_ttl = self.settings.default_ttl()
        with self.open_db() as db:
            return changes_since(
                db, self.config.index_name, start_key, callback, acc, default_ttl, self._clock()
            )

    def delete_doc(self, doc_id: DocId) -> DeleteOutcome:
        """Tombstone every live leaf of a document."""
        with self.open_db() as db:
            return delete_if_live(db, doc_id)

    def __repr__(self) -> str:
        return f"ExpiryEngine(db_name={self.db_name!r}, config={self.config!r})"
