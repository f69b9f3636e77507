"""Conflict-safe deletion of every live leaf of a document."""

from __future__ import annotations

import dataclasses
import logging
from typing import TYPE_CHECKING

from ..core.errors import ConflictError
from ..core.types import DeleteOutcome

if TYPE_CHECKING:
    from ..core.types import DocId
    from ..interfaces.store import DatabaseHandle

logger = logging.getLogger(__name__)


def delete_if_live(handle: DatabaseHandle, doc_id: DocId) -> DeleteOutcome:
    """Tombstone all live leaves of ``doc_id``.

    The first attempt marks every live leaf deleted in one atomic update.
    If that update conflicts, a second, read-only attempt re-reads the
    leaves: ``NOT_FOUND`` if a concurrent writer already removed them,
    ``CONFLICT`` if live leaves survived. Nothing is retried beyond that.

    Duplicate deletes are no-ops returning ``NOT_FOUND``.
    """
    outcome = _delete_leaves(handle, doc_id, mutate=True)
    if outcome is None:
        # check whether this was a replication race or leaves survived
        outcome = _delete_leaves(handle, doc_id, mutate=False)
    return outcome


def _delete_leaves(handle: DatabaseHandle, doc_id: DocId, mutate: bool) -> DeleteOutcome | None:
    """One delete attempt; returns None when the update conflicted."""
    live = [
        dataclasses.replace(leaf, deleted=True)
        for leaf in handle.open_revs(doc_id)
        if not leaf.deleted
    ]
    if not live:
        return DeleteOutcome.NOT_FOUND

    if not mutate:
        logger.warning(f"{len(live)} live leaves of {doc_id} survived a conflicting delete")
        return DeleteOutcome.CONFLICT

    try:
        handle.update_leaves(live)
    except ConflictError:
        logger.debug(f"Delete of {doc_id} conflicted, verifying")
        return None

    logger.debug(f"Deleted {len(live)} leaves of {doc_id}")
    return DeleteOutcome.OK
