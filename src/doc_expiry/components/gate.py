"""Active lookup gate.

Point reads that hide expired documents and delete them on sight.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..core.errors import NotFoundError, StoreError
from ..core.types import DeleteOutcome, ExpiryCheck
from .deleter import delete_if_live
from .predicate import is_doc_expired

if TYPE_CHECKING:
    from ..core.types import Body, DocId, Seconds
    from ..interfaces.store import DatabaseHandle

logger = logging.getLogger(__name__)


def open_if_live(handle: DatabaseHandle, doc_id: DocId, default_ttl: Seconds, now: Seconds) -> Body:
    """Return the document unless it is missing or expired.

    An expired document is deleted on a best-effort basis; the caller
    sees ``NotFoundError`` whatever the delete outcome.

    Raises:
        NotFoundError: The document is missing, deleted or expired
    """
    doc = handle.open_doc(doc_id)
    if not is_doc_expired(doc, default_ttl, now):
        return doc

    try:
        outcome = delete_if_live(handle, doc_id)
    except StoreError as e:
        logger.warning(f"Failed to delete expired document {doc_id}: {e}")
    else:
        if outcome is DeleteOutcome.CONFLICT:
            logger.warning(f"Expired document {doc_id} has live conflicting leaves")
    raise NotFoundError(doc_id, "expired")


def check_expired(handle: DatabaseHandle, doc_id: DocId, default_ttl: Seconds, now: Seconds) -> ExpiryCheck:
    """Read-only expiry check; never deletes."""
    try:
        doc = handle.open_doc(doc_id)
    except NotFoundError:
        return ExpiryCheck.NOT_FOUND
    if is_doc_expired(doc, default_ttl, now):
        return ExpiryCheck.EXPIRED
    return ExpiryCheck.LIVE
