"""Change cursor over the expiry index."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, TypeVar

from ..core.errors import NotFoundError
from ..core.types import END_OF_STREAM, Change
from .predicate import is_doc_expired

if TYPE_CHECKING:
    from ..core.types import IndexKey, Seconds, _EndOfStream
    from ..interfaces.store import DatabaseHandle

logger = logging.getLogger(__name__)

Acc = TypeVar("Acc")
ChangeCallback = Callable[["Change | _EndOfStream", Acc], Acc]


def changes_since(
    handle: DatabaseHandle,
    index_name: str,
    start_key: IndexKey | None,
    callback: ChangeCallback[Acc],
    acc: Acc,
    default_ttl: Seconds,
    now: Seconds,
) -> Acc:
    """Fold ``callback`` over live documents in expiry-instant order from ``start_key``.

    Expired entries are skipped; documents deleted while the scan runs are
    skipped too. After the last entry ``callback(END_OF_STREAM, acc)`` runs
    exactly once. Exceptions raised by the callback propagate.
    """
    delivered = 0
    skipped = 0
    for entry in handle.scan_index_from(index_name, start_key):
        if is_doc_expired(entry.value, default_ttl, now):
            skipped += 1
            continue
        try:
            doc = handle.open_doc(entry.doc_id)
        except NotFoundError:
            skipped += 1
            continue
        acc = callback(Change(entry.key, entry.doc_id, doc), acc)
        delivered += 1

    acc = callback(END_OF_STREAM, acc)
    logger.debug(f"Change cursor from {start_key}: delivered={delivered}, skipped={skipped}")
    return acc
