"""Passive expiry sweep.

Each pass examines one page from the start of the expiry index and deletes
the expired entries. Deleted entries leave the index, so the next pass sees
the records expiring next. Passes repeat while the backlog looks heavy.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import TYPE_CHECKING

from ..core.errors import StoreError
from ..core.types import DeleteOutcome, SweepReport
from .deleter import delete_if_live
from .predicate import is_doc_expired, now_seconds

if TYPE_CHECKING:
    from contextlib import AbstractContextManager

    from ..core.config import ExpiryConfig
    from ..core.types import DocId, Seconds
    from ..interfaces.store import DatabaseHandle

logger = logging.getLogger(__name__)

HandleOpener = Callable[[], "AbstractContextManager[DatabaseHandle]"]


class Sweeper:
    """Bounded, batch-driven deletion of expired documents.

    Args:
        open_handle: Returns a context manager yielding an admin handle;
            called once per pass so each pass releases its handle
        default_ttl: Returns the current default TTL; called once per pass
        config: Page size, continuation threshold and index name
    """

    def __init__(
        self,
        open_handle: HandleOpener,
        default_ttl: Callable[[], Seconds],
        config: ExpiryConfig,
    ):
        self._open_handle = open_handle
        self._default_ttl = default_ttl
        self.config = config

    def clean_expired(self, now_provider: Callable[[], Seconds] = now_seconds) -> SweepReport:
        """Run passes until one expires no more than ``continue_threshold`` entries.

        A pass that removed nothing also ends the sweep, so entries stuck on
        unresolved conflicts cannot keep the loop spinning.
        """
        report = SweepReport()
        while True:
            removed_before = report.deleted + report.not_found
            expired = self._sweep_once(report, now_provider)
            if expired <= self.config.continue_threshold:
                break
            if report.deleted + report.not_found == removed_before:
                logger.warning(f"{expired} expired entries could not be removed, stopping sweep")
                break
            logger.debug(f"{expired} entries expired in pass {report.passes}, continuing")

        if report.expired:
            logger.info(
                f"Sweep finished: passes={report.passes}, expired={report.expired}, "
                f"deleted={report.deleted}, conflicts={report.conflicts}, failed={report.failed}"
            )
        return report

    def _sweep_once(self, report: SweepReport, now_provider: Callable[[], Seconds]) -> int:
        """One pass; returns the number of expired entries found."""
        report.passes += 1
        default_ttl = self._default_ttl()

        try:
            with self._open_handle() as handle:
                page = handle.scan_index_page(self.config.index_name, self.config.page_size)
                now = now_provider()
                to_delete: list[DocId] = [
                    entry.doc_id
                    for entry in page
                    if is_doc_expired(entry.value, default_ttl, now)
                ]
                report.examined += len(page)
                report.expired += len(to_delete)
                self._delete_expired(handle, to_delete, report)
        except StoreError as e:
            logger.warning(f"Expiry sweep pass failed, retrying next tick: {e}")
            return 0

        return len(to_delete)

    def _delete_expired(self, handle: DatabaseHandle, doc_ids: list[DocId], report: SweepReport) -> None:
        for doc_id in doc_ids:
            try:
                outcome = delete_if_live(handle, doc_id)
            except StoreError as e:
                logger.warning(f"Failed to delete expired document {doc_id}: {e}")
                report.failed += 1
                continue

            if outcome is DeleteOutcome.OK:
                report.deleted += 1
            elif outcome is DeleteOutcome.NOT_FOUND:
                report.not_found += 1
            else:
                logger.warning(f"Skipping expired document {doc_id}: unresolved conflict")
                report.conflicts += 1
