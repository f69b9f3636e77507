"""Expiry predicate.

Pure functions deciding whether a record has outlived its TTL.
"""

from __future__ import annotations

import time
from collections.abc import Mapping
from typing import Any

from ..core.types import Seconds

NEVER = 0


def now_seconds() -> Seconds:
    """Wall-clock seconds since the epoch."""
    return int(time.time())


def expires_at(timestamp: Seconds | None, ttl: Seconds | None, default_ttl: Seconds) -> Seconds:
    """Return the expiry instant, or ``NEVER`` (0) if the record never expires."""
    if timestamp is None:
        # no timestamp set
        return NEVER
    if ttl is None:
        if default_ttl == 0:
            return NEVER
        return timestamp + default_ttl
    return timestamp + ttl


def is_expired(
    timestamp: Seconds | None, ttl: Seconds | None, default_ttl: Seconds, now: Seconds
) -> bool:
    """Return True if ``now`` has reached the record's expiry instant.

    Reaching the boundary exactly counts as expired.
    """
    expiry = expires_at(timestamp, ttl, default_ttl)
    if expiry == NEVER:
        return False
    return expiry <= now


def _seconds(value: Any) -> Seconds | None:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def is_doc_expired(fields: Mapping[str, Any], default_ttl: Seconds, now: Seconds) -> bool:
    """Apply ``is_expired`` to the ``timestamp``/``ttl`` fields of a body or index value.

    Non-integer fields count as absent.
    """
    return is_expired(_seconds(fields.get("timestamp")), _seconds(fields.get("ttl")), default_ttl, now)
