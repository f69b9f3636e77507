"""Expiry index bootstrap.

Keeps the store's expiry index definition and read filter current.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from ..core.types import IndexDefinition

if TYPE_CHECKING:
    from ..interfaces.store import DatabaseHandle, ReadFilter

logger = logging.getLogger(__name__)

EXPIRES_INDEX = "_expires"


def expires_index_definition(name: str = EXPIRES_INDEX) -> IndexDefinition:
    """The definition the engine expects: keyed by expiry instant, hiding expired reads."""
    return IndexDefinition(
        name=name,
        key_field="timestamp",
        ttl_field="ttl",
        value_fields=("timestamp", "ttl"),
        hide_expired=True,
    )


def ensure_expiry_index(
    handle: DatabaseHandle, read_filter: ReadFilter, name: str = EXPIRES_INDEX
) -> bool:
    """Install the expiry index if it is missing or differs from the expected one.

    Args:
        handle: Admin handle to the database
        read_filter: Predicate the store applies to non-admin reads
        name: Index name

    Returns:
        True if the definition was written
    """
    expected = expires_index_definition(name)
    installed = handle.index_definition(name)
    if installed == expected:
        return False

    if installed is None:
        logger.info(f"Installing expiry index {name} on {handle.name}")
    else:
        logger.info(f"Upgrading expiry index {name} on {handle.name}")
    handle.install_index(expected, read_filter)
    return True
