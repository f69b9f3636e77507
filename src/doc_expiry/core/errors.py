"""Exception hierarchy for the expiry engine.

Defines all custom exceptions used throughout the implementation.
"""

from __future__ import annotations


class ExpiryError(Exception):
    """Base exception for all expiry engine errors."""
    pass


class StoreError(ExpiryError):
    """Raised when a document store operation fails."""
    pass


class NotFoundError(StoreError):
    """Raised when a document is missing, deleted or expired."""

    def __init__(self, doc_id: str, reason: str = "missing"):
        super().__init__(f"{doc_id}: {reason}")
        self.doc_id = doc_id
        self.reason = reason


class ConflictError(StoreError):
    """Raised when a write races a concurrent modification of the same document."""
    pass


class StoreUnavailableError(StoreError):
    """Raised when a database cannot be opened or a handle is closed."""
    pass


class UnauthorizedError(StoreError):
    """Raised when a non-admin handle attempts an administrative operation."""
    pass


class ConfigError(ExpiryError):
    """Raised when configuration is missing or invalid."""
    pass
