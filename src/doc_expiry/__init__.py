"""doc-expiry - TTL expiration for revisioned document stores."""

from .components.docstore import DatabaseHandle, MemoryDatabase, MemoryServer, make_doc
from .core.config import ExpiryConfig, Settings, load_config
from .core.engine import ExpiryEngine
from .core.errors import (
    ExpiryError,
    StoreError,
    NotFoundError,
    ConflictError,
    StoreUnavailableError,
    UnauthorizedError,
    ConfigError,
)
from .core.scheduler import SweepScheduler
from .core.types import (
    END_OF_STREAM,
    Change,
    DeleteOutcome,
    ExpiryCheck,
    IndexDefinition,
    IndexEntry,
    Leaf,
    SweepReport,
)

__all__ = [
    "ExpiryEngine",
    "SweepScheduler",
    "ExpiryConfig",
    "Settings",
    "load_config",
    "MemoryServer",
    "MemoryDatabase",
    "DatabaseHandle",
    "make_doc",
    "ExpiryError",
    "StoreError",
    "NotFoundError",
    "ConflictError",
    "StoreUnavailableError",
    "UnauthorizedError",
    "ConfigError",
    "END_OF_STREAM",
    "Change",
    "DeleteOutcome",
    "ExpiryCheck",
    "IndexDefinition",
    "IndexEntry",
    "Leaf",
    "SweepReport",
]
