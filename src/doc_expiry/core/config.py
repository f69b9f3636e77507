"""Configuration for the expiry engine.

``ExpiryConfig`` holds static tuning parameters. ``Settings`` is the live
configuration cell the default TTL is read from on every operation.
"""

from __future__ import annotations

import logging
import threading
import tomllib  # Python 3.11+
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

from .errors import ConfigError

logger = logging.getLogger(__name__)

EXPIRY_SECTION = "expiry"
DEFAULT_TTL_KEY = "default_ttl_seconds"


@dataclass
class ExpiryConfig:
    """Tuning parameters for the sweep loop and index bootstrap.

    Attributes:
        page_size: Maximum number of index entries examined per sweep pass
        continue_threshold: Another pass runs when more entries than this
            were expired in the previous pass
        sweep_interval_seconds: Delay between scheduled sweeps
        index_name: Name of the expiry index definition in the store
    """

    page_size: int = 100
    continue_threshold: int = 25
    sweep_interval_seconds: float = 1.0
    index_name: str = "_expires"

    def __post_init__(self) -> None:
        for name in ("page_size", "continue_threshold"):
            value = getattr(self, name)
            if not isinstance(value, int) or isinstance(value, bool):
                raise ConfigError(f"{name} must be an integer, got {value!r}")
        if not isinstance(self.sweep_interval_seconds, (int, float)) or isinstance(
            self.sweep_interval_seconds, bool
        ):
            raise ConfigError(
                f"sweep_interval_seconds must be a number, got {self.sweep_interval_seconds!r}"
            )
        if not isinstance(self.index_name, str) or not self.index_name:
            raise ConfigError(f"index_name must be a non-empty string, got {self.index_name!r}")
        if self.page_size <= 0:
            raise ConfigError(f"page_size must be positive, got {self.page_size}")
        if not 0 <= self.continue_threshold < self.page_size:
            raise ConfigError(
                f"continue_threshold must be in [0, {self.page_size}), "
                f"got {self.continue_threshold}"
            )
        if self.sweep_interval_seconds <= 0:
            raise ConfigError(
                f"sweep_interval_seconds must be positive, got {self.sweep_interval_seconds}"
            )


class Settings:
    """Thread-safe ``section -> key -> value`` configuration cell.

    Values may change at any time; readers must not cache them.
    """

    def __init__(self, values: dict[str, dict[str, Any]] | None = None):
        self._lock = threading.Lock()
        self._values: dict[str, dict[str, Any]] = {
            section: dict(items) for section, items in (values or {}).items()
        }

    def get(self, section: str, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._values.get(section, {}).get(key, default)

    def get_int(self, section: str, key: str, default: int = 0) -> int:
        value = self.get(section, key, default)
        # int() would turn True into 1 and 2.9 into 2
        if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
            raise ConfigError(f"[{section}] {key} is not an integer: {value!r}")
        try:
            return int(value)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"[{section}] {key} is not an integer: {value!r}") from e

    def set(self, section: str, key: str, value: Any) -> None:
        with self._lock:
            self._values.setdefault(section, {})[key] = value
        logger.debug(f"Set [{section}] {key} = {value!r}")

    def default_ttl(self) -> int:
        """Return the store-wide default TTL in seconds (0 disables it)."""
        ttl = self.get_int(EXPIRY_SECTION, DEFAULT_TTL_KEY, 0)
        if ttl < 0:
            raise ConfigError(f"[{EXPIRY_SECTION}] {DEFAULT_TTL_KEY} must be >= 0, got {ttl}")
        return ttl

    def set_default_ttl(self, seconds: int) -> None:
        self.set(EXPIRY_SECTION, DEFAULT_TTL_KEY, seconds)


def load_config(path: str | Path) -> tuple[ExpiryConfig, Settings]:
    """Load a TOML file into static tuning and live settings.

    The ``[sweep]`` table feeds ``ExpiryConfig``; every other table is
    copied into ``Settings``.
    """
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {path}: {e}") from e

    sweep = data.pop("sweep", {})
    known = {f.name for f in fields(ExpiryConfig)}
    unknown = set(sweep) - known
    if unknown:
        raise ConfigError(f"Unknown [sweep] options: {', '.join(sorted(unknown))}")

    config = ExpiryConfig(**sweep)
    settings = Settings({k: v for k, v in data.items() if isinstance(v, dict)})
    logger.info(f"Loaded config from {path}")
    return config, settings
