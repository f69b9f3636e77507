"""Expiry engine core."""

from .engine import ExpiryEngine
from .scheduler import SweepScheduler

__all__ = ["ExpiryEngine", "SweepScheduler"]
