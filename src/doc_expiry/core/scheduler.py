"""Periodic sweep scheduler.

Runs ExpiryEngine.clean_expired on a background thread at a fixed interval.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .engine import ExpiryEngine
    from .types import SweepReport

logger = logging.getLogger(__name__)


class SweepScheduler:
    """Background thread invoking one sweep per interval.

    Args:
        engine: Engine to sweep
        interval_seconds: Delay between the end of one sweep and the next;
            defaults to ``engine.config.sweep_interval_seconds``

    Stopping lets the in-flight sweep finish and schedules no further ones.
    A failing sweep is logged and the next tick still runs.
    """

    def __init__(self, engine: ExpiryEngine, interval_seconds: float | None = None):
        self.engine = engine
        self.interval_seconds = (
            interval_seconds
            if interval_seconds is not None
            else engine.config.sweep_interval_seconds
        )
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()
        self.ticks = 0
        self.last_report: SweepReport | None = None
        self.last_error: Exception | None = None

    @property
    def running(self) -> bool:
        return (
            self._thread is not None and self._thread.is_alive() and not self._stop.is_set()
        )

    def start(self) -> None:
        """Start the sweep thread. No-op if already running."""
        with self._lock:
            if self.running:
                return
            # a thread left behind by a timed-out stop keeps its own event and exits
            self._stop = threading.Event()
            self._thread = threading.Thread(
                target=self._run,
                args=(self._stop,),
                daemon=True,
                name=f"ExpirySweeper-{self.engine.db_name}",
            )
            self._thread.start()
        logger.info(
            f"Started expiry sweeper for {self.engine.db_name} every {self.interval_seconds}s"
        )

    def stop(self, timeout: float | None = 5.0) -> None:
        """Signal shutdown and wait for the current sweep to finish."""
        with self._lock:
            thread = self._thread
            self._stop.set()
        if thread is None:
            return

        thread.join(timeout=timeout)
        if thread.is_alive():
            logger.warning("Expiry sweeper did not shut down cleanly")
        else:
            logger.info(f"Stopped expiry sweeper for {self.engine.db_name}")

    def _run(self, stop: threading.Event) -> None:
        while not stop.is_set():
            self.tick()
            stop.wait(self.interval_seconds)

    def tick(self) -> SweepReport | None:
        """Run one sweep now, logging instead of raising on failure."""
        started = time.monotonic()
        try:
            report = self.engine.clean_expired()
        except Exception as e:
            logger.exception(f"Expiry sweep of {self.engine.db_name} failed")
            self.last_error = e
            return None
        finally:
            self.ticks += 1

        self.last_report = report
        logger.debug(
            f"Sweep of {self.engine.db_name} took {time.monotonic() - started:.3f}s: {report}"
        )
        return report

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False
