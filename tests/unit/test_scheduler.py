"""Unit tests for the periodic sweep scheduler."""

from __future__ import annotations

import threading
import time
from unittest.mock import MagicMock

import pytest

from doc_expiry.core.scheduler import SweepScheduler
from doc_expiry.core.types import SweepReport


@pytest.fixture
def engine():
    """Engine double returning an empty report."""
    engine = MagicMock()
    engine.db_name = "db"
    engine.config.sweep_interval_seconds = 0.01
    engine.clean_expired.return_value = SweepReport(passes=1)
    return engine


def wait_for(predicate, timeout=5.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


def test_interval_defaults_to_config(engine):
    """The interval comes from the engine config unless given."""
    assert SweepScheduler(engine).interval_seconds == 0.01
    assert SweepScheduler(engine, interval_seconds=2.0).interval_seconds == 2.0


def test_tick_runs_one_sweep(engine):
    """A tick runs one sweep and records its report."""
    scheduler = SweepScheduler(engine)

    report = scheduler.tick()

    assert report.passes == 1
    assert scheduler.last_report is report
    assert scheduler.ticks == 1
    engine.clean_expired.assert_called_once_with()


def test_tick_logs_failures(engine, caplog):
    """A failing sweep is logged, not raised."""
    engine.clean_expired.side_effect = RuntimeError("store exploded")
    scheduler = SweepScheduler(engine)

    assert scheduler.tick() is None
    assert isinstance(scheduler.last_error, RuntimeError)
    assert scheduler.ticks == 1
    assert "Expiry sweep of db failed" in caplog.text


def test_thread_sweeps_repeatedly(engine):
    """The background thread keeps invoking sweeps until stopped."""
    scheduler = SweepScheduler(engine)
    scheduler.start()
    try:
        assert scheduler.running
        assert wait_for(lambda: engine.clean_expired.call_count >= 3)
    finally:
        scheduler.stop()

    assert not scheduler.running
    calls = engine.clean_expired.call_count
    time.sleep(0.05)
    assert engine.clean_expired.call_count == calls


def test_thread_survives_failures(engine):
    """A failing tick does not stop later ticks."""
    engine.clean_expired.side_effect = [RuntimeError("once"), SweepReport(), SweepReport()]

    with SweepScheduler(engine) as scheduler:
        assert wait_for(lambda: scheduler.ticks >= 3)

    assert scheduler.last_report is not None


def test_start_twice_is_noop(engine):
    """Starting a running scheduler does not spawn a second thread."""
    scheduler = SweepScheduler(engine)
    scheduler.start()
    thread = scheduler._thread
    scheduler.start()

    assert scheduler._thread is thread
    scheduler.stop()


def test_stop_without_start(engine):
    """Stopping a scheduler that never started is harmless."""
    SweepScheduler(engine).stop()


def test_restart_after_stop_timeout(engine):
    """Starting again while a timed-out thread winds down keeps sweeping."""
    release = threading.Event()

    def slow_sweep():
        release.wait(5)
        return SweepReport()

    engine.clean_expired.side_effect = slow_sweep
    scheduler = SweepScheduler(engine)
    scheduler.start()
    assert wait_for(lambda: engine.clean_expired.call_count >= 1)
    old = scheduler._thread

    scheduler.stop(timeout=0.05)
    assert old.is_alive()
    assert not scheduler.running

    scheduler.start()
    release.set()
    old.join(timeout=5)

    assert not old.is_alive()
    assert scheduler.running
    calls = engine.clean_expired.call_count
    assert wait_for(lambda: engine.clean_expired.call_count > calls)
    scheduler.stop()
