import logging

import pytest

from cvbuilder.core.monitoring import ErrorTracker, PerformanceMonitor


def test_disabled_monitor_returns_zero():
    monitor = PerformanceMonitor("Test", enabled=False)
    monitor.start_timer("op")
    assert monitor.end_timer("op") == 0
    assert monitor.active_timers() == 0


def test_end_timer_returns_duration_and_clears_timer():
    monitor = PerformanceMonitor("Test", enabled=True)
    monitor.start_timer("op")
    assert monitor.active_timers() == 1

    duration = monitor.end_timer("op", {"status": "success"})

    assert duration >= 0
    assert monitor.active_timers() == 0


def test_unknown_timer_warns_and_returns_zero(caplog):
    monitor = PerformanceMonitor("Test", enabled=True)
    with caplog.at_level(logging.WARNING, logger="cvbuilder"):
        assert monitor.end_timer("missing") == 0
    assert "No timer found for operation: missing" in caplog.text


def test_monitors_do_not_share_timers():
    first = PerformanceMonitor("A", enabled=True)
    second = PerformanceMonitor("B", enabled=True)
    first.start_timer("shared-id")

    assert second.active_timers() == 0
    assert second.end_timer("shared-id") == 0
    assert first.active_timers() == 1


@pytest.mark.asyncio
async def test_measure_returns_result_and_logs_success(caplog):
    monitor = PerformanceMonitor("Test", enabled=True)

    async def operation():
        return 42

    with caplog.at_level(logging.INFO, logger="cvbuilder"):
        result = await monitor.measure("compute", operation, {"user_id": "u1"})

    assert result == 42
    completed = [r for r in caplog.records if r.getMessage().startswith("Operation completed: compute")]
    assert completed
    assert completed[0].meta["status"] == "success"
    assert completed[0].meta["user_id"] == "u1"


@pytest.mark.asyncio
async def test_measure_reraises_and_records_error(caplog):
    monitor = PerformanceMonitor("Test", enabled=True)

    async def operation():
        raise RuntimeError("boom")

    with caplog.at_level(logging.INFO, logger="cvbuilder"):
        with pytest.raises(RuntimeError, match="boom"):
            await monitor.measure("compute", operation)

    completed = [r for r in caplog.records if r.getMessage().startswith("Operation completed: compute")]
    assert completed[0].meta["status"] == "error"
    assert monitor.active_timers() == 0


def test_error_tracker_is_gated(caplog):
    with caplog.at_level(logging.ERROR, logger="cvbuilder"):
        ErrorTracker(enabled=False).capture(ValueError("hidden"))
        assert "Application error" not in caplog.text

        ErrorTracker(enabled=True).capture(ValueError("shown"), user_id="u1", request_path="/api/cvs")
    assert "Application error" in caplog.text
