"""
Test cases for the idle-session countdown.
"""
import asyncio

import pytest

from recovery_portal.client.inactivity import InactivityMonitor


def test_warns_once_then_logs_out():
    events = []

    async def run():
        monitor = InactivityMonitor(
            on_warning=lambda: events.append("warning"),
            on_logout=lambda: events.append("logout"),
            timeout_seconds=0.05,
            warning_seconds=0.02,
        )
        monitor.start()
        await monitor.wait()
        return monitor

    monitor = asyncio.run(run())
    assert events == ["warning", "logout"]
    assert monitor.warning_shown
    assert monitor.logged_out
    assert not monitor.running


def test_activity_restarts_countdown():
    events = []

    async def run():
        monitor = InactivityMonitor(
            on_warning=lambda: events.append("warning"),
            on_logout=lambda: events.append("logout"),
            timeout_seconds=0.5,
            warning_seconds=0.1,
        )
        monitor.start()
        for _ in range(3):
            await asyncio.sleep(0.1)
            monitor.touch()
        assert events == []
        monitor.stop()
        return monitor

    monitor = asyncio.run(run())
    assert events == []
    assert not monitor.logged_out


def test_touch_after_warning_hides_it():
    events = []

    async def run():
        monitor = InactivityMonitor(on_warning=lambda: events.append("warning"),
                                    timeout_seconds=0.3, warning_seconds=0.25)
        monitor.start()
        await asyncio.sleep(0.1)
        assert monitor.warning_shown
        monitor.touch()
        assert not monitor.warning_shown
        monitor.stop()

    asyncio.run(run())
    assert events == ["warning"]


def test_async_callbacks_are_awaited():
    events = []

    async def on_logout():
        await asyncio.sleep(0)
        events.append("logout")

    async def run():
        monitor = InactivityMonitor(on_logout=on_logout, timeout_seconds=0.02, warning_seconds=0.01)
        monitor.start()
        await monitor.wait()

    asyncio.run(run())
    assert events == ["logout"]


def test_from_settings():
    monitor = InactivityMonitor.from_settings({"session_timeout_seconds": 600, "session_warning_seconds": 30})
    assert monitor.timeout_seconds == 600
    assert monitor.warning_seconds == 30
    assert InactivityMonitor.from_settings({}).timeout_seconds == 900


@pytest.mark.parametrize("timeout,warning", [(0, 0), (60, 60), (60, -1)])
def test_rejects_invalid_durations(timeout, warning):
    with pytest.raises(ValueError):
        InactivityMonitor(timeout_seconds=timeout, warning_seconds=warning)
