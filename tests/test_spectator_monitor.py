"""
Tests for the spectator idle monitor.
"""
import asyncio

import pytest

from tvcast.streaming.spectator_monitor import SpectatorMonitor


class Occupancy:
    def __init__(self, *counts):
        self.counts = list(counts)

    def __call__(self):
        value = self.counts.pop(0)
        if isinstance(value, Exception):
            raise value
        return value


class IdleRecorder:
    def __init__(self):
        self.calls = 0

    async def __call__(self):
        self.calls += 1


class TestSpectatorMonitor:

    @pytest.mark.asyncio
    async def test_accumulates_only_on_empty_polls(self):
        monitor = SpectatorMonitor(Occupancy(0, 0, 2, 0), IdleRecorder(), interval=10, idle_timeout=600)

        await monitor.poll()
        await monitor.poll()
        assert monitor.idle_seconds == 20

        await monitor.poll()
        assert monitor.idle_seconds == 0

        await monitor.poll()
        assert monitor.idle_seconds == 10

    @pytest.mark.asyncio
    async def test_unknown_count_is_ignored(self):
        monitor = SpectatorMonitor(Occupancy(0, None), IdleRecorder(), interval=10, idle_timeout=600)

        await monitor.poll()
        await monitor.poll()

        assert monitor.idle_seconds == 10

    @pytest.mark.asyncio
    async def test_fires_exactly_once(self):
        on_idle = IdleRecorder()
        monitor = SpectatorMonitor(Occupancy(0, 0, 0), on_idle, interval=10, idle_timeout=20)

        assert await monitor.poll() is False
        assert await monitor.poll() is True
        assert await monitor.poll() is True

        assert on_idle.calls == 1

    @pytest.mark.asyncio
    async def test_poll_errors_do_not_end_monitoring(self, caplog):
        monitor = SpectatorMonitor(
            Occupancy(RuntimeError("guild unavailable"), 0),
            IdleRecorder(),
            interval=10,
            idle_timeout=600,
        )

        assert await monitor.poll() is False
        assert await monitor.poll() is False
        assert monitor.idle_seconds == 10
        assert "Error in spectator monitoring" in caplog.text

    @pytest.mark.asyncio
    async def test_background_task_fires_and_ends(self):
        on_idle = IdleRecorder()
        monitor = SpectatorMonitor(lambda: 0, on_idle, interval=0.01, idle_timeout=0.03)

        monitor.start()
        for _ in range(100):
            if on_idle.calls:
                break
            await asyncio.sleep(0.01)
        await asyncio.sleep(0.05)

        assert on_idle.calls == 1
        assert not monitor.running

    @pytest.mark.asyncio
    async def test_stop_cancels_polling(self):
        monitor = SpectatorMonitor(lambda: 1, IdleRecorder(), interval=0.01, idle_timeout=1)
        monitor.start()
        assert monitor.running

        await monitor.stop()

        assert not monitor.running
