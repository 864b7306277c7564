"""
Unit tests for the per-channel debounce scheduler.
"""
import asyncio

from inventory_sync.debounce import DebounceScheduler


class Recorder:
    def __init__(self):
        self.calls = []

    def __call__(self, *args, **kwargs):
        self.calls.append((args, kwargs))

    async def async_op(self, *args):
        await asyncio.sleep(0)
        self.calls.append((args, {}))


# =============================================================================
# Scheduling Tests
# =============================================================================

class TestSchedule:
    """Tests for collapsing rapid triggers."""

    def test_rapid_schedules_run_last_once(self):
        scheduler = DebounceScheduler(delay=0.02)
        recorder = Recorder()

        async def run():
            for i in range(5):
                scheduler.schedule("tabs", recorder, i, source="tap")
            await asyncio.sleep(0.08)

        asyncio.run(run())

        assert recorder.calls == [((4,), {"source": "tap"})]

    def test_channels_are_independent(self):
        scheduler = DebounceScheduler(delay=0.01)
        recorder = Recorder()

        async def run():
            scheduler.schedule("tabs", recorder, "tabs")
            scheduler.schedule("search", recorder, "search")
            await asyncio.sleep(0.05)

        asyncio.run(run())

        assert sorted(args[0] for args, _ in recorder.calls) == ["search", "tabs"]

    def test_coroutine_operation_runs_as_task(self):
        scheduler = DebounceScheduler(delay=0.01)
        recorder = Recorder()

        async def run():
            handle = scheduler.schedule("tabs", recorder.async_op, "x")
            await asyncio.sleep(0.03)
            await scheduler.drain()
            return handle

        handle = asyncio.run(run())

        assert recorder.calls == [(("x",), {})]
        assert handle.fired is True
        assert handle.task is not None

    def test_per_call_delay_override(self):
        scheduler = DebounceScheduler(delay=10.0)
        recorder = Recorder()

        async def run():
            scheduler.schedule("tabs", recorder, 1, delay=0.01)
            await asyncio.sleep(0.04)

        asyncio.run(run())
        assert len(recorder.calls) == 1

    def test_failing_operation_does_not_break_scheduler(self):
        scheduler = DebounceScheduler(delay=0.01)
        recorder = Recorder()

        async def boom():
            raise RuntimeError("boom")

        async def run():
            scheduler.schedule("a", boom)
            await asyncio.sleep(0.03)
            await scheduler.drain()
            scheduler.schedule("a", recorder, "after")
            await asyncio.sleep(0.03)

        asyncio.run(run())
        assert recorder.calls == [(("after",), {})]


# =============================================================================
# Cancellation Tests
# =============================================================================

class TestCancel:
    """Tests for cancelling pending work."""

    def test_cancel_prevents_execution(self):
        scheduler = DebounceScheduler(delay=0.01)
        recorder = Recorder()

        async def run():
            scheduler.schedule("tabs", recorder, 1)
            pending = scheduler.is_pending("tabs")
            cancelled = scheduler.cancel("tabs")
            await asyncio.sleep(0.03)
            return pending, cancelled

        pending, cancelled = asyncio.run(run())

        assert pending is True
        assert cancelled is True
        assert recorder.calls == []
        assert scheduler.is_pending("tabs") is False

    def test_cancel_unknown_channel(self):
        assert DebounceScheduler(delay=0.01).cancel("nothing") is False

    def test_cancel_all(self):
        scheduler = DebounceScheduler(delay=0.01)
        recorder = Recorder()

        async def run():
            scheduler.schedule("a", recorder)
            scheduler.schedule("b", recorder)
            count = scheduler.cancel_all()
            await asyncio.sleep(0.03)
            return count

        assert asyncio.run(run()) == 2
        assert recorder.calls == []

    def test_handle_cancel_after_fire_is_noop(self):
        scheduler = DebounceScheduler(delay=0.01)
        recorder = Recorder()

        async def run():
            handle = scheduler.schedule("a", recorder)
            await asyncio.sleep(0.03)
            return handle

        handle = asyncio.run(run())
        assert handle.fired is True
        assert handle.cancel() is False
        assert len(recorder.calls) == 1
