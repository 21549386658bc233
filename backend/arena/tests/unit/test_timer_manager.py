"""Unit tests for TimerManager driven by a manual sleep."""

import pytest
import structlog

from arena.session.timer_manager import TimerManager
from arena.tests.mocks import drain


@pytest.fixture
async def timers(sleeper):
    manager = TimerManager(sleep=sleeper)
    yield manager
    manager.cancel_all()
    await drain()


@pytest.fixture
def calls():
    return []


class TestTickLoop:
    async def test_fires_once_per_interval(self, timers, sleeper, calls):
        async def on_tick(lobby_id):
            calls.append(lobby_id)
            return True

        timers.start_tick_loop("L1", 0.016, on_tick)
        await drain()
        assert calls == []
        assert sleeper.requested_delays == [0.016]

        await sleeper.advance(3)

        assert calls == ["L1", "L1", "L1"]
        assert timers.has_tick("L1")

    async def test_stops_when_callback_returns_false(self, timers, sleeper, calls):
        async def on_tick(lobby_id):
            calls.append(lobby_id)
            return len(calls) < 2

        timers.start_tick_loop("L1", 0.016, on_tick)
        await drain()
        await sleeper.advance(5)

        assert len(calls) == 2
        assert not timers.has_tick("L1")

    async def test_cancel_prevents_further_ticks(self, timers, sleeper, calls):
        async def on_tick(lobby_id):
            calls.append(lobby_id)
            return True

        timers.start_tick_loop("L1", 0.016, on_tick)
        await drain()
        await sleeper.advance()
        timers.cancel_tick("L1")
        await sleeper.advance(3)

        assert calls == ["L1"]
        assert not timers.has_tick("L1")

    async def test_callback_can_cancel_its_own_timer(self, timers, sleeper, calls):
        async def on_tick(lobby_id):
            timers.cancel_tick(lobby_id)
            calls.append("after-cancel")
            return True

        timers.start_tick_loop("L1", 0.016, on_tick)
        await drain()
        await sleeper.advance(3)

        assert calls == ["after-cancel"]
        assert not timers.has_tick("L1")

    async def test_failing_tick_is_logged_and_loop_continues(self, timers, sleeper, calls):
        async def on_tick(lobby_id):
            calls.append(lobby_id)
            if len(calls) == 1:
                raise ValueError("boom")
            return True

        timers.start_tick_loop("L1", 0.016, on_tick)
        await drain()
        await sleeper.advance(3)

        assert len(calls) == 3
        assert timers.has_tick("L1")

    async def test_restart_replaces_previous_loop(self, timers, sleeper, calls):
        async def first(_lobby_id):
            calls.append("first")
            return True

        async def second(_lobby_id):
            calls.append("second")
            return True

        timers.start_tick_loop("L1", 0.016, first)
        await drain()
        timers.start_tick_loop("L1", 0.016, second)
        await drain()
        await sleeper.advance(2)

        assert calls == ["second", "second"]

    async def test_lobbies_are_independent(self, timers, sleeper, calls):
        async def on_tick(lobby_id):
            calls.append(lobby_id)
            return True

        timers.start_tick_loop("L1", 0.016, on_tick)
        timers.start_tick_loop("L2", 0.016, on_tick)
        await drain()
        timers.cancel_tick("L1")
        await sleeper.advance(2)

        assert calls == ["L2", "L2"]


class TestCountdown:
    async def test_first_step_fires_immediately(self, timers, sleeper, calls):
        async def on_step(lobby_id, index):
            calls.append(index)
            return True

        timers.start_countdown("L1", steps=4, delay=1.0, on_step=on_step)
        await drain()

        assert calls == [0]
        assert sleeper.requested_delays == [1.0]

    async def test_runs_every_step_then_clears_handle(self, timers, sleeper, calls):
        async def on_step(lobby_id, index):
            calls.append(index)
            return True

        timers.start_countdown("L1", steps=4, delay=1.0, on_step=on_step)
        await drain()
        await sleeper.advance(3)

        assert calls == [0, 1, 2, 3]
        assert not timers.has_countdown("L1")

    async def test_callback_false_stops_chain(self, timers, sleeper, calls):
        async def on_step(lobby_id, index):
            calls.append(index)
            return index < 1

        timers.start_countdown("L1", steps=4, delay=1.0, on_step=on_step)
        await drain()
        await sleeper.advance(3)

        assert calls == [0, 1]
        assert not timers.has_countdown("L1")

    async def test_cancel_mid_chain(self, timers, sleeper, calls):
        async def on_step(lobby_id, index):
            calls.append(index)
            return True

        timers.start_countdown("L1", steps=4, delay=1.0, on_step=on_step)
        await drain()
        timers.cancel_countdown("L1")
        await sleeper.advance(3)

        assert calls == [0]

    async def test_failing_step_stops_chain(self, timers, sleeper, calls):
        async def on_step(lobby_id, index):
            calls.append(index)
            raise RuntimeError("boom")

        timers.start_countdown("L1", steps=4, delay=1.0, on_step=on_step)
        await drain()
        await sleeper.advance(3)

        assert calls == [0]
        assert not timers.has_countdown("L1")


class TestCleanup:
    async def test_cleanup_lobby_cancels_both_timers(self, timers, sleeper, calls):
        async def on_tick(lobby_id):
            calls.append("tick")
            return True

        async def on_step(lobby_id, index):
            calls.append("step")
            return True

        timers.start_tick_loop("L1", 0.016, on_tick)
        timers.start_countdown("L1", steps=4, delay=1.0, on_step=on_step)
        await drain()
        calls.clear()

        timers.cleanup_lobby("L1")
        await sleeper.advance(3)

        assert calls == []
        assert timers.active_timer_count == 0

    async def test_cancel_all(self, timers):
        async def on_tick(_lobby_id):
            return True

        for lobby_id in ("L1", "L2", "L3"):
            timers.start_tick_loop(lobby_id, 0.016, on_tick)
        assert timers.active_timer_count == 3

        timers.cancel_all()

        assert timers.active_timer_count == 0

    async def test_cancel_unknown_lobby_is_noop(self, timers):
        timers.cleanup_lobby("missing")
        assert timers.active_timer_count == 0


class TestLogContext:
    async def test_tick_task_does_not_inherit_caller_context(self, timers, sleeper):
        seen = []

        async def on_tick(_lobby_id):
            seen.append(structlog.contextvars.get_contextvars())
            return False

        structlog.contextvars.bind_contextvars(connection_id="guest-conn")
        timers.start_tick_loop("L1", 0.016, on_tick)
        await drain()
        await sleeper.advance()

        assert seen == [{}]
        assert structlog.contextvars.get_contextvars() == {"connection_id": "guest-conn"}

    async def test_countdown_task_does_not_inherit_caller_context(self, timers):
        seen = []

        async def on_step(_lobby_id, _index):
            seen.append(structlog.contextvars.get_contextvars())
            return False

        structlog.contextvars.bind_contextvars(connection_id="guest-conn")
        timers.start_countdown("L1", 3, 1.0, on_step)
        await drain()

        assert seen == [{}]
