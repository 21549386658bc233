"""Own the per-lobby tick interval and countdown chain tasks."""

from __future__ import annotations

import asyncio
import contextvars
from collections.abc import Awaitable, Callable

import structlog

logger = structlog.get_logger()

SleepFunc = Callable[[float], Awaitable[None]]
# (lobby_id) -> keep running?
TickCallback = Callable[[str], Awaitable[bool]]
# (lobby_id, step_index) -> continue the chain?
StepCallback = Callable[[str, int], Awaitable[bool]]


class TimerManager:
    """Manage tick and countdown task lifecycle for all lobbies.

    Every task is owned by exactly one lobby id. The caller (SessionManager)
    decides when to start and stop them; this class only guarantees that a
    cancelled handle never fires again and that cleanup_lobby leaves nothing
    running for that lobby.

    A callback may stop its own timer (e.g. the tick that finishes a game).
    In that case the handle is detached instead of cancelled so the callback
    can finish its broadcast, and the loop exits on its next check.
    """

    def __init__(self, sleep: SleepFunc | None = None) -> None:
        self._sleep = sleep or asyncio.sleep
        self._tick_tasks: dict[str, asyncio.Task[None]] = {}
        self._countdown_tasks: dict[str, asyncio.Task[None]] = {}

    def has_tick(self, lobby_id: str) -> bool:
        return lobby_id in self._tick_tasks

    def has_countdown(self, lobby_id: str) -> bool:
        return lobby_id in self._countdown_tasks

    @property
    def active_timer_count(self) -> int:
        return len(self._tick_tasks) + len(self._countdown_tasks)

    def start_tick_loop(self, lobby_id: str, interval: float, on_tick: TickCallback) -> None:
        """Start the fixed-interval tick loop, replacing any existing one."""
        self.cancel_tick(lobby_id)
        self._tick_tasks[lobby_id] = asyncio.create_task(
            self._run_tick_loop(lobby_id, interval, on_tick),
            context=contextvars.Context(),
        )

    def start_countdown(self, lobby_id: str, steps: int, delay: float, on_step: StepCallback) -> None:
        """Run on_step for steps 0..steps-1, waiting delay seconds between them."""
        self.cancel_countdown(lobby_id)
        self._countdown_tasks[lobby_id] = asyncio.create_task(
            self._run_countdown(lobby_id, steps, delay, on_step),
            context=contextvars.Context(),
        )

    def cancel_tick(self, lobby_id: str) -> None:
        _cancel(self._tick_tasks.pop(lobby_id, None))

    def cancel_countdown(self, lobby_id: str) -> None:
        _cancel(self._countdown_tasks.pop(lobby_id, None))

    def cleanup_lobby(self, lobby_id: str) -> None:
        """Cancel every timer a lobby owns."""
        self.cancel_countdown(lobby_id)
        self.cancel_tick(lobby_id)

    def cancel_all(self) -> None:
        for lobby_id in list(self._tick_tasks) + list(self._countdown_tasks):
            self.cleanup_lobby(lobby_id)

    async def _run_tick_loop(self, lobby_id: str, interval: float, on_tick: TickCallback) -> None:
        me = asyncio.current_task()
        try:
            while self._tick_tasks.get(lobby_id) is me:
                await self._sleep(interval)
                if self._tick_tasks.get(lobby_id) is not me:
                    return
                try:
                    keep_running = await on_tick(lobby_id)
                except Exception:
                    logger.exception("tick callback failed", lobby_id=lobby_id)
                    continue
                if not keep_running:
                    return
        finally:
            if self._tick_tasks.get(lobby_id) is me:
                self._tick_tasks.pop(lobby_id, None)

    async def _run_countdown(self, lobby_id: str, steps: int, delay: float, on_step: StepCallback) -> None:
        me = asyncio.current_task()
        try:
            for index in range(steps):
                if index > 0:
                    await self._sleep(delay)
                if self._countdown_tasks.get(lobby_id) is not me:
                    return
                try:
                    proceed = await on_step(lobby_id, index)
                except Exception:
                    logger.exception("countdown step failed", lobby_id=lobby_id, step=index)
                    return
                if not proceed:
                    return
        finally:
            if self._countdown_tasks.get(lobby_id) is me:
                self._countdown_tasks.pop(lobby_id, None)


def _cancel(task: asyncio.Task[None] | None) -> None:
    if task is None or task.done():
        return
    if task is asyncio.current_task():
        # Detached: the running loop notices and exits after this callback.
        return
    task.cancel()
