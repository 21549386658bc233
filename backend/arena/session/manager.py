from __future__ import annotations

import asyncio
import contextlib
import random
from typing import TYPE_CHECKING, Any

import structlog

from arena.logic import engine
from arena.logic.enums import LobbyPhase
from arena.logic.events import PlayerCollisionEvent, SessionTerminatedEvent
from arena.logic.exceptions import (
    AlreadyInLobbyError,
    InvalidTransitionError,
    LobbyNotFoundError,
    NotHostError,
    NotInLobbyError,
)
from arena.logic.settings import GameSettings
from arena.logic.snapshot import to_snapshot
from arena.messaging.types import (
    CountdownMessage,
    LobbyCreatedMessage,
    LobbyJoinedMessage,
    LobbyLeftMessage,
    LobbyStateMessage,
    PlayerCollisionMessage,
    PlayerLeftMessage,
    PongMessage,
    SessionMessageType,
    SessionTerminatedMessage,
)
from arena.session.broadcast import broadcast_to_connections
from arena.session.registry import LobbyRegistry
from arena.session.timer_manager import TimerManager

if TYPE_CHECKING:
    from arena.logic.events import EngineEvent
    from arena.logic.state import Lobby
    from arena.logic.types import LobbyInfo
    from arena.messaging.protocol import ConnectionProtocol
    from arena.session.registry import LeaveOutcome
    from arena.session.timer_manager import SleepFunc

logger = structlog.get_logger()


class SessionManager:
    """Translate client intents into lobby operations and drive each lobby's clock.

    Every handler and timer callback for a lobby runs under that lobby's
    asyncio.Lock: validation, mutation, snapshot and broadcast form one unit,
    so members receive snapshots in the order they were generated. Jumps are
    the exception; they are a single synchronous field write with no
    broadcast.
    """

    def __init__(
        self,
        settings: GameSettings | None = None,
        *,
        max_lobbies: int = 0,
        rng: random.Random | None = None,
        sleep: SleepFunc | None = None,
    ) -> None:
        self._settings = settings or GameSettings()
        self._rng = rng or random.Random()
        self._timers = TimerManager(sleep=sleep)
        self._registry = LobbyRegistry(self._timers, self._settings, max_lobbies=max_lobbies)
        self._connections: dict[str, ConnectionProtocol] = {}
        self._lobby_locks: dict[str, asyncio.Lock] = {}

    @property
    def registry(self) -> LobbyRegistry:
        return self._registry

    @property
    def timers(self) -> TimerManager:
        return self._timers

    @property
    def settings(self) -> GameSettings:
        return self._settings

    @property
    def lobby_count(self) -> int:
        return self._registry.lobby_count

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    def get_lobbies_info(self) -> list[LobbyInfo]:
        return self._registry.lobbies_info()

    def register_connection(self, connection: ConnectionProtocol) -> None:
        self._connections[connection.connection_id] = connection

    def unregister_connection(self, connection: ConnectionProtocol) -> None:
        self._connections.pop(connection.connection_id, None)

    def shutdown(self) -> None:
        """Destroy every lobby and cancel any stray timer. Used on server shutdown."""
        self._registry.destroy_all()
        self._timers.cancel_all()
        self._lobby_locks.clear()

    # --- Client intents ---

    async def create_lobby(self, connection: ConnectionProtocol, display_name: str | None = None) -> None:
        lobby = self._registry.create_lobby(connection.connection_id, display_name)
        async with self._lock_for(lobby.lobby_id):
            await connection.send_message(LobbyCreatedMessage(lobby_id=lobby.lobby_id).model_dump())
            await self._broadcast_state(lobby, SessionMessageType.LOBBY_STATE_UPDATED)

    async def join_lobby(
        self,
        connection: ConnectionProtocol,
        lobby_id: str,
        display_name: str | None = None,
    ) -> None:
        session_id = connection.connection_id
        if self._registry.get(lobby_id) is None:
            raise LobbyNotFoundError("Lobby does not exist", lobby_id=lobby_id)

        async with self._lock_for(lobby_id):
            try:
                lobby = self._registry.join_lobby(lobby_id, session_id, display_name)
            except AlreadyInLobbyError:
                current = self._registry.lobby_of(session_id)
                if current is not None and current.lobby_id == lobby_id:
                    # Re-affirm membership: resend state, then report the duplicate.
                    await self._broadcast_state(current, SessionMessageType.LOBBY_STATE_UPDATED)
                raise

            if lobby.phase == LobbyPhase.WAITING and lobby.has_min_players:
                self._begin_countdown(lobby)

            await connection.send_message(
                LobbyJoinedMessage(lobby_id=lobby_id, lobby=to_snapshot(lobby)).model_dump(),
            )
            await self._broadcast_state(lobby, SessionMessageType.LOBBY_STATE_UPDATED)

    async def leave_lobby(self, connection: ConnectionProtocol, *, notify_player: bool = True) -> None:
        lobby = self._registry.lobby_of(connection.connection_id)
        if lobby is None:
            raise NotInLobbyError("You are not currently in a lobby")

        async with self._lock_for(lobby.lobby_id):
            outcome = self._registry.leave(lobby.lobby_id, connection.connection_id)
            if notify_player:
                with contextlib.suppress(RuntimeError, OSError, ConnectionError):
                    await connection.send_message(LobbyLeftMessage().model_dump())
            await self._announce_departure(outcome)

        if outcome.destroyed:
            self._lobby_locks.pop(lobby.lobby_id, None)

    async def handle_disconnect(self, connection: ConnectionProtocol) -> None:
        """Transport dropped: indistinguishable from a silent leave."""
        lobby = self._registry.lobby_of(connection.connection_id)
        if lobby is None:
            return

        async with self._lock_for(lobby.lobby_id):
            outcome = self._registry.disconnect(connection.connection_id)
            if outcome is None:
                return
            logger.info("player disconnected", lobby_id=lobby.lobby_id, player_id=connection.connection_id)
            await self._announce_departure(outcome)

        if outcome.destroyed:
            self._lobby_locks.pop(lobby.lobby_id, None)

    def jump(self, connection: ConnectionProtocol, lobby_id: str | None = None) -> bool:
        """Apply a jump impulse. Stale or misdirected jumps are silently ignored."""
        lobby = self._registry.lobby_of(connection.connection_id)
        if lobby is None or (lobby_id is not None and lobby_id != lobby.lobby_id):
            logger.debug("jump ignored, not in lobby", player_id=connection.connection_id, lobby_id=lobby_id)
            return False
        applied = engine.apply_jump(lobby, connection.connection_id)
        if not applied:
            logger.debug(
                "jump ignored",
                lobby_id=lobby.lobby_id,
                player_id=connection.connection_id,
                phase=lobby.phase,
            )
        return applied

    async def restart_game(self, connection: ConnectionProtocol) -> None:
        """Host-only: return a finished lobby to waiting and re-arm the countdown."""
        lobby = self._registry.lobby_of(connection.connection_id)
        if lobby is None:
            raise NotInLobbyError("You are not currently in a lobby")

        async with self._lock_for(lobby.lobby_id):
            if self._registry.get(lobby.lobby_id) is not lobby:
                raise LobbyNotFoundError("Lobby does not exist", lobby_id=lobby.lobby_id)
            if not lobby.is_host(connection.connection_id):
                raise NotHostError("Only the lobby host can restart the game", lobby_id=lobby.lobby_id)
            if lobby.phase != LobbyPhase.FINISHED:
                raise InvalidTransitionError("Game can only be restarted when finished", lobby_id=lobby.lobby_id)

            lobby.transition(LobbyPhase.WAITING)
            engine.clear_round(lobby)
            self._check_timer_invariant(lobby)
            logger.info("game restarted", lobby_id=lobby.lobby_id, host_id=connection.connection_id)
            await self._broadcast_state(lobby, SessionMessageType.GAME_RESTARTED)

            if lobby.has_min_players:
                self._begin_countdown(lobby)
                await self._broadcast_state(lobby, SessionMessageType.LOBBY_STATE_UPDATED)
            else:
                await self._broadcast_state(lobby, SessionMessageType.WAITING_FOR_PLAYERS)

    async def handle_ping(self, connection: ConnectionProtocol) -> None:
        await connection.send_message(PongMessage().model_dump())

    # --- Countdown sequencer ---

    def _begin_countdown(self, lobby: Lobby) -> None:
        lobby.transition(LobbyPhase.COUNTDOWN)
        self._timers.start_countdown(
            lobby.lobby_id,
            steps=len(self._settings.countdown_labels),
            delay=self._settings.countdown_step_seconds,
            on_step=self._on_countdown_step,
        )
        logger.info("countdown started", lobby_id=lobby.lobby_id)

    async def _on_countdown_step(self, lobby_id: str, index: int) -> bool:
        if self._registry.get(lobby_id) is None:
            logger.warning("countdown step for destroyed lobby", lobby_id=lobby_id, step=index)
            return False

        async with self._lock_for(lobby_id):
            lobby = self._registry.get(lobby_id)
            if lobby is None or lobby.phase != LobbyPhase.COUNTDOWN or not lobby.has_min_players:
                logger.warning("countdown step no longer applies", lobby_id=lobby_id, step=index)
                return False

            labels = self._settings.countdown_labels
            remaining = len(labels) - 1 - index
            await self._broadcast(lobby, CountdownMessage(step=remaining, label=labels[index]).model_dump())
            if remaining > 0:
                return True

            await self._start_game(lobby)
            return False

    # --- Tick engine driver ---

    async def _start_game(self, lobby: Lobby) -> None:
        """Enter the active phase. Caller must hold the lobby lock."""
        lobby_id = lobby.lobby_id
        self._timers.cancel_tick(lobby_id)
        self._timers.cancel_countdown(lobby_id)
        lobby.transition(LobbyPhase.ACTIVE)
        engine.prepare_round(lobby, self._rng)
        logger.info("game started", lobby_id=lobby_id, player_count=lobby.player_count)

        await self._broadcast_state(lobby, SessionMessageType.GAME_STARTED)

        if self._registry.get(lobby_id) is not lobby or lobby.phase != LobbyPhase.ACTIVE:
            return
        self._timers.start_tick_loop(lobby_id, self._settings.tick_interval_seconds, self._on_tick)
        self._check_timer_invariant(lobby)

    async def _on_tick(self, lobby_id: str) -> bool:
        if self._registry.get(lobby_id) is None:
            logger.warning("tick for destroyed lobby", lobby_id=lobby_id)
            return False

        async with self._lock_for(lobby_id):
            lobby = self._registry.get(lobby_id)
            if lobby is None or lobby.phase != LobbyPhase.ACTIVE:
                logger.warning("tick outside active phase", lobby_id=lobby_id)
                return False

            result = engine.run_tick(lobby, self._rng)
            finished = result.all_terminated
            if finished:
                self._timers.cancel_tick(lobby_id)
                lobby.transition(LobbyPhase.FINISHED)
                self._check_timer_invariant(lobby)
                logger.info("game finished", lobby_id=lobby_id, tick=result.tick)

            snapshot = to_snapshot(lobby)
            for event in result.events:
                await self._broadcast(lobby, _event_message(event))
            await self._broadcast(
                lobby,
                LobbyStateMessage(type=SessionMessageType.TICK_UPDATE, lobby=snapshot).model_dump(),
            )
            if finished:
                await self._broadcast(
                    lobby,
                    LobbyStateMessage(type=SessionMessageType.GAME_FINISHED, lobby=snapshot).model_dump(),
                )
            return not finished

    # --- Internal helpers ---

    async def _announce_departure(self, outcome: LeaveOutcome) -> None:
        """Broadcast the aftermath of a leave or disconnect. Caller holds the lock."""
        if outcome.destroyed:
            return
        lobby = outcome.lobby
        snapshot = to_snapshot(lobby)
        await self._broadcast(
            lobby,
            PlayerLeftMessage(player_id=outcome.session.session_id, lobby=snapshot).model_dump(),
        )
        await self._broadcast(
            lobby,
            LobbyStateMessage(type=SessionMessageType.LOBBY_STATE_UPDATED, lobby=snapshot).model_dump(),
        )
        if outcome.finished:
            await self._broadcast(
                lobby,
                LobbyStateMessage(type=SessionMessageType.GAME_FINISHED, lobby=snapshot).model_dump(),
            )
        elif outcome.countdown_aborted:
            await self._broadcast(
                lobby,
                LobbyStateMessage(type=SessionMessageType.WAITING_FOR_PLAYERS, lobby=snapshot).model_dump(),
            )
        self._check_timer_invariant(lobby)

    def _check_timer_invariant(self, lobby: Lobby) -> None:
        """Log (never raise) if a lobby owns a timer its phase does not allow."""
        lobby_id = lobby.lobby_id
        if self._timers.has_tick(lobby_id) and lobby.phase != LobbyPhase.ACTIVE:
            logger.warning("tick timer alive outside active phase", lobby_id=lobby_id, phase=lobby.phase)
            self._timers.cancel_tick(lobby_id)
        if self._timers.has_countdown(lobby_id) and lobby.phase != LobbyPhase.COUNTDOWN:
            logger.warning("countdown alive outside countdown phase", lobby_id=lobby_id, phase=lobby.phase)
            self._timers.cancel_countdown(lobby_id)

    def _lock_for(self, lobby_id: str) -> asyncio.Lock:
        lock = self._lobby_locks.get(lobby_id)
        if lock is None:
            lock = asyncio.Lock()
            self._lobby_locks[lobby_id] = lock
        return lock

    async def _broadcast_state(self, lobby: Lobby, message_type: SessionMessageType) -> None:
        message = LobbyStateMessage(type=message_type, lobby=to_snapshot(lobby))
        await self._broadcast(lobby, message.model_dump())

    async def _broadcast(self, lobby: Lobby, message: dict[str, Any]) -> None:
        connections = [self._connections[sid] for sid in lobby.sessions if sid in self._connections]
        await broadcast_to_connections(connections, message)


def _event_message(event: EngineEvent) -> dict[str, Any]:
    if isinstance(event, PlayerCollisionEvent):
        return PlayerCollisionMessage(player_id=event.player_id, obstacle_id=event.obstacle_id).model_dump()
    if isinstance(event, SessionTerminatedEvent):
        return SessionTerminatedMessage(player_id=event.player_id, cause=event.cause).model_dump()
    raise TypeError(f"unknown engine event {type(event).__name__}")
