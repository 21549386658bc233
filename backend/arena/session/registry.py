"""Process-wide lobby table: creation, lookup, membership and teardown."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING
from uuid import uuid4

import structlog

from arena.logic.enums import LobbyPhase
from arena.logic.exceptions import (
    AlreadyInLobbyError,
    LobbyFullError,
    LobbyNotFoundError,
    NotInLobbyError,
    ServerAtCapacityError,
)
from arena.logic.settings import GameSettings
from arena.logic.snapshot import to_lobby_info
from arena.logic.state import Lobby

if TYPE_CHECKING:
    from arena.logic.state import PlayerSession
    from arena.logic.types import LobbyInfo
    from arena.session.timer_manager import TimerManager

logger = structlog.get_logger()

LOBBY_ID_LENGTH = 8


@dataclass(frozen=True)
class LeaveOutcome:
    """What a leave or disconnect did to the lobby."""

    lobby: Lobby
    session: PlayerSession
    destroyed: bool = False
    finished: bool = False
    countdown_aborted: bool = False


class LobbyRegistry:
    """Own every live lobby and the connection -> lobby membership index.

    destroy() is the only way a lobby leaves the table, and it always cancels
    the lobby's timers first. All operations are synchronous; callers
    broadcast afterwards.
    """

    def __init__(
        self,
        timers: TimerManager,
        settings: GameSettings | None = None,
        max_lobbies: int = 0,
    ) -> None:
        self._timers = timers
        self._settings = settings or GameSettings()
        self._max_lobbies = max_lobbies
        self._lobbies: dict[str, Lobby] = {}
        self._memberships: dict[str, str] = {}  # session_id -> lobby_id

    @property
    def lobby_count(self) -> int:
        return len(self._lobbies)

    @property
    def player_count(self) -> int:
        return len(self._memberships)

    def get(self, lobby_id: str) -> Lobby | None:
        return self._lobbies.get(lobby_id)

    def lobby_of(self, session_id: str) -> Lobby | None:
        lobby_id = self._memberships.get(session_id)
        return self._lobbies.get(lobby_id) if lobby_id is not None else None

    def lobbies_info(self) -> list[LobbyInfo]:
        return [to_lobby_info(lobby) for lobby in self._lobbies.values()]

    def count_by_phase(self) -> dict[str, int]:
        counts = {phase.value: 0 for phase in LobbyPhase}
        for lobby in self._lobbies.values():
            counts[lobby.phase.value] += 1
        return counts

    def create_lobby(self, session_id: str, display_name: str | None = None) -> Lobby:
        """Create a waiting lobby with the caller as its first session."""
        existing = self.lobby_of(session_id)
        if existing is not None:
            raise AlreadyInLobbyError("You are already in a lobby", lobby_id=existing.lobby_id)
        if self._max_lobbies and len(self._lobbies) >= self._max_lobbies:
            raise ServerAtCapacityError("Server is at capacity")

        lobby = Lobby(lobby_id=self._generate_lobby_id(), settings=self._settings)
        lobby.add_session(session_id, display_name)
        self._lobbies[lobby.lobby_id] = lobby
        self._memberships[session_id] = lobby.lobby_id
        logger.info("lobby created", lobby_id=lobby.lobby_id, player_id=session_id)
        return lobby

    def join_lobby(self, lobby_id: str, session_id: str, display_name: str | None = None) -> Lobby:
        """Add the caller to an existing lobby."""
        lobby = self._lobbies.get(lobby_id)
        if lobby is None:
            raise LobbyNotFoundError("Lobby does not exist", lobby_id=lobby_id)

        if lobby.is_full:
            raise LobbyFullError("Lobby is full", lobby_id=lobby_id)

        current = self._memberships.get(session_id)
        if current is not None:
            raise AlreadyInLobbyError("You are already in a lobby", lobby_id=current)

        session = lobby.add_session(session_id, display_name)
        self._memberships[session_id] = lobby_id
        logger.info(
            "player joined lobby",
            lobby_id=lobby_id,
            player_id=session_id,
            join_order=session.join_order,
            player_count=lobby.player_count,
        )
        return lobby

    def leave(self, lobby_id: str, session_id: str) -> LeaveOutcome:
        """Remove a session, destroying or settling the lobby as needed."""
        if self._memberships.get(session_id) != lobby_id:
            raise NotInLobbyError("You are not in this lobby", lobby_id=lobby_id)
        lobby = self._lobbies.get(lobby_id)
        if lobby is None:
            # Stale membership for a lobby that no longer exists.
            self._memberships.pop(session_id, None)
            raise NotInLobbyError("You are not in this lobby", lobby_id=lobby_id)

        session = lobby.remove_session(session_id)
        self._memberships.pop(session_id, None)
        if session is None:
            raise NotInLobbyError("You are not in this lobby", lobby_id=lobby_id)

        logger.info("player left lobby", lobby_id=lobby_id, player_id=session_id, player_count=lobby.player_count)

        if lobby.is_empty:
            self.destroy(lobby_id)
            return LeaveOutcome(lobby=lobby, session=session, destroyed=True)

        if lobby.phase == LobbyPhase.ACTIVE and lobby.all_terminated:
            self._timers.cancel_tick(lobby_id)
            lobby.transition(LobbyPhase.FINISHED)
            logger.info("game finished after leave", lobby_id=lobby_id)
            return LeaveOutcome(lobby=lobby, session=session, finished=True)

        if lobby.phase == LobbyPhase.COUNTDOWN and not lobby.has_min_players:
            self._timers.cancel_countdown(lobby_id)
            lobby.transition(LobbyPhase.WAITING)
            logger.info("countdown aborted, not enough players", lobby_id=lobby_id)
            return LeaveOutcome(lobby=lobby, session=session, countdown_aborted=True)

        return LeaveOutcome(lobby=lobby, session=session)

    def disconnect(self, session_id: str) -> LeaveOutcome | None:
        """Transport-level drop: same effect as leave, None if not in a lobby."""
        lobby_id = self._memberships.get(session_id)
        if lobby_id is None:
            return None
        try:
            return self.leave(lobby_id, session_id)
        except NotInLobbyError:
            return None

    def destroy(self, lobby_id: str) -> None:
        """Cancel the lobby's timers, drop its memberships and remove it."""
        self._timers.cleanup_lobby(lobby_id)
        lobby = self._lobbies.pop(lobby_id, None)
        if lobby is None:
            return
        for session_id in list(lobby.sessions):
            self._memberships.pop(session_id, None)
        logger.info("lobby destroyed", lobby_id=lobby_id)

    def destroy_all(self) -> None:
        for lobby_id in list(self._lobbies):
            self.destroy(lobby_id)

    def _generate_lobby_id(self) -> str:
        while True:
            lobby_id = uuid4().hex[:LOBBY_ID_LENGTH]
            if lobby_id not in self._lobbies:
                return lobby_id
