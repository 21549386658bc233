"""Mutable simulation state for lobbies, player sessions and obstacles.

Lobby state is owned by exactly one lobby and mutated only from that lobby's
handlers and timer callbacks, all running on the same event loop.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from arena.logic.enums import LobbyPhase, TerminationCause
from arena.logic.exceptions import InvalidTransitionError

if TYPE_CHECKING:
    from arena.logic.settings import GameSettings

DISPLAY_NAME_PREFIX = "P-"
_DISPLAY_NAME_ID_CHARS = 5

# The only phase edges a lobby may follow. COUNTDOWN -> WAITING is the abort
# path when the lobby drops below the minimum population mid-countdown.
ALLOWED_TRANSITIONS: dict[LobbyPhase, frozenset[LobbyPhase]] = {
    LobbyPhase.WAITING: frozenset({LobbyPhase.COUNTDOWN}),
    LobbyPhase.COUNTDOWN: frozenset({LobbyPhase.ACTIVE, LobbyPhase.WAITING}),
    LobbyPhase.ACTIVE: frozenset({LobbyPhase.FINISHED}),
    LobbyPhase.FINISHED: frozenset({LobbyPhase.WAITING}),
}


def default_display_name(session_id: str) -> str:
    return f"{DISPLAY_NAME_PREFIX}{session_id[:_DISPLAY_NAME_ID_CHARS]}"


@dataclass
class PlayerSession:
    """Per-connection simulation state inside a lobby.

    Lifecycle:
    - Created on create/join with join_order assigned by the lobby
    - Simulation fields reset on every game start and restart
    - terminated flips to True at most once per game; the session is then frozen
    - A mid-game joiner only scores obstacles from first_eligible_obstacle_id on
    """

    session_id: str
    display_name: str
    join_order: int
    y: float = 0.0
    velocity: float = 0.0
    score: int = 0
    terminated: bool = False
    termination_cause: TerminationCause | None = None
    passed_obstacle_ids: set[int] = field(default_factory=set)
    first_eligible_obstacle_id: int = 0

    def reset(self, start_y: float) -> None:
        """Reinitialize simulation fields, keeping identity, name and join order."""
        self.y = start_y
        self.velocity = 0.0
        self.score = 0
        self.terminated = False
        self.termination_cause = None
        self.passed_obstacle_ids = set()
        self.first_eligible_obstacle_id = 0

    def terminate(self, cause: TerminationCause) -> bool:
        """Mark the session terminated. Returns False if it already was."""
        if self.terminated:
            return False
        self.terminated = True
        self.termination_cause = cause
        self.velocity = 0.0
        return True


@dataclass
class Obstacle:
    obstacle_id: int
    x: float
    gap_top: float
    gap_size: float

    @property
    def gap_bottom(self) -> float:
        return self.gap_top + self.gap_size

    def right_edge(self, width: float) -> float:
        return self.x + width


@dataclass
class Lobby:
    """Aggregate of player sessions, obstacles and the lobby phase.

    Timer handles live in TimerManager, keyed by lobby_id.
    """

    lobby_id: str
    settings: GameSettings
    phase: LobbyPhase = LobbyPhase.WAITING
    sessions: dict[str, PlayerSession] = field(default_factory=dict)
    obstacles: list[Obstacle] = field(default_factory=list)
    next_obstacle_id: int = 0
    next_join_order: int = 0
    tick: int = 0

    @property
    def player_count(self) -> int:
        return len(self.sessions)

    @property
    def is_empty(self) -> bool:
        return self.player_count == 0

    @property
    def is_full(self) -> bool:
        return self.player_count >= self.settings.max_players

    @property
    def has_min_players(self) -> bool:
        return self.player_count >= self.settings.min_players

    @property
    def host_id(self) -> str | None:
        """Session with the lowest join order, never inferred from dict order."""
        if not self.sessions:
            return None
        return min(self.sessions.values(), key=lambda s: s.join_order).session_id

    @property
    def all_terminated(self) -> bool:
        return bool(self.sessions) and all(s.terminated for s in self.sessions.values())

    @property
    def player_names(self) -> list[str]:
        return [s.display_name for s in self.ordered_sessions()]

    def ordered_sessions(self) -> list[PlayerSession]:
        return sorted(self.sessions.values(), key=lambda s: s.join_order)

    def add_session(self, session_id: str, display_name: str | None = None) -> PlayerSession:
        session = PlayerSession(
            session_id=session_id,
            display_name=display_name or default_display_name(session_id),
            join_order=self.next_join_order,
            y=self.settings.start_y,
        )
        if self.phase == LobbyPhase.ACTIVE:
            session.first_eligible_obstacle_id = self._first_obstacle_ahead_of_body()
        self.next_join_order += 1
        self.sessions[session_id] = session
        return session

    def _first_obstacle_ahead_of_body(self) -> int:
        """Lowest obstacle id a body entering now has not yet flown past."""
        width = self.settings.obstacle_width
        ahead = [o.obstacle_id for o in self.obstacles if self.settings.body_x <= o.right_edge(width)]
        return min(ahead, default=self.next_obstacle_id)

    def remove_session(self, session_id: str) -> PlayerSession | None:
        return self.sessions.pop(session_id, None)

    def is_host(self, session_id: str) -> bool:
        return self.host_id == session_id

    def transition(self, target: LobbyPhase) -> None:
        """Move to target phase, rejecting any edge outside the state machine."""
        if target not in ALLOWED_TRANSITIONS[self.phase]:
            raise InvalidTransitionError(
                f"cannot move lobby from {self.phase} to {target}",
                lobby_id=self.lobby_id,
            )
        self.phase = target

    def reset_sessions(self) -> None:
        for session in self.sessions.values():
            session.reset(self.settings.start_y)
