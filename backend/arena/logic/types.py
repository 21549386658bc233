"""
Pydantic views of lobby state sent to clients.

Only the fields enumerated here ever leave the server.
"""

from pydantic import BaseModel

from arena.logic.enums import LobbyPhase, TerminationCause


class PlayerView(BaseModel):
    player_id: str
    display_name: str
    join_order: int
    y: float
    velocity: float
    score: int
    terminated: bool
    termination_cause: TerminationCause | None = None
    passed_obstacle_ids: list[int]


class ObstacleView(BaseModel):
    obstacle_id: int
    x: float
    gap_top: float
    gap_bottom: float


class LobbySnapshot(BaseModel):
    """Full, self-contained view of a lobby at one point in time."""

    lobby_id: str
    phase: LobbyPhase
    host_id: str | None
    tick: int
    players: list[PlayerView]
    obstacles: list[ObstacleView]


class LobbyInfo(BaseModel):
    """Lobby summary for the lobby listing endpoint."""

    lobby_id: str
    phase: LobbyPhase
    player_count: int
    max_players: int
    players: list[str]
