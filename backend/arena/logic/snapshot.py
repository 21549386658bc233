from __future__ import annotations

from typing import TYPE_CHECKING

from arena.logic.types import LobbyInfo, LobbySnapshot, ObstacleView, PlayerView

if TYPE_CHECKING:
    from arena.logic.state import Lobby, Obstacle, PlayerSession


def player_view(session: PlayerSession) -> PlayerView:
    return PlayerView(
        player_id=session.session_id,
        display_name=session.display_name,
        join_order=session.join_order,
        y=session.y,
        velocity=session.velocity,
        score=session.score,
        terminated=session.terminated,
        termination_cause=session.termination_cause,
        passed_obstacle_ids=sorted(session.passed_obstacle_ids),
    )


def obstacle_view(obstacle: Obstacle) -> ObstacleView:
    return ObstacleView(
        obstacle_id=obstacle.obstacle_id,
        x=obstacle.x,
        gap_top=obstacle.gap_top,
        gap_bottom=obstacle.gap_bottom,
    )


def to_snapshot(lobby: Lobby) -> LobbySnapshot:
    """Project a lobby into its client-visible snapshot.

    Players are ordered by join order and passed obstacle ids are sorted so
    two snapshots of the same state are always identical.
    """
    return LobbySnapshot(
        lobby_id=lobby.lobby_id,
        phase=lobby.phase,
        host_id=lobby.host_id,
        tick=lobby.tick,
        players=[player_view(s) for s in lobby.ordered_sessions()],
        obstacles=[obstacle_view(o) for o in lobby.obstacles],
    )


def to_lobby_info(lobby: Lobby) -> LobbyInfo:
    return LobbyInfo(
        lobby_id=lobby.lobby_id,
        phase=lobby.phase,
        player_count=lobby.player_count,
        max_players=lobby.settings.max_players,
        players=lobby.player_names,
    )
