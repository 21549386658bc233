"""
Authoritative per-tick physics, collision and scoring.

All functions here are synchronous and mutate a Lobby in place. They never
yield, so a tick is a single atomic unit of work from the event loop's point
of view. Timer ownership and broadcasting live in the session layer.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from arena.logic.enums import LobbyPhase, TerminationCause
from arena.logic.events import EngineEvent, PlayerCollisionEvent, SessionTerminatedEvent, TickResult
from arena.logic.obstacles import generate_obstacle

if TYPE_CHECKING:
    import random

    from arena.logic.settings import GameSettings
    from arena.logic.state import Lobby, Obstacle, PlayerSession

logger = structlog.get_logger()


def prepare_round(lobby: Lobby, rng: random.Random | None = None) -> None:
    """Reset sessions and seed the opening obstacles for a new game.

    Identity, display name and join order of every session are preserved.
    """
    settings = lobby.settings
    lobby.next_obstacle_id = 0
    lobby.tick = 0
    lobby.reset_sessions()
    lobby.obstacles = [
        generate_obstacle(lobby, settings.canvas_width + i * settings.spawn_interval, rng)
        for i in range(settings.initial_obstacles)
    ]


def clear_round(lobby: Lobby) -> None:
    """Return a lobby to its pre-game state after a finished game."""
    lobby.next_obstacle_id = 0
    lobby.tick = 0
    lobby.reset_sessions()
    lobby.obstacles = []


def apply_jump(lobby: Lobby, session_id: str) -> bool:
    """Apply the jump impulse. Returns False when the jump is ignored.

    Jumps outside the active phase or from a terminated session are expected
    races with authoritative termination, not errors.
    """
    if lobby.phase != LobbyPhase.ACTIVE:
        return False
    session = lobby.sessions.get(session_id)
    if session is None or session.terminated:
        return False
    session.velocity = lobby.settings.jump_impulse
    return True


def advance_obstacles(lobby: Lobby, rng: random.Random | None = None) -> None:
    """Scroll obstacles left, drop the ones fully off screen, spawn when due."""
    settings = lobby.settings
    for obstacle in lobby.obstacles:
        obstacle.x -= settings.obstacle_speed
    lobby.obstacles = [o for o in lobby.obstacles if o.right_edge(settings.obstacle_width) > 0]

    newest = lobby.obstacles[-1] if lobby.obstacles else None
    if newest is None or newest.x < settings.canvas_width - settings.spawn_interval:
        lobby.obstacles.append(generate_obstacle(lobby, settings.canvas_width, rng))


def _body_box(session: PlayerSession, settings: GameSettings) -> tuple[float, float, float, float]:
    """Return (left, right, top, bottom) of the body's bounding box."""
    half_w = settings.body_width / 2
    half_h = settings.body_height / 2
    return (
        settings.body_x - half_w,
        settings.body_x + half_w,
        session.y - half_h,
        session.y + half_h,
    )


def _check_boundaries(session: PlayerSession, settings: GameSettings) -> TerminationCause | None:
    _, _, top, bottom = _body_box(session, settings)
    half_h = settings.body_height / 2
    if bottom >= settings.floor_threshold:
        session.y = settings.floor_threshold - half_h
        session.terminate(TerminationCause.HIT_GROUND)
        return TerminationCause.HIT_GROUND
    if top <= settings.ceiling_threshold:
        session.y = settings.ceiling_threshold + half_h
        session.terminate(TerminationCause.HIT_CEILING)
        return TerminationCause.HIT_CEILING
    return None


def find_collision(
    session: PlayerSession,
    obstacles: list[Obstacle],
    settings: GameSettings,
) -> Obstacle | None:
    """Return the first obstacle whose solid bands overlap the body, if any."""
    left, right, top, bottom = _body_box(session, settings)
    for obstacle in obstacles:
        overlaps_x = right > obstacle.x and left < obstacle.right_edge(settings.obstacle_width)
        if overlaps_x and (top < obstacle.gap_top or bottom > obstacle.gap_bottom):
            return obstacle
    return None


def award_passed_obstacles(
    session: PlayerSession,
    obstacles: list[Obstacle],
    settings: GameSettings,
) -> int:
    """Credit every obstacle the body has fully passed and not yet scored.

    Idempotent: an obstacle id already in passed_obstacle_ids is never
    credited again. Returns the number of points awarded.
    """
    if session.terminated:
        return 0
    awarded = 0
    for obstacle in obstacles:
        if obstacle.obstacle_id < session.first_eligible_obstacle_id:
            continue
        if obstacle.obstacle_id in session.passed_obstacle_ids:
            continue
        if settings.body_x > obstacle.right_edge(settings.obstacle_width):
            session.passed_obstacle_ids.add(obstacle.obstacle_id)
            session.score += 1
            awarded += 1
    return awarded


def step_session(lobby: Lobby, session: PlayerSession) -> list[EngineEvent]:
    """Integrate, bound-check, collide and score a single live session."""
    if session.terminated:
        return []
    settings = lobby.settings
    events: list[EngineEvent] = []

    session.velocity += settings.gravity
    session.y += session.velocity

    cause = _check_boundaries(session, settings)
    if cause is not None:
        events.append(SessionTerminatedEvent(player_id=session.session_id, cause=cause))
        return events

    obstacle = find_collision(session, lobby.obstacles, settings)
    if obstacle is not None:
        session.terminate(TerminationCause.HIT_OBSTACLE)
        logger.debug(
            "player collided",
            lobby_id=lobby.lobby_id,
            player_id=session.session_id,
            obstacle_id=obstacle.obstacle_id,
        )
        events.append(PlayerCollisionEvent(player_id=session.session_id, obstacle_id=obstacle.obstacle_id))
        events.append(SessionTerminatedEvent(player_id=session.session_id, cause=TerminationCause.HIT_OBSTACLE))
        return events

    if award_passed_obstacles(session, lobby.obstacles, settings):
        logger.debug("player scored", lobby_id=lobby.lobby_id, player_id=session.session_id, score=session.score)
    return events


def run_tick(lobby: Lobby, rng: random.Random | None = None) -> TickResult:
    """Execute one tick body against an active lobby.

    Each session only reads the (already advanced) obstacle list and its own
    fields, so the result does not depend on session iteration order.
    """
    lobby.tick += 1
    advance_obstacles(lobby, rng)

    events: list[EngineEvent] = []
    for session in lobby.sessions.values():
        events.extend(step_session(lobby, session))

    return TickResult(tick=lobby.tick, events=tuple(events), all_terminated=lobby.all_terminated)
