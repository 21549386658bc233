"""Notification events produced by the tick engine.

These are informational for clients; the authoritative state is always the
snapshot broadcast at the end of the same tick.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from arena.logic.enums import TerminationCause


class EngineEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    player_id: str


class SessionTerminatedEvent(EngineEvent):
    cause: TerminationCause


class PlayerCollisionEvent(EngineEvent):
    obstacle_id: int


class TickResult(BaseModel):
    """Outcome of a single tick body."""

    model_config = ConfigDict(frozen=True)

    tick: int
    events: tuple[EngineEvent, ...] = ()
    all_terminated: bool = False
