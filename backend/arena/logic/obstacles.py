"""Procedural obstacle generation."""

from __future__ import annotations

import random
from typing import TYPE_CHECKING

from arena.logic.state import Obstacle

if TYPE_CHECKING:
    from arena.logic.settings import GameSettings
    from arena.logic.state import Lobby


def gap_top_range(settings: GameSettings) -> tuple[float, float]:
    """Inclusive bounds for gap_top keeping the whole gap on screen with margins."""
    low = settings.min_margin
    high = settings.play_area_height - settings.gap_size - settings.min_margin
    return low, high


def generate_obstacle(
    lobby: Lobby,
    x: float,
    rng: random.Random | None = None,
) -> Obstacle:
    """Create the next obstacle for a lobby at horizontal position x.

    Consumes one id from the lobby's monotonic counter.
    """
    settings = lobby.settings
    low, high = gap_top_range(settings)
    gap_top = (rng or random).uniform(low, high)
    obstacle = Obstacle(
        obstacle_id=lobby.next_obstacle_id,
        x=x,
        gap_top=gap_top,
        gap_size=settings.gap_size,
    )
    lobby.next_obstacle_id += 1
    return obstacle
