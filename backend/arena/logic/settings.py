"""Centralized tuning constants for the arena simulation.

Numeric values are tuning, not contract: only the mechanisms built on them
(single discrete increment per obstacle, set-guarded scoring, clamped
boundaries) are fixed.
"""

from __future__ import annotations

from typing import Self

from pydantic import BaseModel, ConfigDict, Field, model_validator


class GameSettings(BaseModel):
    """Configuration for a lobby's physics, geometry and pacing."""

    model_config = ConfigDict(frozen=True)

    # --- Physics ---
    gravity: float = 0.25
    jump_impulse: float = Field(default=-7.0, lt=0)
    tick_interval_ms: int = Field(default=16, ge=1)

    # --- Body geometry ---
    start_y: float = 250.0
    body_x: float = 50.0
    body_width: float = Field(default=34.0, gt=0)
    body_height: float = Field(default=24.0, gt=0)

    # --- Play area ---
    play_area_height: float = Field(default=500.0, gt=0)
    canvas_width: float = Field(default=400.0, gt=0)

    # --- Obstacles ---
    obstacle_width: float = Field(default=50.0, gt=0)
    gap_size: float = Field(default=200.0, gt=0)
    obstacle_speed: float = Field(default=3.0, gt=0)
    spawn_interval: float = Field(default=300.0, gt=0)
    min_margin: float = Field(default=50.0, ge=0)
    initial_obstacles: int = Field(default=2, ge=1)

    # --- Lobby ---
    max_players: int = Field(default=2, ge=1)
    min_players: int = Field(default=2, ge=1)
    countdown_labels: tuple[str, ...] = ("3", "2", "1", "Go!")
    countdown_step_seconds: float = Field(default=1.0, ge=0)

    @model_validator(mode="after")
    def _validate_geometry(self) -> Self:
        if self.play_area_height - self.gap_size - 2 * self.min_margin < 0:
            raise ValueError("gap_size and min_margin do not fit inside play_area_height")
        if not (0 < self.start_y < self.floor_threshold):
            raise ValueError("start_y must lie strictly between the ceiling and the floor")
        if self.min_players > self.max_players:
            raise ValueError("min_players cannot exceed max_players")
        if not self.countdown_labels:
            raise ValueError("countdown_labels must not be empty")
        return self

    @property
    def floor_threshold(self) -> float:
        """Y coordinate the body's bottom edge may not reach."""
        return self.play_area_height - self.body_height

    @property
    def ceiling_threshold(self) -> float:
        return 0.0

    @property
    def tick_interval_seconds(self) -> float:
        return self.tick_interval_ms / 1000
