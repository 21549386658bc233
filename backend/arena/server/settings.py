"""Arena server configuration via environment variables."""

import json
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode

from arena.logic.settings import GameSettings


def parse_cors_origins(value: str | list[str]) -> list[str]:
    """Accept a list, a JSON array string, or a comma-separated string."""
    if isinstance(value, list):
        origins = value
    elif value.strip().startswith("["):
        try:
            origins = json.loads(value)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON array: {e}") from e
        if not isinstance(origins, list) or not all(isinstance(item, str) for item in origins):
            raise ValueError("JSON value must be an array of strings")
    else:
        origins = [origin.strip() for origin in value.split(",") if origin.strip()]
    if not origins:
        raise ValueError("cors_origins must not be empty")
    return origins


class GameServerSettings(BaseSettings):
    model_config = {"env_prefix": "ARENA_"}

    max_lobbies: int = Field(default=500, ge=1)
    log_dir: str | None = None
    cors_origins: Annotated[list[str], NoDecode] = ["http://localhost:3000"]

    # Gameplay overrides applied on top of GameSettings defaults.
    tick_interval_ms: int = Field(default=16, ge=1)
    countdown_step_seconds: float = Field(default=1.0, ge=0)
    max_players: int = Field(default=2, ge=2, le=16)

    @field_validator("cors_origins", mode="before")
    @classmethod
    def validate_cors_origins(cls, v: str | list[str]) -> list[str]:
        return parse_cors_origins(v)

    def to_game_settings(self) -> GameSettings:
        return GameSettings(
            tick_interval_ms=self.tick_interval_ms,
            countdown_step_seconds=self.countdown_step_seconds,
            max_players=self.max_players,
        )
