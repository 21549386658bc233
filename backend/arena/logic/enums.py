from enum import StrEnum


class LobbyPhase(StrEnum):
    WAITING = "waiting"
    COUNTDOWN = "countdown"
    ACTIVE = "active"
    FINISHED = "finished"


class TerminationCause(StrEnum):
    """Why a player's run ended."""

    HIT_GROUND = "hit_ground"
    HIT_CEILING = "hit_ceiling"
    HIT_OBSTACLE = "hit_obstacle"
