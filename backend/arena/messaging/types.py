from enum import StrEnum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, Field, TypeAdapter, field_validator

from arena.logic.enums import TerminationCause
from arena.logic.types import LobbySnapshot

# ASCII control character boundaries for input validation
_SPACE_ORD = 0x20
_DEL_ORD = 0x7F

_LOBBY_ID_FIELD = Field(min_length=1, max_length=50, pattern=r"^[a-zA-Z0-9_-]+$")


class ClientMessageType(StrEnum):
    CREATE_LOBBY = "create_lobby"
    JOIN_LOBBY = "join_lobby"
    LEAVE_LOBBY = "leave_lobby"
    JUMP = "jump"
    RESTART_GAME = "restart_game"
    PING = "ping"


class SessionMessageType(StrEnum):
    LOBBY_CREATED = "lobby_created"
    LOBBY_JOINED = "lobby_joined"
    LOBBY_LEFT = "lobby_left"
    LOBBY_STATE_UPDATED = "lobby_state_updated"
    GAME_STARTED = "game_started"
    TICK_UPDATE = "tick_update"
    GAME_FINISHED = "game_finished"
    GAME_RESTARTED = "game_restarted"
    WAITING_FOR_PLAYERS = "waiting_for_players"
    COUNTDOWN = "countdown"
    PLAYER_LEFT = "player_left"
    SESSION_TERMINATED = "session_terminated"
    PLAYER_COLLISION = "player_collision"
    ERROR = "session_error"
    PONG = "pong"


class SessionErrorCode(StrEnum):
    LOBBY_NOT_FOUND = "lobby_not_found"
    LOBBY_FULL = "lobby_full"
    ALREADY_IN_LOBBY = "already_in_lobby"
    NOT_IN_LOBBY = "not_in_lobby"
    INVALID_TRANSITION = "invalid_transition"
    NOT_HOST = "not_host"
    SERVER_AT_CAPACITY = "server_at_capacity"
    INVALID_MESSAGE = "invalid_message"


def _validate_display_name(v: str | None) -> str | None:
    if v is None:
        return None
    v = v.strip()
    if not v:
        return None
    if any(ord(c) < _SPACE_ORD or ord(c) == _DEL_ORD for c in v):
        raise ValueError("display_name must not contain control characters")
    return v


class CreateLobbyMessage(BaseModel):
    type: Literal[ClientMessageType.CREATE_LOBBY] = ClientMessageType.CREATE_LOBBY
    display_name: str | None = Field(default=None, max_length=32)

    _check_name = field_validator("display_name")(_validate_display_name)


class JoinLobbyMessage(BaseModel):
    type: Literal[ClientMessageType.JOIN_LOBBY] = ClientMessageType.JOIN_LOBBY
    lobby_id: str = _LOBBY_ID_FIELD
    display_name: str | None = Field(default=None, max_length=32)

    _check_name = field_validator("display_name")(_validate_display_name)


class LeaveLobbyMessage(BaseModel):
    type: Literal[ClientMessageType.LEAVE_LOBBY] = ClientMessageType.LEAVE_LOBBY


class JumpMessage(BaseModel):
    type: Literal[ClientMessageType.JUMP] = ClientMessageType.JUMP
    lobby_id: str | None = Field(default=None, max_length=50)


class RestartGameMessage(BaseModel):
    type: Literal[ClientMessageType.RESTART_GAME] = ClientMessageType.RESTART_GAME


class PingMessage(BaseModel):
    type: Literal[ClientMessageType.PING] = ClientMessageType.PING


ClientMessage = Annotated[
    CreateLobbyMessage | JoinLobbyMessage | LeaveLobbyMessage | JumpMessage | RestartGameMessage | PingMessage,
    Field(discriminator="type"),
]

_client_message_adapter = TypeAdapter(ClientMessage)


def parse_client_message(data: dict[str, Any]) -> ClientMessage:
    """Parse a raw dict into a typed ClientMessage."""
    return _client_message_adapter.validate_python(data)


# --- Server -> client ---


class LobbyCreatedMessage(BaseModel):
    type: Literal[SessionMessageType.LOBBY_CREATED] = SessionMessageType.LOBBY_CREATED
    lobby_id: str


class LobbyJoinedMessage(BaseModel):
    type: Literal[SessionMessageType.LOBBY_JOINED] = SessionMessageType.LOBBY_JOINED
    lobby_id: str
    lobby: LobbySnapshot


class LobbyLeftMessage(BaseModel):
    type: Literal[SessionMessageType.LOBBY_LEFT] = SessionMessageType.LOBBY_LEFT


class LobbyStateMessage(BaseModel):
    """Full snapshot broadcast; the type tells the client why it was sent."""

    type: Literal[
        SessionMessageType.LOBBY_STATE_UPDATED,
        SessionMessageType.GAME_STARTED,
        SessionMessageType.TICK_UPDATE,
        SessionMessageType.GAME_FINISHED,
        SessionMessageType.GAME_RESTARTED,
        SessionMessageType.WAITING_FOR_PLAYERS,
    ]
    lobby: LobbySnapshot


class CountdownMessage(BaseModel):
    type: Literal[SessionMessageType.COUNTDOWN] = SessionMessageType.COUNTDOWN
    step: int  # steps remaining, counting down to 0 on the final label
    label: str


class PlayerLeftMessage(BaseModel):
    type: Literal[SessionMessageType.PLAYER_LEFT] = SessionMessageType.PLAYER_LEFT
    player_id: str
    lobby: LobbySnapshot


class SessionTerminatedMessage(BaseModel):
    type: Literal[SessionMessageType.SESSION_TERMINATED] = SessionMessageType.SESSION_TERMINATED
    player_id: str
    cause: TerminationCause


class PlayerCollisionMessage(BaseModel):
    type: Literal[SessionMessageType.PLAYER_COLLISION] = SessionMessageType.PLAYER_COLLISION
    player_id: str
    obstacle_id: int


class ErrorMessage(BaseModel):
    type: Literal[SessionMessageType.ERROR] = SessionMessageType.ERROR
    code: SessionErrorCode
    message: str
    lobby_id: str | None = None


class PongMessage(BaseModel):
    type: Literal[SessionMessageType.PONG] = SessionMessageType.PONG
