from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from arena.logic.exceptions import (
    AlreadyInLobbyError,
    InvalidTransitionError,
    LobbyError,
    LobbyFullError,
    LobbyNotFoundError,
    NotHostError,
    NotInLobbyError,
    ServerAtCapacityError,
)
from arena.messaging.types import (
    CreateLobbyMessage,
    ErrorMessage,
    JoinLobbyMessage,
    JumpMessage,
    LeaveLobbyMessage,
    PingMessage,
    RestartGameMessage,
    SessionErrorCode,
    parse_client_message,
)

if TYPE_CHECKING:
    from arena.messaging.protocol import ConnectionProtocol
    from arena.session.manager import SessionManager

logger = logging.getLogger(__name__)

_ERROR_CODES: dict[type[LobbyError], SessionErrorCode] = {
    LobbyNotFoundError: SessionErrorCode.LOBBY_NOT_FOUND,
    LobbyFullError: SessionErrorCode.LOBBY_FULL,
    AlreadyInLobbyError: SessionErrorCode.ALREADY_IN_LOBBY,
    NotInLobbyError: SessionErrorCode.NOT_IN_LOBBY,
    InvalidTransitionError: SessionErrorCode.INVALID_TRANSITION,
    NotHostError: SessionErrorCode.NOT_HOST,
    ServerAtCapacityError: SessionErrorCode.SERVER_AT_CAPACITY,
}


def error_code_for(error: LobbyError) -> SessionErrorCode:
    for error_type in type(error).__mro__:
        code = _ERROR_CODES.get(error_type)
        if code is not None:
            return code
    return SessionErrorCode.INVALID_TRANSITION


class MessageRouter:
    """
    Routes incoming messages to the session manager.

    Rejections are answered only to the requesting connection; nothing
    raised while handling one connection's message reaches another lobby.
    """

    def __init__(self, session_manager: SessionManager) -> None:
        self._session_manager = session_manager

    async def handle_message(
        self,
        connection: ConnectionProtocol,
        raw_message: dict[str, Any],
    ) -> None:
        try:
            message = parse_client_message(raw_message)
        except (ValidationError, KeyError, TypeError, ValueError) as e:
            logger.warning("invalid message from %s: %s", connection.connection_id, e)
            await connection.send_message(
                ErrorMessage(code=SessionErrorCode.INVALID_MESSAGE, message=str(e)).model_dump(),
            )
            return

        try:
            await self._dispatch(connection, message)
        except LobbyError as e:
            logger.info("request rejected for %s: %s", connection.connection_id, e)
            await connection.send_message(
                ErrorMessage(code=error_code_for(e), message=str(e), lobby_id=e.lobby_id).model_dump(),
            )
        except (RuntimeError, ConnectionError):
            # Transport failures end the connection loop in the endpoint.
            raise
        except Exception:
            logger.exception("unexpected error handling %s from %s", message.type, connection.connection_id)

    async def _dispatch(self, connection: ConnectionProtocol, message: Any) -> None:  # noqa: ANN401
        manager = self._session_manager
        if isinstance(message, JumpMessage):
            manager.jump(connection, lobby_id=message.lobby_id)
        elif isinstance(message, CreateLobbyMessage):
            await manager.create_lobby(connection, display_name=message.display_name)
        elif isinstance(message, JoinLobbyMessage):
            await manager.join_lobby(connection, message.lobby_id, display_name=message.display_name)
        elif isinstance(message, LeaveLobbyMessage):
            await manager.leave_lobby(connection)
        elif isinstance(message, RestartGameMessage):
            await manager.restart_game(connection)
        elif isinstance(message, PingMessage):
            await manager.handle_ping(connection)

    async def handle_connect(self, connection: ConnectionProtocol) -> None:
        self._session_manager.register_connection(connection)

    async def handle_disconnect(self, connection: ConnectionProtocol) -> None:
        await self._session_manager.handle_disconnect(connection)
        self._session_manager.unregister_connection(connection)
