import pytest
from pydantic import ValidationError

from arena.logic.exceptions import LobbyError, LobbyFullError
from arena.messaging.router import error_code_for
from arena.messaging.types import (
    ClientMessageType,
    CreateLobbyMessage,
    JoinLobbyMessage,
    JumpMessage,
    PingMessage,
    SessionErrorCode,
    parse_client_message,
)
from arena.tests.mocks import MockConnection


class TestMessageRouterBranches:
    async def test_create_lobby_routes_to_manager(self, message_router, session_manager):
        conn = MockConnection()
        await message_router.handle_connect(conn)

        await message_router.handle_message(conn, {"type": "create_lobby", "display_name": "Ann"})

        assert conn.sent_messages[0]["type"] == "lobby_created"
        assert session_manager.registry.lobby_of(conn.connection_id) is not None

    async def test_invalid_message_returns_error(self, message_router):
        conn = MockConnection()
        await message_router.handle_connect(conn)

        await message_router.handle_message(conn, {"type": "fly_away"})

        assert conn.sent_messages[0]["type"] == "session_error"
        assert conn.sent_messages[0]["code"] == SessionErrorCode.INVALID_MESSAGE

    async def test_missing_type_returns_error(self, message_router):
        conn = MockConnection()
        await message_router.handle_message(conn, {"lobby_id": "abc"})
        assert conn.sent_messages[0]["code"] == SessionErrorCode.INVALID_MESSAGE

    async def test_unknown_lobby_rejected_to_requester_only(self, message_router):
        requester = MockConnection()
        bystander = MockConnection()
        await message_router.handle_connect(requester)
        await message_router.handle_connect(bystander)
        await message_router.handle_message(bystander, {"type": "create_lobby"})
        bystander.clear()

        await message_router.handle_message(requester, {"type": "join_lobby", "lobby_id": "nothere"})

        assert requester.sent_messages == [
            {
                "type": "session_error",
                "code": "lobby_not_found",
                "message": "Lobby does not exist",
                "lobby_id": "nothere",
            },
        ]
        assert bystander.sent_messages == []

    async def test_leave_without_lobby(self, message_router):
        conn = MockConnection()
        await message_router.handle_connect(conn)
        await message_router.handle_message(conn, {"type": "leave_lobby"})
        assert conn.sent_messages[0]["code"] == SessionErrorCode.NOT_IN_LOBBY

    async def test_restart_without_lobby(self, message_router):
        conn = MockConnection()
        await message_router.handle_message(conn, {"type": "restart_game"})
        assert conn.sent_messages[0]["code"] == SessionErrorCode.NOT_IN_LOBBY

    async def test_restart_while_waiting_is_invalid_transition(self, message_router):
        conn = MockConnection()
        await message_router.handle_connect(conn)
        await message_router.handle_message(conn, {"type": "create_lobby"})
        conn.clear()

        await message_router.handle_message(conn, {"type": "restart_game"})

        assert conn.sent_messages[0]["code"] == SessionErrorCode.INVALID_TRANSITION

    async def test_jump_outside_lobby_is_silent(self, message_router):
        conn = MockConnection()
        await message_router.handle_message(conn, {"type": "jump"})
        assert conn.sent_messages == []

    async def test_ping(self, message_router):
        conn = MockConnection()
        await message_router.handle_message(conn, {"type": "ping"})
        assert conn.sent_messages == [{"type": "pong"}]

    async def test_disconnect_leaves_lobby_and_unregisters(self, message_router, session_manager):
        conn = MockConnection()
        await message_router.handle_connect(conn)
        await message_router.handle_message(conn, {"type": "create_lobby"})
        assert session_manager.connection_count == 1

        await message_router.handle_disconnect(conn)

        assert session_manager.connection_count == 0
        assert session_manager.lobby_count == 0

    async def test_unexpected_exception_is_logged_not_raised(self, message_router, session_manager, monkeypatch):
        conn = MockConnection()

        async def explode(*_args, **_kwargs):
            raise KeyError("boom")

        monkeypatch.setattr(session_manager, "handle_ping", explode)

        await message_router.handle_message(conn, {"type": "ping"})

        assert conn.sent_messages == []

    async def test_transport_errors_propagate(self, message_router, session_manager, monkeypatch):
        conn = MockConnection()

        async def broken(*_args, **_kwargs):
            raise ConnectionError("gone")

        monkeypatch.setattr(session_manager, "handle_ping", broken)

        with pytest.raises(ConnectionError):
            await message_router.handle_message(conn, {"type": "ping"})


class TestErrorCodes:
    def test_known_error_maps_to_code(self):
        assert error_code_for(LobbyFullError("full")) == SessionErrorCode.LOBBY_FULL

    def test_subclass_inherits_parent_code(self):
        class TinyLobbyError(LobbyFullError):
            pass

        assert error_code_for(TinyLobbyError("tiny")) == SessionErrorCode.LOBBY_FULL

    def test_unmapped_base_error_falls_back(self):
        assert error_code_for(LobbyError("odd")) == SessionErrorCode.INVALID_TRANSITION


class TestParseClientMessage:
    def test_parse_each_type(self):
        assert isinstance(parse_client_message({"type": "create_lobby"}), CreateLobbyMessage)
        assert isinstance(parse_client_message({"type": "ping"}), PingMessage)
        jump = parse_client_message({"type": "jump", "lobby_id": "abc12345"})
        assert isinstance(jump, JumpMessage)
        assert jump.lobby_id == "abc12345"

    def test_parse_invalid_type_rejected(self):
        with pytest.raises(ValidationError):
            parse_client_message({"type": "teleport"})

    def test_join_requires_lobby_id(self):
        with pytest.raises(ValidationError):
            parse_client_message({"type": "join_lobby"})

    def test_join_message_fields(self):
        message = parse_client_message({"type": "join_lobby", "lobby_id": "ab12", "display_name": "  Zed  "})
        assert isinstance(message, JoinLobbyMessage)
        assert message.type == ClientMessageType.JOIN_LOBBY
        assert message.display_name == "Zed"


class TestInputValidation:
    def test_lobby_id_with_symbols_rejected(self):
        with pytest.raises(ValidationError):
            parse_client_message({"type": "join_lobby", "lobby_id": "../etc"})

    def test_lobby_id_too_long_rejected(self):
        with pytest.raises(ValidationError):
            parse_client_message({"type": "join_lobby", "lobby_id": "a" * 51})

    def test_display_name_control_characters_rejected(self):
        with pytest.raises(ValidationError, match="control characters"):
            parse_client_message({"type": "create_lobby", "display_name": "bad\x00name"})

    def test_display_name_too_long_rejected(self):
        with pytest.raises(ValidationError):
            parse_client_message({"type": "create_lobby", "display_name": "x" * 33})

    def test_blank_display_name_becomes_default(self):
        message = parse_client_message({"type": "create_lobby", "display_name": "   "})
        assert message.display_name is None
