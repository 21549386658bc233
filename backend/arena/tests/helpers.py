"""Shared builders for arena tests."""

from arena.logic.settings import GameSettings
from arena.logic.state import Lobby, Obstacle
from arena.messaging.encoder import decode, encode
from arena.session.manager import SessionManager
from arena.tests.mocks import ManualSleeper, MockConnection, drain


def create_lobby_state(
    lobby_id: str = "lobby1",
    *,
    players: int = 2,
    settings: GameSettings | None = None,
) -> Lobby:
    """Create a bare Lobby with sessions p0..pN-1 at the start position."""
    lobby = Lobby(lobby_id=lobby_id, settings=settings or GameSettings())
    for i in range(players):
        lobby.add_session(f"p{i}")
    return lobby


def create_obstacle(obstacle_id: int = 0, x: float = 400.0, gap_top: float = 150.0, gap_size: float = 200.0) -> Obstacle:
    return Obstacle(obstacle_id=obstacle_id, x=x, gap_top=gap_top, gap_size=gap_size)


async def start_two_player_game(
    manager: SessionManager,
    sleeper: ManualSleeper,
) -> tuple[str, MockConnection, MockConnection]:
    """Create a lobby, join a second player and run the countdown to completion.

    Returns (lobby_id, host, guest) with both outboxes cleared.
    """
    host = MockConnection("host-conn")
    guest = MockConnection("guest-conn")
    manager.register_connection(host)
    manager.register_connection(guest)

    await manager.create_lobby(host, display_name="Host")
    lobby_id = manager.registry.lobby_of(host.connection_id).lobby_id
    await manager.join_lobby(guest, lobby_id, display_name="Guest")
    await drain()
    await sleeper.advance(len(manager.settings.countdown_labels) - 1)

    host.clear()
    guest.clear()
    return lobby_id, host, guest


def send_ws(ws, data: dict) -> None:
    """Send a MessagePack-encoded message over a test WebSocket."""
    ws.send_bytes(encode(data))


def recv_ws(ws) -> dict:
    """Receive and decode a MessagePack message from a test WebSocket."""
    return decode(ws.receive_bytes())


def recv_until(ws, message_type: str, limit: int = 500) -> list[dict]:
    """Receive messages until one of message_type arrives. Return all of them."""
    messages = []
    for _ in range(limit):
        msg = recv_ws(ws)
        messages.append(msg)
        if msg.get("type") == message_type:
            return messages
    raise AssertionError(f"no {message_type} message within {limit} messages")
