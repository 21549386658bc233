"""Fan a single encoded message out to every connection in a lobby."""

from __future__ import annotations

import contextlib
from typing import TYPE_CHECKING, Any

from arena.messaging.encoder import encode

if TYPE_CHECKING:
    from collections.abc import Iterable

    from arena.messaging.protocol import ConnectionProtocol


async def broadcast_to_connections(
    connections: Iterable[ConnectionProtocol],
    message: dict[str, Any],
) -> None:
    """Send message to each connection.

    The payload is encoded once. The iterable is snapshotted via list() so a
    leave that lands while we yield on a send cannot break iteration. A
    failed send to one connection never prevents delivery to the others.
    """
    data = encode(message)
    for connection in list(connections):
        with contextlib.suppress(RuntimeError, OSError, ConnectionError):
            await connection.send_bytes(data)
