"""
MessagePack framing for the arena WebSocket protocol.

Every frame in either direction is a single MessagePack map. Tick updates
are sent ~60 times a second per lobby, so encoding stays a thin wrapper
around the msgpack C extension.
"""

from enum import Enum
from typing import Any

import msgpack


class DecodeError(Exception):
    """Raised when an inbound frame is not a valid MessagePack map."""


# Size limits to prevent resource exhaustion from malicious payloads.
MAX_BUFFER_LEN = 256 * 1024
MAX_STR_LEN = 64 * 1024
MAX_BIN_LEN = 64 * 1024
MAX_ARRAY_LEN = 16 * 1024  # passed_obstacle_ids grows for the whole game
MAX_MAP_LEN = 256
MAX_EXT_LEN = 1024


def _default(obj: object) -> object:
    if isinstance(obj, Enum):
        return obj.value
    raise TypeError(f"cannot serialize {type(obj).__name__}")


def encode(data: dict[str, Any]) -> bytes:
    return msgpack.packb(data, default=_default)


def decode(data: bytes) -> dict[str, Any]:
    """
    Decode one frame into a dict.

    Raises DecodeError if the frame is malformed, not a map, or over the size limits.
    """
    if len(data) > MAX_BUFFER_LEN:
        raise DecodeError(f"payload too large: {len(data)} bytes (max {MAX_BUFFER_LEN})")
    try:
        result = msgpack.unpackb(
            data,
            raw=False,
            max_str_len=MAX_STR_LEN,
            max_bin_len=MAX_BIN_LEN,
            max_array_len=MAX_ARRAY_LEN,
            max_map_len=MAX_MAP_LEN,
            max_ext_len=MAX_EXT_LEN,
        )
    except (msgpack.UnpackException, ValueError) as e:
        raise DecodeError(f"failed to decode MessagePack data: {e}") from e

    if not isinstance(result, dict):
        raise DecodeError(f"expected map, got {type(result).__name__}")
    return result
