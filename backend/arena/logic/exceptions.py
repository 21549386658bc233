"""Typed domain exceptions for lobby membership and lifecycle rules.

Every expected, recoverable rejection is a subclass of LobbyError. The
registry and session manager raise them; MessageRouter converts them into a
session_error reply for the requesting connection only.
"""


class LobbyError(Exception):
    """Base exception for rejected lobby operations.

    Attributes:
        lobby_id: The lobby the rejected request referred to, if known.

    """

    def __init__(self, message: str, *, lobby_id: str | None = None) -> None:
        self.lobby_id = lobby_id
        super().__init__(message)


class LobbyNotFoundError(LobbyError):
    """Lobby id does not exist in the registry."""


class LobbyFullError(LobbyError):
    """Lobby has reached its player capacity."""


class AlreadyInLobbyError(LobbyError):
    """Connection is already a member of a lobby."""


class NotInLobbyError(LobbyError):
    """Connection is not a member of the lobby it referred to."""


class InvalidTransitionError(LobbyError):
    """Action is not legal in the lobby's current phase."""


class NotHostError(LobbyError):
    """A non-host member attempted a host-only action."""


class ServerAtCapacityError(LobbyError):
    """The server already hosts its configured maximum number of lobbies."""
