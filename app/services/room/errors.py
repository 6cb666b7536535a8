"""Room-domain errors.

Every error carries a stable ``error_code`` that the REST and WebSocket layers
forward to clients.
"""


class RoomError(Exception):
    """Base class for room-domain errors."""

    error_code = "INTERNAL_ERROR"
    default_message = "Room operation failed"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class NotFoundError(RoomError):
    error_code = "NOT_FOUND"
    default_message = "Not found"


class RoomNotFoundError(NotFoundError):
    error_code = "ROOM_NOT_FOUND"
    default_message = "Room not found"


class PlayerNotFoundError(NotFoundError):
    error_code = "PLAYER_NOT_FOUND"
    default_message = "Player is not in this room"


class GameCodeConflictError(RoomError):
    """Raised by a store when the game code is held by another room."""

    error_code = "CODE_CONFLICT"
    default_message = "Game code already in use"


class ForbiddenError(RoomError):
    error_code = "FORBIDDEN"
    default_message = "Only the host can do that"


class InvalidTargetError(RoomError):
    error_code = "INVALID_TARGET"
    default_message = "The host cannot kick themselves"


class RoomFullError(RoomError):
    error_code = "ROOM_FULL"
    default_message = "Room is full"


class InvalidStateError(RoomError):
    error_code = "INVALID_STATE"
    default_message = "Action not allowed in the current room status"


class AlreadyStartedError(InvalidStateError):
    error_code = "ALREADY_STARTED"
    default_message = "Game has already started"


class CodeExhaustedError(RoomError):
    error_code = "CODE_EXHAUSTED"
    default_message = "Could not allocate a unique game code"


class InvalidArgumentError(RoomError):
    error_code = "VALIDATION_ERROR"
    default_message = "Invalid request"


class ConcurrentUpdateError(RoomError):
    """Raised when a room kept changing underneath a write; safe to retry."""

    error_code = "CONCURRENT_UPDATE"
    default_message = "Room was modified concurrently, please retry"


class VersionConflictError(RoomError):
    """Raised by a store when a guarded write sees a newer document revision."""

    error_code = "VERSION_CONFLICT"
    default_message = "Room revision changed"

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"expected version {expected}, found {actual}")
