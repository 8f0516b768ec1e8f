"""Domain error taxonomy raised by the deal room services.

Routers never catch these individually; the handlers in
``dealroom.core.errors`` turn them into the standard JSON envelope.
"""


class DealRoomError(Exception):
    """Base class for every error the workflow services raise on purpose."""

    error_code = "deal_room_error"

    def __init__(self, message: str, detail: object | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class NotFoundError(DealRoomError, LookupError):
    """A referenced room, offer, document, signature request or settlement is missing."""

    error_code = "not_found"


class InvalidStateError(DealRoomError, ValueError):
    """The target entity is not in the state the operation requires."""

    error_code = "invalid_state"


class ValidationError(DealRoomError, ValueError):
    """A required field is missing or malformed."""

    error_code = "validation_error"


class ConflictError(DealRoomError):
    """A concurrent mutation won the race (e.g. duplicate offer version)."""

    error_code = "conflict"


class PermissionDeniedError(DealRoomError, PermissionError):
    """The actor is not a participant allowed to act on the room or document."""

    error_code = "forbidden"
