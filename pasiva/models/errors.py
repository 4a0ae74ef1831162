# pasiva/models/errors.py
from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar

T = TypeVar("T")

class RoomErrorKind(Enum):
    ROOM_NOT_FOUND = "room_not_found"
    ROOM_ID_GENERATION_FAILED = "room_id_generation_failed"
    NETWORK_ERROR = "network_error"
    INVALID_ROOM_ID = "invalid_room_id"
    INVALID_INPUT = "invalid_input"
    PERMISSION_DENIED = "permission_denied"


class RoomError(Exception):
    """Base of every failure a room operation can report."""
    kind: RoomErrorKind

    def __eq__(self, other: object) -> bool:
        return type(self) is type(other) and self.args == other.args

    def __hash__(self) -> int:
        return hash((type(self), self.args))


class RoomNotFound(RoomError):
    kind = RoomErrorKind.ROOM_NOT_FOUND

    def __init__(self, room_id: str):
        super().__init__(room_id)
        self.room_id = room_id

    def __str__(self) -> str:
        return f"Room {self.room_id} does not exist"


class RoomIdGenerationFailed(RoomError):
    kind = RoomErrorKind.ROOM_ID_GENERATION_FAILED

    def __init__(self, attempts: int):
        super().__init__(attempts)
        self.attempts = attempts

    def __str__(self) -> str:
        return f"Failed to generate unique room ID after {self.attempts} attempts"


class NetworkError(RoomError):
    kind = RoomErrorKind.NETWORK_ERROR

    def __init__(self, cause: Optional[BaseException] = None):
        super().__init__(cause)
        self.cause = cause

    def __str__(self) -> str:
        return f"Network error: {self.cause}"


class InvalidRoomId(RoomError):
    kind = RoomErrorKind.INVALID_ROOM_ID

    def __init__(self, room_id: str):
        super().__init__(room_id)
        self.room_id = room_id

    def __str__(self) -> str:
        return "Invalid room ID: must be 6 digits"


class InvalidInput(RoomError):
    kind = RoomErrorKind.INVALID_INPUT

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class PermissionDenied(RoomError):
    # Raised only by the external QR-scan collaborator, carried through unchanged
    kind = RoomErrorKind.PERMISSION_DENIED

    def __str__(self) -> str:
        return "Camera permission required for QR scanning"


@dataclass(frozen=True)
class RoomResult(Generic[T]):
    """
    Success-or-failure value returned by every lifecycle and session operation.
    Exactly one of `value`/`error` is meaningful; check `is_success` first.
    """
    value: Optional[T] = None
    error: Optional[RoomError] = None

    @classmethod
    def ok(cls, value: T) -> "RoomResult[T]":
        return cls(value=value)

    @classmethod
    def fail(cls, error: RoomError) -> "RoomResult[T]":
        return cls(error=error)

    @property
    def is_success(self) -> bool:
        return self.error is None

    def get_or_raise(self) -> T:
        if self.error is not None:
            raise self.error
        return self.value
