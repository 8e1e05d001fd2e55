"""
Signaling errors.

Every error carries a stable code that is sent to the client next to the
human readable message.
"""
from enum import Enum


class ErrorCode(str, Enum):
    ROLE_CONFLICT = "role_conflict"
    MALFORMED_REQUEST = "malformed_request"
    UNROUTABLE_SIGNAL = "unroutable_signal"


class CoordinatorError(Exception):
    code: ErrorCode = ErrorCode.MALFORMED_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class RoleConflict(CoordinatorError):
    """Join as streamer on a room that already has a different streamer."""
    code = ErrorCode.ROLE_CONFLICT


class MalformedRequest(CoordinatorError):
    """Missing or invalid room code, role or event frame."""
    code = ErrorCode.MALFORMED_REQUEST


class UnroutableSignal(CoordinatorError):
    """Signal destination is not registered. Dropped, never reported to the sender."""
    code = ErrorCode.UNROUTABLE_SIGNAL
