"""
Match flow exceptions with user-facing messages.

Services raise these; MatchService turns them into failed OperationResults
so callers always receive a message instead of a traceback.
"""

from enum import Enum


class ErrorCode(Enum):
    INVALID_IDENTIFIER = "invalid_identifier"
    INVALID_PAYLOAD = "invalid_payload"
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    STALE_STATE = "stale_state"
    DEADLINE_EXPIRED = "deadline_expired"
    ALREADY_FINALIZED = "already_finalized"


class MatchOperationError(Exception):
    """Base exception for match flow errors."""
    code: ErrorCode = None

    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message


class InvalidIdentifier(MatchOperationError):
    """Raised before any lookup when a match id is malformed."""
    code = ErrorCode.INVALID_IDENTIFIER

    def __init__(self, match_id):
        super().__init__(
            f"Malformed match id: {match_id!r}",
            f"Invalid match ID: \"{match_id}\" is not a valid format."
        )


class InvalidPayload(MatchOperationError):
    """Raised when a slot, score or custom id cannot be parsed."""
    code = ErrorCode.INVALID_PAYLOAD

    def __init__(self, detail: str):
        super().__init__(f"Invalid payload: {detail}", f"Invalid request: {detail}")


class NotFound(MatchOperationError):
    code = ErrorCode.NOT_FOUND

    def __init__(self, what: str, key):
        super().__init__(f"{what} {key} not found", f"{what} not found.")


class Unauthorized(MatchOperationError):
    code = ErrorCode.UNAUTHORIZED

    def __init__(self, reason: str, user_message: str = None):
        super().__init__(reason, user_message or "You are not allowed to do that for this match.")


class StaleState(MatchOperationError):
    """Raised when a conditional update affected no rows."""
    code = ErrorCode.STALE_STATE

    def __init__(self, match_id: str, detail: str = None):
        super().__init__(
            f"Match {match_id} changed concurrently" + (f": {detail}" if detail else ""),
            "This match was updated by someone else. Please try again."
        )


class DeadlineExpired(MatchOperationError):
    code = ErrorCode.DEADLINE_EXPIRED

    def __init__(self, match_id: str):
        super().__init__(
            f"Check-in deadline passed for Match {match_id}",
            "Check-in has closed for this match."
        )


class AlreadyFinalized(MatchOperationError):
    code = ErrorCode.ALREADY_FINALIZED

    def __init__(self, match_id: str):
        super().__init__(
            f"Match {match_id} is already completed or DQ'd",
            "Match has already been completed or DQd."
        )
