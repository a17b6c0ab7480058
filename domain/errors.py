"""
Domain: error taxonomy for grant redemption and progress tracking.

Every failure raised by the services derives from AccessError so the API
layer can map it to a status code in one place:

- ValidationError      -> 400 (malformed input)
- NotFound             -> 404 (unknown code, grant, or record)
- Conflict             -> 400 with a machine-readable `flag`
- TransientStoreError  -> 500 (safe to retry; every mutation is idempotent)
"""

from __future__ import annotations

from typing import Optional


class AccessError(Exception):
    """Base class for all platform errors."""

    status_code: int = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(AccessError):
    """Raised when request input is malformed."""

    status_code = 400


class NotFound(AccessError):
    status_code = 404


class GrantNotFound(NotFound):
    def __init__(self, code: str):
        self.code = code
        super().__init__(f"Invalid code: {code}")


class ProgressNotFound(NotFound):
    def __init__(self, user_id: str, level_number: int):
        self.user_id = user_id
        self.level_number = level_number
        super().__init__(f"No progress for user {user_id} on level {level_number}")


class Conflict(AccessError):
    """
    Raised when the request is well-formed but the grant's state forbids it.

    `flag` lets the client render the precise message without parsing text.
    """

    status_code = 400
    flag: str = "conflict"

    def __init__(self, message: str, *, flag: Optional[str] = None):
        if flag is not None:
            self.flag = flag
        super().__init__(message)


class SeatsFull(Conflict):
    flag = "seats_full"

    def __init__(self, max_seats: int, used_seats: int):
        self.max_seats = max_seats
        self.used_seats = used_seats
        plural = "s" if max_seats != 1 else ""
        super().__init__(f"You have only {max_seats} seat{plural}. Your seats are completed.")


class AlreadyCompleted(Conflict):
    """The user already consumed their seat on this grant."""

    flag = "already_completed"

    def __init__(self, message: str = "You have already completed the game with this code. Your seat has been used."):
        super().__init__(message)


class GrantExpired(Conflict):
    flag = "expired"

    def __init__(self, code: str):
        self.code = code
        super().__init__("This code has expired. You cannot play the game.")


class TransientStoreError(RuntimeError, AccessError):
    """
    Raised when the persistent store fails or a conditional update keeps losing races.

    Subclasses RuntimeError so callers written against the plain repository
    contract keep working.
    """

    status_code = 500

    def __init__(self, message: str):
        AccessError.__init__(self, message)


__all__ = [
    "AccessError",
    "AlreadyCompleted",
    "Conflict",
    "GrantExpired",
    "GrantNotFound",
    "NotFound",
    "ProgressNotFound",
    "SeatsFull",
    "TransientStoreError",
    "ValidationError",
]
