"""
Scheduling errors.

Every failure the booking engine reports is a SchedulingError with a
stable code. The API layer maps these to HTTP statuses; core never
imports FastAPI.
"""

from typing import Optional


class SchedulingError(Exception):
    """Base class for all booking failures."""

    code = "scheduling_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(SchedulingError):
    """Missing or malformed booking input. Not retryable."""

    code = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class SchedulingConflict(SchedulingError):
    """The requested slot overlaps an active session for the coach or client."""

    code = "scheduling_conflict"

    def __init__(
        self,
        message: str = "There is a scheduling conflict with an existing session",
        conflicting_session_id: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.conflicting_session_id = conflicting_session_id


class InvalidTransition(SchedulingError):
    """A status change that the session lifecycle does not allow."""

    code = "invalid_transition"


class NotFound(SchedulingError):
    """Raised when a requested session doesn't exist."""

    code = "not_found"

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session {session_id} not found")
        self.session_id = session_id


class PermissionDenied(SchedulingError):
    """The caller's role is not entitled to this operation."""

    code = "permission_denied"


class StoreUnavailable(SchedulingError):
    """The backing store failed. Callers may retry at their discretion."""

    code = "store_unavailable"
