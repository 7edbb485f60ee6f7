"""
Session booking and scheduling.

Contains the session model, conflict detection, the status lifecycle,
the booking service, and live feeds over the session store.
"""

from .booking import (
    BookingRequest,
    BookingService,
    LoggingNotificationDispatcher,
    NotificationDispatcher,
    NotificationEvent,
    SessionPatch,
    next_session_label,
)
from .conflicts import ConflictChecker
from .errors import (
    InvalidTransition,
    NotFound,
    PermissionDenied,
    SchedulingConflict,
    SchedulingError,
    StoreUnavailable,
    ValidationError,
)
from .feed import LiveFeed
from .lifecycle import SessionLifecycle
from .models import (
    Caller,
    DateRange,
    Role,
    Session,
    SessionStatus,
    SessionType,
    TimeSlot,
)
from .store import SessionFilter, SessionStore, Subscription, SubscriptionRegistry

__all__ = [
    "BookingRequest",
    "BookingService",
    "Caller",
    "ConflictChecker",
    "DateRange",
    "InvalidTransition",
    "LiveFeed",
    "LoggingNotificationDispatcher",
    "NotFound",
    "NotificationDispatcher",
    "NotificationEvent",
    "PermissionDenied",
    "Role",
    "SchedulingConflict",
    "SchedulingError",
    "Session",
    "SessionFilter",
    "SessionLifecycle",
    "SessionPatch",
    "SessionStatus",
    "SessionStore",
    "SessionType",
    "StoreUnavailable",
    "Subscription",
    "SubscriptionRegistry",
    "TimeSlot",
    "ValidationError",
    "next_session_label",
]
