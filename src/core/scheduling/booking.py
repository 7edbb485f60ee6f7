"""
Booking service - orchestrates every change to a session.

Each operation runs validate -> check -> write in that order and makes
at most one store write, so a failure at any step leaves nothing behind.

Known gap: the conflict check and the write are separate store calls
with no lock between them. Two callers booking the same slot at the
same moment can both pass the check and both be written. Single-caller
ordering is preserved; cross-caller atomicity is not provided.
"""

import logging
from dataclasses import dataclass, fields
from datetime import date, timedelta
from enum import Enum
from typing import Any, Optional, Protocol

from .conflicts import ConflictChecker
from .errors import InvalidTransition, NotFound, PermissionDenied, SchedulingConflict, ValidationError
from .lifecycle import SessionLifecycle
from .models import (
    DEFAULT_DURATION_MINUTES,
    DEFAULT_TITLE,
    Caller,
    DateRange,
    Role,
    Session,
    SessionStatus,
    SessionType,
)
from .store import SessionFilter, SessionStore

logger = logging.getLogger(__name__)

# Fields that move a session on the calendar
SCHEDULE_FIELDS = frozenset({"date", "time", "duration"})


class NotificationEvent(Enum):
    CREATED = "created"
    UPDATED = "updated"
    APPROVED = "approved"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    DELETED = "deleted"


class NotificationDispatcher(Protocol):
    """Outbound notifications (push, email). Delivery is someone else's problem."""

    async def notify(self, event: NotificationEvent, session: Session) -> None: ...


class LoggingNotificationDispatcher:
    """Default dispatcher: records the event in the log and nothing else."""

    async def notify(self, event: NotificationEvent, session: Session) -> None:
        logger.info(
            "Session notification",
            extra={
                "event": event.value,
                "session_id": session.id,
                "coach_id": session.coach_id,
                "client_id": session.client_id,
            },
        )


@dataclass
class BookingRequest:
    """
    Everything a caller supplies to book a session.

    date and time are Optional so that missing input reaches validation
    and fails with a ValidationError rather than a TypeError.
    """
    coach_id: str = ""
    client_id: str = ""
    date: Optional[date] = None
    time: Optional[str] = None
    duration: Optional[int] = None
    title: Optional[str] = None
    type: SessionType = SessionType.IN_PERSON
    notes: Optional[str] = None
    location: Optional[str] = None
    meeting_link: Optional[str] = None
    coach_name: Optional[str] = None
    client_name: Optional[str] = None
    created_by: Optional[Role] = None


@dataclass
class SessionPatch:
    """
    A partial update. None means "leave unchanged".

    Party ids and created_by are deliberately absent: neither side may
    rewrite who the session belongs to.
    """
    title: Optional[str] = None
    type: Optional[SessionType] = None
    date: Optional[date] = None
    time: Optional[str] = None
    duration: Optional[int] = None
    status: Optional[SessionStatus] = None
    notes: Optional[str] = None
    location: Optional[str] = None
    meeting_link: Optional[str] = None
    coach_name: Optional[str] = None
    client_name: Optional[str] = None

    def changes(self) -> dict[str, Any]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }

    @property
    def reschedules(self) -> bool:
        return bool(SCHEDULE_FIELDS & self.changes().keys())


class BookingService:
    """
    Application service for creating and changing sessions.

    Dependencies are injected so tests can run the full booking flow
    against the in-memory store.
    """

    def __init__(
        self,
        store: SessionStore,
        conflict_checker: Optional[ConflictChecker] = None,
        notifier: Optional[NotificationDispatcher] = None,
        default_title: str = DEFAULT_TITLE,
        default_duration: int = DEFAULT_DURATION_MINUTES,
    ) -> None:
        self._store = store
        self._conflicts = conflict_checker or ConflictChecker(store)
        self._notifier = notifier or LoggingNotificationDispatcher()
        self._default_title = default_title
        self._default_duration = default_duration

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def create_session(self, request: BookingRequest, caller: Caller) -> Session:
        """
        Book a new session.

        The caller books for themselves: a coach on their own calendar,
        a client for their own slot. Coach bookings start scheduled,
        client bookings start requested.

        Raises:
            ValidationError: missing date/time, bad duration, missing venue
            PermissionDenied: caller is not the party they book for
            SchedulingConflict: coach or client already busy in that slot
        """
        coach_id = request.coach_id or (caller.id if caller.role is Role.COACH else "")
        client_id = request.client_id or (caller.id if caller.role is Role.CLIENT else "")

        created_by = request.created_by or caller.role
        if created_by is not caller.role:
            raise PermissionDenied(f"A {caller.role.value} cannot book as {created_by.value}")

        if request.date is None:
            raise ValidationError("Date is required", field="date")
        if not request.time:
            raise ValidationError("Time is required", field="time")

        session = Session(
            coach_id=coach_id,
            client_id=client_id,
            date=request.date,
            time=request.time,
            duration=request.duration if request.duration is not None else self._default_duration,
            title=(request.title or "").strip() or self._default_title,
            type=request.type,
            notes=request.notes,
            location=request.location,
            meeting_link=request.meeting_link,
            coach_name=request.coach_name,
            client_name=request.client_name or "",
            created_by=created_by,
            status=SessionLifecycle.initial_status(created_by),
        )
        session.validate()

        if session.party_id(caller.role) != caller.id:
            raise PermissionDenied("You can only book sessions you take part in")

        await self._ensure_slot_free(session)

        stored = await self._store.put(session)

        logger.info(
            "Session created",
            extra={
                "session_id": stored.id,
                "coach_id": stored.coach_id,
                "client_id": stored.client_id,
                "status": stored.status.value,
                "created_by": stored.created_by.value,
            },
        )
        await self._dispatch(NotificationEvent.CREATED, stored)
        return stored

    async def update_session(self, session_id: str, patch: SessionPatch, caller: Caller) -> Session:
        """
        Apply a partial update, including reschedules and status changes.

        A reschedule is checked against the merged slot with the session
        itself excluded, so moving a session onto (part of) its own old
        slot never conflicts with itself.
        """
        current = await self.get_session(session_id, caller)
        changes = patch.changes()

        if not changes:
            return current

        new_status = current.status
        if patch.status is not None:
            new_status = SessionLifecycle.transition(current.status, patch.status, caller.role)

        if patch.reschedules and current.status.is_terminal:
            raise InvalidTransition(f"Cannot reschedule a {current.status.value} session")

        for text_field in ("title", "location", "meeting_link"):
            if text_field in changes:
                changes[text_field] = changes[text_field].strip()
        if changes.get("title") == "":
            changes["title"] = self._default_title
        changes["status"] = new_status

        merged = current.copy(**changes)
        # Schedule fields are only re-checked when the patch moves the session
        merged.validate(schedule=patch.reschedules)

        if patch.reschedules and merged.is_active:
            await self._ensure_slot_free(merged, exclude_id=current.id)

        stored = await self._store.put(merged)

        logger.info(
            "Session updated",
            extra={
                "session_id": stored.id,
                "fields": sorted(k for k in patch.changes()),
                "status": stored.status.value,
            },
        )
        await self._dispatch(self._event_for(current.status, stored.status), stored)
        return stored

    async def approve_session(self, session_id: str, caller: Caller) -> Session:
        """Coach confirms a client's request."""
        return await self.update_session(
            session_id, SessionPatch(status=SessionStatus.SCHEDULED), caller
        )

    async def cancel_session(self, session_id: str, caller: Caller) -> Session:
        """Either party cancels. Frees the slot; no conflict check needed."""
        return await self._change_status(session_id, SessionStatus.CANCELLED, caller)

    async def complete_session(self, session_id: str, caller: Caller) -> Session:
        """Coach marks the appointment as having happened."""
        return await self._change_status(session_id, SessionStatus.COMPLETED, caller)

    async def delete_session(self, session_id: str) -> None:
        """
        Hard-delete a session.

        Administrative cleanup only; the API guards this behind an admin
        key and ordinary booking flows never reach it.
        """
        session = await self._store.get(session_id)
        if session is None:
            raise NotFound(session_id)

        await self._store.delete(session_id)

        logger.info("Session deleted", extra={"session_id": session_id})
        await self._dispatch(NotificationEvent.DELETED, session)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get_session(self, session_id: str, caller: Caller) -> Session:
        session = await self._store.get(session_id)
        if session is None:
            raise NotFound(session_id)
        if session.party_id(caller.role) != caller.id:
            logger.warning(
                "Session access denied",
                extra={"session_id": session_id, "caller_id": caller.id, "role": caller.role.value},
            )
            raise PermissionDenied("You are not a party to this session")
        return session

    async def list_sessions(
        self, caller: Caller, date_range: Optional[DateRange] = None
    ) -> list[Session]:
        """All of the caller's sessions, date ascending."""
        return await self._store.query(SessionFilter.for_party(caller.role, caller.id, date_range))

    async def upcoming_sessions(
        self, caller: Caller, limit: int = 5, today: Optional[date] = None
    ) -> list[Session]:
        """Scheduled sessions from today on, soonest first, at most limit."""
        today = today or date.today()
        session_filter = SessionFilter.for_party(
            caller.role,
            caller.id,
            date_range=DateRange(start=today),
            statuses=[SessionStatus.SCHEDULED],
        )
        sessions = await self._store.query(session_filter)
        return sessions[:limit]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _change_status(self, session_id: str, target: SessionStatus, caller: Caller) -> Session:
        current = await self.get_session(session_id, caller)
        new_status = SessionLifecycle.transition(current.status, target, caller.role)

        stored = await self._store.put(current.copy(status=new_status))

        logger.info(
            "Session status changed",
            extra={
                "session_id": stored.id,
                "from_status": current.status.value,
                "to_status": stored.status.value,
                "role": caller.role.value,
            },
        )
        await self._dispatch(self._event_for(current.status, stored.status), stored)
        return stored

    async def _ensure_slot_free(self, session: Session, exclude_id: Optional[str] = None) -> None:
        conflict = await self._conflicts.find_conflict(
            session.date,
            session.time,
            session.duration,
            session.coach_id,
            session.client_id,
            exclude_id=exclude_id,
        )
        if conflict is not None:
            raise SchedulingConflict(conflicting_session_id=conflict.id)

    @staticmethod
    def _event_for(before: SessionStatus, after: SessionStatus) -> NotificationEvent:
        if before is after:
            return NotificationEvent.UPDATED
        if after is SessionStatus.SCHEDULED:
            return NotificationEvent.APPROVED
        if after is SessionStatus.CANCELLED:
            return NotificationEvent.CANCELLED
        if after is SessionStatus.COMPLETED:
            return NotificationEvent.COMPLETED
        return NotificationEvent.UPDATED

    async def _dispatch(self, event: NotificationEvent, session: Session) -> None:
        """Fire-and-forget: a failed notification never fails the booking."""
        try:
            await self._notifier.notify(event, session)
        except Exception as e:
            logger.error(
                "Notification dispatch failed",
                extra={"event": event.value, "session_id": session.id, "error": str(e)},
            )


def next_session_label(sessions: list[Session], today: Optional[date] = None) -> str:
    """
    Human-friendly description of the first session in an ordered list.

    "Today at 09:00", "Tomorrow at 09:00", or "Fri, Mar 1 at 09:00".
    """
    if not sessions:
        return "No upcoming sessions"

    today = today or date.today()
    upcoming = sessions[0]

    if upcoming.date == today:
        return f"Today at {upcoming.time}"
    if upcoming.date == today + timedelta(days=1):
        return f"Tomorrow at {upcoming.time}"

    day_label = f"{upcoming.date.strftime('%a, %b')} {upcoming.date.day}"
    return f"{day_label} at {upcoming.time}"
