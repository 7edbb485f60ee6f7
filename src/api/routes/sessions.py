"""
Session booking API endpoints.

Coaches and clients book, reschedule, approve, cancel, and complete
training sessions here. Every handler delegates to BookingService;
scheduling errors propagate to the exception handler in main.py, which
maps them to HTTP statuses.

The caller is identified by the X-User-Id and X-User-Role headers.
A coach sees their whole calendar; a client sees their own sessions.
"""

import datetime as dt
import json
import logging
from typing import Literal, Optional

from fastapi import APIRouter, Query, Request, status
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from sse_starlette.sse import EventSourceResponse

from ...core.scheduling.booking import BookingRequest, SessionPatch, next_session_label
from ...core.scheduling.feed import LiveFeed
from ...core.scheduling.models import DateRange, Session, SessionStatus, SessionType
from ..dependencies import (
    AdminUser,
    AuthenticatedUser,
    BookingServiceDep,
    CallerDep,
    SessionStoreDep,
    SettingsDep,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class CamelModel(BaseModel):
    """Wire models use the camelCase field names the frontend expects."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateSessionRequest(CamelModel):
    """Request to book a session."""
    coach_id: str = Field("", description="Coach identity. Defaults to the caller when a coach books.")
    client_id: str = Field("", description="Client identity. Defaults to the caller when a client books.")
    coach_name: Optional[str] = Field(None, description="Coach display name")
    client_name: Optional[str] = Field(None, description="Client display name")
    title: Optional[str] = Field(None, max_length=200, description="Session title")
    type: Literal["in-person", "virtual"] = Field("in-person", description="Session type")
    date: Optional[dt.date] = Field(None, description="Calendar date (YYYY-MM-DD)")
    time: Optional[str] = Field(None, description="Start time, HH:MM 24-hour")
    duration: Optional[int] = Field(None, description="Length in minutes. Defaults to the configured session length.")
    notes: Optional[str] = Field(None, max_length=2000)
    location: Optional[str] = Field(None, description="Required for in-person sessions")
    meeting_link: Optional[str] = Field(None, description="Required for virtual sessions")

    def to_booking_request(self) -> BookingRequest:
        return BookingRequest(
            coach_id=self.coach_id,
            client_id=self.client_id,
            date=self.date,
            time=self.time,
            duration=self.duration,
            title=self.title,
            type=SessionType(self.type),
            notes=self.notes,
            location=self.location,
            meeting_link=self.meeting_link,
            coach_name=self.coach_name,
            client_name=self.client_name,
        )


class UpdateSessionRequest(CamelModel):
    """Partial update. Omitted fields are left unchanged."""
    title: Optional[str] = Field(None, max_length=200)
    type: Optional[Literal["in-person", "virtual"]] = None
    date: Optional[dt.date] = None
    time: Optional[str] = None
    duration: Optional[int] = None
    status: Optional[Literal["requested", "scheduled", "completed", "cancelled"]] = None
    notes: Optional[str] = Field(None, max_length=2000)
    location: Optional[str] = None
    meeting_link: Optional[str] = None
    coach_name: Optional[str] = None
    client_name: Optional[str] = None

    def to_patch(self) -> SessionPatch:
        return SessionPatch(
            title=self.title,
            type=SessionType(self.type) if self.type else None,
            date=self.date,
            time=self.time,
            duration=self.duration,
            status=SessionStatus(self.status) if self.status else None,
            notes=self.notes,
            location=self.location,
            meeting_link=self.meeting_link,
            coach_name=self.coach_name,
            client_name=self.client_name,
        )


class SessionResponse(CamelModel):
    """A session as stored."""
    id: str
    client_id: str
    client_name: str
    coach_id: str
    coach_name: Optional[str] = None
    title: str
    type: str
    date: dt.date
    time: str
    duration: int
    status: str
    notes: Optional[str] = None
    location: Optional[str] = None
    meeting_link: Optional[str] = None
    created_by: str
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None

    @classmethod
    def from_session(cls, session: Session) -> "SessionResponse":
        return cls(
            id=session.id,
            client_id=session.client_id,
            client_name=session.client_name,
            coach_id=session.coach_id,
            coach_name=session.coach_name,
            title=session.title,
            type=session.type.value,
            date=session.date,
            time=session.time,
            duration=session.duration,
            status=session.status.value,
            notes=session.notes,
            location=session.location,
            meeting_link=session.meeting_link,
            created_by=session.created_by.value,
            created_at=session.created_at,
            updated_at=session.updated_at,
        )


class UpcomingSessionsResponse(CamelModel):
    """Dashboard widget data: the next few sessions and a headline."""
    next_session: str = Field(description="e.g. 'Today at 09:00' or 'No upcoming sessions'")
    sessions: list[SessionResponse]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Book a session",
    description="Coach bookings are scheduled immediately; client bookings are requests awaiting approval",
    responses={409: {"description": "Coach or client already booked in that slot"}},
)
async def create_session(
    request: CreateSessionRequest,
    caller: CallerDep,
    api_key: AuthenticatedUser,
    service: BookingServiceDep,
) -> SessionResponse:
    logger.info(
        "Booking requested",
        extra={"caller_id": caller.id, "role": caller.role.value, "date": str(request.date)},
    )
    session = await service.create_session(request.to_booking_request(), caller)
    return SessionResponse.from_session(session)


@router.get(
    "",
    response_model=list[SessionResponse],
    summary="List my sessions",
    description="All sessions for the caller's calendar, ordered by date",
)
async def list_sessions(
    caller: CallerDep,
    api_key: AuthenticatedUser,
    service: BookingServiceDep,
    start: Optional[dt.date] = Query(None, description="First date to include"),
    end: Optional[dt.date] = Query(None, description="Last date to include"),
) -> list[SessionResponse]:
    date_range = DateRange(start=start, end=end) if (start or end) else None
    sessions = await service.list_sessions(caller, date_range)
    return [SessionResponse.from_session(s) for s in sessions]


@router.get(
    "/upcoming",
    response_model=UpcomingSessionsResponse,
    summary="Upcoming sessions",
    description="Scheduled sessions from today on, soonest first",
)
async def upcoming_sessions(
    caller: CallerDep,
    api_key: AuthenticatedUser,
    service: BookingServiceDep,
    settings: SettingsDep,
    limit: Optional[int] = Query(None, ge=1, le=50),
) -> UpcomingSessionsResponse:
    today = dt.date.today()
    sessions = await service.upcoming_sessions(caller, limit=limit or settings.upcoming_limit, today=today)
    return UpcomingSessionsResponse(
        next_session=next_session_label(sessions, today),
        sessions=[SessionResponse.from_session(s) for s in sessions],
    )


@router.get(
    "/feed",
    summary="Live session feed",
    description="Server-Sent Events stream. Each event carries the caller's full, current session list.",
)
async def session_feed(
    request: Request,
    caller: CallerDep,
    api_key: AuthenticatedUser,
    store: SessionStoreDep,
) -> EventSourceResponse:
    """
    Stream the caller's calendar as it changes.

    Events are full snapshots, not diffs: the client replaces what it
    shows with each one.
    """
    feed = LiveFeed.for_caller(store, caller)
    await feed.open()

    logger.info("Live feed connected", extra={"caller_id": caller.id, "role": caller.role.value})

    async def event_stream():
        try:
            async for sessions in feed.updates():
                if await request.is_disconnected():
                    break
                payload = [
                    SessionResponse.from_session(s).model_dump(mode="json", by_alias=True)
                    for s in sessions
                ]
                yield {"event": "sessions", "data": json.dumps(payload)}
        finally:
            feed.close()
            logger.info("Live feed disconnected", extra={"caller_id": caller.id})

    return EventSourceResponse(event_stream())


@router.get(
    "/{session_id}",
    response_model=SessionResponse,
    summary="Get session",
)
async def get_session(
    session_id: str,
    caller: CallerDep,
    api_key: AuthenticatedUser,
    service: BookingServiceDep,
) -> SessionResponse:
    session = await service.get_session(session_id, caller)
    return SessionResponse.from_session(session)


@router.patch(
    "/{session_id}",
    response_model=SessionResponse,
    summary="Update session",
    description="Edit details, reschedule, or change status. Reschedules are conflict-checked.",
)
async def update_session(
    session_id: str,
    request: UpdateSessionRequest,
    caller: CallerDep,
    api_key: AuthenticatedUser,
    service: BookingServiceDep,
) -> SessionResponse:
    session = await service.update_session(session_id, request.to_patch(), caller)
    return SessionResponse.from_session(session)


@router.post(
    "/{session_id}/approve",
    response_model=SessionResponse,
    summary="Approve a requested session (coach only)",
)
async def approve_session(
    session_id: str,
    caller: CallerDep,
    api_key: AuthenticatedUser,
    service: BookingServiceDep,
) -> SessionResponse:
    session = await service.approve_session(session_id, caller)
    return SessionResponse.from_session(session)


@router.post(
    "/{session_id}/cancel",
    response_model=SessionResponse,
    summary="Cancel a session",
)
async def cancel_session(
    session_id: str,
    caller: CallerDep,
    api_key: AuthenticatedUser,
    service: BookingServiceDep,
) -> SessionResponse:
    session = await service.cancel_session(session_id, caller)
    return SessionResponse.from_session(session)


@router.post(
    "/{session_id}/complete",
    response_model=SessionResponse,
    summary="Mark a session completed (coach only)",
)
async def complete_session(
    session_id: str,
    caller: CallerDep,
    api_key: AuthenticatedUser,
    service: BookingServiceDep,
) -> SessionResponse:
    session = await service.complete_session(session_id, caller)
    return SessionResponse.from_session(session)


@router.delete(
    "/{session_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete session (admin)",
    description="Hard delete for administrative cleanup. Use cancel in normal booking flows.",
)
async def delete_session(
    session_id: str,
    admin_key: AdminUser,
    service: BookingServiceDep,
) -> None:
    logger.info("Admin delete requested", extra={"session_id": session_id})
    await service.delete_session(session_id)
