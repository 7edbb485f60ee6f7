"""
Unit tests for BookingService.

These run the full validate -> check -> write flow against the
in-memory store, covering the booking scenarios coaches and clients
actually hit: confirmed coach bookings, client requests awaiting
approval, reschedules, and cancellations.
"""

from datetime import date

import pytest

from src.core.scheduling.booking import (
    BookingService,
    NotificationEvent,
    SessionPatch,
    next_session_label,
)
from src.core.scheduling.errors import (
    InvalidTransition,
    NotFound,
    PermissionDenied,
    SchedulingConflict,
    StoreUnavailable,
    ValidationError,
)
from src.core.scheduling.models import Role, Session, SessionStatus, SessionType


class RecordingNotifier:
    def __init__(self) -> None:
        self.events: list[tuple[NotificationEvent, str]] = []

    async def notify(self, event, session) -> None:
        self.events.append((event, session.id))


class BrokenNotifier:
    async def notify(self, event, session) -> None:
        raise RuntimeError("push gateway down")


# ---------------------------------------------------------------------------
# Creating sessions
# ---------------------------------------------------------------------------

class TestCreateSession:

    @pytest.mark.asyncio
    async def test_coach_booking_is_scheduled(self, service, coach, booking):
        session = await service.create_session(booking(), coach)

        assert session.status is SessionStatus.SCHEDULED
        assert session.created_by is Role.COACH
        assert session.created_at is not None
        assert session.updated_at == session.created_at

    @pytest.mark.asyncio
    async def test_client_request_awaits_approval(self, service, client_x, booking):
        """Client X requests; the record is requested and created by client."""
        session = await service.create_session(booking(), client_x)

        assert session.status is SessionStatus.REQUESTED
        assert session.created_by is Role.CLIENT

    @pytest.mark.asyncio
    async def test_caller_fills_in_own_id(self, service, client_x, booking):
        session = await service.create_session(booking(client_id=""), client_x)
        assert session.client_id == "client-x"

    @pytest.mark.asyncio
    async def test_title_defaults_when_omitted(self, service, coach, booking):
        session = await service.create_session(booking(title="  "), coach)
        assert session.title == "Training Session"

    @pytest.mark.asyncio
    async def test_duration_defaults_when_omitted(self, store, coach, booking):
        session = await BookingService(store).create_session(booking(duration=None), coach)
        assert session.duration == 60

        shorter = BookingService(store, default_duration=45)
        session = await shorter.create_session(booking(duration=None, time="11:00"), coach)
        assert session.duration == 45

    @pytest.mark.asyncio
    async def test_persists_to_store(self, service, store, coach, booking):
        session = await service.create_session(booking(), coach)
        stored = await store.get(session.id)
        assert stored is not None
        assert stored.location == "Main Gym"

    @pytest.mark.asyncio
    async def test_in_person_without_location_fails(self, service, coach, booking):
        with pytest.raises(ValidationError) as excinfo:
            await service.create_session(booking(location=""), coach)
        assert excinfo.value.field == "location"

    @pytest.mark.asyncio
    async def test_virtual_without_meeting_link_fails(self, service, coach, booking):
        with pytest.raises(ValidationError) as excinfo:
            await service.create_session(
                booking(type=SessionType.VIRTUAL, location=None, meeting_link=""), coach
            )
        assert excinfo.value.field == "meetingLink"

    @pytest.mark.asyncio
    async def test_missing_date_or_time_fails(self, service, coach, booking):
        with pytest.raises(ValidationError, match="Date"):
            await service.create_session(booking(date=None), coach)
        with pytest.raises(ValidationError, match="Time"):
            await service.create_session(booking(time=None), coach)

    @pytest.mark.asyncio
    async def test_cannot_book_for_someone_else(self, service, client_y, booking):
        """client-y may not book client-x's session."""
        with pytest.raises(PermissionDenied):
            await service.create_session(booking(), client_y)

    @pytest.mark.asyncio
    async def test_client_cannot_book_as_coach(self, service, client_x, booking):
        with pytest.raises(PermissionDenied):
            await service.create_session(booking(created_by=Role.COACH), client_x)

    @pytest.mark.asyncio
    async def test_failed_validation_writes_nothing(self, service, store, coach, booking):
        with pytest.raises(ValidationError):
            await service.create_session(booking(duration=0), coach)
        assert await store.query_by_coach("coach-c") == []


class TestCreateConflicts:
    """Coach C has a scheduled session on 2024-03-01 14:00 for 60 minutes with client X."""

    async def book_afternoon(self, service, coach, booking) -> Session:
        return await service.create_session(booking(time="14:00"), coach)

    @pytest.mark.asyncio
    async def test_overlapping_booking_conflicts(self, service, coach, booking):
        afternoon = await self.book_afternoon(service, coach, booking)
        with pytest.raises(SchedulingConflict) as excinfo:
            await service.create_session(
                booking(client_id="client-y", time="14:30", duration=30), coach
            )
        assert excinfo.value.conflicting_session_id == afternoon.id

    @pytest.mark.asyncio
    async def test_booking_after_it_succeeds(self, service, coach, booking):
        await self.book_afternoon(service, coach, booking)
        session = await service.create_session(
            booking(client_id="client-y", time="15:00", duration=30), coach
        )
        assert session.status is SessionStatus.SCHEDULED

    @pytest.mark.asyncio
    async def test_overlap_is_symmetric(self, service, coach, booking):
        """The earlier booking blocks a later one, and a later one blocks an earlier one."""
        await self.book_afternoon(service, coach, booking)
        with pytest.raises(SchedulingConflict):
            await service.create_session(booking(client_id="client-y", time="13:30"), coach)

    @pytest.mark.asyncio
    async def test_cancelled_session_frees_the_slot(self, service, coach, booking):
        afternoon = await self.book_afternoon(service, coach, booking)
        await service.cancel_session(afternoon.id, coach)
        session = await service.create_session(booking(client_id="client-y", time="14:00"), coach)
        assert session.status is SessionStatus.SCHEDULED


# ---------------------------------------------------------------------------
# Updating sessions
# ---------------------------------------------------------------------------

class TestUpdateSession:

    @pytest.mark.asyncio
    async def test_coach_approves_client_request(self, service, client_x, coach, booking):
        requested = await service.create_session(booking(), client_x)

        approved = await service.update_session(
            requested.id, SessionPatch(status=SessionStatus.SCHEDULED), coach
        )

        assert approved.status is SessionStatus.SCHEDULED
        assert approved.updated_at > requested.updated_at

    @pytest.mark.asyncio
    async def test_extending_own_slot_does_not_self_conflict(self, service, coach, booking):
        """09:00/60 -> 09:00/90 on the same session succeeds."""
        session = await service.create_session(booking(), coach)
        updated = await service.update_session(session.id, SessionPatch(duration=90), coach)
        assert updated.duration == 90

    @pytest.mark.asyncio
    async def test_reschedule_into_another_session_conflicts(self, service, coach, booking):
        first = await service.create_session(booking(), coach)
        await service.create_session(booking(client_id="client-y", time="10:00"), coach)

        with pytest.raises(SchedulingConflict):
            await service.update_session(first.id, SessionPatch(duration=90), coach)

    @pytest.mark.asyncio
    async def test_failed_reschedule_leaves_record_unchanged(self, service, store, coach, booking):
        first = await service.create_session(booking(), coach)
        await service.create_session(booking(client_id="client-y", time="10:00"), coach)

        with pytest.raises(SchedulingConflict):
            await service.update_session(first.id, SessionPatch(time="09:30"), coach)

        stored = await store.get(first.id)
        assert stored.time == "09:00"
        assert stored.updated_at == first.updated_at

    @pytest.mark.asyncio
    async def test_switching_to_virtual_requires_link(self, service, coach, booking):
        session = await service.create_session(booking(), coach)
        with pytest.raises(ValidationError):
            await service.update_session(session.id, SessionPatch(type=SessionType.VIRTUAL), coach)

        updated = await service.update_session(
            session.id,
            SessionPatch(type=SessionType.VIRTUAL, meeting_link="https://meet.example/x"),
            coach,
        )
        assert updated.location is None
        assert updated.meeting_link == "https://meet.example/x"

    @pytest.mark.asyncio
    async def test_missing_session_is_not_found(self, service, coach):
        with pytest.raises(NotFound):
            await service.update_session("nope", SessionPatch(notes="x"), coach)

    @pytest.mark.asyncio
    async def test_outsider_cannot_update(self, service, coach, other_coach, booking):
        session = await service.create_session(booking(), coach)
        with pytest.raises(PermissionDenied):
            await service.update_session(session.id, SessionPatch(notes="mine now"), other_coach)

    @pytest.mark.asyncio
    async def test_cannot_reschedule_a_cancelled_session(self, service, coach, booking):
        session = await service.create_session(booking(), coach)
        await service.cancel_session(session.id, coach)
        with pytest.raises(InvalidTransition):
            await service.update_session(session.id, SessionPatch(time="11:00"), coach)

    @pytest.mark.asyncio
    async def test_empty_patch_returns_current(self, service, coach, booking):
        session = await service.create_session(booking(), coach)
        unchanged = await service.update_session(session.id, SessionPatch(), coach)
        assert unchanged.updated_at == session.updated_at

    @pytest.mark.asyncio
    async def test_record_without_time_can_still_be_edited(self, service, store, coach):
        """Older documents read back with time "" accept detail edits but not reschedules."""
        legacy = await store.put(Session(
            coach_id="coach-c", client_id="client-x", date=date(2024, 3, 1),
            time="", location="Main Gym",
        ))

        updated = await service.update_session(legacy.id, SessionPatch(notes="bring fins"), coach)
        assert updated.notes == "bring fins"

        with pytest.raises(ValidationError):
            await service.update_session(legacy.id, SessionPatch(duration=30), coach)


# ---------------------------------------------------------------------------
# Lifecycle operations
# ---------------------------------------------------------------------------

class TestLifecycleOperations:

    @pytest.mark.asyncio
    async def test_request_approve_complete(self, service, client_x, coach, booking):
        session = await service.create_session(booking(), client_x)
        session = await service.approve_session(session.id, coach)
        session = await service.complete_session(session.id, coach)
        assert session.status is SessionStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_completed_cannot_be_rescheduled_back(self, service, coach, booking):
        session = await service.create_session(booking(), coach)
        await service.complete_session(session.id, coach)
        with pytest.raises(InvalidTransition):
            await service.update_session(
                session.id, SessionPatch(status=SessionStatus.SCHEDULED), coach
            )

    @pytest.mark.asyncio
    async def test_cancelled_cannot_be_reinstated(self, service, coach, booking):
        session = await service.create_session(booking(), coach)
        await service.cancel_session(session.id, coach)
        with pytest.raises(InvalidTransition):
            await service.approve_session(session.id, coach)

    @pytest.mark.asyncio
    async def test_client_cannot_complete(self, service, coach, client_x, booking):
        session = await service.create_session(booking(), coach)
        with pytest.raises(PermissionDenied):
            await service.complete_session(session.id, client_x)

    @pytest.mark.asyncio
    async def test_client_can_cancel(self, service, coach, client_x, booking):
        session = await service.create_session(booking(), coach)
        cancelled = await service.cancel_session(session.id, client_x)
        assert cancelled.status is SessionStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_requested_cannot_be_completed_directly(self, service, client_x, coach, booking):
        session = await service.create_session(booking(), client_x)
        with pytest.raises(InvalidTransition):
            await service.complete_session(session.id, coach)


class TestDeleteSession:

    @pytest.mark.asyncio
    async def test_delete_removes_record(self, service, store, coach, booking):
        session = await service.create_session(booking(), coach)
        await service.delete_session(session.id)
        assert await store.get(session.id) is None

    @pytest.mark.asyncio
    async def test_delete_missing_is_not_found(self, service):
        with pytest.raises(NotFound):
            await service.delete_session("missing")


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

class TestQueries:

    @pytest.mark.asyncio
    async def test_unpadded_times_are_stored_padded_and_sort_correctly(self, service, coach, booking):
        await service.create_session(booking(time="10:00"), coach)
        early = await service.create_session(booking(client_id="client-y", time="9:00"), coach)

        sessions = await service.list_sessions(coach)

        assert early.time == "09:00"
        assert [s.time for s in sessions] == ["09:00", "10:00"]
        assert next_session_label(sessions, date(2024, 3, 1)) == "Today at 09:00"

    @pytest.mark.asyncio
    async def test_list_is_per_role_and_ordered(self, service, coach, client_x, booking):
        later = await service.create_session(booking(date=date(2024, 3, 5)), coach)
        earlier = await service.create_session(booking(client_id="client-y", time="07:00"), coach)

        coach_view = await service.list_sessions(coach)
        client_view = await service.list_sessions(client_x)

        assert [s.id for s in coach_view] == [earlier.id, later.id]
        assert [s.id for s in client_view] == [later.id]

    @pytest.mark.asyncio
    async def test_upcoming_only_scheduled_from_today(self, service, coach, client_y, booking):
        await service.create_session(booking(date=date(2024, 2, 28)), coach)
        soon = await service.create_session(booking(date=date(2024, 3, 2)), coach)
        await service.create_session(booking(date=date(2024, 3, 3), client_id="client-y"), client_y)
        cancelled = await service.create_session(booking(date=date(2024, 3, 4)), coach)
        await service.cancel_session(cancelled.id, coach)

        upcoming = await service.upcoming_sessions(coach, today=date(2024, 3, 1))

        assert [s.id for s in upcoming] == [soon.id]

    @pytest.mark.asyncio
    async def test_upcoming_respects_limit(self, service, coach, booking):
        for day in range(2, 6):
            await service.create_session(booking(date=date(2024, 3, day)), coach)
        upcoming = await service.upcoming_sessions(coach, limit=2, today=date(2024, 3, 1))
        assert [s.date.day for s in upcoming] == [2, 3]

    @pytest.mark.asyncio
    async def test_get_session_requires_party(self, service, coach, client_y, booking):
        session = await service.create_session(booking(), coach)
        with pytest.raises(PermissionDenied):
            await service.get_session(session.id, client_y)


class TestNextSessionLabel:

    def make(self, day: date) -> Session:
        return Session(coach_id="c", client_id="x", date=day, time="09:30", location="Gym")

    def test_no_sessions(self):
        assert next_session_label([], date(2024, 3, 1)) == "No upcoming sessions"

    def test_today(self):
        assert next_session_label([self.make(date(2024, 3, 1))], date(2024, 3, 1)) == "Today at 09:30"

    def test_tomorrow(self):
        assert next_session_label([self.make(date(2024, 3, 2))], date(2024, 3, 1)) == "Tomorrow at 09:30"

    def test_later_date(self):
        assert next_session_label([self.make(date(2024, 3, 8))], date(2024, 3, 1)) == "Fri, Mar 8 at 09:30"


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------

class TestNotificationsAndFailures:

    @pytest.mark.asyncio
    async def test_lifecycle_events_are_dispatched(self, store, client_x, coach, booking):
        notifier = RecordingNotifier()
        service = BookingService(store, notifier=notifier)

        session = await service.create_session(booking(), client_x)
        await service.approve_session(session.id, coach)
        await service.cancel_session(session.id, client_x)

        assert [event for event, _ in notifier.events] == [
            NotificationEvent.CREATED,
            NotificationEvent.APPROVED,
            NotificationEvent.CANCELLED,
        ]

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_fail_booking(self, store, coach, booking):
        service = BookingService(store, notifier=BrokenNotifier())
        session = await service.create_session(booking(), coach)
        assert await store.get(session.id) is not None

    @pytest.mark.asyncio
    async def test_store_outage_surfaces(self, service, store, coach, booking):
        store._set_unavailable()
        with pytest.raises(StoreUnavailable):
            await service.create_session(booking(), coach)
