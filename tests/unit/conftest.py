"""
Shared fixtures for the scheduling tests.

Everything runs against the in-memory store with a ticking clock, so
timestamps are deterministic and strictly increasing.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from src.core.scheduling.booking import BookingRequest, BookingService
from src.core.scheduling.models import Caller, Role, SessionType
from src.infrastructure.memory.store import InMemorySessionStore


class TickingClock:
    """Stands in for the database server clock: one second per call."""

    def __init__(self) -> None:
        self.now = datetime(2024, 3, 1, 8, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock()


@pytest.fixture
def store(clock) -> InMemorySessionStore:
    return InMemorySessionStore(clock=clock)


@pytest.fixture
def service(store) -> BookingService:
    return BookingService(store)


@pytest.fixture
def coach() -> Caller:
    return Caller(id="coach-c", role=Role.COACH)


@pytest.fixture
def other_coach() -> Caller:
    return Caller(id="coach-d", role=Role.COACH)


@pytest.fixture
def client_x() -> Caller:
    return Caller(id="client-x", role=Role.CLIENT)


@pytest.fixture
def client_y() -> Caller:
    return Caller(id="client-y", role=Role.CLIENT)


@pytest.fixture
def booking():
    """
    Factory for booking requests on 2024-03-01 between coach-c and client-x.

    Override any field by keyword.
    """
    def make(**overrides) -> BookingRequest:
        fields = dict(
            coach_id="coach-c",
            client_id="client-x",
            date=date(2024, 3, 1),
            time="09:00",
            duration=60,
            type=SessionType.IN_PERSON,
            location="Main Gym",
            client_name="Xavier",
            coach_name="Casey",
        )
        fields.update(overrides)
        return BookingRequest(**fields)

    return make
