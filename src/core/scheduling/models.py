"""
Domain models for session scheduling.

These models represent the core booking concepts. Like the rest of core,
they know nothing about MongoDB, FastAPI, or how a session is rendered.
A session occupies a half-open slot [start, end) on a single calendar day.
"""

from dataclasses import dataclass, field, replace
from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import uuid4

from .errors import ValidationError


DEFAULT_TITLE = "Training Session"
DEFAULT_DURATION_MINUTES = 60
MINUTES_PER_DAY = 24 * 60


class SessionType(Enum):
    IN_PERSON = "in-person"
    VIRTUAL = "virtual"


class SessionStatus(Enum):
    """
    Where a session is in its lifecycle.

    Only requested and scheduled sessions hold a slot on the calendar.
    Completed and cancelled are terminal.
    """
    REQUESTED = "requested"
    SCHEDULED = "scheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionStatus.COMPLETED, SessionStatus.CANCELLED)


NON_TERMINAL_STATUSES = frozenset({SessionStatus.REQUESTED, SessionStatus.SCHEDULED})


class Role(Enum):
    """Which side of the appointment a caller is acting for."""
    COACH = "coach"
    CLIENT = "client"


@dataclass(frozen=True)
class Caller:
    """An authenticated identity and the role it is acting in."""
    id: str
    role: Role


def parse_time(value: str) -> int:
    """
    Convert an "HH:MM" wall-clock string to minutes since midnight.

    Raises ValidationError for anything that isn't a 24-hour time.
    """
    if not value or not isinstance(value, str):
        raise ValidationError("Time is required", field="time")

    parts = value.strip().split(":")
    if len(parts) != 2 or not all(part.isdigit() for part in parts):
        raise ValidationError(f"Time must be HH:MM, got {value!r}", field="time")

    hours, minutes = int(parts[0]), int(parts[1])
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise ValidationError(f"Time out of range: {value!r}", field="time")

    return hours * 60 + minutes


def format_time(minutes: int) -> str:
    """Inverse of parse_time for in-day values."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


@dataclass(frozen=True)
class TimeSlot:
    """
    A half-open interval of minutes within one day.

    Frozen because slots are values. Two sessions "conflict" when their
    slots overlap; touching at an edge is not an overlap.
    """
    start: int
    end: int

    def __post_init__(self) -> None:
        if self.end <= self.start:
            raise ValidationError("Slot must end after it starts", field="duration")

    @classmethod
    def from_start(cls, time: str, duration: int) -> "TimeSlot":
        start = parse_time(time)
        return cls(start=start, end=start + duration)

    @property
    def duration_minutes(self) -> int:
        return self.end - self.start

    def overlaps(self, other: "TimeSlot") -> bool:
        return self.start < other.end and self.end > other.start


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar range used to narrow queries. Either end may be open."""
    start: Optional[date] = None
    end: Optional[date] = None

    def __post_init__(self) -> None:
        if self.start and self.end and self.end < self.start:
            raise ValidationError("Date range end must not precede its start", field="date")

    @classmethod
    def single_day(cls, day: date) -> "DateRange":
        return cls(start=day, end=day)

    def contains(self, day: date) -> bool:
        if self.start and day < self.start:
            return False
        if self.end and day > self.end:
            return False
        return True


@dataclass
class Session:
    """
    A single appointment between one coach and one client.

    clientName and coachName are display caches copied at booking time;
    the ids are authoritative. created_at and updated_at are owned by the
    store and are None until the session has been persisted.
    """
    client_id: str
    coach_id: str
    date: date
    time: str
    id: str = field(default_factory=lambda: uuid4().hex)
    client_name: str = ""
    coach_name: Optional[str] = None
    title: str = DEFAULT_TITLE
    type: SessionType = SessionType.IN_PERSON
    duration: int = DEFAULT_DURATION_MINUTES
    status: SessionStatus = SessionStatus.SCHEDULED
    notes: Optional[str] = None
    location: Optional[str] = None
    meeting_link: Optional[str] = None
    created_by: Role = Role.COACH
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def slot(self) -> TimeSlot:
        return TimeSlot.from_start(self.time, self.duration)

    @property
    def is_active(self) -> bool:
        """Active sessions still occupy their slot."""
        return not self.status.is_terminal

    @property
    def sort_key(self) -> tuple[date, str]:
        return (self.date, self.time)

    def involves(self, user_id: str) -> bool:
        return user_id in (self.coach_id, self.client_id)

    def party_id(self, role: Role) -> str:
        return self.coach_id if role is Role.COACH else self.client_id

    def validate(self, schedule: bool = True) -> None:
        """
        Check the record-level invariants.

        Raises the first ValidationError found. The start time is rewritten
        as zero-padded HH:MM. Only the venue field that matches the session
        type is kept; the other one is cleared.

        With schedule=False the date, time and duration checks are skipped,
        so older records can still have their details edited.
        """
        if not self.coach_id:
            raise ValidationError("Coach is required", field="coachId")
        if not self.client_id:
            raise ValidationError("Client is required", field="clientId")
        if schedule:
            self._validate_schedule()

        if self.type is SessionType.IN_PERSON:
            if not (self.location or "").strip():
                raise ValidationError("Location is required for in-person sessions", field="location")
            self.meeting_link = None
        else:
            if not (self.meeting_link or "").strip():
                raise ValidationError("Meeting link is required for virtual sessions", field="meetingLink")
            self.location = None

    def _validate_schedule(self) -> None:
        if self.date is None:
            raise ValidationError("Date is required", field="date")
        if not isinstance(self.duration, int) or isinstance(self.duration, bool) or self.duration <= 0:
            raise ValidationError("Duration must be a positive number of minutes", field="duration")

        start = parse_time(self.time)
        if start + self.duration > MINUTES_PER_DAY:
            raise ValidationError("Session must end on the day it starts", field="duration")
        self.time = format_time(start)

    def copy(self, **changes) -> "Session":
        return replace(self, **changes)
