"""
Conflict detection for session bookings.

A proposed booking conflicts when its slot overlaps any active
(requested or scheduled) session on the same day for the same coach,
or for the same client. The two timelines are queried independently;
either one overlapping is enough to reject the booking.
"""

import logging
from datetime import date
from typing import Optional

from .errors import ValidationError
from .models import NON_TERMINAL_STATUSES, DateRange, Session, TimeSlot
from .store import SessionStore

logger = logging.getLogger(__name__)


class ConflictChecker:
    """
    Checks a proposed slot against the coach's and client's calendars.

    Stateless apart from the store it reads; safe to share.
    """

    def __init__(self, store: SessionStore) -> None:
        self._store = store

    async def find_conflict(
        self,
        day: date,
        time: str,
        duration: int,
        coach_id: str,
        client_id: str,
        exclude_id: Optional[str] = None,
    ) -> Optional[Session]:
        """
        Return the first active session that overlaps the proposed slot.

        Args:
            day: Calendar date of the proposed session
            time: "HH:MM" start time
            duration: Length in minutes
            coach_id: Coach whose calendar to check
            client_id: Client whose calendar to check
            exclude_id: Session to ignore, used when re-validating a
                reschedule of that same session

        Returns:
            The conflicting session, or None if the slot is free
        """
        proposed = TimeSlot.from_start(time, duration)
        same_day = DateRange.single_day(day)

        coach_sessions = await self._store.query_by_coach(
            coach_id, date_range=same_day, statuses=NON_TERMINAL_STATUSES
        )
        client_sessions = await self._store.query_by_client(
            client_id, date_range=same_day, statuses=NON_TERMINAL_STATUSES
        )

        for timeline, candidates in (("coach", coach_sessions), ("client", client_sessions)):
            for existing in candidates:
                if exclude_id is not None and existing.id == exclude_id:
                    continue
                try:
                    existing_slot = existing.slot
                except ValidationError:
                    logger.warning(
                        "Skipping stored session with unreadable slot",
                        extra={"session_id": existing.id, "time": existing.time},
                    )
                    continue
                if proposed.overlaps(existing_slot):
                    logger.warning(
                        "Scheduling conflict detected",
                        extra={
                            "timeline": timeline,
                            "date": day.isoformat(),
                            "time": time,
                            "duration": duration,
                            "conflicting_session_id": existing.id,
                        },
                    )
                    return existing

        return None

    async def has_conflict(
        self,
        day: date,
        time: str,
        duration: int,
        coach_id: str,
        client_id: str,
        exclude_id: Optional[str] = None,
    ) -> bool:
        """Boolean form of find_conflict for quick validation."""
        conflict = await self.find_conflict(day, time, duration, coach_id, client_id, exclude_id)
        return conflict is not None
