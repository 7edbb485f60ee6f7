"""
In-memory session store.

Mock mode for the session store: data lives in a dict for the life of
the process. Enables running the API and the full booking flow without
provisioning MongoDB.

Not suitable for production, but perfect for:
- Local development
- Unit tests
- CI/CD environments
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from ...core.scheduling.errors import StoreUnavailable
from ...core.scheduling.models import DateRange, Session, SessionStatus
from ...core.scheduling.store import (
    SessionFilter,
    SubscriptionCallback,
    Subscription,
    SubscriptionRegistry,
    sort_sessions,
)

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class InMemorySessionStore:
    """
    Session store backed by a dict.

    Records are copied on the way in and out so callers can't mutate
    stored state behind the store's back. Timestamps come from the
    injected clock, standing in for the database server's clock.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._sessions: dict[str, Session] = {}
        self._clock = clock
        self._subscriptions = SubscriptionRegistry()
        self._unavailable = False

        logger.info("Initialized in-memory session store")

    async def get(self, session_id: str) -> Optional[Session]:
        self._check_available()
        session = self._sessions.get(session_id)
        return session.copy() if session else None

    async def query(self, session_filter: SessionFilter) -> list[Session]:
        self._check_available()
        return sort_sessions(
            s.copy() for s in self._sessions.values() if session_filter.matches(s)
        )

    async def query_by_coach(
        self,
        coach_id: str,
        date_range: Optional[DateRange] = None,
        statuses: Optional[Iterable[SessionStatus]] = None,
    ) -> list[Session]:
        return await self.query(
            SessionFilter(
                coach_id=coach_id,
                date_range=date_range,
                statuses=frozenset(statuses) if statuses is not None else None,
            )
        )

    async def query_by_client(
        self,
        client_id: str,
        date_range: Optional[DateRange] = None,
        statuses: Optional[Iterable[SessionStatus]] = None,
    ) -> list[Session]:
        return await self.query(
            SessionFilter(
                client_id=client_id,
                date_range=date_range,
                statuses=frozenset(statuses) if statuses is not None else None,
            )
        )

    async def put(self, session: Session) -> Session:
        """Insert or replace. created_at is set once; updated_at on every put."""
        self._check_available()
        now = self._clock()
        existing = self._sessions.get(session.id)

        stored = session.copy(
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )
        self._sessions[stored.id] = stored

        logger.debug("Stored session", extra={"session_id": stored.id, "is_new": existing is None})

        await self._subscriptions.publish(self.query, changed=stored)
        return stored.copy()

    async def delete(self, session_id: str) -> bool:
        self._check_available()
        removed = self._sessions.pop(session_id, None)
        if removed is None:
            return False

        await self._subscriptions.publish(self.query, changed=removed)
        return True

    async def subscribe(
        self, session_filter: SessionFilter, callback: SubscriptionCallback
    ) -> Subscription:
        """Register a live view; the current matching set is delivered right away."""
        subscription = self._subscriptions.add(session_filter, callback)
        try:
            sessions = await self.query(session_filter)
        except StoreUnavailable:
            # The caller never receives a handle, so drop the registration here
            subscription.unsubscribe()
            raise
        await self._subscriptions.deliver(subscription, sessions)
        return subscription

    async def ping(self) -> None:
        self._check_available()

    # Helper methods for testing
    def _set_unavailable(self, unavailable: bool = True) -> None:
        """Make every operation fail as if the backing store were down."""
        self._unavailable = unavailable

    def _clear(self) -> None:
        self._sessions.clear()

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    def _check_available(self) -> None:
        if self._unavailable:
            raise StoreUnavailable("In-memory store marked unavailable")
