"""
Session store contract and live-subscription plumbing.

The store is the only shared mutable resource in the booking engine.
It is injected wherever it's needed; nothing reaches for a global.

Consistency model: reads and writes are eventually consistent with the
backing database and there is no locking or versioning on records.
Subscriptions are read-only fan-out and always receive the full current
matching set, never a diff.
"""

import inspect
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Iterable, Optional, Protocol, Union
from uuid import uuid4

from .models import DateRange, Role, Session, SessionStatus

logger = logging.getLogger(__name__)


SubscriptionCallback = Callable[[list[Session]], Union[None, Awaitable[None]]]


@dataclass(frozen=True)
class SessionFilter:
    """
    The predicate behind a query or a live subscription.

    None on any field means "don't filter on this". Stores translate
    the filter to their own query language; matches() is the reference
    semantics.
    """
    coach_id: Optional[str] = None
    client_id: Optional[str] = None
    statuses: Optional[frozenset[SessionStatus]] = None
    date_range: Optional[DateRange] = None

    @classmethod
    def for_party(
        cls,
        role: Role,
        user_id: str,
        date_range: Optional[DateRange] = None,
        statuses: Optional[Iterable[SessionStatus]] = None,
    ) -> "SessionFilter":
        frozen = frozenset(statuses) if statuses is not None else None
        if role is Role.COACH:
            return cls(coach_id=user_id, statuses=frozen, date_range=date_range)
        return cls(client_id=user_id, statuses=frozen, date_range=date_range)

    def matches(self, session: Session) -> bool:
        if not self.concerns(session):
            return False
        if self.statuses is not None and session.status not in self.statuses:
            return False
        if self.date_range is not None and not self.date_range.contains(session.date):
            return False
        return True

    def concerns(self, session: Session) -> bool:
        """True if the session belongs to the identities this filter watches."""
        if self.coach_id is not None and session.coach_id != self.coach_id:
            return False
        if self.client_id is not None and session.client_id != self.client_id:
            return False
        return True


def sort_sessions(sessions: Iterable[Session]) -> list[Session]:
    """Date ascending, then start time, for predictable rendering."""
    return sorted(sessions, key=lambda s: s.sort_key)


class SessionStore(Protocol):
    """
    Protocol for session persistence.

    Using a protocol means core and tests never import the database
    driver; the in-memory and MongoDB stores both satisfy it.
    """

    async def get(self, session_id: str) -> Optional[Session]: ...

    async def query(self, session_filter: SessionFilter) -> list[Session]: ...

    async def query_by_coach(
        self,
        coach_id: str,
        date_range: Optional[DateRange] = None,
        statuses: Optional[Iterable[SessionStatus]] = None,
    ) -> list[Session]: ...

    async def query_by_client(
        self,
        client_id: str,
        date_range: Optional[DateRange] = None,
        statuses: Optional[Iterable[SessionStatus]] = None,
    ) -> list[Session]: ...

    async def put(self, session: Session) -> Session: ...

    async def delete(self, session_id: str) -> bool: ...

    async def subscribe(
        self, session_filter: SessionFilter, callback: SubscriptionCallback
    ) -> "Subscription": ...

    async def ping(self) -> None: ...


class Subscription:
    """Handle returned by subscribe(). Call unsubscribe() to stop delivery."""

    def __init__(
        self,
        registry: "SubscriptionRegistry",
        session_filter: SessionFilter,
        callback: SubscriptionCallback,
    ) -> None:
        self.id = uuid4().hex
        self.filter = session_filter
        self._callback = callback
        self._registry = registry

    @property
    def active(self) -> bool:
        return self._registry.is_registered(self.id)

    def unsubscribe(self) -> None:
        self._registry.remove(self.id)

    async def deliver(self, sessions: list[Session]) -> None:
        result = self._callback(sessions)
        if inspect.isawaitable(result):
            await result


class SubscriptionRegistry:
    """
    Tracks live subscriptions for a store and fans out result sets.

    Stores call publish() after every write with a coroutine that runs
    a filtered query. Callback failures are logged per subscriber and
    never reach the writer.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, Subscription] = {}

    def __len__(self) -> int:
        return len(self._subscriptions)

    def add(self, session_filter: SessionFilter, callback: SubscriptionCallback) -> Subscription:
        subscription = Subscription(self, session_filter, callback)
        self._subscriptions[subscription.id] = subscription
        logger.debug(
            "Subscription added",
            extra={"subscription_id": subscription.id, "active": len(self._subscriptions)},
        )
        return subscription

    def remove(self, subscription_id: str) -> None:
        if self._subscriptions.pop(subscription_id, None) is not None:
            logger.debug("Subscription removed", extra={"subscription_id": subscription_id})

    def is_registered(self, subscription_id: str) -> bool:
        return subscription_id in self._subscriptions

    async def deliver(self, subscription: Subscription, sessions: list[Session]) -> None:
        try:
            await subscription.deliver(sessions)
        except Exception as e:
            logger.error(
                "Subscription callback failed",
                extra={"subscription_id": subscription.id, "error": str(e)},
                exc_info=e,
            )

    async def publish(
        self,
        run_query: Callable[[SessionFilter], Awaitable[list[Session]]],
        changed: Optional[Session] = None,
    ) -> None:
        """
        Re-run each affected subscription's query and deliver the result.

        With a changed session, only subscriptions watching its coach or
        client are refreshed. Without one (an external change we can't
        attribute), every subscription is refreshed.
        """
        # Snapshot: callbacks may unsubscribe while we iterate
        for subscription in list(self._subscriptions.values()):
            if not subscription.active:
                continue
            if changed is not None and not subscription.filter.concerns(changed):
                continue
            try:
                sessions = await run_query(subscription.filter)
            except Exception as e:
                # The write already landed; the next change will refresh this view
                logger.error(
                    "Failed to refresh subscription",
                    extra={"subscription_id": subscription.id, "error": str(e)},
                )
                continue
            await self.deliver(subscription, sessions)
