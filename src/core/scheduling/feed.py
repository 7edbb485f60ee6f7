"""
Live session feed for dashboards.

A LiveFeed is one subscriber's view of "the sessions I can see": all of
a coach's sessions or all of a client's, ordered by date. It subscribes
to the store and always holds the full current list. Consumers either
read `sessions` or iterate `updates()` to receive each new list.

Because every delivery is a complete result set, a slow consumer only
ever needs the latest one; older undelivered lists are dropped.
"""

import asyncio
import logging
from typing import AsyncIterator, Optional

from .models import Caller, DateRange, Session
from .store import SessionFilter, SessionStore, Subscription

logger = logging.getLogger(__name__)


class LiveFeed:
    """
    Subscription-backed view of one identity's sessions.

    Usage:
        async with LiveFeed.for_caller(store, caller) as feed:
            async for sessions in feed.updates():
                render(sessions)
    """

    def __init__(self, store: SessionStore, session_filter: SessionFilter) -> None:
        self._store = store
        self.filter = session_filter
        self._sessions: list[Session] = []
        self._subscription: Optional[Subscription] = None
        self._pending: asyncio.Queue[list[Session]] = asyncio.Queue(maxsize=1)
        self._closed = asyncio.Event()

    @classmethod
    def for_caller(
        cls, store: SessionStore, caller: Caller, date_range: Optional[DateRange] = None
    ) -> "LiveFeed":
        return cls(store, SessionFilter.for_party(caller.role, caller.id, date_range))

    @property
    def sessions(self) -> list[Session]:
        """Latest full result set."""
        return list(self._sessions)

    @property
    def is_open(self) -> bool:
        return self._subscription is not None and not self._closed.is_set()

    async def open(self) -> None:
        if self._subscription is not None:
            return
        # The store delivers the current set immediately on subscribe
        self._subscription = await self._store.subscribe(self.filter, self._on_change)
        logger.debug(
            "Live feed opened",
            extra={"coach_id": self.filter.coach_id, "client_id": self.filter.client_id},
        )

    def close(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
        self._closed.set()
        logger.debug("Live feed closed")

    async def __aenter__(self) -> "LiveFeed":
        await self.open()
        return self

    async def __aexit__(self, *exc_info) -> None:
        self.close()

    def _on_change(self, sessions: list[Session]) -> None:
        self._sessions = list(sessions)
        if self._pending.full():
            # Superseded by the newer full set
            self._pending.get_nowait()
        self._pending.put_nowait(self.sessions)

    async def updates(self) -> AsyncIterator[list[Session]]:
        """Yield each new result set until the feed is closed."""
        while not self._closed.is_set():
            getter = asyncio.ensure_future(self._pending.get())
            closer = asyncio.ensure_future(self._closed.wait())
            try:
                done, _ = await asyncio.wait({getter, closer}, return_when=asyncio.FIRST_COMPLETED)
            finally:
                # Also runs when the consumer is cancelled mid-wait
                for waiter in (getter, closer):
                    if not waiter.done():
                        waiter.cancel()

            if getter not in done:
                return
            yield getter.result()
