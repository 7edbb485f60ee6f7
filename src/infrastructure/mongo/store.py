"""
MongoDB session store.

Implements the SessionStore protocol over a single `sessions`
collection. Every write goes through an aggregation-pipeline upsert so
createdAt/updatedAt come from the database server's clock, never the
application's.

Live subscriptions are fanned out in-process after each write made
through this store. With change streams enabled (replica set required),
the store instead watches the collection and fans out every change,
including writes from other processes.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable, Optional

from pymongo import ASCENDING, ReturnDocument
from pymongo.errors import PyMongoError

from ...core.scheduling.errors import StoreUnavailable, ValidationError
from ...core.scheduling.models import DateRange, Session, SessionStatus
from ...core.scheduling.store import (
    SessionFilter,
    Subscription,
    SubscriptionCallback,
    SubscriptionRegistry,
)
from .client import MongoConfig, create_mongo_client
from .documents import filter_to_query, session_from_document, upsert_pipeline

logger = logging.getLogger(__name__)

SORT_ORDER = [("date", ASCENDING), ("time", ASCENDING)]


@asynccontextmanager
async def translate_errors(operation: str) -> AsyncIterator[None]:
    """Surface driver failures as StoreUnavailable."""
    try:
        yield
    except PyMongoError as e:
        logger.error(
            "MongoDB operation failed",
            extra={"operation": operation, "error": str(e)},
        )
        raise StoreUnavailable(f"Session store unavailable during {operation}: {e}") from e


class MongoSessionStore:
    """
    Repository for session persistence in MongoDB.

    The application never builds a query document directly - it hands
    the store a SessionFilter and gets domain sessions back.
    """

    def __init__(self, collection, client=None, watch_changes: bool = False) -> None:
        self._collection = collection
        self._client = client
        self._subscriptions = SubscriptionRegistry()
        self._watch_changes = watch_changes
        self._watch_task: Optional[asyncio.Task] = None

    @classmethod
    def from_config(cls, config: MongoConfig) -> "MongoSessionStore":
        client = create_mongo_client(config)
        collection = client[config.database][config.collection]
        return cls(collection, client=client, watch_changes=config.change_streams)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Create indexes and, if enabled, start watching for changes."""
        async with translate_errors("ensure_indexes"):
            await self._collection.create_index([("coachId", ASCENDING), ("date", ASCENDING)])
            await self._collection.create_index([("clientId", ASCENDING), ("date", ASCENDING)])

        if self._watch_changes and self._watch_task is None:
            self._watch_task = asyncio.create_task(self._watch())

        logger.info(
            "MongoDB session store started",
            extra={"change_streams": self._watch_changes},
        )

    async def close(self) -> None:
        if self._watch_task is not None:
            self._watch_task.cancel()
            try:
                await self._watch_task
            except asyncio.CancelledError:
                pass
            self._watch_task = None

        if self._client is not None:
            self._client.close()
            logger.debug("Closed MongoDB client")

    # ------------------------------------------------------------------
    # SessionStore protocol
    # ------------------------------------------------------------------

    async def get(self, session_id: str) -> Optional[Session]:
        async with translate_errors("get"):
            doc = await self._collection.find_one({"_id": session_id})
        return session_from_document(doc) if doc else None

    async def query(self, session_filter: SessionFilter) -> list[Session]:
        async with translate_errors("query"):
            cursor = self._collection.find(filter_to_query(session_filter)).sort(SORT_ORDER)
            results = []
            async for doc in cursor:
                try:
                    results.append(session_from_document(doc))
                except ValidationError as e:
                    logger.warning(
                        "Skipping unreadable session document",
                        extra={"session_id": str(doc.get("_id")), "error": e.message},
                    )
        return results

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
        """Upsert a session and return it as stored, with server timestamps."""
        async with translate_errors("put"):
            doc = await self._collection.find_one_and_update(
                {"_id": session.id},
                upsert_pipeline(session),
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        stored = session_from_document(doc)

        if not self._watch_changes:
            await self._subscriptions.publish(self.query, changed=stored)
        return stored

    async def delete(self, session_id: str) -> bool:
        async with translate_errors("delete"):
            doc = await self._collection.find_one_and_delete({"_id": session_id})
        if doc is None:
            return False

        if not self._watch_changes:
            await self._subscriptions.publish(self.query, changed=session_from_document(doc))
        return True

    async def subscribe(
        self, session_filter: SessionFilter, callback: SubscriptionCallback
    ) -> Subscription:
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
        async with translate_errors("ping"):
            await self._collection.database.command("ping")

    # ------------------------------------------------------------------
    # Change streams
    # ------------------------------------------------------------------

    async def _watch(self) -> None:
        """
        Fan out every change on the collection.

        Deletes carry no full document, so they refresh all
        subscriptions rather than just the affected parties.
        """
        while True:
            try:
                async with self._collection.watch(full_document="updateLookup") as stream:
                    async for change in stream:
                        full_document = change.get("fullDocument")
                        changed = session_from_document(full_document) if full_document else None
                        await self._subscriptions.publish(self.query, changed=changed)
            except asyncio.CancelledError:
                raise
            except PyMongoError as e:
                logger.error("Change stream interrupted, reconnecting", extra={"error": str(e)})
                await asyncio.sleep(1)
