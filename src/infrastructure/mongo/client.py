"""
MongoDB client construction.

Most code never touches this module directly - it goes through
MongoSessionStore, which handles the translation between domain
sessions and documents.
"""

import logging
from dataclasses import dataclass

from motor.motor_asyncio import AsyncIOMotorClient

logger = logging.getLogger(__name__)


@dataclass
class MongoConfig:
    """Configuration for the MongoDB connection."""
    uri: str = "mongodb://localhost:27017"
    database: str = "coachbook"
    collection: str = "sessions"
    timeout_ms: int = 5000
    change_streams: bool = False


def create_mongo_client(config: MongoConfig) -> AsyncIOMotorClient:
    """
    Create an async MongoDB client.

    The client connects lazily; nothing touches the network until the
    first operation. serverSelectionTimeoutMS bounds how long any call
    waits for a reachable server, which is the only timeout the store
    operations have.
    """
    client = AsyncIOMotorClient(
        config.uri,
        serverSelectionTimeoutMS=config.timeout_ms,
        tz_aware=True,
    )
    logger.info(
        "Created MongoDB client",
        extra={"database": config.database, "collection": config.collection},
    )
    return client
