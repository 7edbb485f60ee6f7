"""MongoDB persistence for sessions (async, via motor)."""

from .client import MongoConfig, create_mongo_client
from .store import MongoSessionStore

__all__ = ["MongoConfig", "MongoSessionStore", "create_mongo_client"]
