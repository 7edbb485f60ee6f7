"""In-memory session store for local development and tests."""

from .store import InMemorySessionStore

__all__ = ["InMemorySessionStore"]
