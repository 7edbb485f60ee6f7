"""
Infrastructure layer - session store implementations.

Each subdirectory implements the SessionStore protocol:
- memory: In-memory store for mock mode (local dev, tests)
- mongo: MongoDB persistence via motor

These translate between stored documents and our domain models.
"""
