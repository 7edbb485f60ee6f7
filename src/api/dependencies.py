"""
FastAPI dependency injection.

Dependencies provide instances of the session store, the booking
service, the caller's identity, and configuration to route handlers.
Using dependency injection means:
- Routes don't instantiate their own dependencies (easier to test)
- Dependencies can be overridden in tests (app.dependency_overrides)
- Configuration is centralized
- The store's lifecycle (connect, indexes, close) is managed in one place

Each dependency is a function that FastAPI calls when needed.
"""

import logging
from typing import Annotated, Optional

from fastapi import Depends, Header, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from ..config.settings import Settings, get_settings
from ..core.scheduling.booking import BookingService
from ..core.scheduling.models import Caller, Role
from ..core.scheduling.store import SessionStore
from ..infrastructure.memory.store import InMemorySessionStore
from ..infrastructure.mongo.client import MongoConfig
from ..infrastructure.mongo.store import MongoSessionStore

logger = logging.getLogger(__name__)

# API Key security scheme
api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)

# One store per process: live feeds only work if every request
# writes through the same subscription registry
_session_store: Optional[SessionStore] = None


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

async def verify_api_key(
    settings: Annotated[Settings, Depends(get_settings)],
    api_key: str = Security(api_key_header),
) -> str:
    """
    Validate API key from request header.

    Raises 403 if key is invalid or missing.
    """
    if not api_key:
        logger.warning("Request missing API key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="API key required. Provide X-API-Key header.",
        )

    if api_key not in settings.api_keys_list and api_key not in settings.admin_api_keys_list:
        logger.warning(
            "Invalid API key attempt",
            extra={"key_prefix": api_key[:8] if api_key else ""}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )

    return api_key


async def verify_admin_api_key(
    settings: Annotated[Settings, Depends(get_settings)],
    api_key: str = Security(api_key_header),
) -> str:
    """Only admin keys may reach administrative operations such as hard delete."""
    if not api_key or api_key not in settings.admin_api_keys_list:
        logger.warning(
            "Admin operation refused",
            extra={"key_prefix": api_key[:8] if api_key else ""}
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin API key required",
        )
    return api_key


async def get_caller(
    x_user_id: Annotated[Optional[str], Header()] = None,
    x_user_role: Annotated[Optional[str], Header()] = None,
) -> Caller:
    """
    Resolve who is calling and in which role.

    Identity is established upstream (the auth provider sets these
    headers); this only reads it. Role decides which calendar the
    caller sees and which status changes they may make.
    """
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User ID required. Provide X-User-Id header.",
        )

    try:
        role = Role((x_user_role or "").strip().lower())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-User-Role header must be 'coach' or 'client'",
        )

    return Caller(id=x_user_id, role=role)


# ---------------------------------------------------------------------------
# Store lifecycle
# ---------------------------------------------------------------------------

def build_session_store(settings: Settings) -> SessionStore:
    """Choose the store implementation for this process."""
    if settings.store_mock_mode:
        logger.info("Using in-memory session store (mock mode)")
        return InMemorySessionStore()

    config = MongoConfig(
        uri=settings.mongodb_uri,
        database=settings.mongodb_database,
        collection=settings.mongodb_collection,
        timeout_ms=settings.mongodb_timeout_ms,
        change_streams=settings.mongodb_change_streams,
    )
    return MongoSessionStore.from_config(config)


async def start_session_store(settings: Settings) -> SessionStore:
    """Create the shared store at startup. Called from the app lifespan."""
    global _session_store

    if _session_store is None:
        _session_store = build_session_store(settings)
        if isinstance(_session_store, MongoSessionStore):
            await _session_store.start()
    return _session_store


async def close_session_store() -> None:
    global _session_store

    if isinstance(_session_store, MongoSessionStore):
        await _session_store.close()
    _session_store = None


# ---------------------------------------------------------------------------
# Service Dependencies
# ---------------------------------------------------------------------------

def get_session_store(
    settings: Annotated[Settings, Depends(get_settings)],
) -> SessionStore:
    """
    Provide the process-wide session store.

    Normally created during startup; created lazily here if a request
    arrives first (e.g. an app mounted without its lifespan).
    """
    global _session_store

    if _session_store is None:
        _session_store = build_session_store(settings)
        logger.info("Created session store lazily")
    return _session_store


def get_booking_service(
    store: Annotated[SessionStore, Depends(get_session_store)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> BookingService:
    """
    Provide BookingService over the shared store.

    The service itself is stateless, so we create a new instance per
    request.
    """
    return BookingService(
        store,
        default_title=settings.default_session_title,
        default_duration=settings.default_session_duration,
    )


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

# These type aliases make route signatures cleaner
AuthenticatedUser = Annotated[str, Depends(verify_api_key)]
AdminUser = Annotated[str, Depends(verify_admin_api_key)]
CallerDep = Annotated[Caller, Depends(get_caller)]
SessionStoreDep = Annotated[SessionStore, Depends(get_session_store)]
BookingServiceDep = Annotated[BookingService, Depends(get_booking_service)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
