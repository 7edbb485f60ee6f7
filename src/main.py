"""
FastAPI application entry point.

This module creates and configures the FastAPI application.
Using an application factory pattern (create_app function) because:
- Easier to test with different configurations
- Explicit about initialization order
- Can create multiple app instances if needed (e.g., for testing)

For local development:
    STORE_MOCK_MODE=true uvicorn src.main:app --reload

For production:
    gunicorn src.main:app -w 4 -k uvicorn.workers.UvicornWorker

Live feeds fan out in-process, so with more than one worker enable
MONGODB_CHANGE_STREAMS to see writes made by the other workers.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api.dependencies import close_session_store, start_session_store
from .api.routes import health, sessions
from .config.settings import get_settings
from .core.scheduling.errors import (
    InvalidTransition,
    NotFound,
    PermissionDenied,
    SchedulingConflict,
    SchedulingError,
    StoreUnavailable,
    ValidationError,
)

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.INFO,
)

logger = logging.getLogger(__name__)

HTTP_422_UNPROCESSABLE: int = getattr(status, "HTTP_422_UNPROCESSABLE_CONTENT", 422)

# Scheduling errors are expected business outcomes; each maps to one status
ERROR_STATUS_CODES: dict[type[SchedulingError], int] = {
    ValidationError: HTTP_422_UNPROCESSABLE,
    SchedulingConflict: status.HTTP_409_CONFLICT,
    InvalidTransition: status.HTTP_409_CONFLICT,
    NotFound: status.HTTP_404_NOT_FOUND,
    PermissionDenied: status.HTTP_403_FORBIDDEN,
    StoreUnavailable: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_code_for(exc: SchedulingError) -> int:
    for error_type, code in ERROR_STATUS_CODES.items():
        if isinstance(exc, error_type):
            return code
    return status.HTTP_400_BAD_REQUEST


def error_body(exc: SchedulingError) -> dict:
    detail: dict = {"message": exc.message, "code": exc.code}
    if isinstance(exc, ValidationError) and exc.field:
        detail["field"] = exc.field
    if isinstance(exc, SchedulingConflict) and exc.conflicting_session_id:
        detail["conflictingSessionId"] = exc.conflicting_session_id
    return {"detail": detail}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Creates the shared session store on startup (connecting to MongoDB
    and ensuring indexes unless in mock mode) and closes it on shutdown.
    """
    # Startup
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())

    logger.info(
        "Scheduling API starting",
        extra={
            "version": settings.api_version,
            "mock_mode": {"store": settings.store_mock_mode},
        }
    )

    # Validate configuration
    missing_fields = settings.validate_required_fields()
    if missing_fields:
        logger.error(
            "Missing required configuration",
            extra={"missing_fields": missing_fields}
        )

    await start_session_store(settings)

    yield

    # Shutdown
    await close_session_store()
    logger.info("Scheduling API shutting down")


def create_app() -> FastAPI:
    """
    Application factory.

    Creates and configures the FastAPI application.
    This function is called once at startup (in production) or
    multiple times (in tests with different configurations).
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="""
        Session booking and scheduling for coaches and their clients.

        ## Authentication

        All endpoints require an API key in the `X-API-Key` header, plus
        the caller's identity in `X-User-Id` and `X-User-Role`
        (`coach` or `client`).

        ## Workflow

        1. **Book**: `POST /api/v1/sessions`
           - Coach bookings are scheduled; client bookings are requests
        2. **Approve**: `POST /api/v1/sessions/{id}/approve` (coach)
        3. **Reschedule or edit**: `PATCH /api/v1/sessions/{id}`
        4. **Finish**: `POST /api/v1/sessions/{id}/complete` or `/cancel`
        5. **Watch**: `GET /api/v1/sessions/feed` (Server-Sent Events)

        A booking that overlaps an active session for the same coach or
        client on the same day is rejected with 409.
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS middleware
    # Configure allowed origins via CORS_ORIGINS environment variable
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(
        health.router,
        prefix="/health",
        tags=["Health"],
    )

    app.include_router(
        sessions.router,
        prefix="/api/v1/sessions",
        tags=["Sessions"],
    )

    # Root endpoint
    @app.get("/", include_in_schema=False)
    async def root():
        """Root endpoint - redirect to docs."""
        return {
            "message": settings.api_title,
            "version": __version__,
            "docs": "/docs",
            "health": "/health",
        }

    @app.exception_handler(SchedulingError)
    async def scheduling_error_handler(request: Request, exc: SchedulingError):
        """
        Translate booking failures into HTTP responses.

        These are expected outcomes (a taken slot, a bad date), so they
        are logged at warning, except store outages.
        """
        code = status_code_for(exc)
        log = logger.error if isinstance(exc, StoreUnavailable) else logger.warning
        log(
            "Scheduling request failed",
            extra={
                "path": request.url.path,
                "method": request.method,
                "code": exc.code,
                "error": exc.message,
            },
        )
        return JSONResponse(status_code=code, content=error_body(exc))

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """
        Catch-all exception handler.

        In production, this prevents stack traces from leaking to clients.
        We log the full error server-side but return a generic message.
        """
        logger.error(
            "Unhandled exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error": str(exc),
            },
            exc_info=exc,
        )

        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error. Please contact support if this persists."
            }
        )

    logger.info(
        "FastAPI application created",
        extra={
            "title": settings.api_title,
            "version": settings.api_version,
        }
    )

    return app


# Create the application instance
# This is what uvicorn/gunicorn will import
app = create_app()


# For debugging/development
if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "src.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower(),
    )
