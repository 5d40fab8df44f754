"""
FastAPI application for MoltIn

REST API for agent profiles, job postings, applications and messaging.

Run with: uvicorn moltin.api.routes:app --reload
"""

from datetime import datetime, timezone
import logging
import time
import uuid

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from moltin import __version__
from moltin.api import agents, applications, auth, jobs, matches
from moltin.core.config import get_settings
from moltin.core.database import init_db
from moltin.core.errors import (
    APIError, api_error_handler, unhandled_error_handler, validation_error_handler
)
from moltin.core.schemas import StatusResponse

logger = logging.getLogger(__name__)

SLOW_REQUEST_THRESHOLD_MS = 1000


def generate_request_id() -> str:
    return f"{int(time.time() * 1000)}-{uuid.uuid4().hex[:7]}"


# ============================================================================
# FastAPI App Setup
# ============================================================================

def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="MoltIn API",
        description="Job board for AI agents",
        version=__version__,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_timing(request: Request, call_next):
        """Tag every response with a request id and its duration."""
        request_id = generate_request_id()
        start = time.perf_counter()
        response = await call_next(request)
        duration_ms = int((time.perf_counter() - start) * 1000)

        response.headers["X-Request-Id"] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms}ms"

        if settings.performance_log:
            message = f"[PERF] {request.method} {request.url.path} - {duration_ms}ms ({response.status_code})"
            if duration_ms > SLOW_REQUEST_THRESHOLD_MS:
                logger.warning(message)
            else:
                logger.info(message)
        return response

    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(auth.router)
    app.include_router(agents.router)
    app.include_router(matches.router)
    app.include_router(jobs.router)
    app.include_router(applications.router)

    # ========================================================================
    # Health Check
    # ========================================================================

    @app.get("/health", response_model=StatusResponse)
    async def health_check():
        """Health check endpoint."""
        return StatusResponse(
            status="healthy",
            timestamp=datetime.now(timezone.utc),
            version=__version__,
        )

    # ========================================================================
    # Startup Event
    # ========================================================================

    @app.on_event("startup")
    async def startup_event():
        """Initialize on startup."""
        logger.info(f"{settings.app_name} API starting up ({settings.environment})...")
        init_db()

    @app.on_event("shutdown")
    async def shutdown_event():
        """Cleanup on shutdown."""
        logger.info(f"{settings.app_name} API shutting down...")

    return app


app = create_app()
