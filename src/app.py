"""Main FastAPI application module.

This module builds the FastAPI application and registers all route handlers.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

import config
from core.database import init_db
from core.exceptions import StoreFailureError
from core.logging_config import setup_logging
from api.routes import admin, student, teacher
from utils.clock import Clock, SYSTEM_CLOCK
from utils.rate_limiter import RateLimiter

APP_TITLE = "Classroom Invite API"
APP_DESCRIPTION = "Class membership by invite code, with an append-only audit log."
APP_VERSION = "1.0.0"

logger = logging.getLogger(__name__)


def create_app(clock: Clock = SYSTEM_CLOCK) -> FastAPI:
    """Create the FastAPI application.

    Args:
        clock: Time source shared by the managers and rate limiters.

    Returns:
        Configured FastAPI application.
    """
    setup_logging()

    app = FastAPI(
        title=APP_TITLE,
        description=APP_DESCRIPTION,
        version=APP_VERSION,
    )

    app.state.clock = clock
    app.state.join_rate_limiter = RateLimiter(
        config.JOIN_RATE_LIMIT_MAX,
        config.JOIN_RATE_LIMIT_WINDOW,
        name="join",
        clock=clock,
    )
    app.state.audit_rate_limiter = RateLimiter(
        config.AUDIT_RATE_LIMIT_MAX,
        config.AUDIT_RATE_LIMIT_WINDOW,
        name="audit",
        clock=clock,
    )

    # Configure CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Register route handlers
    app.include_router(teacher.router)
    app.include_router(student.router)
    app.include_router(admin.router)

    @app.exception_handler(StoreFailureError)
    def store_failure_handler(request: Request, exc: StoreFailureError) -> JSONResponse:
        logger.error("Store failure on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Storage failure"},
        )

    @app.on_event("startup")
    def startup_tasks() -> None:
        """Create missing tables."""
        init_db()

    @app.get("/", summary="API root", tags=["Info"])
    def root() -> dict:
        """API root, returns API information and documentation links.

        Returns:
            Dictionary with API information and documentation links.
        """
        return {
            "name": APP_TITLE,
            "version": APP_VERSION,
            "description": APP_DESCRIPTION,
            "docs": {
                "swagger": "/docs",
                "redoc": "/redoc",
            },
            "health": "/api/health",
        }

    @app.get("/api/health", summary="Health check", tags=["Health"])
    def health() -> dict:
        """Health check endpoint.

        Returns:
            Dictionary with status "ok".
        """
        return {"status": "ok"}

    return app


app = create_app()


# --- Startup code for direct execution ---
if __name__ == "__main__":
    import uvicorn

    server_url = f"http://{config.API_HOST}:{config.API_PORT}"
    print(f"Starting {APP_TITLE} at {server_url}")
    print(f"API docs: {server_url}/docs")

    # reload=True enables auto-reload on code changes
    uvicorn.run("app:app", host=config.API_HOST, port=config.API_PORT, reload=True)
