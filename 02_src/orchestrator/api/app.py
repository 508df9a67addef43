"""FastAPI application setup."""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..app import Application
from ..logging_config import get_logger
from .routes import agents, control, events, observability

logger = get_logger(__name__)

DEFAULT_CORS_ORIGINS = "http://localhost:5173,http://localhost:5174"


# Global application instance
_app: Application | None = None


def get_app() -> Application:
    """Get the global application instance."""
    global _app
    if not _app:
        _app = Application()
    return _app


def cors_origins() -> list[str]:
    """Allowed origins from API_CORS_ORIGINS (comma-separated)."""
    raw = os.getenv("API_CORS_ORIGINS", DEFAULT_CORS_ORIGINS)
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def create_fastapi_app(application: Application | None = None) -> FastAPI:
    """Create the API around an Application (the global one by default).

    The Application is started and stopped by the FastAPI lifespan.
    """
    application = application or get_app()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await application.start()
        logger.info("Agent orchestrator API ready")
        try:
            yield
        finally:
            await application.stop()

    fastapi_app = FastAPI(
        title="Agent Orchestrator API",
        description="Control and observability API for background agents",
        version="0.1.0",
        lifespan=lifespan,
    )

    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    fastapi_app.include_router(agents.create_agents_router(application))
    fastapi_app.include_router(observability.create_observability_router(application))
    fastapi_app.include_router(events.create_events_router(application))
    fastapi_app.include_router(control.create_control_router(application))

    return fastapi_app
