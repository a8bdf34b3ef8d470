"""FastAPI application entry point — wires everything together.

Usage:
    python -m civicpulse.main

Serves the issue chat / consent REST API and the live channel.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

import structlog
import uvicorn
from fastapi import FastAPI

from civicpulse.api.issues import router as issues_router
from civicpulse.api.responses import install_error_handlers
from civicpulse.config import settings
from civicpulse.db.engine import db_lifespan
from civicpulse.events import emit, start_event_system, stop_event_system, subscribe
from civicpulse.realtime import connections
from civicpulse.realtime.gateway import router as live_router
from civicpulse.schemas.events import EventType, SystemEvent
from civicpulse.security.audit import audit_on_event

# ── Logging setup ────────────────────────────────────────────────────

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    stream=sys.stdout,
)
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = logging.getLogger(__name__)

# ── FastAPI lifespan ─────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup and shutdown lifecycle."""
    logger.info("Starting Civic Pulse chat (env=%s)", settings.environment)
    app.state.started_at = datetime.now(timezone.utc)

    # 1. Database
    async with db_lifespan():
        logger.info("Database initialized")

        # 2. Event system + audit trail
        subscribe(audit_on_event)
        await start_event_system()
        await emit(SystemEvent(event_type=EventType.SYSTEM_STARTUP, source_module="main"))

        try:
            yield
        finally:
            logger.info("Shutting down Civic Pulse chat...")

            await connections.connection_manager.close_all()
            logger.info("Live connections closed")

            await emit(SystemEvent(event_type=EventType.SYSTEM_SHUTDOWN, source_module="main"))
            await stop_event_system()
            logger.info("Event system stopped")

    logger.info("Civic Pulse chat shutdown complete")


# ── FastAPI app ──────────────────────────────────────────────────────

app = FastAPI(
    title="Civic Pulse Chat API",
    description="Issue discussion and merge consent for civic issue reports",
    version="0.1.0",
    lifespan=lifespan,
)
install_error_handlers(app)
app.include_router(issues_router)
app.include_router(live_router)


@app.get("/health")
async def health_check() -> dict[str, str | int]:
    """Health check endpoint."""
    return {
        "status": "ok",
        "environment": settings.environment,
        "live_connections": connections.connection_manager.connection_count(),
    }


# ── Entry point ──────────────────────────────────────────────────────

if __name__ == "__main__":
    uvicorn.run(
        "civicpulse.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )
