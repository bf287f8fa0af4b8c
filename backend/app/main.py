"""Workflow Block Engine - host process wiring.

A host (web app, worker, CLI) enters ``lifespan()`` once at startup and
drives runs through the engine it yields.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import httpx
import structlog

from app.config import get_settings
from core.logging_config import setup_logging
from db.database import AsyncSessionLocal, close_db, init_db
from workflow.engine import WorkflowEngine

logger = structlog.get_logger(__name__)

_engine: Optional[WorkflowEngine] = None


def get_workflow_engine(transport: Optional[httpx.AsyncBaseTransport] = None) -> WorkflowEngine:
    """Process-wide engine bound to the global session factory."""
    global _engine
    if _engine is None:
        _engine = WorkflowEngine(AsyncSessionLocal, transport=transport)
    return _engine


@asynccontextmanager
async def lifespan(transport: Optional[httpx.AsyncBaseTransport] = None) -> AsyncIterator[WorkflowEngine]:
    """Startup and shutdown of the engine's host process."""
    global _engine
    settings = get_settings()
    setup_logging()

    await init_db()
    engine = get_workflow_engine(transport)
    logger.info(
        "Workflow engine ready",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    try:
        yield engine
    finally:
        _engine = None
        await close_db()
        logger.info("Workflow engine stopped")
