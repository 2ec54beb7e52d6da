from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import uvicorn
from fastapi import FastAPI

from leave_approval.api.health import router as health_router
from leave_approval.api.router import api_router
from leave_approval.config import get_settings
from leave_approval.db import Database
from leave_approval.exceptions import setup_exception_handlers
from leave_approval.middleware import setup_middleware
from leave_approval.schemas.workflow import WorkflowConfig
from leave_approval.services.activity_invoker import RetryPolicy
from leave_approval.services.engine import WorkflowEngine
from leave_approval.services.event_log import SqlEventLog
from leave_approval.services.notifications import LoggingNotificationService

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the event store and workflow engine; close both on shutdown."""
    settings = get_settings()
    logger.info("Starting %s v%s [%s]", settings.app_name, settings.app_version, settings.environment)

    database = Database(settings.database_url, echo=settings.debug)
    await database.create_all()
    engine = WorkflowEngine(
        SqlEventLog(database.session_factory),
        LoggingNotificationService(),
        config=WorkflowConfig.from_settings(settings),
        retry_policy=RetryPolicy.from_settings(settings),
        signal_ack_timeout_seconds=settings.signal_ack_timeout_seconds,
    )
    await engine.start()
    app.state.database = database
    app.state.workflow_engine = engine
    try:
        yield
    finally:
        logger.info("Shutting down %s", settings.app_name)
        await engine.shutdown()
        await database.dispose()


def create_app() -> FastAPI:
    """Application factory."""
    settings = get_settings()

    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.environment != "production" else None,
        redoc_url="/redoc" if settings.environment != "production" else None,
    )

    setup_middleware(application, settings)
    setup_exception_handlers(application)

    application.include_router(health_router)
    application.include_router(api_router)

    return application


app = create_app()


def main() -> None:
    """Entry point for the API process."""
    settings = get_settings()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    uvicorn.run("leave_approval.main:app", host=settings.host, port=settings.port, log_level="info")


if __name__ == "__main__":
    main()
