"""
Application lifespan handler.
Manages startup and shutdown events for the FastAPI application.
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from shared.infrastructure.db import engine, SessionLocal
from shared.config.settings import settings
from shared.config.logging import setup_logging, queue_api_logger as logger
from shared.infrastructure.events import (
    close_redis_sync_pool,
    get_change_bus,
    set_change_bus,
)
from queue_api.models import Base
from queue_api.seed import seed


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.
    Runs on startup and shutdown.
    """
    setup_logging()

    secret_errors = settings.validate_production_secrets()
    if secret_errors:
        for error in secret_errors:
            logger.error("Configuration error: %s", error)
        if settings.environment == "production":
            raise RuntimeError(
                f"Production configuration errors: {'; '.join(secret_errors)}. "
                "Server will not start with insecure configuration."
            )
        else:
            logger.warning(
                "Running with insecure defaults (acceptable for development only)"
            )

    logger.info(
        "Starting queue API",
        port=settings.rest_api_port,
        env=settings.environment,
        event_backend=settings.event_backend,
    )

    Base.metadata.create_all(bind=engine)
    logger.info("Database tables created/verified")

    if settings.seed_demo_data:
        with SessionLocal() as db:
            seed(db)

    get_change_bus()

    yield

    logger.info("Shutting down queue API")
    get_change_bus().close()
    set_change_bus(None)
    close_redis_sync_pool()
    logger.info("Change bus closed")
