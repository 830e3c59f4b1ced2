"""
Health check endpoints for the queue API.
Provides basic and detailed health status of the service and its dependencies.
"""

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from shared.config.settings import settings
from shared.infrastructure.db import SessionLocal
from shared.infrastructure.events import check_redis_sync_health
from shared.utils.health import (
    HealthStatus,
    aggregate_health_checks,
    sync_health_check_with_timeout,
)
from shared.utils.schemas import DetailedHealthResponse, HealthResponse

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health", response_model=HealthResponse)
def health_check():
    """
    Basic health check endpoint.
    Returns service status without checking dependencies.
    """
    return {
        "status": HealthStatus.HEALTHY.value,
        "service": "queue-api",
        "environment": settings.environment,
    }


@sync_health_check_with_timeout(timeout=3.0, component="database")
def check_database_health() -> dict:
    with SessionLocal() as db:
        db.execute(text("SELECT 1"))
        dialect = db.get_bind().dialect.name
    return {"dialect": dialect}


check_redis_health = sync_health_check_with_timeout(timeout=3.0, component="redis")(
    check_redis_sync_health
)


@router.get("/health/detailed", response_model=DetailedHealthResponse)
def detailed_health_check():
    """
    Detailed health check that verifies connectivity to dependencies.

    Redis is only checked when it carries the change events. Returns 503
    Service Unavailable if any dependency is down.
    """
    results = [check_database_health()]
    if settings.event_backend.lower() == "redis":
        results.append(check_redis_health())
    health = aggregate_health_checks(results)

    body = {
        "status": health["status"],
        "service": "queue-api",
        "environment": settings.environment,
        "dependencies": health["components"],
    }
    if health["status"] != HealthStatus.HEALTHY.value:
        return JSONResponse(content=body, status_code=503)
    return body
