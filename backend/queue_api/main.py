"""
Queue API main application.
Entry point for the FastAPI REST server.
"""

from fastapi import FastAPI

from shared.config.settings import settings
from queue_api.core import configure_cors, lifespan, register_middlewares
from queue_api.routers import (
    counters_router,
    display_router,
    health_router,
    kiosk_router,
    reports_router,
    staff_router,
    tickets_router,
)


app = FastAPI(
    title="Queue Engine API",
    description="Ticket issuance, counter calling and queue statistics for service branches",
    version="0.1.0",
    lifespan=lifespan,
)

register_middlewares(app)
configure_cors(app)


# =============================================================================
# Include Routers
# =============================================================================

app.include_router(health_router)
app.include_router(kiosk_router)
app.include_router(tickets_router)
app.include_router(staff_router)
app.include_router(counters_router)
app.include_router(display_router)
app.include_router(reports_router)


# =============================================================================
# Development entry point
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "queue_api.main:app",
        host="0.0.0.0",
        port=settings.rest_api_port,
        reload=settings.environment == "development",
    )
