"""
Routers of the queue API, grouped by who calls them.
"""

from .kiosk import router as kiosk_router
from .tickets import router as tickets_router
from .staff import router as staff_router
from .counters import router as counters_router
from .display import router as display_router
from .reports import router as reports_router
from .public import health_router

__all__ = [
    "kiosk_router",
    "tickets_router",
    "staff_router",
    "counters_router",
    "display_router",
    "reports_router",
    "health_router",
]
