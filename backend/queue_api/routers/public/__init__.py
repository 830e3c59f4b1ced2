"""
Public routers - No authentication required.
- /api/health - Health check
- /api/display/* - Waiting-room display boards
"""

from .health import router as health_router

__all__ = ["health_router"]
