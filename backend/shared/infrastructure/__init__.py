"""
Infrastructure module: Database and change notifications.

Provides:
- Database sessions and transactions (db.py)
- Request correlation ids (correlation.py)
- Change bus and Redis pub/sub (events/)
"""

from shared.infrastructure.db import (
    engine,
    SessionLocal,
    build_engine,
    get_db,
    get_db_context,
    safe_commit,
)
from shared.infrastructure.events import (
    get_redis_sync_client,
    close_redis_sync_pool,
    publish_event,
    get_change_bus,
)

__all__ = [
    # db
    "engine",
    "SessionLocal",
    "build_engine",
    "get_db",
    "get_db_context",
    "safe_commit",
    # events
    "get_redis_sync_client",
    "close_redis_sync_pool",
    "publish_event",
    "get_change_bus",
]
