"""
Redis Connection Pool Management.

The engine is synchronous (FastAPI sync handlers, CLI), so a single
sync connection pool serves both publishing and subscriptions.
"""

from __future__ import annotations

import threading

import redis

from shared.config.settings import settings
from shared.config.logging import get_logger

logger = get_logger(__name__)


_redis_sync_pool: redis.ConnectionPool | None = None
_sync_pool_lock = threading.Lock()


def get_redis_sync_pool() -> redis.ConnectionPool:
    """
    Get or create the synchronous Redis connection pool.

    Double-checked under a lock so concurrent first callers share one pool.
    """
    global _redis_sync_pool
    if _redis_sync_pool is None:
        with _sync_pool_lock:
            if _redis_sync_pool is None:
                _redis_sync_pool = redis.ConnectionPool.from_url(
                    settings.redis_url,
                    max_connections=settings.redis_sync_pool_max_connections,
                    decode_responses=True,
                    socket_connect_timeout=settings.redis_socket_timeout,
                    socket_timeout=settings.redis_socket_timeout,
                    health_check_interval=30,
                )
                logger.info(
                    "Redis sync pool initialized",
                    max_connections=settings.redis_sync_pool_max_connections,
                    timeout=settings.redis_socket_timeout,
                )
    return _redis_sync_pool


def get_redis_sync_client() -> redis.Redis:
    """
    Get a Redis client backed by the shared sync pool.

    Each call returns a new client object; connections come from the pool.
    """
    return redis.Redis(connection_pool=get_redis_sync_pool())


def check_redis_sync_health() -> dict:
    """Ping Redis through the pool. Raises on connection failure."""
    client = get_redis_sync_client()
    client.ping()
    return {
        "type": "sync_pool",
        "max_connections": get_redis_sync_pool().max_connections,
    }


def close_redis_sync_pool() -> None:
    """
    Close the sync Redis pool on application shutdown.

    Thread-safe; the pool reference is always cleared.
    """
    global _redis_sync_pool
    with _sync_pool_lock:
        if _redis_sync_pool is not None:
            try:
                _redis_sync_pool.disconnect()
                logger.info("Redis sync pool closed")
            except redis.RedisError as e:
                logger.warning("Error closing Redis sync pool", error=str(e))
            finally:
                _redis_sync_pool = None
