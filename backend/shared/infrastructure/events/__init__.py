"""
Change notifications for the queue engine.

This package provides:
- Event schema and validation (event_schema.py)
- Event type constants (event_types.py)
- Channel naming conventions (channels.py)
- Redis sync connection pool (redis_pool.py)
- Publishing with retry (publisher.py)
- The ChangeBus publish/subscribe seam with memory and Redis backends (bus.py)
"""

from .event_types import (
    TICKET_ISSUED,
    TICKET_CALLED,
    TICKET_COMPLETED,
    TICKET_SKIPPED,
    TICKET_CANCELLED,
    COUNTER_ASSIGNED,
    COUNTER_RELEASED,
    COUNTER_PAUSED,
    COUNTER_RESUMED,
    TICKET_EVENTS,
    COUNTER_EVENTS,
    ALL_EVENT_TYPES,
    MAX_EVENT_SIZE,
)
from .event_schema import Event
from .channels import channel_branch_queue, branch_id_from_channel
from .redis_pool import (
    get_redis_sync_pool,
    get_redis_sync_client,
    check_redis_sync_health,
    close_redis_sync_pool,
)
from .publisher import publish_event, calculate_retry_delay_with_jitter
from .bus import (
    ChangeBus,
    Subscription,
    InMemoryChangeBus,
    RedisChangeBus,
    get_change_bus,
    set_change_bus,
)

__all__ = [
    # Event Types
    "TICKET_ISSUED",
    "TICKET_CALLED",
    "TICKET_COMPLETED",
    "TICKET_SKIPPED",
    "TICKET_CANCELLED",
    "COUNTER_ASSIGNED",
    "COUNTER_RELEASED",
    "COUNTER_PAUSED",
    "COUNTER_RESUMED",
    "TICKET_EVENTS",
    "COUNTER_EVENTS",
    "ALL_EVENT_TYPES",
    "MAX_EVENT_SIZE",
    # Event Schema
    "Event",
    # Channels
    "channel_branch_queue",
    "branch_id_from_channel",
    # Redis Pool
    "get_redis_sync_pool",
    "get_redis_sync_client",
    "check_redis_sync_health",
    "close_redis_sync_pool",
    # Publishing
    "publish_event",
    "calculate_retry_delay_with_jitter",
    # Bus
    "ChangeBus",
    "Subscription",
    "InMemoryChangeBus",
    "RedisChangeBus",
    "get_change_bus",
    "set_change_bus",
]
