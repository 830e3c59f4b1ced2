"""
Core Event Publishing with Retry and Validation.
"""

from __future__ import annotations

import random
import time

import redis

from shared.config.settings import settings
from shared.config.logging import get_logger
from .event_types import MAX_EVENT_SIZE
from .event_schema import Event

logger = get_logger(__name__)


def calculate_retry_delay_with_jitter(attempt: int, base_delay: float = 0.5) -> float:
    """
    Exponential backoff with decorrelated jitter.

    Args:
        attempt: Current attempt number (0-indexed)
        base_delay: Base delay in seconds

    Returns:
        Delay in seconds, capped at 10s.
    """
    exp_delay = min(base_delay * (2 ** attempt), 10.0)
    return random.uniform(base_delay, exp_delay)


def _validate_event_size(event_json: str, event_type: str) -> None:
    """Raise ValueError if the serialized event is over the size limit."""
    size = len(event_json.encode("utf-8"))
    if size > MAX_EVENT_SIZE:
        raise ValueError(
            f"Event {event_type} exceeds max size: {size} > {MAX_EVENT_SIZE} bytes"
        )


def publish_event(
    redis_client: redis.Redis,
    channel: str,
    event: Event,
) -> int:
    """
    Publish an event to a Redis channel.

    Retries with backoff up to settings.redis_publish_max_retries times.

    Args:
        redis_client: Sync Redis client.
        channel: Redis channel name.
        event: Event to publish (validated in Event.__post_init__).

    Returns:
        Number of subscribers that received the message.

    Raises:
        ValueError: If event is too large.
        redis.RedisError: If all retries fail.
    """
    event_json = event.to_json()
    _validate_event_size(event_json, event.type)

    max_retries = max(1, settings.redis_publish_max_retries)
    last_error: redis.RedisError | None = None
    for attempt in range(max_retries):
        try:
            return redis_client.publish(channel, event_json)
        except redis.RedisError as e:
            last_error = e
            if attempt < max_retries - 1:
                delay = calculate_retry_delay_with_jitter(
                    attempt, settings.redis_publish_retry_delay
                )
                logger.warning(
                    "Redis publish failed, retrying",
                    channel=channel,
                    event_type=event.type,
                    attempt=attempt + 1,
                    max_retries=max_retries,
                    delay_seconds=round(delay, 2),
                    error=str(e),
                )
                time.sleep(delay)
            else:
                logger.error(
                    "Redis publish failed after all retries",
                    channel=channel,
                    event_type=event.type,
                    error=str(e),
                )

    raise last_error  # type: ignore[misc]
