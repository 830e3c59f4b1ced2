"""
Change notification bus.

One publish/subscribe seam for every committed queue change. The engine
publishes; display boards and staff consoles subscribe per branch.

Backends:
- InMemoryChangeBus: per-subscriber bounded queues, single process (tests, CLI)
- RedisChangeBus: Redis pub/sub on channel_branch_queue(branch_id)
"""

from __future__ import annotations

import queue
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterator

import redis

from shared.config.settings import settings
from shared.config.logging import get_logger
from .channels import channel_branch_queue
from .event_schema import Event
from .publisher import publish_event
from .redis_pool import get_redis_sync_client

logger = get_logger(__name__)

# Pending events held per in-memory subscriber before the oldest is dropped
DEFAULT_SUBSCRIBER_BUFFER = 1000


class Subscription(ABC):
    """
    Stream of change events for one branch.

    Usage:
        with bus.subscribe(branch_id) as sub:
            event = sub.get(timeout=1.0)
            for event in sub.drain():
                ...
    """

    def __init__(self, branch_id: int):
        self.branch_id = branch_id
        self.closed = False

    @abstractmethod
    def get(self, timeout: float | None = None) -> Event | None:
        """Next event, or None if none arrives within `timeout` seconds."""

    def drain(self) -> list[Event]:
        """All events already delivered, without blocking."""
        events = []
        while True:
            event = self.get(timeout=0)
            if event is None:
                return events
            events.append(event)

    def close(self) -> None:
        self.closed = True

    def __iter__(self) -> Iterator[Event]:
        while not self.closed:
            event = self.get(timeout=1.0)
            if event is not None:
                yield event

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class ChangeBus(ABC):
    """Publish/subscribe interface for branch queue changes."""

    @abstractmethod
    def publish(self, event: Event) -> int:
        """Deliver `event` to subscribers of its branch. Returns receiver count."""

    @abstractmethod
    def subscribe(self, branch_id: int) -> Subscription:
        """Open a subscription to changes in `branch_id`."""

    def close(self) -> None:
        """Release backend resources."""


# =============================================================================
# In-memory backend
# =============================================================================


class _InMemorySubscription(Subscription):
    def __init__(self, bus: "InMemoryChangeBus", branch_id: int, maxsize: int):
        super().__init__(branch_id)
        self._bus = bus
        self._queue: queue.Queue[Event] = queue.Queue(maxsize=maxsize)
        self.dropped = 0

    def deliver(self, event: Event) -> None:
        while True:
            try:
                self._queue.put_nowait(event)
                return
            except queue.Full:
                # Slow reader: drop the oldest event so fresh state still arrives
                try:
                    self._queue.get_nowait()
                    self.dropped += 1
                except queue.Empty:
                    pass

    def get(self, timeout: float | None = None) -> Event | None:
        try:
            if timeout == 0:
                return self._queue.get_nowait()
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def close(self) -> None:
        if not self.closed:
            self._bus._remove(self)
        super().close()


class InMemoryChangeBus(ChangeBus):
    """Process-local bus. Each subscriber owns a bounded FIFO queue."""

    def __init__(self, buffer_size: int = DEFAULT_SUBSCRIBER_BUFFER):
        self._buffer_size = buffer_size
        self._subscribers: dict[int, list[_InMemorySubscription]] = {}
        self._lock = threading.Lock()

    def publish(self, event: Event) -> int:
        with self._lock:
            targets = list(self._subscribers.get(event.branch_id, ()))
        for sub in targets:
            sub.deliver(event)
        logger.debug(
            "Event published",
            backend="memory",
            event_type=event.type,
            branch_id=event.branch_id,
            receivers=len(targets),
        )
        return len(targets)

    def subscribe(self, branch_id: int) -> Subscription:
        sub = _InMemorySubscription(self, branch_id, self._buffer_size)
        with self._lock:
            self._subscribers.setdefault(branch_id, []).append(sub)
        return sub

    def subscriber_count(self, branch_id: int) -> int:
        with self._lock:
            return len(self._subscribers.get(branch_id, ()))

    def _remove(self, sub: _InMemorySubscription) -> None:
        with self._lock:
            subs = self._subscribers.get(sub.branch_id, [])
            if sub in subs:
                subs.remove(sub)
            if not subs:
                self._subscribers.pop(sub.branch_id, None)


# =============================================================================
# Redis backend
# =============================================================================


class _RedisSubscription(Subscription):
    def __init__(self, client: redis.Redis, branch_id: int):
        super().__init__(branch_id)
        self._pubsub = client.pubsub(ignore_subscribe_messages=True)
        self._pubsub.subscribe(channel_branch_queue(branch_id))

    def get(self, timeout: float | None = None) -> Event | None:
        message = self._pubsub.get_message(timeout=timeout if timeout is not None else 1.0)
        if not message or message.get("type") != "message":
            return None
        try:
            return Event.from_json(message["data"])
        except (ValueError, TypeError) as e:
            logger.warning(
                "Dropping malformed event",
                branch_id=self.branch_id,
                error=str(e),
            )
            return None

    def close(self) -> None:
        if not self.closed:
            try:
                self._pubsub.unsubscribe()
                self._pubsub.close()
            except redis.RedisError as e:
                logger.warning("Error closing Redis subscription", branch_id=self.branch_id, error=str(e))
        super().close()


class RedisChangeBus(ChangeBus):
    """Redis pub/sub bus; events reach every process subscribed to the branch."""

    def __init__(self, client: redis.Redis | None = None):
        self._client = client or get_redis_sync_client()

    def publish(self, event: Event) -> int:
        return publish_event(self._client, channel_branch_queue(event.branch_id), event)

    def subscribe(self, branch_id: int) -> Subscription:
        return _RedisSubscription(self._client, branch_id)

    def close(self) -> None:
        self._client.close()


# =============================================================================
# Singleton
# =============================================================================

_change_bus: ChangeBus | None = None
_bus_lock = threading.Lock()


def get_change_bus() -> ChangeBus:
    """
    Get or create the process-wide bus for settings.event_backend.

    Raises:
        ValueError: If event_backend is not "redis" or "memory".
    """
    global _change_bus
    if _change_bus is None:
        with _bus_lock:
            if _change_bus is None:
                backend = settings.event_backend.lower()
                if backend == "memory":
                    _change_bus = InMemoryChangeBus()
                elif backend == "redis":
                    _change_bus = RedisChangeBus()
                else:
                    raise ValueError(f"Unknown event backend: {settings.event_backend}")
                logger.info("Change bus initialized", backend=backend)
    return _change_bus


def set_change_bus(bus: ChangeBus | None) -> None:
    """Replace the process-wide bus (tests, embedding)."""
    global _change_bus
    with _bus_lock:
        _change_bus = bus
