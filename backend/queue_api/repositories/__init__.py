"""
Repository layer: the QueueStore contract and its implementations.

Usage:
    from queue_api.repositories import SqlQueueStore

    store = SqlQueueStore(db)
    waiting = store.get_waiting_tickets(branch_id)
"""

from .records import (
    TicketRecord,
    CounterRecord,
    ServiceRecord,
    BranchRecord,
    UserRecord,
)
from .base import QueueStore
from .memory_store import InMemoryQueueStore
from .sql_store import SqlQueueStore

__all__ = [
    "TicketRecord",
    "CounterRecord",
    "ServiceRecord",
    "BranchRecord",
    "UserRecord",
    "QueueStore",
    "InMemoryQueueStore",
    "SqlQueueStore",
]
