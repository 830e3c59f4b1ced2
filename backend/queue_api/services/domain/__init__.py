"""
Domain Services - application layer of the queue engine.

Structure:
    Router (thin controller)
        ↓
    QueueEngine (caller checks, logging, change events)
        ↓
    QueueSelector / TicketLifecycle / CounterService / StatsService
        ↓
    QueueStore (data access)

Usage:
    from queue_api.services.domain import QueueEngine

    engine = QueueEngine(SqlQueueStore(db), get_change_bus())
    ticket = engine.call_next(caller, branch_id, counter_id)
"""

from .queue_selector import QueueSelector, order_waiting, waiting_sort_key
from .ticket_lifecycle import TicketLifecycle, wait_time, service_time, format_ticket_number
from .counter_service import CounterService
from .stats_service import (
    StatsService,
    StatisticsSummary,
    DailyBucket,
    StaffPerformance,
    HourlyTraffic,
    LiveStats,
    QueueSnapshot,
    QueuePosition,
    NowServing,
    completion_rate,
    best_day,
)
from .queue_engine import QueueEngine

__all__ = [
    "QueueSelector",
    "order_waiting",
    "waiting_sort_key",
    "TicketLifecycle",
    "wait_time",
    "service_time",
    "format_ticket_number",
    "CounterService",
    "StatsService",
    "StatisticsSummary",
    "DailyBucket",
    "StaffPerformance",
    "HourlyTraffic",
    "LiveStats",
    "QueueSnapshot",
    "QueuePosition",
    "NowServing",
    "completion_rate",
    "best_day",
    "QueueEngine",
]
