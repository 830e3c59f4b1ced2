"""
Plain records exchanged between the engine and a QueueStore.

Stores hand out copies; mutating a record never changes stored state.
All datetimes are aware UTC.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime

from shared.config.constants import TicketStatus


@dataclass
class TicketRecord:
    branch_id: int
    service_id: int
    ticket_number: str
    business_date: date
    created_at: datetime
    status: TicketStatus = TicketStatus.WAITING
    priority_level: int = 0
    id: int | None = None
    counter_id: int | None = None
    served_by: int | None = None
    called_at: datetime | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None
    notes: str | None = None
    customer_name: str | None = None
    customer_phone: str | None = None


@dataclass
class CounterRecord:
    id: int
    branch_id: int
    name: str
    staff_id: int | None = None
    is_active: bool = True
    is_paused: bool = False
    last_ping: datetime | None = None

    @property
    def is_staffed(self) -> bool:
        return self.staff_id is not None


@dataclass
class ServiceRecord:
    id: int
    branch_id: int
    name: str
    prefix: str
    avg_service_time: int = 300
    is_active: bool = True
    description: str | None = None
    color: str | None = None


@dataclass
class BranchRecord:
    id: int
    name: str
    timezone: str = "UTC"
    is_active: bool = True


@dataclass
class UserRecord:
    id: int
    name: str
    email: str
    role: str
    branch_id: int | None = None
    is_active: bool = True


# Fields a conditional ticket update may patch. created_at and ticket_number never change.
TICKET_PATCHABLE_FIELDS = frozenset({
    "status",
    "counter_id",
    "served_by",
    "called_at",
    "started_at",
    "ended_at",
    "notes",
})

COUNTER_PATCHABLE_FIELDS = frozenset({
    "staff_id",
    "is_paused",
    "last_ping",
})
