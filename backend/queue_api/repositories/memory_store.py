"""
In-memory QueueStore.

One lock per store makes each conditional write indivisible, the same
guarantee a single SQL UPDATE gives. Records are copied in and out.
Used by tests, property checks and single-process demos.
"""

from __future__ import annotations

import threading
from collections.abc import Sequence
from dataclasses import replace
from datetime import date, datetime
from typing import Any

from shared.config.constants import TicketStatus
from shared.utils.exceptions import (
    ConcurrencyConflictError,
    ConflictError,
    CounterAlreadyAssignedError,
    CounterBusyError,
    CounterNotFoundError,
    CounterUnavailableError,
    StaffAlreadyAssignedError,
    TicketNotFoundError,
)
from .base import QueueStore, check_patch, counter_unavailable_reason
from .records import (
    BranchRecord,
    CounterRecord,
    ServiceRecord,
    TicketRecord,
    UserRecord,
    COUNTER_PATCHABLE_FIELDS,
    TICKET_PATCHABLE_FIELDS,
)


class InMemoryQueueStore(QueueStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._tickets: dict[int, TicketRecord] = {}
        self._counters: dict[int, CounterRecord] = {}
        self._services: dict[int, ServiceRecord] = {}
        self._branches: dict[int, BranchRecord] = {}
        self._users: dict[int, UserRecord] = {}
        self._sequences: dict[tuple[int, date, str], int] = {}
        self._next_ticket_id = 1

    # =========================================================================
    # Reference data setup
    # =========================================================================

    def add_branch(self, branch: BranchRecord) -> BranchRecord:
        with self._lock:
            self._branches[branch.id] = replace(branch)
        return replace(branch)

    def add_service(self, service: ServiceRecord) -> ServiceRecord:
        with self._lock:
            self._services[service.id] = replace(service)
        return replace(service)

    def add_counter(self, counter: CounterRecord) -> CounterRecord:
        with self._lock:
            self._counters[counter.id] = replace(counter)
        return replace(counter)

    def add_user(self, user: UserRecord) -> UserRecord:
        with self._lock:
            self._users[user.id] = replace(user)
        return replace(user)

    # =========================================================================
    # Tickets
    # =========================================================================

    def insert_ticket(self, ticket: TicketRecord) -> TicketRecord:
        with self._lock:
            for existing in self._tickets.values():
                if (
                    existing.branch_id == ticket.branch_id
                    and existing.business_date == ticket.business_date
                    and existing.ticket_number == ticket.ticket_number
                ):
                    raise ConflictError(
                        f"Ticket number {ticket.ticket_number} already issued today",
                        branch_id=ticket.branch_id,
                    )
            stored = replace(ticket, id=self._next_ticket_id)
            self._next_ticket_id += 1
            self._tickets[stored.id] = stored
            return replace(stored)

    def get_ticket(self, ticket_id: int) -> TicketRecord | None:
        with self._lock:
            ticket = self._tickets.get(ticket_id)
            return replace(ticket) if ticket else None

    def get_waiting_tickets(self, branch_id: int) -> Sequence[TicketRecord]:
        with self._lock:
            return [
                replace(t) for t in self._tickets.values()
                if t.branch_id == branch_id and t.status == TicketStatus.WAITING
            ]

    def conditional_update_ticket(
        self,
        ticket_id: int,
        expected_status: TicketStatus,
        patch: dict[str, Any],
        *,
        claim_counter_id: int | None = None,
        claim_staff_id: int | None = None,
    ) -> TicketRecord:
        check_patch(patch, TICKET_PATCHABLE_FIELDS, "ticket")
        with self._lock:
            ticket = self._tickets.get(ticket_id)
            if ticket is None:
                raise TicketNotFoundError(ticket_id)
            if ticket.status != expected_status:
                raise ConcurrencyConflictError(
                    "Ticket", ticket_id,
                    expected_status=expected_status.value,
                    actual_status=ticket.status.value,
                )
            if claim_counter_id is not None:
                counter = self._counters.get(claim_counter_id)
                if counter is None:
                    raise CounterNotFoundError(claim_counter_id)
                reason = counter_unavailable_reason(counter, claim_staff_id)
                if reason is not None:
                    raise CounterUnavailableError(claim_counter_id, reason)
                serving = self._serving_on(claim_counter_id)
                if serving is not None:
                    raise CounterBusyError(claim_counter_id, serving_ticket_id=serving.id)
            updated = replace(ticket, **patch)
            self._tickets[ticket_id] = updated
            return replace(updated)

    def serving_ticket_for_counter(self, counter_id: int) -> TicketRecord | None:
        with self._lock:
            ticket = self._serving_on(counter_id)
            return replace(ticket) if ticket else None

    def _serving_on(self, counter_id: int) -> TicketRecord | None:
        # Caller holds the lock
        for t in self._tickets.values():
            if t.counter_id == counter_id and t.status == TicketStatus.SERVING:
                return t
        return None

    def list_serving_tickets(self, branch_id: int) -> Sequence[TicketRecord]:
        with self._lock:
            return [
                replace(t) for t in self._tickets.values()
                if t.branch_id == branch_id and t.status == TicketStatus.SERVING
            ]

    def list_tickets(self, branch_id: int, start: datetime, end: datetime) -> Sequence[TicketRecord]:
        with self._lock:
            return [
                replace(t) for t in self._tickets.values()
                if t.branch_id == branch_id and start <= t.created_at < end
            ]

    def list_ticket_history(
        self,
        branch_id: int,
        start: datetime,
        end: datetime,
        statuses: frozenset[TicketStatus],
        *,
        served_by: int | None = None,
        limit: int,
    ) -> Sequence[TicketRecord]:
        with self._lock:
            matching = [
                t for t in self._tickets.values()
                if t.branch_id == branch_id
                and start <= t.created_at < end
                and t.status in statuses
                and (served_by is None or t.served_by == served_by)
            ]
        # Unfinished rows (no ended_at) sort after finished ones
        matching.sort(
            key=lambda t: (t.ended_at is not None, t.ended_at or t.created_at, t.created_at, t.id),
            reverse=True,
        )
        return [replace(t) for t in matching[:limit]]

    def next_ticket_sequence(self, branch_id: int, business_date: date, prefix: str) -> int:
        key = (branch_id, business_date, prefix)
        with self._lock:
            value = self._sequences.get(key, 0) + 1
            self._sequences[key] = value
            return value

    # =========================================================================
    # Counters
    # =========================================================================

    def get_counter(self, counter_id: int) -> CounterRecord | None:
        with self._lock:
            counter = self._counters.get(counter_id)
            return replace(counter) if counter else None

    def list_counters(self, branch_id: int) -> Sequence[CounterRecord]:
        with self._lock:
            return [replace(c) for c in self._counters.values() if c.branch_id == branch_id]

    def get_counter_by_staff(self, staff_id: int) -> CounterRecord | None:
        with self._lock:
            for c in self._counters.values():
                if c.staff_id == staff_id:
                    return replace(c)
            return None

    def conditional_update_counter(
        self,
        counter_id: int,
        expected_staff_id: int | None,
        patch: dict[str, Any],
        *,
        allow_same_staff: bool = True,
    ) -> CounterRecord:
        check_patch(patch, COUNTER_PATCHABLE_FIELDS, "counter")
        new_staff_id = patch.get("staff_id")
        with self._lock:
            counter = self._counters.get(counter_id)
            if counter is None:
                raise CounterNotFoundError(counter_id)

            if new_staff_id is not None:
                for other in self._counters.values():
                    if other.id != counter_id and other.staff_id == new_staff_id:
                        raise StaffAlreadyAssignedError(new_staff_id, counter_id=other.id)

            guard_ok = counter.staff_id == expected_staff_id or (
                allow_same_staff and new_staff_id is not None and counter.staff_id == new_staff_id
            )
            if not guard_ok:
                if new_staff_id is not None:
                    raise CounterAlreadyAssignedError(counter_id, staff_id=counter.staff_id)
                raise ConcurrencyConflictError("Counter", counter_id)

            updated = replace(counter, **patch)
            self._counters[counter_id] = updated
            return replace(updated)

    # =========================================================================
    # Reference data
    # =========================================================================

    def get_service(self, service_id: int) -> ServiceRecord | None:
        with self._lock:
            service = self._services.get(service_id)
            return replace(service) if service else None

    def list_services(self, branch_id: int) -> Sequence[ServiceRecord]:
        with self._lock:
            return [replace(s) for s in self._services.values() if s.branch_id == branch_id]

    def get_branch(self, branch_id: int) -> BranchRecord | None:
        with self._lock:
            branch = self._branches.get(branch_id)
            return replace(branch) if branch else None

    def get_user(self, user_id: int) -> UserRecord | None:
        with self._lock:
            user = self._users.get(user_id)
            return replace(user) if user else None

    def list_users(self, user_ids: Sequence[int]) -> Sequence[UserRecord]:
        wanted = set(user_ids)
        with self._lock:
            return [replace(u) for u in self._users.values() if u.id in wanted]
