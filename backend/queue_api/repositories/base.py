"""
QueueStore: the persistence contract consumed by the queue engine.

Every mutating operation is a single conditional write: the guard and the
change are applied indivisibly, and a failed guard raises instead of
writing. Reads return copies in arbitrary order; ordering is the selector's job.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import date, datetime
from typing import Any

from shared.config.constants import TicketStatus
from shared.utils.exceptions import ValidationError
from .records import (
    BranchRecord,
    CounterRecord,
    ServiceRecord,
    TicketRecord,
    UserRecord,
    COUNTER_PATCHABLE_FIELDS,
    TICKET_PATCHABLE_FIELDS,
)


def check_patch(patch: dict[str, Any], allowed: frozenset[str], entity: str) -> None:
    """Reject patches touching immutable or unknown fields."""
    unknown = set(patch) - allowed
    if unknown:
        raise ValidationError(
            f"Cannot update {entity} fields: {', '.join(sorted(unknown))}",
            entity=entity,
        )


def counter_unavailable_reason(counter: CounterRecord, staff_id: int | None) -> str | None:
    """Why `counter` cannot take a new ticket for `staff_id`, or None."""
    if not counter.is_active:
        return "inactive"
    if counter.is_paused:
        return "paused"
    if counter.staff_id is None:
        return "no staff assigned"
    if staff_id is not None and counter.staff_id != staff_id:
        return "staff changed"
    return None


class QueueStore(ABC):
    """
    Abstract ticket/counter store.

    Implementations:
    - SqlQueueStore: SQLAlchemy session, conditional UPDATE statements
    - InMemoryQueueStore: dicts guarded by one lock per store
    """

    # =========================================================================
    # Tickets
    # =========================================================================

    @abstractmethod
    def insert_ticket(self, ticket: TicketRecord) -> TicketRecord:
        """Persist a new waiting ticket and return it with its id."""

    @abstractmethod
    def get_ticket(self, ticket_id: int) -> TicketRecord | None:
        ...

    @abstractmethod
    def get_waiting_tickets(self, branch_id: int) -> Sequence[TicketRecord]:
        """All waiting tickets of the branch, in arbitrary order."""

    @abstractmethod
    def conditional_update_ticket(
        self,
        ticket_id: int,
        expected_status: TicketStatus,
        patch: dict[str, Any],
        *,
        claim_counter_id: int | None = None,
        claim_staff_id: int | None = None,
    ) -> TicketRecord:
        """
        Apply `patch` only if the ticket is still in `expected_status`.

        With `claim_counter_id`, the write additionally requires that no other
        ticket is serving on that counter and that the counter is active,
        not paused and staffed by `claim_staff_id` (any staff when None).
        Guard and write are indivisible.

        Raises:
            TicketNotFoundError: ticket does not exist
            ConcurrencyConflictError: status changed since it was read
            CounterUnavailableError: counter released, paused, deactivated or re-staffed
            CounterBusyError: counter already holds a serving ticket
        """

    @abstractmethod
    def serving_ticket_for_counter(self, counter_id: int) -> TicketRecord | None:
        ...

    @abstractmethod
    def list_serving_tickets(self, branch_id: int) -> Sequence[TicketRecord]:
        ...

    @abstractmethod
    def list_tickets(self, branch_id: int, start: datetime, end: datetime) -> Sequence[TicketRecord]:
        """Tickets with start <= created_at < end (UTC)."""

    @abstractmethod
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
        """
        Tickets created in [start, end) with a status in `statuses`,
        newest ended_at first, then newest created_at. At most `limit` rows.
        """

    @abstractmethod
    def next_ticket_sequence(self, branch_id: int, business_date: date, prefix: str) -> int:
        """Atomically increment and return the sequence for this branch/day/prefix."""

    # =========================================================================
    # Counters
    # =========================================================================

    @abstractmethod
    def get_counter(self, counter_id: int) -> CounterRecord | None:
        ...

    @abstractmethod
    def list_counters(self, branch_id: int) -> Sequence[CounterRecord]:
        ...

    @abstractmethod
    def get_counter_by_staff(self, staff_id: int) -> CounterRecord | None:
        ...

    @abstractmethod
    def conditional_update_counter(
        self,
        counter_id: int,
        expected_staff_id: int | None,
        patch: dict[str, Any],
        *,
        allow_same_staff: bool = True,
    ) -> CounterRecord:
        """
        Apply `patch` only if the counter's staff_id equals `expected_staff_id`
        (or, with `allow_same_staff`, already equals patch["staff_id"]).

        Raises:
            CounterNotFoundError: counter does not exist
            CounterAlreadyAssignedError: the patch assigns staff and the guard failed
            StaffAlreadyAssignedError: that staff member holds another counter
            ConcurrencyConflictError: any other guard failure
        """

    # =========================================================================
    # Reference data
    # =========================================================================

    @abstractmethod
    def get_service(self, service_id: int) -> ServiceRecord | None:
        ...

    @abstractmethod
    def list_services(self, branch_id: int) -> Sequence[ServiceRecord]:
        ...

    @abstractmethod
    def get_branch(self, branch_id: int) -> BranchRecord | None:
        ...

    @abstractmethod
    def get_user(self, user_id: int) -> UserRecord | None:
        ...

    @abstractmethod
    def list_users(self, user_ids: Sequence[int]) -> Sequence[UserRecord]:
        ...

    def close(self) -> None:
        """Release resources held by the store."""
