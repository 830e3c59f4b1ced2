"""
Ticket Lifecycle Controller.

Owns the ticket state machine: issuance with per-day numbering, the
guarded waiting -> serving claim, terminal transitions and the derived
wait/service metrics.

Every write is conditional on the status that was read; a lost race
surfaces as ConcurrencyConflictError and the record is left as the
winner wrote it.
"""

from collections.abc import Callable
from datetime import datetime

from shared.config.constants import (
    DEFAULT_SKIP_NOTE,
    Limits,
    TicketStatus,
    can_transition,
)
from shared.config.settings import settings
from shared.config.logging import get_logger
from shared.utils.exceptions import (
    InvalidStateError,
    InvalidTransitionError,
    ValidationError,
)
from shared.utils.timezones import branch_zone, local_date, utcnow, whole_seconds
from queue_api.repositories import (
    BranchRecord,
    CounterRecord,
    QueueStore,
    ServiceRecord,
    TicketRecord,
)

logger = get_logger(__name__)


# =============================================================================
# Derived metrics
# =============================================================================


def wait_time(ticket: TicketRecord, now: datetime) -> int:
    """Seconds from issuance until called (or until now while waiting)."""
    return whole_seconds((ticket.called_at or now) - ticket.created_at)


def service_time(ticket: TicketRecord, now: datetime) -> int:
    """Seconds from called until ended (or until now while in flight)."""
    return whole_seconds((ticket.ended_at or now) - (ticket.called_at or ticket.created_at))


def format_ticket_number(prefix: str, sequence: int) -> str:
    return f"{prefix}{sequence:0{settings.ticket_number_width}d}"


def _not_before(now: datetime, *stamps: datetime | None) -> datetime:
    """`now`, pushed forward to the latest earlier stamp if the clock went back."""
    latest = max((s for s in stamps if s is not None), default=now)
    return max(now, latest)


class TicketLifecycle:
    def __init__(self, store: QueueStore, clock: Callable[[], datetime] = utcnow):
        self._store = store
        self._clock = clock

    def ensure_transition(self, ticket: TicketRecord, target: TicketStatus) -> None:
        """
        Raises:
            InvalidTransitionError: `target` is not reachable from the current status.
        """
        if not can_transition(ticket.status, target):
            raise InvalidTransitionError(
                f"ticket {ticket.ticket_number}",
                ticket.status.value,
                target.value,
                ticket_id=ticket.id,
            )

    # =========================================================================
    # (none) -> waiting
    # =========================================================================

    def issue(
        self,
        branch: BranchRecord,
        service: ServiceRecord,
        priority_level: int = 0,
        customer_name: str | None = None,
        customer_phone: str | None = None,
        notes: str | None = None,
    ) -> TicketRecord:
        """
        Create a waiting ticket numbered <prefix><sequence> for the branch's business day.

        Raises:
            InvalidStateError: branch or service inactive
            ValidationError: bad priority or service from another branch
        """
        if not branch.is_active:
            raise InvalidStateError("Branch", "inactive", ["active"], branch_id=branch.id)
        if not service.is_active:
            raise InvalidStateError("Service", "inactive", ["active"], service_id=service.id)
        if service.branch_id != branch.id:
            raise ValidationError(
                f"Service {service.id} is not offered at branch {branch.id}",
                service_id=service.id,
                branch_id=branch.id,
            )
        if not Limits.MIN_PRIORITY_LEVEL <= priority_level <= Limits.MAX_PRIORITY_LEVEL:
            raise ValidationError(
                f"priority_level must be between {Limits.MIN_PRIORITY_LEVEL} "
                f"and {Limits.MAX_PRIORITY_LEVEL}",
                field="priority_level",
            )

        now = self._clock()
        business_date = local_date(now, branch_zone(branch.timezone))
        sequence = self._store.next_ticket_sequence(branch.id, business_date, service.prefix)

        return self._store.insert_ticket(TicketRecord(
            branch_id=branch.id,
            service_id=service.id,
            ticket_number=format_ticket_number(service.prefix, sequence),
            business_date=business_date,
            created_at=now,
            status=TicketStatus.WAITING,
            priority_level=priority_level,
            customer_name=customer_name,
            customer_phone=customer_phone,
            notes=notes,
        ))

    # =========================================================================
    # waiting -> serving
    # =========================================================================

    def start_serving(self, ticket: TicketRecord, counter: CounterRecord, staff_id: int) -> TicketRecord:
        """
        Claim `ticket` for `counter` on behalf of `staff_id`. The store checks
        that the counter is free, active, unpaused and still staffed by
        `staff_id` in the same conditional update as the write.

        Raises:
            InvalidTransitionError, CounterBusyError, CounterUnavailableError,
            ConcurrencyConflictError
        """
        self.ensure_transition(ticket, TicketStatus.SERVING)
        called_at = _not_before(self._clock(), ticket.created_at)
        return self._store.conditional_update_ticket(
            ticket.id,
            TicketStatus.WAITING,
            {
                "status": TicketStatus.SERVING,
                "counter_id": counter.id,
                "served_by": staff_id,
                "called_at": called_at,
                "started_at": ticket.started_at or called_at,
            },
            claim_counter_id=counter.id,
            claim_staff_id=staff_id,
        )

    # =========================================================================
    # -> terminal
    # =========================================================================

    def complete(self, ticket: TicketRecord, notes: str | None = None) -> TicketRecord:
        patch = {}
        if notes is not None:
            patch["notes"] = notes
        return self._finish(ticket, TicketStatus.COMPLETED, patch)

    def skip(self, ticket: TicketRecord, notes: str | None = None) -> TicketRecord:
        """Skipped tickets are final; a returning customer gets a fresh ticket."""
        return self._finish(ticket, TicketStatus.SKIPPED, {"notes": notes or DEFAULT_SKIP_NOTE})

    def cancel(self, ticket: TicketRecord) -> TicketRecord:
        return self._finish(ticket, TicketStatus.CANCELLED, {})

    def _finish(self, ticket: TicketRecord, target: TicketStatus, patch: dict) -> TicketRecord:
        self.ensure_transition(ticket, target)
        ended_at = _not_before(self._clock(), ticket.created_at, ticket.called_at, ticket.started_at)
        return self._store.conditional_update_ticket(
            ticket.id,
            ticket.status,
            {**patch, "status": target, "ended_at": ended_at},
        )
