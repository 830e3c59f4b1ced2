"""
Queue Engine Domain Service.

The single entry point for kiosks, staff consoles, display boards and
reports. Every operation takes the caller's identity explicitly, checks
role and branch access, delegates to the selector/lifecycle/counter/stats
components, and publishes one change event per committed write.

Usage:
    engine = QueueEngine(SqlQueueStore(db), get_change_bus())
    ticket = engine.issue_ticket(caller, service_id=1, branch_id=1, priority_level=0)
    called = engine.call_next(caller, branch_id=1, counter_id=3)
"""

from collections.abc import Callable, Sequence
from datetime import date, datetime
from typing import Any

from shared.config.constants import (
    ISSUING_ROLES,
    MANAGEMENT_ROLES,
    SERVING_ROLES,
    TicketStatus,
)
from shared.config.settings import settings
from shared.config.logging import engine_logger as logger, mask_phone
from shared.infrastructure.events import (
    ChangeBus,
    Event,
    Subscription,
    COUNTER_ASSIGNED,
    COUNTER_PAUSED,
    COUNTER_RELEASED,
    COUNTER_RESUMED,
    TICKET_CALLED,
    TICKET_CANCELLED,
    TICKET_COMPLETED,
    TICKET_ISSUED,
    TICKET_SKIPPED,
)
from shared.security.auth import CallerIdentity, require_branch, require_roles
from shared.utils.exceptions import (
    BranchNotFoundError,
    ConcurrencyConflictError,
    CounterUnavailableError,
    ExternalServiceError,
    ForbiddenError,
    ServiceNotFoundError,
    TicketNotFoundError,
    ValidationError,
)
from shared.utils.timezones import utcnow
from queue_api.repositories import (
    BranchRecord,
    CounterRecord,
    QueueStore,
    TicketRecord,
)
from .counter_service import CounterService
from .queue_selector import QueueSelector
from .stats_service import (
    HourlyTraffic,
    LiveStats,
    QueueSnapshot,
    StaffPerformance,
    StatisticsSummary,
    StatsService,
)
from .ticket_lifecycle import TicketLifecycle

_TERMINAL_EVENTS = {
    TicketStatus.COMPLETED: TICKET_COMPLETED,
    TicketStatus.SKIPPED: TICKET_SKIPPED,
    TicketStatus.CANCELLED: TICKET_CANCELLED,
}


def ticket_payload(ticket: TicketRecord) -> dict[str, Any]:
    return {
        "id": ticket.id,
        "ticket_number": ticket.ticket_number,
        "status": ticket.status.value,
        "service_id": ticket.service_id,
        "priority_level": ticket.priority_level,
        "counter_id": ticket.counter_id,
    }


def counter_payload(counter: CounterRecord) -> dict[str, Any]:
    return {
        "id": counter.id,
        "name": counter.name,
        "staff_id": counter.staff_id,
        "is_paused": counter.is_paused,
    }


class QueueEngine:
    """
    Facade over the queue components.

    Errors raised by the components propagate unchanged. The only retry is
    the bounded re-selection in call_next when the picked ticket was claimed
    by another counter first.
    """

    def __init__(
        self,
        store: QueueStore,
        bus: ChangeBus | None = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._bus = bus
        self._clock = clock
        self.selector = QueueSelector(store)
        self.lifecycle = TicketLifecycle(store, clock)
        self.counters = CounterService(store, clock)
        self.stats = StatsService(store, clock)

    # =========================================================================
    # Lookups and access checks
    # =========================================================================

    def _branch(self, branch_id: int) -> BranchRecord:
        branch = self._store.get_branch(branch_id)
        if branch is None:
            raise BranchNotFoundError(branch_id)
        return branch

    def _ticket(self, ticket_id: int) -> TicketRecord:
        ticket = self._store.get_ticket(ticket_id)
        if ticket is None:
            raise TicketNotFoundError(ticket_id)
        return ticket

    def _authorize(self, caller: CallerIdentity, allowed: frozenset[str], branch_id: int) -> None:
        require_roles(caller, allowed)
        require_branch(caller, branch_id)

    def _require_counter_operator(self, caller: CallerIdentity, counter: CounterRecord, action: str) -> None:
        """Staff may only operate their own counter; managers and admins any in their branch."""
        self._authorize(caller, SERVING_ROLES, counter.branch_id)
        if caller.has_any_role(MANAGEMENT_ROLES):
            return
        if counter.staff_id != caller.user_id:
            raise ForbiddenError(action, counter_id=counter.id, user_id=caller.user_id)

    # =========================================================================
    # Change notifications
    # =========================================================================

    def _publish(self, event_type: str, caller: CallerIdentity, branch_id: int, **kwargs: Any) -> None:
        """
        Publish after commit. The write already happened, so a delivery failure
        is logged and not raised to the caller.
        """
        if self._bus is None:
            return
        try:
            event = Event(type=event_type, branch_id=branch_id, actor=caller.as_actor(), **kwargs)
            self._bus.publish(event)
        except Exception as e:
            logger.error(
                "Failed to publish queue event",
                event_type=event_type,
                branch_id=branch_id,
                error=str(e),
                exc_info=True,
            )

    def subscribe_to_changes(self, caller: CallerIdentity, branch_id: int) -> Subscription:
        """Stream of change events for the branch (staff consoles, boards)."""
        require_branch(caller, branch_id)
        self._branch(branch_id)
        if self._bus is None:
            raise ExternalServiceError("change notifications")
        return self._bus.subscribe(branch_id)

    # =========================================================================
    # Tickets
    # =========================================================================

    def issue_ticket(
        self,
        caller: CallerIdentity,
        service_id: int,
        branch_id: int,
        priority_level: int = 0,
        customer_name: str | None = None,
        customer_phone: str | None = None,
        notes: str | None = None,
    ) -> TicketRecord:
        self._authorize(caller, ISSUING_ROLES, branch_id)
        branch = self._branch(branch_id)
        service = self._store.get_service(service_id)
        if service is None:
            raise ServiceNotFoundError(service_id)

        ticket = self.lifecycle.issue(
            branch,
            service,
            priority_level=priority_level,
            customer_name=customer_name,
            customer_phone=customer_phone,
            notes=notes,
        )
        logger.info(
            "Ticket issued",
            ticket_id=ticket.id,
            ticket_number=ticket.ticket_number,
            branch_id=branch_id,
            service_id=service_id,
            priority_level=priority_level,
            phone=mask_phone(customer_phone),
            user_id=caller.user_id,
        )
        self._publish(TICKET_ISSUED, caller, branch_id, ticket_id=ticket.id, entity=ticket_payload(ticket))
        return ticket

    def get_ticket(self, caller: CallerIdentity, ticket_id: int) -> TicketRecord:
        ticket = self._ticket(ticket_id)
        require_branch(caller, ticket.branch_id)
        return ticket

    def select_next(self, caller: CallerIdentity, branch_id: int, counter_id: int | None = None) -> TicketRecord | None:
        """Preview of the ticket call_next would pick. Claims nothing."""
        self._authorize(caller, SERVING_ROLES, branch_id)
        self._branch(branch_id)
        return self.selector.select_next(branch_id, counter_id)

    def call_next(self, caller: CallerIdentity, branch_id: int, counter_id: int) -> TicketRecord | None:
        """
        Select the next waiting ticket and seat it on the counter.

        Returns None when nothing is waiting. If another counter claims the
        selected ticket first, selection is retried up to
        settings.call_next_max_attempts times. CounterBusyError is never
        retried: the caller's counter is already serving. The counter checks
        below fail fast; the claim re-checks them atomically, so a counter
        released, paused or re-staffed in between never receives the ticket.

        Raises:
            CounterUnavailableError: counter inactive, paused, unstaffed or
                re-staffed before the claim
            ForbiddenError: non-admin caller is not the counter's staff
            CounterBusyError, ConcurrencyConflictError
        """
        self._authorize(caller, SERVING_ROLES, branch_id)
        counter = self.counters.get(counter_id)
        if counter.branch_id != branch_id:
            raise ValidationError(
                f"Counter {counter_id} does not belong to branch {branch_id}",
                counter_id=counter_id,
                branch_id=branch_id,
            )
        if not counter.is_active:
            raise CounterUnavailableError(counter_id, "inactive")
        if counter.is_paused:
            raise CounterUnavailableError(counter_id, "paused")
        if counter.staff_id is None:
            raise CounterUnavailableError(counter_id, "no staff assigned")
        if not caller.is_admin and counter.staff_id != caller.user_id:
            raise ForbiddenError("call tickets on this counter", counter_id=counter_id, user_id=caller.user_id)

        attempts = max(1, settings.call_next_max_attempts)
        for attempt in range(1, attempts + 1):
            ticket = self.selector.select_next(branch_id, counter_id)
            if ticket is None:
                logger.info("Queue empty", branch_id=branch_id, counter_id=counter_id)
                return None
            try:
                called = self.lifecycle.start_serving(ticket, counter, counter.staff_id)
            except ConcurrencyConflictError:
                if attempt == attempts:
                    raise
                logger.info(
                    "Ticket claimed by another counter, reselecting",
                    ticket_id=ticket.id,
                    counter_id=counter_id,
                    attempt=attempt,
                )
                continue

            logger.info(
                "Ticket called",
                ticket_id=called.id,
                ticket_number=called.ticket_number,
                counter_id=counter_id,
                staff_id=counter.staff_id,
                user_id=caller.user_id,
            )
            self._publish(
                TICKET_CALLED, caller, branch_id,
                ticket_id=called.id, counter_id=counter_id, entity=ticket_payload(called),
            )
            return called

        return None

    def _check_ticket_operator(self, caller: CallerIdentity, ticket: TicketRecord, action: str) -> None:
        """
        Serving tickets may be finished by the staff who called them or the
        counter's current staff; managers and admins may act on any ticket.
        """
        self._authorize(caller, SERVING_ROLES, ticket.branch_id)
        if ticket.status != TicketStatus.SERVING or caller.has_any_role(MANAGEMENT_ROLES):
            return
        if ticket.served_by == caller.user_id:
            return
        counter = self._store.get_counter(ticket.counter_id) if ticket.counter_id else None
        if counter is not None and counter.staff_id == caller.user_id:
            return
        raise ForbiddenError(action, ticket_id=ticket.id, user_id=caller.user_id)

    def _finish(
        self,
        caller: CallerIdentity,
        ticket_id: int,
        target: TicketStatus,
        transition: Callable[[TicketRecord], TicketRecord],
    ) -> TicketRecord:
        ticket = self._ticket(ticket_id)
        self._check_ticket_operator(caller, ticket, f"mark this ticket {target.value}")
        updated = transition(ticket)
        logger.info(
            f"Ticket {target.value}",
            ticket_id=ticket_id,
            ticket_number=updated.ticket_number,
            from_status=ticket.status.value,
            counter_id=updated.counter_id,
            user_id=caller.user_id,
        )
        self._publish(
            _TERMINAL_EVENTS[target], caller, updated.branch_id,
            ticket_id=updated.id, counter_id=updated.counter_id, entity=ticket_payload(updated),
        )
        return updated

    def complete_ticket(self, caller: CallerIdentity, ticket_id: int, notes: str | None = None) -> TicketRecord:
        return self._finish(
            caller, ticket_id, TicketStatus.COMPLETED,
            lambda t: self.lifecycle.complete(t, notes),
        )

    def skip_ticket(self, caller: CallerIdentity, ticket_id: int, notes: str | None = None) -> TicketRecord:
        return self._finish(
            caller, ticket_id, TicketStatus.SKIPPED,
            lambda t: self.lifecycle.skip(t, notes),
        )

    def cancel_ticket(self, caller: CallerIdentity, ticket_id: int) -> TicketRecord:
        return self._finish(caller, ticket_id, TicketStatus.CANCELLED, self.lifecycle.cancel)

    # =========================================================================
    # Counters
    # =========================================================================

    def assign_counter(self, caller: CallerIdentity, counter_id: int, staff_id: int | None = None) -> CounterRecord:
        """
        Seat a staff member at a counter. Staff can only seat themselves;
        `staff_id` defaults to the caller.
        """
        staff_id = caller.user_id if staff_id is None else staff_id
        counter = self.counters.get(counter_id)
        self._authorize(caller, SERVING_ROLES, counter.branch_id)
        if staff_id != caller.user_id and not caller.has_any_role(MANAGEMENT_ROLES):
            raise ForbiddenError("assign other staff to a counter", counter_id=counter_id, user_id=caller.user_id)

        updated = self.counters.assign(counter_id, staff_id, actor_id=caller.user_id)
        logger.info("Counter assigned", counter_id=counter_id, staff_id=staff_id, user_id=caller.user_id)
        self._publish(COUNTER_ASSIGNED, caller, updated.branch_id, counter_id=counter_id, entity=counter_payload(updated))
        return updated

    def release_counter(self, caller: CallerIdentity, counter_id: int) -> None:
        counter = self.counters.get(counter_id)
        self._require_counter_operator(caller, counter, "release this counter")
        updated = self.counters.release(counter_id, actor_id=caller.user_id)
        logger.info("Counter released", counter_id=counter_id, staff_id=counter.staff_id, user_id=caller.user_id)
        self._publish(COUNTER_RELEASED, caller, updated.branch_id, counter_id=counter_id, entity=counter_payload(updated))

    def pause_counter(self, caller: CallerIdentity, counter_id: int) -> CounterRecord:
        counter = self.counters.get(counter_id)
        self._require_counter_operator(caller, counter, "pause this counter")
        updated = self.counters.pause(counter_id, actor_id=caller.user_id)
        self._publish(COUNTER_PAUSED, caller, updated.branch_id, counter_id=counter_id, entity=counter_payload(updated))
        return updated

    def resume_counter(self, caller: CallerIdentity, counter_id: int) -> CounterRecord:
        counter = self.counters.get(counter_id)
        self._require_counter_operator(caller, counter, "resume this counter")
        updated = self.counters.resume(counter_id, actor_id=caller.user_id)
        self._publish(COUNTER_RESUMED, caller, updated.branch_id, counter_id=counter_id, entity=counter_payload(updated))
        return updated

    def heartbeat(self, caller: CallerIdentity, counter_id: int) -> CounterRecord:
        counter = self.counters.get(counter_id)
        self._require_counter_operator(caller, counter, "ping this counter")
        return self.counters.heartbeat(counter_id)

    def available_counters(self, caller: CallerIdentity, branch_id: int) -> Sequence[CounterRecord]:
        self._authorize(caller, SERVING_ROLES, branch_id)
        self._branch(branch_id)
        return self.counters.list_available(branch_id)

    def counter_for_staff(self, caller: CallerIdentity, staff_id: int | None = None) -> CounterRecord | None:
        """Counter the staff member (default: the caller) currently holds."""
        staff_id = caller.user_id if staff_id is None else staff_id
        if staff_id != caller.user_id:
            require_roles(caller, MANAGEMENT_ROLES)
        counter = self.counters.get_by_staff(staff_id)
        if counter is not None:
            require_branch(caller, counter.branch_id)
        return counter

    def current_ticket(self, caller: CallerIdentity, counter_id: int) -> TicketRecord | None:
        counter = self.counters.get(counter_id)
        self._authorize(caller, SERVING_ROLES, counter.branch_id)
        return self.counters.current_ticket(counter_id)

    # =========================================================================
    # Display and reports
    # =========================================================================

    def queue_snapshot(self, branch_id: int) -> QueueSnapshot:
        """Public display board view; needs no caller."""
        return self.stats.snapshot(self._branch(branch_id))

    def get_stats(self, caller: CallerIdentity, branch_id: int, start_date: date, end_date: date) -> StatisticsSummary:
        self._authorize(caller, MANAGEMENT_ROLES, branch_id)
        return self.stats.summary(self._branch(branch_id), start_date, end_date)

    def staff_performance(
        self, caller: CallerIdentity, branch_id: int, start_date: date, end_date: date
    ) -> list[StaffPerformance]:
        self._authorize(caller, MANAGEMENT_ROLES, branch_id)
        return self.stats.staff_performance(self._branch(branch_id), start_date, end_date)

    def hourly_traffic(
        self, caller: CallerIdentity, branch_id: int, start_date: date, end_date: date
    ) -> list[HourlyTraffic]:
        self._authorize(caller, MANAGEMENT_ROLES, branch_id)
        return self.stats.hourly_traffic(self._branch(branch_id), start_date, end_date)

    def live_stats(self, caller: CallerIdentity, branch_id: int) -> LiveStats:
        self._authorize(caller, SERVING_ROLES, branch_id)
        return self.stats.live(self._branch(branch_id))

    def ticket_history(
        self,
        caller: CallerIdentity,
        branch_id: int,
        staff_id: int | None = None,
        status: TicketStatus | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        limit: int | None = None,
    ) -> list[TicketRecord]:
        """
        Finished tickets of a branch. Staff only see tickets they served;
        managers and admins see the whole branch or filter by `staff_id`.
        """
        self._authorize(caller, SERVING_ROLES, branch_id)
        if not caller.has_any_role(MANAGEMENT_ROLES):
            if staff_id is not None and staff_id != caller.user_id:
                raise ForbiddenError("view another staff member's history", user_id=caller.user_id)
            staff_id = caller.user_id
        return self.stats.history(
            self._branch(branch_id),
            start_date=start_date,
            end_date=end_date,
            status=status,
            served_by=staff_id,
            limit=limit,
        )
