"""
Tests for the QueueEngine facade.

Tests cover:
- call_next: selection, empty queue, counter checks, retry on lost claims
- Who may finish a serving ticket
- Role and branch checks per operation
- One change event per committed write; publish failures never fail the write
"""

import pytest

from shared.config.constants import Roles, TicketStatus
from shared.infrastructure.events import (
    COUNTER_ASSIGNED,
    COUNTER_RELEASED,
    TICKET_CALLED,
    TICKET_CANCELLED,
    TICKET_COMPLETED,
    TICKET_ISSUED,
    TICKET_SKIPPED,
    ChangeBus,
)
from shared.utils.exceptions import (
    BranchAccessError,
    BranchNotFoundError,
    ConcurrencyConflictError,
    CounterBusyError,
    CounterUnavailableError,
    ExternalServiceError,
    ForbiddenError,
    InsufficientRoleError,
    ServiceNotFoundError,
    TicketNotFoundError,
    ValidationError,
)
from queue_api.services.domain import QueueEngine
from tests.conftest import (
    ADMIN,
    BRANCH_ID,
    COUNTER_1,
    COUNTER_2,
    COUNTER_OTHER_BRANCH,
    KIOSK,
    MANAGER,
    OTHER_BRANCH_ID,
    SERVICE_GENERAL,
    SERVICE_PAYMENTS,
    STAFF,
    STAFF_1,
    STAFF_2,
    STAFF_B,
    caller,
)


class TestCallNext:
    def test_calls_highest_priority_then_oldest(self, staffed_engine, clock):
        staffed_engine.issue_ticket(KIOSK, SERVICE_GENERAL, BRANCH_ID)
        clock.advance(10)
        staffed_engine.issue_ticket(KIOSK, SERVICE_PAYMENTS, BRANCH_ID)
        clock.advance(10)
        urgent = staffed_engine.issue_ticket(KIOSK, SERVICE_GENERAL, BRANCH_ID, priority_level=2)

        called = staffed_engine.call_next(STAFF, BRANCH_ID, COUNTER_1)
        assert called.id == urgent.id
        assert called.status == TicketStatus.SERVING
        assert called.counter_id == COUNTER_1
        assert called.served_by == STAFF_1

        assert staffed_engine.call_next(STAFF_B, BRANCH_ID, COUNTER_2).ticket_number == "A001"

    def test_priority_then_fifo_round_trip(self, staffed_engine, clock):
        first = staffed_engine.issue_ticket(KIOSK, SERVICE_GENERAL, BRANCH_ID, priority_level=0)
        clock.advance(1)
        second = staffed_engine.issue_ticket(KIOSK, SERVICE_GENERAL, BRANCH_ID, priority_level=1)

        assert staffed_engine.select_next(STAFF, BRANCH_ID).id == second.id
        called = staffed_engine.call_next(STAFF, BRANCH_ID, COUNTER_1)
        staffed_engine.complete_ticket(STAFF, called.id)

        assert staffed_engine.select_next(STAFF, BRANCH_ID).id == first.id

    def test_empty_queue_returns_none(self, staffed_engine):
        assert staffed_engine.call_next(STAFF, BRANCH_ID, COUNTER_1) is None

    def test_busy_counter_must_finish_first(self, staffed_engine):
        staffed_engine.issue_ticket(KIOSK, SERVICE_GENERAL, BRANCH_ID)
        second = staffed_engine.issue_ticket(KIOSK, SERVICE_GENERAL, BRANCH_ID)
        first = staffed_engine.call_next(STAFF, BRANCH_ID, COUNTER_1)

        with pytest.raises(CounterBusyError):
            staffed_engine.call_next(STAFF, BRANCH_ID, COUNTER_1)
        assert staffed_engine.get_ticket(STAFF, second.id).status == TicketStatus.WAITING

        staffed_engine.complete_ticket(STAFF, first.id)
        assert staffed_engine.call_next(STAFF, BRANCH_ID, COUNTER_1).id == second.id

    def test_unstaffed_counter(self, queue_engine):
        queue_engine.issue_ticket(KIOSK, SERVICE_GENERAL, BRANCH_ID)
        with pytest.raises(CounterUnavailableError):
            queue_engine.call_next(ADMIN, BRANCH_ID, COUNTER_1)

    def test_counter_must_belong_to_branch(self, staffed_engine):
        with pytest.raises(ValidationError):
            staffed_engine.call_next(ADMIN, BRANCH_ID, COUNTER_OTHER_BRANCH)

    def test_only_the_counters_staff_can_call(self, staffed_engine):
        staffed_engine.issue_ticket(KIOSK, SERVICE_GENERAL, BRANCH_ID)
        with pytest.raises(ForbiddenError):
            staffed_engine.call_next(STAFF_B, BRANCH_ID, COUNTER_1)
        with pytest.raises(ForbiddenError):
            staffed_engine.call_next(MANAGER, BRANCH_ID, COUNTER_1)

    def test_admin_can_call_on_behalf_of_staff(self, staffed_engine):
        staffed_engine.issue_ticket(KIOSK, SERVICE_GENERAL, BRANCH_ID)
        called = staffed_engine.call_next(ADMIN, BRANCH_ID, COUNTER_1)
        assert called.served_by == STAFF_1

    def test_retries_when_selected_ticket_is_claimed_elsewhere(self, staffed_engine, store, monkeypatch):
        first = staffed_engine.issue_ticket(KIOSK, SERVICE_GENERAL, BRANCH_ID)
        second = staffed_engine.issue_ticket(KIOSK, SERVICE_GENERAL, BRANCH_ID)

        original = staffed_engine.selector.select_next
        stolen = {"done": False}

        def select_then_steal(branch_id, counter_id=None):
            ticket = original(branch_id, counter_id)
            if not stolen["done"]:
                # Counter 2 claims the same ticket between select and claim
                stolen["done"] = True
                staffed_engine.lifecycle.start_serving(ticket, store.get_counter(COUNTER_2), 4)
            return ticket

        monkeypatch.setattr(staffed_engine.selector, "select_next", select_then_steal)

        called = staffed_engine.call_next(STAFF, BRANCH_ID, COUNTER_1)
        assert called.id == second.id
        assert store.get_ticket(first.id).counter_id == COUNTER_2

    @pytest.mark.parametrize("interrupt", ["release", "pause", "restaff"])
    def test_counter_changed_before_claim_gets_no_ticket(self, staffed_engine, store, monkeypatch, interrupt):
        ticket = staffed_engine.issue_ticket(KIOSK, SERVICE_GENERAL, BRANCH_ID)
        original = store.get_waiting_tickets

        def change_counter_then_read(branch_id):
            # Runs after call_next has checked the counter, before the claim
            monkeypatch.setattr(store, "get_waiting_tickets", original)
            if interrupt == "release":
                staffed_engine.release_counter(MANAGER, COUNTER_1)
            elif interrupt == "pause":
                staffed_engine.pause_counter(MANAGER, COUNTER_1)
            else:
                staffed_engine.release_counter(MANAGER, COUNTER_2)
                staffed_engine.release_counter(MANAGER, COUNTER_1)
                staffed_engine.assign_counter(MANAGER, COUNTER_1, staff_id=STAFF_2)
            return original(branch_id)

        monkeypatch.setattr(store, "get_waiting_tickets", change_counter_then_read)

        with pytest.raises(CounterUnavailableError):
            staffed_engine.call_next(STAFF, BRANCH_ID, COUNTER_1)

        waiting = store.get_ticket(ticket.id)
        assert waiting.status == TicketStatus.WAITING
        assert waiting.served_by is None
        assert store.serving_ticket_for_counter(COUNTER_1) is None

    def test_gives_up_after_max_attempts(self, staffed_engine, monkeypatch):
        staffed_engine.issue_ticket(KIOSK, SERVICE_GENERAL, BRANCH_ID)
        attempts = []

        def always_lose(ticket, counter, staff_id):
            attempts.append(ticket.id)
            raise ConcurrencyConflictError("Ticket", ticket.id)

        monkeypatch.setattr(staffed_engine.lifecycle, "start_serving", always_lose)
        with pytest.raises(ConcurrencyConflictError):
            staffed_engine.call_next(STAFF, BRANCH_ID, COUNTER_1)
        assert len(attempts) == 3

    def test_select_next_is_a_preview(self, staffed_engine):
        ticket = staffed_engine.issue_ticket(KIOSK, SERVICE_GENERAL, BRANCH_ID)
        assert staffed_engine.select_next(STAFF, BRANCH_ID).id == ticket.id
        assert staffed_engine.get_ticket(STAFF, ticket.id).status == TicketStatus.WAITING


class TestFinishPermissions:
    def _serving(self, engine):
        engine.issue_ticket(KIOSK, SERVICE_GENERAL, BRANCH_ID)
        return engine.call_next(STAFF, BRANCH_ID, COUNTER_1)

    def test_other_staff_cannot_finish_serving_ticket(self, staffed_engine):
        ticket = self._serving(staffed_engine)
        with pytest.raises(ForbiddenError):
            staffed_engine.complete_ticket(STAFF_B, ticket.id)

    def test_manager_can_finish_any_ticket(self, staffed_engine):
        ticket = self._serving(staffed_engine)
        assert staffed_engine.skip_ticket(MANAGER, ticket.id).status == TicketStatus.SKIPPED

    def test_staff_can_cancel_waiting_ticket(self, staffed_engine):
        ticket = staffed_engine.issue_ticket(KIOSK, SERVICE_GENERAL, BRANCH_ID)
        assert staffed_engine.cancel_ticket(STAFF_B, ticket.id).status == TicketStatus.CANCELLED

    def test_kiosk_cannot_finish_tickets(self, staffed_engine):
        ticket = staffed_engine.issue_ticket(KIOSK, SERVICE_GENERAL, BRANCH_ID)
        with pytest.raises(InsufficientRoleError):
            staffed_engine.cancel_ticket(KIOSK, ticket.id)

    def test_unknown_ticket(self, staffed_engine):
        with pytest.raises(TicketNotFoundError):
            staffed_engine.complete_ticket(STAFF, 999)


class TestAccessChecks:
    def test_issue_requires_branch_access(self, queue_engine):
        outsider = caller(77, Roles.KIOSK, branches=(OTHER_BRANCH_ID,))
        with pytest.raises(BranchAccessError):
            queue_engine.issue_ticket(outsider, SERVICE_GENERAL, BRANCH_ID)

    def test_issue_unknown_service(self, queue_engine):
        with pytest.raises(ServiceNotFoundError):
            queue_engine.issue_ticket(KIOSK, 4242, BRANCH_ID)

    def test_issue_unknown_branch(self, queue_engine):
        with pytest.raises(BranchNotFoundError):
            queue_engine.issue_ticket(ADMIN, SERVICE_GENERAL, 4242)

    def test_caller_without_roles_is_rejected(self, queue_engine):
        with pytest.raises(InsufficientRoleError):
            queue_engine.issue_ticket(caller(55), SERVICE_GENERAL, BRANCH_ID)

    def test_get_ticket_of_other_branch(self, queue_engine):
        ticket = queue_engine.issue_ticket(KIOSK, SERVICE_GENERAL, BRANCH_ID)
        outsider = caller(77, Roles.MANAGER, branches=(OTHER_BRANCH_ID,))
        with pytest.raises(BranchAccessError):
            queue_engine.get_ticket(outsider, ticket.id)

    def test_reports_require_management(self, queue_engine, clock):
        today = clock().date()
        with pytest.raises(InsufficientRoleError):
            queue_engine.get_stats(STAFF, BRANCH_ID, today, today)
        assert queue_engine.get_stats(MANAGER, BRANCH_ID, today, today).total == 0

    def test_queue_snapshot_needs_no_caller(self, queue_engine):
        queue_engine.issue_ticket(KIOSK, SERVICE_GENERAL, BRANCH_ID)
        assert len(queue_engine.queue_snapshot(BRANCH_ID).waiting) == 1


class TestChangeEvents:
    def test_one_event_per_write(self, queue_engine, bus):
        with bus.subscribe(BRANCH_ID) as sub:
            queue_engine.assign_counter(STAFF, COUNTER_1)
            issued = queue_engine.issue_ticket(KIOSK, SERVICE_GENERAL, BRANCH_ID)
            queue_engine.call_next(STAFF, BRANCH_ID, COUNTER_1)
            queue_engine.complete_ticket(STAFF, issued.id)
            queue_engine.release_counter(STAFF, COUNTER_1)

            events = sub.drain()

        assert [e.type for e in events] == [
            COUNTER_ASSIGNED,
            TICKET_ISSUED,
            TICKET_CALLED,
            TICKET_COMPLETED,
            COUNTER_RELEASED,
        ]
        called = events[2]
        assert called.ticket_id == issued.id
        assert called.counter_id == COUNTER_1
        assert called.entity["status"] == "serving"
        assert called.actor["user_id"] == STAFF_1

    def test_skip_and_cancel_events(self, staffed_engine, bus):
        with bus.subscribe(BRANCH_ID) as sub:
            staffed_engine.issue_ticket(KIOSK, SERVICE_GENERAL, BRANCH_ID)
            waiting = staffed_engine.issue_ticket(KIOSK, SERVICE_GENERAL, BRANCH_ID)
            called = staffed_engine.call_next(STAFF, BRANCH_ID, COUNTER_1)
            staffed_engine.skip_ticket(STAFF, called.id)
            staffed_engine.cancel_ticket(STAFF, waiting.id)
            types = [e.type for e in sub.drain()]

        assert types[-2:] == [TICKET_SKIPPED, TICKET_CANCELLED]

    def test_failed_write_publishes_nothing(self, staffed_engine, bus):
        with bus.subscribe(BRANCH_ID) as sub:
            with pytest.raises(ForbiddenError):
                staffed_engine.call_next(STAFF_B, BRANCH_ID, COUNTER_1)
            assert sub.drain() == []

    def test_events_are_scoped_to_branch(self, queue_engine, bus):
        with bus.subscribe(OTHER_BRANCH_ID) as sub:
            queue_engine.issue_ticket(KIOSK, SERVICE_GENERAL, BRANCH_ID)
            assert sub.drain() == []

    def test_publish_failure_does_not_fail_the_write(self, store, clock):
        class BrokenBus(ChangeBus):
            def publish(self, event):
                raise ConnectionError("redis down")

            def subscribe(self, branch_id):
                raise NotImplementedError

        engine = QueueEngine(store, BrokenBus(), clock)
        ticket = engine.issue_ticket(KIOSK, SERVICE_GENERAL, BRANCH_ID)
        assert store.get_ticket(ticket.id).status == TicketStatus.WAITING

    def test_subscribe_via_engine(self, queue_engine):
        with queue_engine.subscribe_to_changes(STAFF, BRANCH_ID) as sub:
            queue_engine.issue_ticket(KIOSK, SERVICE_GENERAL, BRANCH_ID)
            event = sub.get(timeout=1.0)
        assert event.type == TICKET_ISSUED

    def test_subscribe_without_bus(self, store, clock):
        engine = QueueEngine(store, None, clock)
        with pytest.raises(ExternalServiceError):
            engine.subscribe_to_changes(STAFF, BRANCH_ID)
