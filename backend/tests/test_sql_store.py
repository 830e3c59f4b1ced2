"""
Tests for the SQLAlchemy QueueStore and the engine running on it.
"""

import pytest
from datetime import date, timedelta

from shared.config.constants import Roles, TicketStatus
from shared.utils.exceptions import (
    ConcurrencyConflictError,
    ConflictError,
    CounterAlreadyAssignedError,
    CounterBusyError,
    CounterUnavailableError,
    TicketNotFoundError,
    ValidationError,
)
from queue_api.models import Branch
from queue_api.repositories import SqlQueueStore, TicketRecord
from queue_api.services.domain import QueueEngine
from tests.conftest import T0, FakeClock, caller


def _ticket(seed, number="A001", created_at=T0, priority=0):
    return TicketRecord(
        branch_id=seed.branch_id,
        service_id=seed.general_id,
        ticket_number=number,
        business_date=created_at.date(),
        created_at=created_at,
        priority_level=priority,
    )


@pytest.fixture
def sql_store(db_session):
    return SqlQueueStore(db_session)


class TestTickets:
    def test_insert_and_get(self, sql_store, seed_branch):
        stored = sql_store.insert_ticket(_ticket(seed_branch))

        assert stored.id is not None
        fetched = sql_store.get_ticket(stored.id)
        assert fetched.ticket_number == "A001"
        assert fetched.status == TicketStatus.WAITING
        assert fetched.created_at == T0
        assert fetched.created_at.tzinfo is not None

    def test_get_unknown_ticket(self, sql_store, seed_branch):
        assert sql_store.get_ticket(9999) is None

    def test_duplicate_number_same_day_rejected(self, sql_store, seed_branch):
        sql_store.insert_ticket(_ticket(seed_branch))
        with pytest.raises(ConflictError):
            sql_store.insert_ticket(_ticket(seed_branch))

    def test_same_number_next_day_allowed(self, sql_store, seed_branch):
        sql_store.insert_ticket(_ticket(seed_branch))
        assert sql_store.insert_ticket(_ticket(seed_branch, created_at=T0 + timedelta(days=1))).id

    def test_list_tickets_half_open_window(self, sql_store, seed_branch):
        sql_store.insert_ticket(_ticket(seed_branch, "A001", T0))
        sql_store.insert_ticket(_ticket(seed_branch, "A002", T0 + timedelta(hours=1)))

        rows = sql_store.list_tickets(seed_branch.branch_id, T0, T0 + timedelta(hours=1))

        assert [t.ticket_number for t in rows] == ["A001"]

    def test_conditional_update_wrong_status(self, sql_store, seed_branch):
        stored = sql_store.insert_ticket(_ticket(seed_branch))
        with pytest.raises(ConcurrencyConflictError):
            sql_store.conditional_update_ticket(
                stored.id, TicketStatus.SERVING, {"status": TicketStatus.COMPLETED}
            )

    def test_conditional_update_missing_ticket(self, sql_store, seed_branch):
        with pytest.raises(TicketNotFoundError):
            sql_store.conditional_update_ticket(
                9999, TicketStatus.WAITING, {"status": TicketStatus.CANCELLED}
            )

    def test_immutable_fields_rejected(self, sql_store, seed_branch):
        stored = sql_store.insert_ticket(_ticket(seed_branch))
        with pytest.raises(ValidationError):
            sql_store.conditional_update_ticket(
                stored.id, TicketStatus.WAITING, {"ticket_number": "Z999"}
            )

    def test_claim_busy_counter(self, sql_store, seed_branch):
        first = sql_store.insert_ticket(_ticket(seed_branch, "A001"))
        second = sql_store.insert_ticket(_ticket(seed_branch, "A002"))
        patch = {
            "status": TicketStatus.SERVING,
            "counter_id": seed_branch.counter_1,
            "called_at": T0,
        }
        sql_store.conditional_update_counter(seed_branch.counter_1, None, {"staff_id": seed_branch.staff_1})
        sql_store.conditional_update_ticket(
            first.id, TicketStatus.WAITING, patch, claim_counter_id=seed_branch.counter_1
        )

        with pytest.raises(CounterBusyError):
            sql_store.conditional_update_ticket(
                second.id, TicketStatus.WAITING, patch, claim_counter_id=seed_branch.counter_1
            )
        assert sql_store.serving_ticket_for_counter(seed_branch.counter_1).id == first.id

    def _claim(self, sql_store, seed, ticket_id, staff_id):
        return sql_store.conditional_update_ticket(
            ticket_id,
            TicketStatus.WAITING,
            {"status": TicketStatus.SERVING, "counter_id": seed.counter_1, "served_by": staff_id, "called_at": T0},
            claim_counter_id=seed.counter_1,
            claim_staff_id=staff_id,
        )

    def test_claim_on_released_counter(self, sql_store, seed_branch):
        ticket = sql_store.insert_ticket(_ticket(seed_branch))
        sql_store.conditional_update_counter(seed_branch.counter_1, None, {"staff_id": seed_branch.staff_1})
        sql_store.conditional_update_counter(seed_branch.counter_1, seed_branch.staff_1, {"staff_id": None})

        with pytest.raises(CounterUnavailableError) as exc_info:
            self._claim(sql_store, seed_branch, ticket.id, seed_branch.staff_1)
        assert exc_info.value.reason == "no staff assigned"
        assert sql_store.get_ticket(ticket.id).status == TicketStatus.WAITING

    def test_claim_on_paused_counter(self, sql_store, seed_branch):
        ticket = sql_store.insert_ticket(_ticket(seed_branch))
        sql_store.conditional_update_counter(seed_branch.counter_1, None, {"staff_id": seed_branch.staff_1})
        sql_store.conditional_update_counter(seed_branch.counter_1, seed_branch.staff_1, {"is_paused": True})

        with pytest.raises(CounterUnavailableError) as exc_info:
            self._claim(sql_store, seed_branch, ticket.id, seed_branch.staff_1)
        assert exc_info.value.reason == "paused"

    def test_claim_for_staff_no_longer_seated(self, sql_store, seed_branch):
        ticket = sql_store.insert_ticket(_ticket(seed_branch))
        sql_store.conditional_update_counter(seed_branch.counter_1, None, {"staff_id": seed_branch.staff_2})

        with pytest.raises(CounterUnavailableError) as exc_info:
            self._claim(sql_store, seed_branch, ticket.id, seed_branch.staff_1)
        assert exc_info.value.reason == "staff changed"
        assert sql_store.get_ticket(ticket.id).served_by is None


class TestSequences:
    def test_sequence_per_prefix_and_day(self, sql_store, seed_branch, db_session):
        b = seed_branch.branch_id
        day = date(2024, 3, 4)

        assert sql_store.next_ticket_sequence(b, day, "A") == 1
        assert sql_store.next_ticket_sequence(b, day, "A") == 2
        assert sql_store.next_ticket_sequence(b, day, "B") == 1
        assert sql_store.next_ticket_sequence(b, day + timedelta(days=1), "A") == 1
        db_session.commit()


class TestCounters:
    def test_assign_free_counter(self, sql_store, seed_branch):
        updated = sql_store.conditional_update_counter(
            seed_branch.counter_1, None, {"staff_id": seed_branch.staff_1}
        )
        assert updated.staff_id == seed_branch.staff_1
        assert sql_store.get_counter_by_staff(seed_branch.staff_1).id == seed_branch.counter_1

    def test_assign_taken_counter(self, sql_store, seed_branch):
        sql_store.conditional_update_counter(seed_branch.counter_1, None, {"staff_id": seed_branch.staff_1})
        with pytest.raises(CounterAlreadyAssignedError):
            sql_store.conditional_update_counter(
                seed_branch.counter_1, None, {"staff_id": seed_branch.staff_2}
            )

    def test_reference_data(self, sql_store, seed_branch):
        assert sql_store.get_branch(seed_branch.branch_id).name == "Test Branch"
        assert {s.prefix for s in sql_store.list_services(seed_branch.branch_id)} == {"A", "B", "Z"}
        assert len(sql_store.list_counters(seed_branch.branch_id)) == 2
        users = sql_store.list_users([seed_branch.staff_1, seed_branch.staff_2])
        assert sorted(u.name for u in users) == ["Ana", "Luis"]
        assert sql_store.list_users([]) == []


class TestEngineOnSql:
    def test_full_ticket_flow(self, db_session, seed_branch):
        clock = FakeClock()
        engine = QueueEngine(SqlQueueStore(db_session), clock=clock)
        b = seed_branch.branch_id
        kiosk = caller(seed_branch.kiosk_id, Roles.KIOSK, branches=(b,))
        staff = caller(seed_branch.staff_1, Roles.STAFF, branches=(b,))
        manager = caller(seed_branch.manager_id, Roles.MANAGER, branches=(b,))

        engine.assign_counter(staff, seed_branch.counter_1)
        normal = engine.issue_ticket(kiosk, seed_branch.general_id, b)
        clock.advance(30)
        urgent = engine.issue_ticket(kiosk, seed_branch.payments_id, b, priority_level=3)
        clock.advance(30)

        called = engine.call_next(staff, b, seed_branch.counter_1)
        assert called.id == urgent.id
        assert called.called_at == T0 + timedelta(seconds=60)

        clock.advance(120)
        done = engine.complete_ticket(staff, called.id, notes="ok")
        assert done.status == TicketStatus.COMPLETED
        assert done.notes == "ok"

        assert engine.call_next(staff, b, seed_branch.counter_1).id == normal.id

        summary = engine.get_stats(manager, b, T0.date(), T0.date())
        assert summary.total == 2
        assert summary.counts["completed"] == 1
        assert summary.counts["serving"] == 1
        assert summary.avg_service_time == pytest.approx(120)

    def test_business_day_in_branch_zone(self, db_session, seed_branch):
        branch = db_session.get(Branch, seed_branch.branch_id)
        branch.timezone = "America/Santiago"
        db_session.commit()

        # 02:00 UTC on Tuesday is still Monday evening in Santiago
        clock = FakeClock(T0.replace(day=5, hour=2))
        engine = QueueEngine(SqlQueueStore(db_session), clock=clock)
        kiosk = caller(seed_branch.kiosk_id, Roles.KIOSK, branches=(seed_branch.branch_id,))

        ticket = engine.issue_ticket(kiosk, seed_branch.general_id, seed_branch.branch_id)

        assert ticket.business_date == date(2024, 3, 4)

    def test_ticket_history_query(self, db_session, seed_branch):
        clock = FakeClock()
        engine = QueueEngine(SqlQueueStore(db_session), clock=clock)
        b = seed_branch.branch_id
        kiosk = caller(seed_branch.kiosk_id, Roles.KIOSK, branches=(b,))
        ana = caller(seed_branch.staff_1, Roles.STAFF, branches=(b,))
        luis = caller(seed_branch.staff_2, Roles.STAFF, branches=(b,))
        manager = caller(seed_branch.manager_id, Roles.MANAGER, branches=(b,))
        engine.assign_counter(ana, seed_branch.counter_1)
        engine.assign_counter(luis, seed_branch.counter_2)

        first = engine.issue_ticket(kiosk, seed_branch.general_id, b)
        second = engine.issue_ticket(kiosk, seed_branch.general_id, b)
        engine.issue_ticket(kiosk, seed_branch.general_id, b)
        engine.call_next(ana, b, seed_branch.counter_1)
        engine.call_next(luis, b, seed_branch.counter_2)
        clock.advance(30)
        engine.skip_ticket(luis, second.id)
        clock.advance(30)
        engine.complete_ticket(ana, first.id)

        assert [t.id for t in engine.ticket_history(manager, b)] == [first.id, second.id]
        assert [t.id for t in engine.ticket_history(ana, b)] == [first.id]
        skipped = engine.ticket_history(manager, b, status=TicketStatus.SKIPPED)
        assert [t.served_by for t in skipped] == [seed_branch.staff_2]
        assert [t.id for t in engine.ticket_history(manager, b, limit=1)] == [first.id]
