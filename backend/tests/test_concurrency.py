"""
Concurrency tests.

Tests cover:
- Racing counters never get the same ticket (in-memory store, threads)
- A counter never serves two tickets at once
- Concurrent kiosks never duplicate a ticket number
- The SQL guards: two sessions claiming the same ticket or counter
"""

import threading

import pytest
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from shared.config.constants import Roles, TicketStatus
from shared.utils.exceptions import (
    ConcurrencyConflictError,
    CounterBusyError,
    CounterUnavailableError,
    StaffAlreadyAssignedError,
)
from queue_api.models import Base, Branch, Counter, Service, Ticket, User
from queue_api.repositories import SqlQueueStore
from queue_api.services.domain import QueueEngine
from tests.conftest import (
    ADMIN,
    BRANCH_ID,
    COUNTER_1,
    KIOSK,
    SERVICE_GENERAL,
    T0,
    FakeClock,
    build_memory_store,
    caller,
    staff_for_counter,
)


def _run_together(targets):
    """Start all callables at the same moment; return (results, errors) by index."""
    barrier = threading.Barrier(len(targets))
    results = [None] * len(targets)
    errors = [None] * len(targets)

    def runner(index, target):
        barrier.wait()
        try:
            results[index] = target()
        except Exception as e:
            errors[index] = e

    threads = [threading.Thread(target=runner, args=(i, t)) for i, t in enumerate(targets)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)
    return results, errors


# =============================================================================
# In-memory store
# =============================================================================


class TestRacingCounters:
    COUNTERS = 8

    def _engine(self):
        engine = QueueEngine(build_memory_store(counters=self.COUNTERS), clock=FakeClock())
        staff = [caller(staff_for_counter(i), Roles.STAFF) for i in range(self.COUNTERS)]
        for i, who in enumerate(staff):
            engine.assign_counter(who, COUNTER_1 + i)
        return engine, staff

    def test_counters_never_share_a_ticket(self):
        engine, staff = self._engine()
        issued = [engine.issue_ticket(KIOSK, SERVICE_GENERAL, BRANCH_ID) for _ in range(self.COUNTERS)]

        results, errors = _run_together([
            (lambda i=i: engine.call_next(staff[i], BRANCH_ID, COUNTER_1 + i))
            for i in range(self.COUNTERS)
        ])

        # Losing every retry is allowed, anything else is not
        assert all(e is None or isinstance(e, ConcurrencyConflictError) for e in errors)
        called = [r.id for r in results if r is not None]
        assert len(called) == len(set(called))

        serving = engine.queue_snapshot(BRANCH_ID).serving
        assert len({s.counter_id for s in serving}) == len(serving) == len(called)
        waiting = engine.queue_snapshot(BRANCH_ID).waiting
        assert len(called) + len(waiting) == len(issued)

    def test_more_counters_than_tickets(self):
        engine, staff = self._engine()
        engine.issue_ticket(KIOSK, SERVICE_GENERAL, BRANCH_ID)
        engine.issue_ticket(KIOSK, SERVICE_GENERAL, BRANCH_ID)

        results, errors = _run_together([
            (lambda i=i: engine.call_next(staff[i], BRANCH_ID, COUNTER_1 + i))
            for i in range(self.COUNTERS)
        ])

        assert all(e is None or isinstance(e, ConcurrencyConflictError) for e in errors)
        called = [r.id for r in results if r is not None]
        assert len(called) == len(set(called)) <= 2

    def test_same_counter_serves_one_ticket(self):
        engine = QueueEngine(build_memory_store(), clock=FakeClock())
        engine.assign_counter(caller(staff_for_counter(0), Roles.STAFF), COUNTER_1)
        engine.issue_ticket(KIOSK, SERVICE_GENERAL, BRANCH_ID)
        engine.issue_ticket(KIOSK, SERVICE_GENERAL, BRANCH_ID)

        results, errors = _run_together([
            lambda: engine.call_next(ADMIN, BRANCH_ID, COUNTER_1),
            lambda: engine.call_next(ADMIN, BRANCH_ID, COUNTER_1),
        ])

        assert sum(r is not None for r in results) == 1
        assert sum(isinstance(e, CounterBusyError) for e in errors) == 1
        assert len(engine.queue_snapshot(BRANCH_ID).waiting) == 1

    def test_concurrent_kiosks_get_unique_numbers(self):
        engine = QueueEngine(build_memory_store(), clock=FakeClock())

        results, errors = _run_together([
            lambda: engine.issue_ticket(KIOSK, SERVICE_GENERAL, BRANCH_ID)
            for _ in range(20)
        ])

        assert errors == [None] * 20
        assert sorted(t.ticket_number for t in results) == [f"A{n:03d}" for n in range(1, 21)]


# =============================================================================
# SQL store: two sessions against one SQLite file
# =============================================================================


@pytest.fixture
def file_db(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'queue.db'}")
    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(bind=engine, autoflush=False)

    with Session() as db:
        branch = Branch(name="Race Branch", timezone="UTC")
        db.add(branch)
        db.flush()
        service = Service(branch_id=branch.id, name="General", prefix="A")
        counters = [Counter(branch_id=branch.id, name=f"Counter {i}") for i in (1, 2)]
        staff = [
            User(branch_id=branch.id, name=f"Staff {i}", email=f"s{i}@race.test", role=Roles.STAFF)
            for i in (1, 2)
        ]
        db.add_all([service, *counters, *staff])
        db.commit()
        ids = {
            "branch": branch.id,
            "service": service.id,
            "counters": [c.id for c in counters],
            "staff": [s.id for s in staff],
        }

    sessions = []

    def open_engine():
        session = Session()
        sessions.append(session)
        return QueueEngine(SqlQueueStore(session), clock=FakeClock())

    yield open_engine, ids, Session

    for session in sessions:
        session.close()
    engine.dispose()


class TestSqlGuards:
    def test_two_sessions_claim_the_same_ticket(self, file_db):
        open_engine, ids, _ = file_db
        a, b = open_engine(), open_engine()
        c1, c2 = ids["counters"]
        s1, s2 = ids["staff"]
        a.assign_counter(ADMIN, c1, staff_id=s1)
        a.assign_counter(ADMIN, c2, staff_id=s2)
        a.issue_ticket(ADMIN, ids["service"], ids["branch"])

        # Both previews see the same head
        seen_a = a.selector.select_next(ids["branch"])
        seen_b = b.selector.select_next(ids["branch"])
        assert seen_a.id == seen_b.id

        a.lifecycle.start_serving(seen_a, a.counters.get(c1), s1)
        with pytest.raises(ConcurrencyConflictError):
            b.lifecycle.start_serving(seen_b, b.counters.get(c2), s2)

        assert b.get_ticket(ADMIN, seen_a.id).counter_id == c1

    def test_two_sessions_claim_the_same_counter(self, file_db):
        open_engine, ids, _ = file_db
        a, b = open_engine(), open_engine()
        c1, _ = ids["counters"]
        s1, _ = ids["staff"]
        a.assign_counter(ADMIN, c1, staff_id=s1)
        first = a.issue_ticket(ADMIN, ids["service"], ids["branch"])
        second = a.issue_ticket(ADMIN, ids["service"], ids["branch"])

        a.lifecycle.start_serving(first, a.counters.get(c1), s1)
        with pytest.raises(CounterBusyError):
            b.lifecycle.start_serving(second, b.counters.get(c1), s1)

        assert b.get_ticket(ADMIN, second.id).status == TicketStatus.WAITING

    def test_release_in_another_session_blocks_the_claim(self, file_db):
        open_engine, ids, _ = file_db
        a, b = open_engine(), open_engine()
        c1, _ = ids["counters"]
        s1, _ = ids["staff"]
        staff = caller(s1, Roles.STAFF, branches=(ids["branch"],))
        a.assign_counter(ADMIN, c1, staff_id=s1)
        ticket = a.issue_ticket(ADMIN, ids["service"], ids["branch"])

        # Session a read the counter as staffed; session b releases it before the claim
        counter = a.counters.get(c1)
        b.release_counter(ADMIN, c1)
        with pytest.raises(CounterUnavailableError):
            a.lifecycle.start_serving(ticket, counter, s1)

        assert b.get_ticket(ADMIN, ticket.id).status == TicketStatus.WAITING
        assert b.counter_for_staff(ADMIN, s1) is None
        with pytest.raises(CounterUnavailableError):
            a.call_next(staff, ids["branch"], c1)

    def test_serving_index_rejects_second_ticket_on_counter(self, file_db):
        _, ids, Session = file_db
        c1, _ = ids["counters"]
        with Session() as db:
            for number in ("A001", "A002"):
                db.add(Ticket(
                    branch_id=ids["branch"],
                    service_id=ids["service"],
                    ticket_number=number,
                    business_date=T0.date(),
                    status=TicketStatus.SERVING.value,
                    counter_id=c1,
                    created_at=T0,
                    called_at=T0,
                ))
            with pytest.raises(IntegrityError):
                db.commit()

    def test_staff_cannot_hold_two_counters(self, file_db):
        open_engine, ids, _ = file_db
        a, b = open_engine(), open_engine()
        c1, c2 = ids["counters"]
        s1, _ = ids["staff"]

        a.assign_counter(ADMIN, c1, staff_id=s1)
        with pytest.raises(StaffAlreadyAssignedError):
            b.assign_counter(ADMIN, c2, staff_id=s1)

    def test_interleaved_kiosks_share_the_sequence(self, file_db):
        open_engine, ids, _ = file_db
        a, b = open_engine(), open_engine()

        numbers = []
        for engine in (a, b, a, b):
            numbers.append(engine.issue_ticket(ADMIN, ids["service"], ids["branch"]).ticket_number)

        assert numbers == ["A001", "A002", "A003", "A004"]
