"""
Pytest configuration and fixtures for backend tests.
"""

import os

# Must be set before the app and settings are imported
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("EVENT_BACKEND", "memory")
os.environ.setdefault("SEED_DEMO_DATA", "false")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("JWT_SECRET", "test-secret-with-at-least-32-characters")

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from shared.config.constants import Roles
from shared.infrastructure.db import get_db
from shared.infrastructure.events import InMemoryChangeBus, set_change_bus
from shared.security.auth import CallerIdentity, sign_jwt
from queue_api.main import app
from queue_api.models import Base, Branch, Counter, Service, User
from queue_api.repositories import (
    BranchRecord,
    CounterRecord,
    InMemoryQueueStore,
    ServiceRecord,
    UserRecord,
)
from queue_api.services.domain import QueueEngine


# SQLite in-memory database for testing
SQLALCHEMY_DATABASE_URL = "sqlite://"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Monday
T0 = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)

BRANCH_ID = 1
OTHER_BRANCH_ID = 2
SERVICE_GENERAL = 10
SERVICE_PAYMENTS = 11
SERVICE_OTHER_BRANCH = 20
COUNTER_1 = 100
COUNTER_2 = 101
COUNTER_OTHER_BRANCH = 200
ADMIN_ID = 1
MANAGER_ID = 2
STAFF_1 = 3
STAFF_2 = 4
KIOSK_ID = 5
STAFF_OTHER_BRANCH = 6


class FakeClock:
    """Manually advanced clock for deterministic timestamps."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


def caller(user_id: int, *roles: str, branches=(BRANCH_ID,)) -> CallerIdentity:
    return CallerIdentity(
        user_id=user_id,
        roles=frozenset(roles),
        branch_ids=frozenset(branches),
    )


ADMIN = CallerIdentity(user_id=ADMIN_ID, roles=frozenset({Roles.ADMIN}))
MANAGER = caller(MANAGER_ID, Roles.MANAGER)
STAFF = caller(STAFF_1, Roles.STAFF)
STAFF_B = caller(STAFF_2, Roles.STAFF)
KIOSK = caller(KIOSK_ID, Roles.KIOSK)


def build_memory_store(counters: int = 2) -> InMemoryQueueStore:
    """
    Two branches: branch 1 with two services and `counters` counters
    (ids 100, 101, ...), branch 2 with one service and one counter.
    """
    store = InMemoryQueueStore()
    store.add_branch(BranchRecord(id=BRANCH_ID, name="Central", timezone="UTC"))
    store.add_branch(BranchRecord(id=OTHER_BRANCH_ID, name="North", timezone="UTC"))
    store.add_service(ServiceRecord(
        id=SERVICE_GENERAL, branch_id=BRANCH_ID, name="General", prefix="A", avg_service_time=300,
    ))
    store.add_service(ServiceRecord(
        id=SERVICE_PAYMENTS, branch_id=BRANCH_ID, name="Payments", prefix="B", avg_service_time=120,
    ))
    store.add_service(ServiceRecord(
        id=SERVICE_OTHER_BRANCH, branch_id=OTHER_BRANCH_ID, name="General", prefix="A",
    ))
    for i in range(counters):
        store.add_counter(CounterRecord(id=COUNTER_1 + i, branch_id=BRANCH_ID, name=f"Counter {i + 1}"))
    store.add_counter(CounterRecord(id=COUNTER_OTHER_BRANCH, branch_id=OTHER_BRANCH_ID, name="Counter 1"))

    store.add_user(UserRecord(id=ADMIN_ID, name="Admin", email="admin@test.com", role=Roles.ADMIN))
    store.add_user(UserRecord(
        id=MANAGER_ID, name="Manager", email="manager@test.com", role=Roles.MANAGER, branch_id=BRANCH_ID,
    ))
    store.add_user(UserRecord(id=STAFF_1, name="Ana", email="ana@test.com", role=Roles.STAFF, branch_id=BRANCH_ID))
    store.add_user(UserRecord(id=STAFF_2, name="Luis", email="luis@test.com", role=Roles.STAFF, branch_id=BRANCH_ID))
    store.add_user(UserRecord(id=KIOSK_ID, name="Kiosk", email="kiosk@test.com", role=Roles.KIOSK, branch_id=BRANCH_ID))
    store.add_user(UserRecord(
        id=STAFF_OTHER_BRANCH, name="Eva", email="eva@test.com", role=Roles.STAFF, branch_id=OTHER_BRANCH_ID,
    ))
    for i in range(2, counters):
        # Extra staff for extra counters
        staff_id = 1000 + i
        store.add_user(UserRecord(
            id=staff_id, name=f"Staff {i}", email=f"staff{i}@test.com", role=Roles.STAFF, branch_id=BRANCH_ID,
        ))
    return store


def staff_for_counter(index: int) -> int:
    """Staff id that build_memory_store provides for the index-th counter."""
    return (STAFF_1, STAFF_2)[index] if index < 2 else 1000 + index


# =============================================================================
# Engine fixtures (in-memory store)
# =============================================================================


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def bus():
    """In-memory change bus installed as the process-wide bus."""
    change_bus = InMemoryChangeBus()
    set_change_bus(change_bus)
    yield change_bus
    set_change_bus(None)


@pytest.fixture
def store():
    return build_memory_store()


@pytest.fixture
def queue_engine(store, bus, clock):
    return QueueEngine(store, bus, clock)


@pytest.fixture
def staffed_engine(queue_engine):
    """Engine with STAFF_1 on counter 100 and STAFF_2 on counter 101."""
    queue_engine.assign_counter(STAFF, COUNTER_1)
    queue_engine.assign_counter(STAFF_B, COUNTER_2)
    return queue_engine


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    Uses SQLite in-memory for isolation.
    """
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session, bus):
    """
    Create a test client with database session override.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def seed_branch(db_session):
    """
    Branch with services A (300s) and B (120s), two counters and one
    account per role. Returns the ids.
    """
    branch = Branch(name="Test Branch", timezone="UTC")
    other = Branch(name="Other Branch", timezone="UTC")
    db_session.add_all([branch, other])
    db_session.flush()

    general = Service(branch_id=branch.id, name="General", prefix="A", avg_service_time=300)
    payments = Service(branch_id=branch.id, name="Payments", prefix="B", avg_service_time=120)
    closed = Service(branch_id=branch.id, name="Closed", prefix="Z", is_active=False)
    counter_1 = Counter(branch_id=branch.id, name="Counter 1")
    counter_2 = Counter(branch_id=branch.id, name="Counter 2")
    admin = User(name="Admin", email="admin@test.com", role=Roles.ADMIN)
    manager = User(branch_id=branch.id, name="Manager", email="manager@test.com", role=Roles.MANAGER)
    staff_1 = User(branch_id=branch.id, name="Ana", email="ana@test.com", role=Roles.STAFF)
    staff_2 = User(branch_id=branch.id, name="Luis", email="luis@test.com", role=Roles.STAFF)
    kiosk = User(branch_id=branch.id, name="Kiosk", email="kiosk@test.com", role=Roles.KIOSK)
    db_session.add_all([
        general, payments, closed, counter_1, counter_2,
        admin, manager, staff_1, staff_2, kiosk,
    ])
    db_session.commit()

    return SimpleNamespace(
        branch_id=branch.id,
        other_branch_id=other.id,
        general_id=general.id,
        payments_id=payments.id,
        closed_service_id=closed.id,
        counter_1=counter_1.id,
        counter_2=counter_2.id,
        admin_id=admin.id,
        manager_id=manager.id,
        staff_1=staff_1.id,
        staff_2=staff_2.id,
        kiosk_id=kiosk.id,
    )


def auth_headers_for(user_id: int, *roles: str, branch_ids=()) -> dict[str, str]:
    token = sign_jwt({"sub": str(user_id), "roles": list(roles), "branch_ids": list(branch_ids)})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers(seed_branch):
    """Authorization headers per role for the seeded branch."""
    b = seed_branch.branch_id
    return SimpleNamespace(
        admin=auth_headers_for(seed_branch.admin_id, Roles.ADMIN),
        manager=auth_headers_for(seed_branch.manager_id, Roles.MANAGER, branch_ids=[b]),
        staff_1=auth_headers_for(seed_branch.staff_1, Roles.STAFF, branch_ids=[b]),
        staff_2=auth_headers_for(seed_branch.staff_2, Roles.STAFF, branch_ids=[b]),
        kiosk=auth_headers_for(seed_branch.kiosk_id, Roles.KIOSK, branch_ids=[b]),
        outsider=auth_headers_for(999, Roles.MANAGER, branch_ids=[seed_branch.other_branch_id]),
    )
