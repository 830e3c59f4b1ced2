"""
Seed data for development and demos.
Creates one branch with its services, counters and accounts.
"""

from sqlalchemy import select
from sqlalchemy.orm import Session

from shared.config.constants import Roles
from shared.config.settings import settings
from shared.config.logging import get_logger
from shared.infrastructure.db import safe_commit
from queue_api.models import Branch, Counter, Service, User

logger = get_logger(__name__)


DEMO_BRANCH_NAME = "Central Branch"

DEMO_SERVICES = [
    {"name": "General Inquiries", "prefix": "A", "avg_service_time": 300, "color": "#2563eb"},
    {"name": "Payments", "prefix": "B", "avg_service_time": 180, "color": "#16a34a"},
    {"name": "Account Opening", "prefix": "C", "avg_service_time": 900, "color": "#f97316"},
]

DEMO_COUNTERS = ["Counter 1", "Counter 2", "Counter 3"]

DEMO_USERS = [
    {"name": "Admin", "email": "admin@demo.local", "role": Roles.ADMIN},
    {"name": "Branch Manager", "email": "manager@demo.local", "role": Roles.MANAGER},
    {"name": "Ana Staff", "email": "ana@demo.local", "role": Roles.STAFF},
    {"name": "Luis Staff", "email": "luis@demo.local", "role": Roles.STAFF},
    {"name": "Lobby Kiosk", "email": "kiosk@demo.local", "role": Roles.KIOSK},
]


def seed(db: Session) -> Branch:
    """
    Create the demo branch if it does not exist.
    Idempotent: returns the existing branch on later runs.
    """
    existing = db.scalar(select(Branch).where(Branch.name == DEMO_BRANCH_NAME))
    if existing is not None:
        logger.info("Demo data already seeded, skipping", branch_id=existing.id)
        return existing

    branch = Branch(name=DEMO_BRANCH_NAME, timezone=settings.default_branch_timezone)
    db.add(branch)
    db.flush()

    for service_data in DEMO_SERVICES:
        db.add(Service(branch_id=branch.id, **service_data))
    for name in DEMO_COUNTERS:
        db.add(Counter(branch_id=branch.id, name=name))
    for user_data in DEMO_USERS:
        branch_id = None if user_data["role"] == Roles.ADMIN else branch.id
        db.add(User(branch_id=branch_id, **user_data))

    safe_commit(db)
    logger.info(
        "Demo data seeded",
        branch_id=branch.id,
        services=len(DEMO_SERVICES),
        counters=len(DEMO_COUNTERS),
        users=len(DEMO_USERS),
    )
    return branch
