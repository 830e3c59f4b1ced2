"""
SQLAlchemy ORM Models Package.

- base: Base class, AuditMixin, ID_TYPE
- branch: Branch
- service: Service
- user: User
- counter: Counter
- ticket: Ticket, TicketSequence
"""

from .base import Base, AuditMixin, ID_TYPE
from .branch import Branch
from .service import Service
from .user import User
from .counter import Counter
from .ticket import Ticket, TicketSequence

__all__ = [
    "Base",
    "AuditMixin",
    "ID_TYPE",
    "Branch",
    "Service",
    "User",
    "Counter",
    "Ticket",
    "TicketSequence",
]
