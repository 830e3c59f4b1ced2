"""
Branch Model: a physical location with its own counters, services and queue.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import AuditMixin, Base, ID_TYPE

if TYPE_CHECKING:
    from .counter import Counter
    from .service import Service
    from .user import User


class Branch(AuditMixin, Base):
    """
    A branch owns a waiting pool. Its IANA time zone defines the business
    day used for ticket numbering and the daily buckets in reports.
    """

    __tablename__ = "branch"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    timezone: Mapped[str] = mapped_column(Text, nullable=False, default="UTC")

    # Relationships
    counters: Mapped[list["Counter"]] = relationship(back_populates="branch")
    services: Mapped[list["Service"]] = relationship(back_populates="branch")
    users: Mapped[list["User"]] = relationship(back_populates="branch")

    def __repr__(self) -> str:
        return f"<Branch(id={self.id}, name='{self.name}', timezone='{self.timezone}')>"
