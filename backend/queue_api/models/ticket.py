"""
Ticket Models: Ticket and the per-day TicketSequence counter.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, ID_TYPE


class Ticket(Base):
    """
    A customer's place in line. Never deleted: terminal tickets stay for reporting.

    Status flow: waiting -> serving -> completed | skipped,
    and waiting | serving -> cancelled.
    """

    __tablename__ = "ticket"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    branch_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("branch.id"), nullable=False, index=True
    )
    service_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("service.id"), nullable=False, index=True
    )
    ticket_number: Mapped[str] = mapped_column(Text, nullable=False)
    business_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(Text, nullable=False, default="waiting")
    priority_level: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    counter_id: Mapped[Optional[int]] = mapped_column(ID_TYPE, ForeignKey("counter.id"))
    served_by: Mapped[Optional[int]] = mapped_column(ID_TYPE, ForeignKey("app_user.id"))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    called_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    ended_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    notes: Mapped[Optional[str]] = mapped_column(Text)
    customer_name: Mapped[Optional[str]] = mapped_column(Text)
    customer_phone: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        UniqueConstraint(
            "branch_id", "business_date", "ticket_number", name="uq_ticket_number_per_day"
        ),
        # Waiting pool and report scans
        Index("ix_ticket_branch_status", "branch_id", "status"),
        Index("ix_ticket_branch_created", "branch_id", "created_at"),
        # At most one serving ticket per counter, backs the conditional claim
        Index(
            "uq_ticket_serving_counter",
            "counter_id",
            unique=True,
            postgresql_where=text("status = 'serving'"),
            sqlite_where=text("status = 'serving'"),
        ),
    )

    def __repr__(self) -> str:
        return f"<Ticket(id={self.id}, number='{self.ticket_number}', status='{self.status}')>"


class TicketSequence(Base):
    """
    Last issued sequence per (branch, business day, prefix).
    Incremented in place so concurrent kiosks never share a number.
    """

    __tablename__ = "ticket_sequence"

    branch_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("branch.id"), primary_key=True
    )
    business_date: Mapped[date] = mapped_column(Date, primary_key=True)
    prefix: Mapped[str] = mapped_column(Text, primary_key=True)
    last_value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
