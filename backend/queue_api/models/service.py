"""
Service Model: what a customer queues for (its prefix builds the ticket number).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from sqlalchemy import ForeignKey, Integer, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import AuditMixin, Base, ID_TYPE

if TYPE_CHECKING:
    from .branch import Branch


class Service(AuditMixin, Base):
    """
    Customer-facing service offered at a branch.
    avg_service_time (seconds) is only used for wait estimates.
    """

    __tablename__ = "service"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    branch_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("branch.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    prefix: Mapped[str] = mapped_column(Text, nullable=False)
    avg_service_time: Mapped[int] = mapped_column(Integer, nullable=False, default=300)
    description: Mapped[Optional[str]] = mapped_column(Text)
    color: Mapped[Optional[str]] = mapped_column(Text)  # Display board accent

    __table_args__ = (
        UniqueConstraint("branch_id", "prefix", name="uq_service_branch_prefix"),
    )

    branch: Mapped["Branch"] = relationship(back_populates="services")
