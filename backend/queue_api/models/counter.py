"""
Counter Model: a service point staffed by at most one staff member.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import AuditMixin, Base, ID_TYPE

if TYPE_CHECKING:
    from .branch import Branch


class Counter(AuditMixin, Base):
    """
    staff_id is NULL while the counter is unassigned. The unique constraint
    keeps a staff member on one counter at a time (NULLs never collide).
    """

    __tablename__ = "counter"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    branch_id: Mapped[int] = mapped_column(
        ID_TYPE, ForeignKey("branch.id"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    staff_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("app_user.id"), unique=True
    )
    is_paused: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_ping: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    branch: Mapped["Branch"] = relationship(back_populates="counters")
