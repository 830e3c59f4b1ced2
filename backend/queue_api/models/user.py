"""
User Model: staff, managers, admins and kiosk accounts.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from sqlalchemy import ForeignKey, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import AuditMixin, Base, ID_TYPE

if TYPE_CHECKING:
    from .branch import Branch


class User(AuditMixin, Base):
    """
    Account referenced by Counter.staff_id and Ticket.served_by.
    Credentials live with the identity provider, not here.
    """

    __tablename__ = "app_user"

    id: Mapped[int] = mapped_column(ID_TYPE, primary_key=True, autoincrement=True)
    branch_id: Mapped[Optional[int]] = mapped_column(
        ID_TYPE, ForeignKey("branch.id"), index=True
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    role: Mapped[str] = mapped_column(Text, nullable=False, default="STAFF")  # ADMIN, MANAGER, STAFF, KIOSK

    branch: Mapped[Optional["Branch"]] = relationship(back_populates="users")

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"
