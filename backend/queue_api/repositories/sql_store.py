"""
SQLAlchemy QueueStore.

Each guarded transition is one UPDATE ... WHERE <guard> followed by a
commit. A zero rowcount means the guard failed; the current row is then
re-read only to pick the right error. The partial unique index on
ticket(counter_id) WHERE status = 'serving' catches the claim race that
READ COMMITTED lets through the NOT EXISTS guard.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime
from typing import Any

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, aliased

from shared.config.constants import TicketStatus
from shared.config.settings import settings
from shared.config.logging import get_logger
from shared.infrastructure.db import safe_commit
from shared.utils.exceptions import (
    ConcurrencyConflictError,
    ConflictError,
    CounterAlreadyAssignedError,
    CounterBusyError,
    CounterNotFoundError,
    CounterUnavailableError,
    InternalError,
    StaffAlreadyAssignedError,
    TicketNotFoundError,
)
from shared.utils.timezones import ensure_utc
from queue_api.models import Branch, Counter, Service, Ticket, TicketSequence, User
from .base import QueueStore, check_patch, counter_unavailable_reason
from .records import (
    BranchRecord,
    CounterRecord,
    ServiceRecord,
    TicketRecord,
    UserRecord,
    COUNTER_PATCHABLE_FIELDS,
    TICKET_PATCHABLE_FIELDS,
)

logger = get_logger(__name__)


# =============================================================================
# Row <-> record mapping
# =============================================================================


def ticket_to_record(row: Ticket) -> TicketRecord:
    return TicketRecord(
        id=row.id,
        branch_id=row.branch_id,
        service_id=row.service_id,
        ticket_number=row.ticket_number,
        business_date=row.business_date,
        status=TicketStatus(row.status),
        priority_level=row.priority_level,
        counter_id=row.counter_id,
        served_by=row.served_by,
        created_at=ensure_utc(row.created_at),
        called_at=ensure_utc(row.called_at),
        started_at=ensure_utc(row.started_at),
        ended_at=ensure_utc(row.ended_at),
        notes=row.notes,
        customer_name=row.customer_name,
        customer_phone=row.customer_phone,
    )


def counter_to_record(row: Counter) -> CounterRecord:
    return CounterRecord(
        id=row.id,
        branch_id=row.branch_id,
        name=row.name,
        staff_id=row.staff_id,
        is_active=row.is_active,
        is_paused=row.is_paused,
        last_ping=ensure_utc(row.last_ping),
    )


def service_to_record(row: Service) -> ServiceRecord:
    return ServiceRecord(
        id=row.id,
        branch_id=row.branch_id,
        name=row.name,
        prefix=row.prefix,
        avg_service_time=row.avg_service_time,
        is_active=row.is_active,
        description=row.description,
        color=row.color,
    )


def _column_values(patch: dict[str, Any]) -> dict[str, Any]:
    return {k: (v.value if isinstance(v, TicketStatus) else v) for k, v in patch.items()}


class SqlQueueStore(QueueStore):
    """
    QueueStore over one SQLAlchemy session.

    Not thread-safe: use one store (and session) per request or thread.
    """

    def __init__(self, db: Session):
        self._db = db

    # =========================================================================
    # Tickets
    # =========================================================================

    def insert_ticket(self, ticket: TicketRecord) -> TicketRecord:
        row = Ticket(
            branch_id=ticket.branch_id,
            service_id=ticket.service_id,
            ticket_number=ticket.ticket_number,
            business_date=ticket.business_date,
            status=ticket.status.value,
            priority_level=ticket.priority_level,
            created_at=ticket.created_at,
            notes=ticket.notes,
            customer_name=ticket.customer_name,
            customer_phone=ticket.customer_phone,
        )
        self._db.add(row)
        try:
            self._db.flush()
            safe_commit(self._db)
        except IntegrityError:
            self._db.rollback()
            raise ConflictError(
                f"Ticket number {ticket.ticket_number} already issued today",
                branch_id=ticket.branch_id,
            )
        return ticket_to_record(row)

    def get_ticket(self, ticket_id: int) -> TicketRecord | None:
        row = self._db.get(Ticket, ticket_id, populate_existing=True)
        return ticket_to_record(row) if row else None

    def get_waiting_tickets(self, branch_id: int) -> Sequence[TicketRecord]:
        rows = self._db.execute(
            select(Ticket).where(
                Ticket.branch_id == branch_id,
                Ticket.status == TicketStatus.WAITING.value,
            ).execution_options(populate_existing=True)
        ).scalars().all()
        return [ticket_to_record(r) for r in rows]

    def conditional_update_ticket(
        self,
        ticket_id: int,
        expected_status: TicketStatus,
        patch: dict[str, Any],
        *,
        claim_counter_id: int | None = None,
        claim_staff_id: int | None = None,
    ) -> TicketRecord:
        check_patch(patch, TICKET_PATCHABLE_FIELDS, "ticket")

        stmt = update(Ticket).where(
            Ticket.id == ticket_id,
            Ticket.status == expected_status.value,
        )
        if claim_counter_id is not None:
            serving = aliased(Ticket)
            if claim_staff_id is None:
                staffed = Counter.staff_id.is_not(None)
            else:
                staffed = Counter.staff_id == claim_staff_id
            stmt = stmt.where(
                select(Counter.id).where(
                    Counter.id == claim_counter_id,
                    Counter.is_active.is_(True),
                    Counter.is_paused.is_(False),
                    staffed,
                ).exists(),
                ~select(serving.id).where(
                    serving.counter_id == claim_counter_id,
                    serving.status == TicketStatus.SERVING.value,
                ).exists(),
            )
        stmt = stmt.values(**_column_values(patch)).execution_options(synchronize_session=False)

        try:
            result = self._db.execute(stmt)
            safe_commit(self._db)
        except IntegrityError:
            self._db.rollback()
            if claim_counter_id is None:
                raise
            # Another claim on this counter committed first
            current = self.serving_ticket_for_counter(claim_counter_id)
            raise CounterBusyError(
                claim_counter_id,
                serving_ticket_id=current.id if current else None,
            )

        if result.rowcount == 0:
            current = self.get_ticket(ticket_id)
            if current is None:
                raise TicketNotFoundError(ticket_id)
            if current.status != expected_status or claim_counter_id is None:
                raise ConcurrencyConflictError(
                    "Ticket", ticket_id,
                    expected_status=expected_status.value,
                    actual_status=current.status.value,
                )
            counter = self.get_counter(claim_counter_id)
            if counter is None:
                raise CounterNotFoundError(claim_counter_id)
            reason = counter_unavailable_reason(counter, claim_staff_id)
            if reason is not None:
                raise CounterUnavailableError(claim_counter_id, reason)
            occupying = self.serving_ticket_for_counter(claim_counter_id)
            raise CounterBusyError(
                claim_counter_id,
                serving_ticket_id=occupying.id if occupying else None,
            )

        return self.get_ticket(ticket_id)

    def serving_ticket_for_counter(self, counter_id: int) -> TicketRecord | None:
        row = self._db.execute(
            select(Ticket).where(
                Ticket.counter_id == counter_id,
                Ticket.status == TicketStatus.SERVING.value,
            ).execution_options(populate_existing=True)
        ).scalars().first()
        return ticket_to_record(row) if row else None

    def list_serving_tickets(self, branch_id: int) -> Sequence[TicketRecord]:
        rows = self._db.execute(
            select(Ticket).where(
                Ticket.branch_id == branch_id,
                Ticket.status == TicketStatus.SERVING.value,
            ).execution_options(populate_existing=True)
        ).scalars().all()
        return [ticket_to_record(r) for r in rows]

    def list_tickets(self, branch_id: int, start: datetime, end: datetime) -> Sequence[TicketRecord]:
        rows = self._db.execute(
            select(Ticket).where(
                Ticket.branch_id == branch_id,
                Ticket.created_at >= start,
                Ticket.created_at < end,
            ).execution_options(populate_existing=True)
        ).scalars().all()
        return [ticket_to_record(r) for r in rows]

    def list_ticket_history(
        self,
        branch_id: int,
        start: datetime,
        end: datetime,
        statuses: frozenset[TicketStatus],
        *,
        served_by: int | None = None,
        limit: int,
    ) -> Sequence[TicketRecord]:
        stmt = select(Ticket).where(
            Ticket.branch_id == branch_id,
            Ticket.created_at >= start,
            Ticket.created_at < end,
            Ticket.status.in_([s.value for s in statuses]),
        )
        if served_by is not None:
            stmt = stmt.where(Ticket.served_by == served_by)
        stmt = stmt.order_by(
            Ticket.ended_at.desc().nulls_last(),
            Ticket.created_at.desc(),
            Ticket.id.desc(),
        ).limit(limit)
        rows = self._db.execute(stmt.execution_options(populate_existing=True)).scalars().all()
        return [ticket_to_record(r) for r in rows]

    def next_ticket_sequence(self, branch_id: int, business_date: date, prefix: str) -> int:
        """
        Increment the day's sequence row, creating it on first use.

        Left uncommitted: the following insert_ticket commits the number and
        the ticket together, so a failed insert does not burn a number.
        """
        key = (
            TicketSequence.branch_id == branch_id,
            TicketSequence.business_date == business_date,
            TicketSequence.prefix == prefix,
        )
        attempts = max(1, settings.ticket_issue_max_attempts)
        for attempt in range(attempts):
            result = self._db.execute(
                update(TicketSequence)
                .where(*key)
                .values(last_value=TicketSequence.last_value + 1)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount:
                return self._db.scalar(select(TicketSequence.last_value).where(*key))

            self._db.add(TicketSequence(
                branch_id=branch_id,
                business_date=business_date,
                prefix=prefix,
                last_value=1,
            ))
            try:
                self._db.flush()
                return 1
            except IntegrityError:
                # Another kiosk created the row first; retry the increment
                self._db.rollback()
                logger.debug(
                    "Ticket sequence row race, retrying",
                    branch_id=branch_id,
                    prefix=prefix,
                    attempt=attempt + 1,
                )

        raise InternalError(
            "Could not allocate ticket number",
            branch_id=branch_id,
            prefix=prefix,
        )

    # =========================================================================
    # Counters
    # =========================================================================

    def get_counter(self, counter_id: int) -> CounterRecord | None:
        row = self._db.get(Counter, counter_id, populate_existing=True)
        return counter_to_record(row) if row else None

    def list_counters(self, branch_id: int) -> Sequence[CounterRecord]:
        rows = self._db.execute(
            select(Counter).where(Counter.branch_id == branch_id)
            .execution_options(populate_existing=True)
        ).scalars().all()
        return [counter_to_record(r) for r in rows]

    def get_counter_by_staff(self, staff_id: int) -> CounterRecord | None:
        row = self._db.execute(
            select(Counter).where(Counter.staff_id == staff_id)
            .execution_options(populate_existing=True)
        ).scalars().first()
        return counter_to_record(row) if row else None

    def conditional_update_counter(
        self,
        counter_id: int,
        expected_staff_id: int | None,
        patch: dict[str, Any],
        *,
        allow_same_staff: bool = True,
    ) -> CounterRecord:
        check_patch(patch, COUNTER_PATCHABLE_FIELDS, "counter")
        new_staff_id = patch.get("staff_id")

        if new_staff_id is not None:
            holder = self.get_counter_by_staff(new_staff_id)
            if holder is not None and holder.id != counter_id:
                raise StaffAlreadyAssignedError(new_staff_id, counter_id=holder.id)

        if expected_staff_id is None:
            guard = Counter.staff_id.is_(None)
        else:
            guard = Counter.staff_id == expected_staff_id
        if allow_same_staff and new_staff_id is not None:
            guard = or_(guard, Counter.staff_id == new_staff_id)

        stmt = (
            update(Counter)
            .where(Counter.id == counter_id, guard)
            .values(**patch)
            .execution_options(synchronize_session=False)
        )
        try:
            result = self._db.execute(stmt)
            safe_commit(self._db)
        except IntegrityError:
            self._db.rollback()
            if new_staff_id is None:
                raise
            # unique(counter.staff_id): the staff member took another counter meanwhile
            holder = self.get_counter_by_staff(new_staff_id)
            raise StaffAlreadyAssignedError(new_staff_id, counter_id=holder.id if holder else None)

        if result.rowcount == 0:
            current = self.get_counter(counter_id)
            if current is None:
                raise CounterNotFoundError(counter_id)
            if new_staff_id is not None:
                raise CounterAlreadyAssignedError(counter_id, staff_id=current.staff_id)
            raise ConcurrencyConflictError("Counter", counter_id)

        return self.get_counter(counter_id)

    # =========================================================================
    # Reference data
    # =========================================================================

    def get_service(self, service_id: int) -> ServiceRecord | None:
        row = self._db.get(Service, service_id)
        return service_to_record(row) if row else None

    def list_services(self, branch_id: int) -> Sequence[ServiceRecord]:
        rows = self._db.execute(
            select(Service).where(Service.branch_id == branch_id).order_by(Service.name)
        ).scalars().all()
        return [service_to_record(r) for r in rows]

    def get_branch(self, branch_id: int) -> BranchRecord | None:
        row = self._db.get(Branch, branch_id)
        if row is None:
            return None
        return BranchRecord(id=row.id, name=row.name, timezone=row.timezone, is_active=row.is_active)

    def get_user(self, user_id: int) -> UserRecord | None:
        row = self._db.get(User, user_id)
        if row is None:
            return None
        return UserRecord(
            id=row.id,
            name=row.name,
            email=row.email,
            role=row.role,
            branch_id=row.branch_id,
            is_active=row.is_active,
        )

    def list_users(self, user_ids: Sequence[int]) -> Sequence[UserRecord]:
        if not user_ids:
            return []
        rows = self._db.execute(select(User).where(User.id.in_(list(user_ids)))).scalars().all()
        return [
            UserRecord(
                id=r.id, name=r.name, email=r.email, role=r.role,
                branch_id=r.branch_id, is_active=r.is_active,
            )
            for r in rows
        ]

    def close(self) -> None:
        self._db.close()
