"""
Request-scoped QueueEngine and record serializers.

Usage:
    from queue_api.routers._common import get_engine, ticket_output

    @router.get("/tickets/{ticket_id}")
    def get_ticket(ticket_id: int, engine: QueueEngine = Depends(get_engine), ...):
        return ticket_output(engine.get_ticket(caller, ticket_id))
"""

from dataclasses import asdict
from datetime import datetime

from fastapi import Depends
from sqlalchemy.orm import Session

from shared.infrastructure.db import get_db
from shared.infrastructure.events import get_change_bus
from shared.utils.queue_schemas import TicketOutput
from shared.utils.timezones import utcnow
from queue_api.repositories import SqlQueueStore, TicketRecord
from queue_api.services.domain import QueueEngine, service_time, wait_time


def get_engine(db: Session = Depends(get_db)) -> QueueEngine:
    return QueueEngine(SqlQueueStore(db), get_change_bus())


def ticket_output(ticket: TicketRecord, now: datetime | None = None) -> TicketOutput:
    """service_time stays None until the ticket has been called."""
    now = now or utcnow()
    data = asdict(ticket)
    data["status"] = ticket.status.value
    return TicketOutput(
        **data,
        wait_time=wait_time(ticket, now),
        service_time=service_time(ticket, now) if ticket.called_at is not None else None,
    )
