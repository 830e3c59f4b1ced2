"""
Ticket lookup router.
"""

from fastapi import APIRouter, Depends

from shared.security.auth import CallerIdentity, current_caller
from shared.utils.queue_schemas import TicketOutput
from queue_api.routers._common import get_engine, ticket_output
from queue_api.services.domain import QueueEngine

router = APIRouter(prefix="/api/tickets", tags=["tickets"])


@router.get("/{ticket_id}", response_model=TicketOutput)
def get_ticket(
    ticket_id: int,
    engine: QueueEngine = Depends(get_engine),
    caller: CallerIdentity = Depends(current_caller),
) -> TicketOutput:
    """Ticket with wait and service times. Any role with access to its branch."""
    return ticket_output(engine.get_ticket(caller, ticket_id))
