"""
Kiosk router.
Ticket issuance for self-service kiosks and reception desks.
"""

from fastapi import APIRouter, Depends, status

from shared.security.auth import CallerIdentity, current_caller
from shared.utils.queue_schemas import IssueTicketRequest, TicketOutput
from queue_api.routers._common import get_engine, ticket_output
from queue_api.services.domain import QueueEngine

router = APIRouter(prefix="/api/kiosk", tags=["kiosk"])


@router.post("/tickets", response_model=TicketOutput, status_code=status.HTTP_201_CREATED)
def issue_ticket(
    body: IssueTicketRequest,
    engine: QueueEngine = Depends(get_engine),
    caller: CallerIdentity = Depends(current_caller),
) -> TicketOutput:
    """
    Issue a waiting ticket for a service.
    Requires KIOSK, STAFF, MANAGER, or ADMIN role.
    """
    ticket = engine.issue_ticket(
        caller,
        service_id=body.service_id,
        branch_id=body.branch_id,
        priority_level=body.priority_level,
        customer_name=body.customer_name,
        customer_phone=body.customer_phone,
        notes=body.notes,
    )
    return ticket_output(ticket)
