"""
Staff console router.
Calling the next ticket, finishing the ticket in service and
browsing finished tickets.
CLEAN-ARCH: Thin router delegating to QueueEngine.
"""

from datetime import date
from typing import List

from fastapi import APIRouter, Depends, Query, Response, status

from shared.config.constants import Limits, TicketStatus
from shared.security.auth import CallerIdentity, current_caller
from shared.utils.queue_schemas import FinishTicketRequest, TicketOutput
from queue_api.routers._common import get_engine, ticket_output
from queue_api.services.domain import QueueEngine

router = APIRouter(prefix="/api/staff", tags=["staff"])


@router.post(
    "/counters/{counter_id}/call-next",
    response_model=TicketOutput,
    responses={204: {"description": "No ticket is waiting"}},
)
def call_next(
    counter_id: int,
    engine: QueueEngine = Depends(get_engine),
    caller: CallerIdentity = Depends(current_caller),
):
    """
    Call the next waiting ticket to this counter.
    Requires the counter's own staff (or ADMIN). Returns 204 when the queue is empty.
    """
    counter = engine.counters.get(counter_id)
    ticket = engine.call_next(caller, counter.branch_id, counter_id)
    if ticket is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return ticket_output(ticket)


@router.get(
    "/counters/{counter_id}/next",
    response_model=TicketOutput,
    responses={204: {"description": "No ticket is waiting"}},
)
def preview_next(
    counter_id: int,
    engine: QueueEngine = Depends(get_engine),
    caller: CallerIdentity = Depends(current_caller),
):
    """Ticket call-next would pick right now, without claiming it."""
    counter = engine.counters.get(counter_id)
    ticket = engine.select_next(caller, counter.branch_id, counter_id)
    if ticket is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return ticket_output(ticket)


@router.get(
    "/counters/{counter_id}/current",
    response_model=TicketOutput,
    responses={204: {"description": "Counter is not serving"}},
)
def current_ticket(
    counter_id: int,
    engine: QueueEngine = Depends(get_engine),
    caller: CallerIdentity = Depends(current_caller),
):
    ticket = engine.current_ticket(caller, counter_id)
    if ticket is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return ticket_output(ticket)


@router.get("/tickets/history", response_model=List[TicketOutput])
def ticket_history(
    branch_id: int = Query(..., description="Branch whose finished tickets to list"),
    staff_id: int | None = Query(default=None, description="Filter by serving staff (managers only)"),
    status_filter: TicketStatus | None = Query(
        default=None, alias="status", description="completed, cancelled or skipped"
    ),
    start_date: date | None = Query(default=None, description="First day (defaults to today)"),
    end_date: date | None = Query(default=None, description="Last day (defaults to today)"),
    limit: int | None = Query(default=None, ge=1, le=Limits.MAX_PAGE_SIZE),
    engine: QueueEngine = Depends(get_engine),
    caller: CallerIdentity = Depends(current_caller),
) -> List[TicketOutput]:
    """
    Finished tickets, most recently ended first.
    STAFF see their own tickets; MANAGER/ADMIN see the whole branch.
    """
    tickets = engine.ticket_history(
        caller,
        branch_id,
        staff_id=staff_id,
        status=status_filter,
        start_date=start_date,
        end_date=end_date,
        limit=limit,
    )
    return [ticket_output(t) for t in tickets]


@router.post("/tickets/{ticket_id}/complete", response_model=TicketOutput)
def complete_ticket(
    ticket_id: int,
    body: FinishTicketRequest | None = None,
    engine: QueueEngine = Depends(get_engine),
    caller: CallerIdentity = Depends(current_caller),
) -> TicketOutput:
    notes = body.notes if body else None
    return ticket_output(engine.complete_ticket(caller, ticket_id, notes))


@router.post("/tickets/{ticket_id}/skip", response_model=TicketOutput)
def skip_ticket(
    ticket_id: int,
    body: FinishTicketRequest | None = None,
    engine: QueueEngine = Depends(get_engine),
    caller: CallerIdentity = Depends(current_caller),
) -> TicketOutput:
    """Customer did not show up. Skipped tickets are not requeued."""
    notes = body.notes if body else None
    return ticket_output(engine.skip_ticket(caller, ticket_id, notes))


@router.post("/tickets/{ticket_id}/cancel", response_model=TicketOutput)
def cancel_ticket(
    ticket_id: int,
    engine: QueueEngine = Depends(get_engine),
    caller: CallerIdentity = Depends(current_caller),
) -> TicketOutput:
    return ticket_output(engine.cancel_ticket(caller, ticket_id))
