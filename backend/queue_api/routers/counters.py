"""
Counter router.
Staff assignment, pause/resume and presence heartbeat for service counters.
CLEAN-ARCH: Thin router delegating to QueueEngine.
"""

from typing import List

from fastapi import APIRouter, Depends, Response, status

from shared.security.auth import CallerIdentity, current_caller
from shared.utils.queue_schemas import AssignCounterRequest, CounterOutput
from queue_api.routers._common import get_engine
from queue_api.services.domain import QueueEngine

router = APIRouter(prefix="/api", tags=["counters"])


@router.get(
    "/counters/mine",
    response_model=CounterOutput,
    responses={204: {"description": "Staff member holds no counter"}},
)
def my_counter(
    staff_id: int | None = None,
    engine: QueueEngine = Depends(get_engine),
    caller: CallerIdentity = Depends(current_caller),
):
    """
    Counter held by the caller. MANAGER/ADMIN may pass staff_id to look up
    someone else's.
    """
    counter = engine.counter_for_staff(caller, staff_id)
    if counter is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    return CounterOutput.model_validate(counter)


@router.get("/branches/{branch_id}/counters/available", response_model=List[CounterOutput])
def available_counters(
    branch_id: int,
    engine: QueueEngine = Depends(get_engine),
    caller: CallerIdentity = Depends(current_caller),
) -> List[CounterOutput]:
    """Active counters nobody is sitting at."""
    return [CounterOutput.model_validate(c) for c in engine.available_counters(caller, branch_id)]


@router.post("/counters/{counter_id}/assign", response_model=CounterOutput)
def assign_counter(
    counter_id: int,
    body: AssignCounterRequest | None = None,
    engine: QueueEngine = Depends(get_engine),
    caller: CallerIdentity = Depends(current_caller),
) -> CounterOutput:
    """
    Take a counter. STAFF can only assign themselves; MANAGER/ADMIN may
    seat any staff member of the branch.
    """
    staff_id = body.staff_id if body else None
    return CounterOutput.model_validate(engine.assign_counter(caller, counter_id, staff_id))


@router.post("/counters/{counter_id}/release", status_code=status.HTTP_204_NO_CONTENT)
def release_counter(
    counter_id: int,
    engine: QueueEngine = Depends(get_engine),
    caller: CallerIdentity = Depends(current_caller),
) -> Response:
    engine.release_counter(caller, counter_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/counters/{counter_id}/pause", response_model=CounterOutput)
def pause_counter(
    counter_id: int,
    engine: QueueEngine = Depends(get_engine),
    caller: CallerIdentity = Depends(current_caller),
) -> CounterOutput:
    return CounterOutput.model_validate(engine.pause_counter(caller, counter_id))


@router.post("/counters/{counter_id}/resume", response_model=CounterOutput)
def resume_counter(
    counter_id: int,
    engine: QueueEngine = Depends(get_engine),
    caller: CallerIdentity = Depends(current_caller),
) -> CounterOutput:
    return CounterOutput.model_validate(engine.resume_counter(caller, counter_id))


@router.post("/counters/{counter_id}/heartbeat", response_model=CounterOutput)
def heartbeat(
    counter_id: int,
    engine: QueueEngine = Depends(get_engine),
    caller: CallerIdentity = Depends(current_caller),
) -> CounterOutput:
    return CounterOutput.model_validate(engine.heartbeat(caller, counter_id))
