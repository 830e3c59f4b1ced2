"""
Display board router.
Public, unauthenticated view of a branch's queue for waiting-room screens.
"""

from fastapi import APIRouter, Depends

from shared.utils.queue_schemas import QueueSnapshotOutput
from queue_api.routers._common import get_engine
from queue_api.services.domain import QueueEngine

router = APIRouter(prefix="/api/display", tags=["display"])


@router.get("/branches/{branch_id}/queue", response_model=QueueSnapshotOutput)
def queue_snapshot(
    branch_id: int,
    engine: QueueEngine = Depends(get_engine),
) -> QueueSnapshotOutput:
    """Waiting tickets in call order with estimated waits, and who is being served where."""
    return QueueSnapshotOutput.model_validate(engine.queue_snapshot(branch_id))
