"""
Reports router.
Branch statistics over an inclusive date window, plus today's live figures.
"""

from datetime import date
from typing import List

from fastapi import APIRouter, Depends

from shared.security.auth import CallerIdentity, current_caller
from shared.utils.queue_schemas import (
    HourlyTrafficOutput,
    LiveStatsOutput,
    StaffPerformanceOutput,
    StatisticsOutput,
)
from queue_api.routers._common import get_engine
from queue_api.services.domain import QueueEngine

router = APIRouter(prefix="/api/reports", tags=["reports"])


@router.get("/branches/{branch_id}/stats", response_model=StatisticsOutput)
def branch_stats(
    branch_id: int,
    start_date: date,
    end_date: date,
    engine: QueueEngine = Depends(get_engine),
    caller: CallerIdentity = Depends(current_caller),
) -> StatisticsOutput:
    """
    Counts per status, completion rate and average wait/service times.
    Requires MANAGER or ADMIN role.
    """
    return StatisticsOutput.model_validate(
        engine.get_stats(caller, branch_id, start_date, end_date)
    )


@router.get("/branches/{branch_id}/staff", response_model=List[StaffPerformanceOutput])
def staff_performance(
    branch_id: int,
    start_date: date,
    end_date: date,
    engine: QueueEngine = Depends(get_engine),
    caller: CallerIdentity = Depends(current_caller),
) -> List[StaffPerformanceOutput]:
    rows = engine.staff_performance(caller, branch_id, start_date, end_date)
    return [StaffPerformanceOutput.model_validate(r) for r in rows]


@router.get("/branches/{branch_id}/traffic", response_model=List[HourlyTrafficOutput])
def hourly_traffic(
    branch_id: int,
    start_date: date,
    end_date: date,
    engine: QueueEngine = Depends(get_engine),
    caller: CallerIdentity = Depends(current_caller),
) -> List[HourlyTrafficOutput]:
    rows = engine.hourly_traffic(caller, branch_id, start_date, end_date)
    return [HourlyTrafficOutput.model_validate(r) for r in rows]


@router.get("/branches/{branch_id}/live", response_model=LiveStatsOutput)
def live_stats(
    branch_id: int,
    engine: QueueEngine = Depends(get_engine),
    caller: CallerIdentity = Depends(current_caller),
) -> LiveStatsOutput:
    """Today's figures in the branch's time zone. Any serving role."""
    return LiveStatsOutput.model_validate(engine.live_stats(caller, branch_id))
