from datetime import date, datetime
from typing import Literal, List

from pydantic import BaseModel, ConfigDict, Field

from shared.config.constants import Limits

TicketStatus = Literal["waiting", "serving", "completed", "cancelled", "skipped"]


class _RecordModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# =============================================================================
# Requests
# =============================================================================


class IssueTicketRequest(BaseModel):
    """Kiosk request for a new ticket."""
    branch_id: int
    service_id: int
    priority_level: int = Field(
        default=0,
        ge=Limits.MIN_PRIORITY_LEVEL,
        le=Limits.MAX_PRIORITY_LEVEL,
        description="0 = normal; higher values are served first",
    )
    customer_name: str | None = Field(default=None, max_length=Limits.MAX_NAME_LENGTH)
    customer_phone: str | None = Field(default=None, max_length=Limits.MAX_PHONE_LENGTH)
    notes: str | None = Field(default=None, max_length=Limits.MAX_NOTES_LENGTH)


class FinishTicketRequest(BaseModel):
    """Optional notes when completing or skipping a ticket."""
    notes: str | None = Field(default=None, max_length=Limits.MAX_NOTES_LENGTH)


class AssignCounterRequest(BaseModel):
    """Seat a staff member; omitted staff_id means the caller."""
    staff_id: int | None = None


# =============================================================================
# Tickets and counters
# =============================================================================


class TicketOutput(_RecordModel):
    """Ticket with its derived wait and service times (seconds)."""
    id: int
    branch_id: int
    service_id: int
    ticket_number: str
    business_date: date
    status: TicketStatus
    priority_level: int
    counter_id: int | None = None
    served_by: int | None = None
    created_at: datetime
    called_at: datetime | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None
    notes: str | None = None
    customer_name: str | None = None
    wait_time: int
    service_time: int | None = None


class CounterOutput(_RecordModel):
    id: int
    branch_id: int
    name: str
    staff_id: int | None = None
    is_active: bool
    is_paused: bool
    last_ping: datetime | None = None


# =============================================================================
# Display board
# =============================================================================


class QueuePositionOutput(_RecordModel):
    position: int
    ticket_id: int
    ticket_number: str
    service_id: int
    priority_level: int
    estimated_wait: int


class NowServingOutput(_RecordModel):
    ticket_id: int
    ticket_number: str
    counter_id: int
    counter_name: str | None = None


class QueueSnapshotOutput(_RecordModel):
    branch_id: int
    generated_at: datetime
    waiting: List[QueuePositionOutput]
    serving: List[NowServingOutput]


# =============================================================================
# Reports
# =============================================================================


class DailyBucketOutput(_RecordModel):
    day: date
    total: int
    waiting: int
    serving: int
    completed: int
    cancelled: int
    skipped: int


class StatisticsOutput(_RecordModel):
    branch_id: int
    start_date: date
    end_date: date
    total: int
    counts: dict[str, int]
    completion_rate: float
    avg_wait_time: float
    avg_service_time: float
    daily_average: float
    daily: List[DailyBucketOutput]
    best_day: DailyBucketOutput | None = None


class StaffPerformanceOutput(_RecordModel):
    staff_id: int
    staff_name: str | None = None
    served: int
    completed: int
    skipped: int
    cancelled: int
    avg_service_time: float


class HourlyTrafficOutput(_RecordModel):
    weekday: int = Field(description="0 = Monday")
    hour: int
    tickets: int
    avg_wait_time: float


class LiveStatsOutput(_RecordModel):
    branch_id: int
    business_date: date
    waiting: int
    serving: int
    issued_today: int
    completed_today: int
    avg_wait_today: float
    staffed_counters: int
