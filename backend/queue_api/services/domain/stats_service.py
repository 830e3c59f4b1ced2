"""
Statistics Aggregator.

Read-only summaries over a branch's tickets. Windows are inclusive
calendar dates in the branch's time zone; averages only sample tickets
that carry the timestamps they need, and empty samples average to 0.0.
"""

from collections import defaultdict
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from statistics import fmean

from shared.config.constants import Limits, TicketStatus
from shared.config.logging import reports_logger as logger
from shared.utils.exceptions import ValidationError
from shared.utils.timezones import branch_zone, local_date, local_day_bounds, utcnow
from queue_api.repositories import BranchRecord, QueueStore, TicketRecord
from .queue_selector import order_waiting
from .ticket_lifecycle import service_time, wait_time


# =============================================================================
# Result types
# =============================================================================


@dataclass
class DailyBucket:
    day: date
    total: int = 0
    waiting: int = 0
    serving: int = 0
    completed: int = 0
    cancelled: int = 0
    skipped: int = 0


@dataclass
class StatisticsSummary:
    branch_id: int
    start_date: date
    end_date: date
    total: int
    counts: dict[str, int]
    completion_rate: float
    avg_wait_time: float
    avg_service_time: float
    daily_average: float
    daily: list[DailyBucket] = field(default_factory=list)
    best_day: DailyBucket | None = None


@dataclass
class StaffPerformance:
    staff_id: int
    staff_name: str | None
    served: int
    completed: int
    skipped: int
    cancelled: int
    avg_service_time: float


@dataclass
class HourlyTraffic:
    weekday: int  # 0 = Monday
    hour: int
    tickets: int
    avg_wait_time: float


@dataclass
class LiveStats:
    branch_id: int
    business_date: date
    waiting: int
    serving: int
    issued_today: int
    completed_today: int
    avg_wait_today: float
    staffed_counters: int


@dataclass
class QueuePosition:
    position: int
    ticket_id: int
    ticket_number: str
    service_id: int
    priority_level: int
    estimated_wait: int  # seconds


@dataclass
class NowServing:
    ticket_id: int
    ticket_number: str
    counter_id: int
    counter_name: str | None


@dataclass
class QueueSnapshot:
    branch_id: int
    generated_at: datetime
    waiting: list[QueuePosition]
    serving: list[NowServing]


def _mean(values: Iterable[int]) -> float:
    values = list(values)
    return fmean(values) if values else 0.0


def completion_rate(counts: dict[str, int]) -> float:
    """completed / (completed + cancelled + skipped); 0.0 when nothing is terminal."""
    terminal = sum(counts.get(s.value, 0) for s in TicketStatus.terminal())
    if terminal == 0:
        return 0.0
    return counts.get(TicketStatus.COMPLETED.value, 0) / terminal


def best_day(buckets: Sequence[DailyBucket]) -> DailyBucket | None:
    """Bucket with the most completed tickets; earliest date wins ties."""
    best = None
    for bucket in sorted(buckets, key=lambda b: b.day):
        if best is None or bucket.completed > best.completed:
            best = bucket
    return best


class StatsService:
    def __init__(self, store: QueueStore, clock: Callable[[], datetime] = utcnow):
        self._store = store
        self._clock = clock

    def _bounds(self, branch: BranchRecord, start_date: date, end_date: date) -> tuple[datetime, datetime]:
        if end_date < start_date:
            raise ValidationError(
                "end_date must not be before start_date",
                start_date=str(start_date),
                end_date=str(end_date),
            )
        if (end_date - start_date).days + 1 > Limits.MAX_STATS_WINDOW_DAYS:
            raise ValidationError(
                f"Statistics window cannot exceed {Limits.MAX_STATS_WINDOW_DAYS} days",
                start_date=str(start_date),
                end_date=str(end_date),
            )
        return local_day_bounds(start_date, end_date, branch_zone(branch.timezone))

    def _window(self, branch: BranchRecord, start_date: date, end_date: date) -> list[TicketRecord]:
        start, end = self._bounds(branch, start_date, end_date)
        return list(self._store.list_tickets(branch.id, start, end))

    def history(
        self,
        branch: BranchRecord,
        start_date: date | None = None,
        end_date: date | None = None,
        status: TicketStatus | None = None,
        served_by: int | None = None,
        limit: int | None = None,
    ) -> list[TicketRecord]:
        """
        Finished tickets of the branch, most recently ended first.

        Dates default to the branch's current business day.
        """
        if status is not None and not status.is_terminal:
            raise ValidationError(
                f"History only holds finished tickets, not '{status.value}'",
                status=status.value,
            )
        limit = Limits.DEFAULT_PAGE_SIZE if limit is None else limit
        if not 1 <= limit <= Limits.MAX_PAGE_SIZE:
            raise ValidationError(
                f"limit must be between 1 and {Limits.MAX_PAGE_SIZE}",
                limit=limit,
            )

        today = local_date(self._clock(), branch_zone(branch.timezone))
        start, end = self._bounds(branch, start_date or today, end_date or today)
        statuses = frozenset({status}) if status is not None else TicketStatus.terminal()
        return list(self._store.list_ticket_history(
            branch.id, start, end, statuses, served_by=served_by, limit=limit,
        ))

    def summary(self, branch: BranchRecord, start_date: date, end_date: date) -> StatisticsSummary:
        tickets = self._window(branch, start_date, end_date)
        tz = branch_zone(branch.timezone)
        now = self._clock()

        counts = {s.value: 0 for s in TicketStatus}
        buckets: dict[date, DailyBucket] = {}
        for t in tickets:
            counts[t.status.value] += 1
            day = local_date(t.created_at, tz)
            bucket = buckets.setdefault(day, DailyBucket(day=day))
            bucket.total += 1
            setattr(bucket, t.status.value, getattr(bucket, t.status.value) + 1)

        daily = sorted(buckets.values(), key=lambda b: b.day)
        days_in_window = (end_date - start_date).days + 1

        summary = StatisticsSummary(
            branch_id=branch.id,
            start_date=start_date,
            end_date=end_date,
            total=len(tickets),
            counts=counts,
            completion_rate=completion_rate(counts),
            avg_wait_time=_mean(wait_time(t, now) for t in tickets if t.called_at is not None),
            avg_service_time=_mean(
                service_time(t, now) for t in tickets
                if t.called_at is not None and t.ended_at is not None
            ),
            daily_average=len(tickets) / days_in_window,
            daily=daily,
            best_day=best_day(daily),
        )
        logger.debug(
            "Statistics computed",
            branch_id=branch.id,
            start_date=str(start_date),
            end_date=str(end_date),
            total=summary.total,
        )
        return summary

    def staff_performance(
        self, branch: BranchRecord, start_date: date, end_date: date
    ) -> list[StaffPerformance]:
        """Per staff member who called tickets in the window, most served first."""
        now = self._clock()
        by_staff: dict[int, list[TicketRecord]] = defaultdict(list)
        for t in self._window(branch, start_date, end_date):
            if t.served_by is not None:
                by_staff[t.served_by].append(t)

        names = {u.id: u.name for u in self._store.list_users(list(by_staff))}
        rows = []
        for staff_id, served in by_staff.items():
            rows.append(StaffPerformance(
                staff_id=staff_id,
                staff_name=names.get(staff_id),
                served=len(served),
                completed=sum(1 for t in served if t.status == TicketStatus.COMPLETED),
                skipped=sum(1 for t in served if t.status == TicketStatus.SKIPPED),
                cancelled=sum(1 for t in served if t.status == TicketStatus.CANCELLED),
                avg_service_time=_mean(
                    service_time(t, now) for t in served
                    if t.called_at is not None and t.ended_at is not None
                ),
            ))
        return sorted(rows, key=lambda r: (-r.served, r.staff_id))

    def hourly_traffic(
        self, branch: BranchRecord, start_date: date, end_date: date
    ) -> list[HourlyTraffic]:
        """Tickets issued per (weekday, hour) in branch time."""
        tz = branch_zone(branch.timezone)
        now = self._clock()
        slots: dict[tuple[int, int], list[TicketRecord]] = defaultdict(list)
        for t in self._window(branch, start_date, end_date):
            local = t.created_at.astimezone(tz)
            slots[(local.weekday(), local.hour)].append(t)

        return [
            HourlyTraffic(
                weekday=weekday,
                hour=hour,
                tickets=len(group),
                avg_wait_time=_mean(wait_time(t, now) for t in group if t.called_at is not None),
            )
            for (weekday, hour), group in sorted(slots.items())
        ]

    def live(self, branch: BranchRecord) -> LiveStats:
        now = self._clock()
        today = local_date(now, branch_zone(branch.timezone))
        todays = self._window(branch, today, today)
        counters = self._store.list_counters(branch.id)

        return LiveStats(
            branch_id=branch.id,
            business_date=today,
            waiting=len(self._store.get_waiting_tickets(branch.id)),
            serving=len(self._store.list_serving_tickets(branch.id)),
            issued_today=len(todays),
            completed_today=sum(1 for t in todays if t.status == TicketStatus.COMPLETED),
            avg_wait_today=_mean(wait_time(t, now) for t in todays if t.called_at is not None),
            staffed_counters=sum(1 for c in counters if c.is_active and c.staff_id is not None),
        )

    def snapshot(self, branch: BranchRecord) -> QueueSnapshot:
        """
        Display board view: waiting tickets in serving order with an estimated
        wait, plus what each counter is serving now.

        estimated_wait = avg_service_time of tickets ahead / staffed active counters
        """
        counters = {c.id: c for c in self._store.list_counters(branch.id)}
        staffed = sum(1 for c in counters.values() if c.is_active and c.staff_id is not None)
        service_times = {s.id: s.avg_service_time for s in self._store.list_services(branch.id)}

        waiting = []
        ahead = 0
        for position, t in enumerate(order_waiting(self._store.get_waiting_tickets(branch.id)), start=1):
            waiting.append(QueuePosition(
                position=position,
                ticket_id=t.id,
                ticket_number=t.ticket_number,
                service_id=t.service_id,
                priority_level=t.priority_level,
                estimated_wait=int(ahead / max(1, staffed)),
            ))
            ahead += service_times.get(t.service_id, 0)

        serving = [
            NowServing(
                ticket_id=t.id,
                ticket_number=t.ticket_number,
                counter_id=t.counter_id,
                counter_name=counters[t.counter_id].name if t.counter_id in counters else None,
            )
            for t in sorted(self._store.list_serving_tickets(branch.id), key=lambda t: t.called_at or t.created_at)
        ]

        return QueueSnapshot(
            branch_id=branch.id,
            generated_at=self._clock(),
            waiting=waiting,
            serving=serving,
        )
