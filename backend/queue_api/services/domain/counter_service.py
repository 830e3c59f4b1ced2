"""
Counter Assignment Tracker.

Maps staff to counters. Assignment is a conditional write on staff_id so
two staff members can never both take the same counter, and a staff member
holds at most one counter at a time.
"""

from collections.abc import Callable, Sequence
from datetime import datetime

from shared.config.logging import get_logger, audit_counter_event
from shared.utils.exceptions import (
    CounterNotFoundError,
    CounterUnavailableError,
    NotFoundError,
    ValidationError,
)
from shared.utils.timezones import utcnow
from queue_api.repositories import CounterRecord, QueueStore, TicketRecord

logger = get_logger(__name__)


class CounterService:
    def __init__(self, store: QueueStore, clock: Callable[[], datetime] = utcnow):
        self._store = store
        self._clock = clock

    def get(self, counter_id: int) -> CounterRecord:
        counter = self._store.get_counter(counter_id)
        if counter is None:
            raise CounterNotFoundError(counter_id)
        return counter

    def assign(self, counter_id: int, staff_id: int, actor_id: int | None = None) -> CounterRecord:
        """
        Seat `staff_id` at the counter. Re-assigning the same staff is a no-op.

        Raises:
            CounterNotFoundError, CounterUnavailableError (inactive counter),
            NotFoundError (unknown staff), ValidationError (staff of another branch),
            CounterAlreadyAssignedError, StaffAlreadyAssignedError
        """
        counter = self.get(counter_id)
        if not counter.is_active:
            raise CounterUnavailableError(counter_id, "inactive")

        staff = self._store.get_user(staff_id)
        if staff is None or not staff.is_active:
            raise NotFoundError("Staff", staff_id)
        if staff.branch_id is not None and staff.branch_id != counter.branch_id:
            raise ValidationError(
                f"Staff {staff_id} does not belong to branch {counter.branch_id}",
                staff_id=staff_id,
                counter_id=counter_id,
            )

        updated = self._store.conditional_update_counter(
            counter_id,
            None,
            {"staff_id": staff_id, "last_ping": self._clock()},
            allow_same_staff=True,
        )
        if counter.staff_id != staff_id:
            audit_counter_event("ASSIGNED", counter_id, staff_id=staff_id, actor_id=actor_id)
        return updated

    def release(self, counter_id: int, actor_id: int | None = None) -> CounterRecord:
        """
        Clear the counter's staff and pause flag.

        A ticket being served on the counter is left untouched and can still
        be completed, skipped or cancelled.
        """
        counter = self.get(counter_id)
        if counter.staff_id is None and not counter.is_paused:
            return counter

        updated = self._store.conditional_update_counter(
            counter_id,
            counter.staff_id,
            {"staff_id": None, "is_paused": False},
            allow_same_staff=False,
        )
        serving = self._store.serving_ticket_for_counter(counter_id)
        if serving is not None:
            logger.warning(
                "Counter released while serving",
                counter_id=counter_id,
                ticket_id=serving.id,
                staff_id=counter.staff_id,
            )
        audit_counter_event("RELEASED", counter_id, staff_id=counter.staff_id, actor_id=actor_id)
        return updated

    def pause(self, counter_id: int, actor_id: int | None = None) -> CounterRecord:
        """Stop calling new tickets. Requires a staffed, active counter."""
        counter = self.get(counter_id)
        if not counter.is_active:
            raise CounterUnavailableError(counter_id, "inactive")
        if counter.staff_id is None:
            raise CounterUnavailableError(counter_id, "no staff assigned")
        if counter.is_paused:
            return counter
        updated = self._store.conditional_update_counter(
            counter_id, counter.staff_id, {"is_paused": True}, allow_same_staff=False
        )
        audit_counter_event("PAUSED", counter_id, staff_id=counter.staff_id, actor_id=actor_id)
        return updated

    def resume(self, counter_id: int, actor_id: int | None = None) -> CounterRecord:
        counter = self.get(counter_id)
        if not counter.is_paused:
            return counter
        updated = self._store.conditional_update_counter(
            counter_id, counter.staff_id, {"is_paused": False}, allow_same_staff=False
        )
        audit_counter_event("RESUMED", counter_id, staff_id=counter.staff_id, actor_id=actor_id)
        return updated

    def heartbeat(self, counter_id: int) -> CounterRecord:
        """Stamp last_ping for the staffed counter."""
        counter = self.get(counter_id)
        if counter.staff_id is None:
            raise CounterUnavailableError(counter_id, "no staff assigned")
        return self._store.conditional_update_counter(
            counter_id, counter.staff_id, {"last_ping": self._clock()}, allow_same_staff=False
        )

    def list_available(self, branch_id: int) -> Sequence[CounterRecord]:
        """Active, unstaffed counters of the branch, by name."""
        counters = [
            c for c in self._store.list_counters(branch_id)
            if c.is_active and c.staff_id is None
        ]
        return sorted(counters, key=lambda c: (c.name, c.id))

    def get_by_staff(self, staff_id: int) -> CounterRecord | None:
        return self._store.get_counter_by_staff(staff_id)

    def current_ticket(self, counter_id: int) -> TicketRecord | None:
        self.get(counter_id)
        return self._store.serving_ticket_for_counter(counter_id)
