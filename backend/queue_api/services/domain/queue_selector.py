"""
Queue Selector.

Picks the next ticket of a branch's waiting pool. Read-only: selection is
advisory and the claim happens in the lifecycle's guarded transition.
"""

from collections.abc import Iterable

from shared.config.logging import get_logger
from queue_api.repositories import QueueStore, TicketRecord

logger = get_logger(__name__)


def waiting_sort_key(ticket: TicketRecord) -> tuple:
    """Priority first (higher wins), then arrival, then ticket number."""
    return (-ticket.priority_level, ticket.created_at, ticket.ticket_number)


def order_waiting(tickets: Iterable[TicketRecord]) -> list[TicketRecord]:
    """
    Serving order of a waiting pool.

    Shared by call-next and the display snapshot so the board always shows
    the ticket a counter will actually get next.
    """
    return sorted(tickets, key=waiting_sort_key)


class QueueSelector:
    def __init__(self, store: QueueStore):
        self._store = store

    def select_next(self, branch_id: int, counter_id: int | None = None) -> TicketRecord | None:
        """
        Next ticket to serve in the branch, or None when nothing is waiting.

        A counter serves every service of its branch, so `counter_id` does not
        narrow the pool.
        """
        waiting = self._store.get_waiting_tickets(branch_id)
        if not waiting:
            return None
        ticket = min(waiting, key=waiting_sort_key)
        logger.debug(
            "Next ticket selected",
            branch_id=branch_id,
            counter_id=counter_id,
            ticket_id=ticket.id,
            waiting=len(waiting),
        )
        return ticket
