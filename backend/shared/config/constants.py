"""
Centralized constants for the backend application.
Avoids magic strings and repeated constants.

Usage:
    from shared.config.constants import Roles, TicketStatus, can_transition

    if status in TicketStatus.terminal():
        ...

    if can_transition(TicketStatus.WAITING, TicketStatus.SERVING):
        ...
"""

from enum import Enum
from typing import Final


# =============================================================================
# User Roles
# =============================================================================


class Roles:
    """User role constants."""

    ADMIN: Final[str] = "ADMIN"
    MANAGER: Final[str] = "MANAGER"
    STAFF: Final[str] = "STAFF"
    KIOSK: Final[str] = "KIOSK"

    ALL: Final[list[str]] = [ADMIN, MANAGER, STAFF, KIOSK]


# Role groups for common access patterns
MANAGEMENT_ROLES: Final[frozenset[str]] = frozenset({Roles.ADMIN, Roles.MANAGER})
SERVING_ROLES: Final[frozenset[str]] = frozenset({Roles.ADMIN, Roles.MANAGER, Roles.STAFF})
ISSUING_ROLES: Final[frozenset[str]] = frozenset({Roles.ADMIN, Roles.MANAGER, Roles.STAFF, Roles.KIOSK})


# =============================================================================
# Ticket Status
# =============================================================================


class TicketStatus(str, Enum):
    """Ticket lifecycle states."""

    WAITING = "waiting"
    SERVING = "serving"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    SKIPPED = "skipped"

    @classmethod
    def terminal(cls) -> frozenset["TicketStatus"]:
        return frozenset({cls.COMPLETED, cls.CANCELLED, cls.SKIPPED})

    @property
    def is_terminal(self) -> bool:
        return self in TicketStatus.terminal()


# Valid ticket status transitions (from -> allowed to states)
# Flow: WAITING -> SERVING -> COMPLETED | SKIPPED, and WAITING | SERVING -> CANCELLED
TICKET_TRANSITIONS: Final[dict[TicketStatus, frozenset[TicketStatus]]] = {
    TicketStatus.WAITING: frozenset({TicketStatus.SERVING, TicketStatus.CANCELLED}),
    TicketStatus.SERVING: frozenset(
        {TicketStatus.COMPLETED, TicketStatus.SKIPPED, TicketStatus.CANCELLED}
    ),
    TicketStatus.COMPLETED: frozenset(),  # Terminal state
    TicketStatus.CANCELLED: frozenset(),  # Terminal state
    TicketStatus.SKIPPED: frozenset(),  # Terminal state
}

DEFAULT_SKIP_NOTE: Final[str] = "skipped by staff"


def can_transition(current: TicketStatus, new: TicketStatus) -> bool:
    """Check whether a ticket can move from `current` to `new`."""
    return new in TICKET_TRANSITIONS.get(current, frozenset())


# =============================================================================
# Validation Constants
# =============================================================================


class Limits:
    """Validation limits."""

    # Priority tiers (0 = normal, >0 = elevated/emergency)
    MIN_PRIORITY_LEVEL: Final[int] = 0
    MAX_PRIORITY_LEVEL: Final[int] = 9

    # String lengths
    MAX_NAME_LENGTH: Final[int] = 200
    MAX_NOTES_LENGTH: Final[int] = 1000
    MAX_PHONE_LENGTH: Final[int] = 32
    MAX_PREFIX_LENGTH: Final[int] = 5

    # Reporting windows
    MAX_STATS_WINDOW_DAYS: Final[int] = 366

    # Pagination defaults
    DEFAULT_PAGE_SIZE: Final[int] = 50
    MAX_PAGE_SIZE: Final[int] = 200
