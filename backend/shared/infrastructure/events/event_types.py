"""
Event Type Constants.

Defines all queue change events published on branch channels.
"""

from shared.config.settings import settings

# =============================================================================
# Ticket lifecycle events
# Flow: ISSUED -> CALLED -> COMPLETED | SKIPPED, and ISSUED | CALLED -> CANCELLED
# =============================================================================

TICKET_ISSUED = "TICKET_ISSUED"
TICKET_CALLED = "TICKET_CALLED"
TICKET_COMPLETED = "TICKET_COMPLETED"
TICKET_SKIPPED = "TICKET_SKIPPED"
TICKET_CANCELLED = "TICKET_CANCELLED"

# =============================================================================
# Counter events
# =============================================================================

COUNTER_ASSIGNED = "COUNTER_ASSIGNED"
COUNTER_RELEASED = "COUNTER_RELEASED"
COUNTER_PAUSED = "COUNTER_PAUSED"
COUNTER_RESUMED = "COUNTER_RESUMED"

TICKET_EVENTS = frozenset({
    TICKET_ISSUED,
    TICKET_CALLED,
    TICKET_COMPLETED,
    TICKET_SKIPPED,
    TICKET_CANCELLED,
})

COUNTER_EVENTS = frozenset({
    COUNTER_ASSIGNED,
    COUNTER_RELEASED,
    COUNTER_PAUSED,
    COUNTER_RESUMED,
})

ALL_EVENT_TYPES = TICKET_EVENTS | COUNTER_EVENTS

# =============================================================================
# Size limits
# =============================================================================

MAX_EVENT_SIZE = settings.event_max_size
