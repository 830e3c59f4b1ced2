"""
Configuration module: Settings, logging, constants.
"""

from shared.config.settings import settings, get_settings, DATABASE_URL
from shared.config.logging import get_logger, setup_logging
from shared.config.constants import (
    Roles,
    TicketStatus,
    TICKET_TRANSITIONS,
    Limits,
    MANAGEMENT_ROLES,
    SERVING_ROLES,
    ISSUING_ROLES,
    can_transition,
)

__all__ = [
    # settings
    "settings",
    "get_settings",
    "DATABASE_URL",
    # logging
    "get_logger",
    "setup_logging",
    # constants
    "Roles",
    "TicketStatus",
    "TICKET_TRANSITIONS",
    "Limits",
    "MANAGEMENT_ROLES",
    "SERVING_ROLES",
    "ISSUING_ROLES",
    "can_transition",
]
