"""
Utilities module: exceptions, schemas, time zone helpers, health checks.
"""

from shared.utils.exceptions import (
    AppException,
    NotFoundError,
    ForbiddenError,
    ValidationError,
    ConflictError,
)
from shared.utils.schemas import ErrorResponse

__all__ = [
    # exceptions
    "AppException",
    "NotFoundError",
    "ForbiddenError",
    "ValidationError",
    "ConflictError",
    # schemas
    "ErrorResponse",
]
