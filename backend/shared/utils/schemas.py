"""
Shared Pydantic schemas used across the application.
"""

from typing import Any

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
    code: str | None = None


class HealthResponse(BaseModel):
    """Basic liveness response."""

    status: str
    service: str
    environment: str


class DetailedHealthResponse(HealthResponse):
    """Liveness plus per-dependency status."""

    dependencies: dict[str, dict[str, Any]]
