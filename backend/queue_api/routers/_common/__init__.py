"""Shared router helpers."""

from .engine import get_engine, ticket_output

__all__ = ["get_engine", "ticket_output"]
