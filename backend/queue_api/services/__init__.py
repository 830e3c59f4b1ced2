"""
Services module for business logic.

- domain/: the queue engine and its components
"""

from .domain import QueueEngine

__all__ = ["QueueEngine"]
