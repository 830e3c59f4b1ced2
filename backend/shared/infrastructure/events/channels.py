"""
Redis Channel Naming.

Standardized channel names with id validation.
"""

from __future__ import annotations


def _validate_positive_id(id_value: int, name: str) -> None:
    """Validate that ID is a positive integer."""
    if not isinstance(id_value, int) or id_value <= 0:
        raise ValueError(f"{name} must be a positive integer, got {id_value}")


def channel_branch_queue(branch_id: int) -> str:
    """Channel for queue changes in a branch (display boards, staff consoles)."""
    _validate_positive_id(branch_id, "branch_id")
    return f"branch:{branch_id}:queue"


def branch_id_from_channel(channel: str) -> int:
    """Inverse of channel_branch_queue: "branch:7:queue" -> 7."""
    parts = channel.split(":")
    if len(parts) != 3 or parts[0] != "branch" or parts[2] != "queue":
        raise ValueError(f"Not a branch queue channel: {channel}")
    return int(parts[1])
