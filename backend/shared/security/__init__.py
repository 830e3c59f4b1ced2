"""
Security module: caller identity, JWT verification, role and branch checks.
"""

from shared.security.auth import (
    CallerIdentity,
    sign_jwt,
    verify_jwt,
    get_bearer_token,
    current_caller,
    require_roles,
    require_branch,
)

__all__ = [
    "CallerIdentity",
    "sign_jwt",
    "verify_jwt",
    "get_bearer_token",
    "current_caller",
    "require_roles",
    "require_branch",
]
