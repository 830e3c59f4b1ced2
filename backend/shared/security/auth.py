"""
Authentication and authorization utilities.

Bearer JWTs are issued by the identity provider; this module only verifies
them and turns the claims into a CallerIdentity that is passed explicitly
into every engine operation.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Any

import jwt
from fastapi import Header, HTTPException, status

from shared.config.constants import Roles
from shared.config.settings import settings
from shared.config.logging import get_logger
from shared.utils.exceptions import BranchAccessError, InsufficientRoleError

logger = get_logger(__name__)


# =============================================================================
# Caller identity
# =============================================================================


@dataclass(frozen=True)
class CallerIdentity:
    """
    Authenticated caller passed into every engine operation.

    Attributes:
        user_id: Staff/kiosk user id (JWT "sub").
        roles: Role names, see shared.config.constants.Roles.
        branch_ids: Branches the caller may act on. ADMIN may act on any branch.
    """

    user_id: int
    roles: frozenset[str] = field(default_factory=frozenset)
    branch_ids: frozenset[int] = field(default_factory=frozenset)

    @classmethod
    def from_claims(cls, claims: dict[str, Any]) -> "CallerIdentity":
        return cls(
            user_id=int(claims["sub"]),
            roles=frozenset(claims.get("roles") or ()),
            branch_ids=frozenset(int(b) for b in claims.get("branch_ids") or ()),
        )

    @classmethod
    def system(cls) -> "CallerIdentity":
        """Identity for CLI commands and seeding. Acts as ADMIN."""
        return cls(user_id=0, roles=frozenset({Roles.ADMIN}))

    @property
    def is_admin(self) -> bool:
        return Roles.ADMIN in self.roles

    def has_any_role(self, allowed: Iterable[str]) -> bool:
        return bool(self.roles.intersection(allowed))

    def can_access_branch(self, branch_id: int) -> bool:
        return self.is_admin or branch_id in self.branch_ids

    def as_actor(self) -> dict[str, Any]:
        """Actor payload for published events."""
        return {"user_id": self.user_id, "roles": sorted(self.roles)}


def require_roles(caller: CallerIdentity, allowed: Iterable[str]) -> None:
    """
    Verify that the caller has at least one of the allowed roles.

    Raises:
        InsufficientRoleError: If caller lacks required role.
    """
    allowed = list(allowed)
    if not caller.has_any_role(allowed):
        raise InsufficientRoleError(sorted(allowed), user_id=caller.user_id)


def require_branch(caller: CallerIdentity, branch_id: int) -> None:
    """
    Verify that the caller has access to the specified branch.

    Raises:
        BranchAccessError: If caller lacks access to the branch.
    """
    if not caller.can_access_branch(branch_id):
        raise BranchAccessError(branch_id, user_id=caller.user_id)


# =============================================================================
# JWT Functions
# =============================================================================


def sign_jwt(
    payload: dict[str, Any],
    ttl_seconds: int = 3600,
) -> str:
    """
    Sign a JWT with the configured secret, issuer and audience.

    Used by tests and local tooling; production tokens come from the
    identity provider.
    """
    now = int(time.time())
    data = {
        **payload,
        "iss": settings.jwt_issuer,
        "aud": settings.jwt_audience,
        "iat": now,
        "exp": now + ttl_seconds,
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(data, settings.jwt_secret, algorithm="HS256")


def verify_jwt(token: str) -> dict[str, Any]:
    """
    Verify and decode a JWT token.

    Returns:
        Decoded token claims.

    Raises:
        HTTPException: 401 if token is invalid, expired or missing claims.
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=["HS256"],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
        )
    except jwt.InvalidTokenError as e:
        # Log the actual error, return a generic message to the client
        logger.warning("JWT validation failed", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        )

    if "sub" not in payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: missing subject claim",
        )

    try:
        int(payload["sub"])
        [int(b) for b in payload.get("branch_ids") or ()]
    except (ValueError, TypeError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: malformed claims",
        )

    if not isinstance(payload.get("roles", []), list):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token: malformed roles claim",
        )

    return payload


def get_bearer_token(authorization: str | None) -> str:
    """
    Extract bearer token from Authorization header.

    Raises:
        HTTPException: If header is missing or malformed.
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Authorization header",
        )
    if not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid Authorization header format. Expected: Bearer <token>",
        )
    return authorization.split(" ", 1)[1].strip()


def current_caller(
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> CallerIdentity:
    """
    FastAPI dependency to get the caller identity from the bearer JWT.

    Usage:
        @router.post("/counters/{counter_id}/assign")
        def assign(counter_id: int, caller: CallerIdentity = Depends(current_caller)):
            ...
    """
    token = get_bearer_token(authorization)
    return CallerIdentity.from_claims(verify_jwt(token))
