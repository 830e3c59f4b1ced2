"""
Centralized domain exceptions for consistent error handling.

Every exception logs itself on construction and maps to an HTTP status, so
the engine raises them and routers let them propagate untouched.

Usage:
    from shared.utils.exceptions import TicketNotFoundError, CounterBusyError

    raise TicketNotFoundError(ticket_id)
    raise CounterBusyError(counter_id, serving_ticket_id=12)
"""

from typing import Any

from fastapi import HTTPException, status

from shared.config.logging import get_logger

logger = get_logger(__name__)


class AppException(HTTPException):
    """
    Base exception with automatic logging.

    All custom exceptions should inherit from this class
    to ensure consistent logging and response format.
    """

    def __init__(
        self,
        status_code: int,
        detail: str,
        log_level: str = "warning",
        headers: dict[str, str] | None = None,
        **log_context: Any,
    ):
        log_fn = getattr(logger, log_level, logger.warning)
        log_fn(detail, status_code=status_code, error=self.__class__.__name__, **log_context)

        super().__init__(status_code=status_code, detail=detail, headers=headers)


# =============================================================================
# 404 Not Found Errors
# =============================================================================


class NotFoundError(AppException):
    """
    Entity not found error (404).

    Usage:
        raise NotFoundError("Ticket", 123)
        raise NotFoundError("Counter", counter_id, branch_id=branch_id)
    """

    def __init__(self, entity: str, entity_id: int | str | None = None, **log_context: Any):
        if entity_id is not None:
            detail = f"{entity} with ID {entity_id} not found"
        else:
            detail = f"{entity} not found"

        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail,
            log_level="warning",
            entity=entity,
            entity_id=entity_id,
            **log_context,
        )


class TicketNotFoundError(NotFoundError):
    def __init__(self, ticket_id: int | None = None, **log_context: Any):
        super().__init__("Ticket", ticket_id, **log_context)


class CounterNotFoundError(NotFoundError):
    def __init__(self, counter_id: int | None = None, **log_context: Any):
        super().__init__("Counter", counter_id, **log_context)


class ServiceNotFoundError(NotFoundError):
    def __init__(self, service_id: int | None = None, **log_context: Any):
        super().__init__("Service", service_id, **log_context)


class BranchNotFoundError(NotFoundError):
    def __init__(self, branch_id: int | None = None, **log_context: Any):
        super().__init__("Branch", branch_id, **log_context)


# =============================================================================
# 403 Forbidden Errors
# =============================================================================


class ForbiddenError(AppException):
    """
    Authorization/permission error (403).

    Usage:
        raise ForbiddenError("call tickets on this counter")
    """

    def __init__(self, action: str | None = None, **log_context: Any):
        if action:
            detail = f"Not authorized to {action}"
        else:
            detail = "Access denied"

        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            log_level="warning",
            action=action,
            **log_context,
        )


class BranchAccessError(ForbiddenError):
    """Caller doesn't have access to the branch."""

    def __init__(self, branch_id: int | None = None, **log_context: Any):
        super().__init__("access this branch", branch_id=branch_id, **log_context)


class InsufficientRoleError(ForbiddenError):
    """Caller doesn't have the required role."""

    def __init__(self, required_roles: list[str], **log_context: Any):
        roles_str = ", ".join(required_roles)
        super().__init__(
            f"perform this action (requires role: {roles_str})",
            required_roles=required_roles,
            **log_context,
        )


# =============================================================================
# 400 Bad Request Errors
# =============================================================================


class ValidationError(AppException):
    """
    Input validation error (400).

    Usage:
        raise ValidationError("priority_level must be >= 0", field="priority_level")
    """

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
            log_level="warning",
            **log_context,
        )


class InvalidStateError(ValidationError):
    """Entity is in an invalid state for the operation."""

    def __init__(self, entity: str, current_state: str, expected_states: list[str] | None = None, **log_context: Any):
        if expected_states:
            states_str = ", ".join(expected_states)
            detail = f"{entity} is '{current_state}', expected: {states_str}"
        else:
            detail = f"{entity} cannot be '{current_state}' for this operation"

        super().__init__(detail, entity=entity, current_state=current_state, **log_context)


class InvalidTransitionError(ValidationError):
    """
    Ticket status transition not permitted from its current status.
    The ticket record is left unchanged.
    """

    def __init__(self, entity: str, from_status: str, to_status: str, **log_context: Any):
        self.from_status = from_status
        self.to_status = to_status
        detail = f"Invalid transition from '{from_status}' to '{to_status}' for {entity}"
        super().__init__(detail, entity=entity, from_status=from_status, to_status=to_status, **log_context)


# =============================================================================
# 409 Conflict Errors
# =============================================================================


class ConflictError(AppException):
    """
    Resource conflict error (409).

    Usage:
        raise ConflictError("Counter 3 is paused")
    """

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            log_level="warning",
            **log_context,
        )


class CounterBusyError(ConflictError):
    """
    Counter already holds a serving ticket.
    Callers may retry call-next or report the counter as occupied.
    """

    def __init__(self, counter_id: int, serving_ticket_id: int | None = None, **log_context: Any):
        self.counter_id = counter_id
        self.serving_ticket_id = serving_ticket_id
        super().__init__(
            f"Counter {counter_id} is already serving a ticket",
            counter_id=counter_id,
            serving_ticket_id=serving_ticket_id,
            **log_context,
        )


class CounterAlreadyAssignedError(ConflictError):
    """Counter is staffed by a different staff member. Never auto-resolved."""

    def __init__(self, counter_id: int, staff_id: int | None = None, **log_context: Any):
        self.counter_id = counter_id
        self.staff_id = staff_id
        super().__init__(
            f"Counter {counter_id} is already assigned to another staff member",
            counter_id=counter_id,
            assigned_staff_id=staff_id,
            **log_context,
        )


class StaffAlreadyAssignedError(ConflictError):
    """Staff member already holds another counter."""

    def __init__(self, staff_id: int, counter_id: int | None = None, **log_context: Any):
        self.staff_id = staff_id
        self.counter_id = counter_id
        super().__init__(
            f"Staff {staff_id} is already assigned to counter {counter_id}",
            staff_id=staff_id,
            counter_id=counter_id,
            **log_context,
        )


class CounterUnavailableError(ConflictError):
    """Counter is inactive, paused or has no staff for the operation."""

    def __init__(self, counter_id: int, reason: str, **log_context: Any):
        self.counter_id = counter_id
        self.reason = reason
        super().__init__(
            f"Counter {counter_id} is unavailable: {reason}",
            counter_id=counter_id,
            reason=reason,
            **log_context,
        )


class ConcurrencyConflictError(ConflictError):
    """
    Optimistic-concurrency failure: the record changed between read and write.
    Always safe to retry the whole operation from scratch.
    """

    def __init__(self, entity: str, entity_id: int | None = None, **log_context: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(
            f"{entity} {entity_id} was modified concurrently, retry the operation",
            entity=entity,
            entity_id=entity_id,
            **log_context,
        )


# =============================================================================
# 500 / 503 Errors
# =============================================================================


class InternalError(AppException):
    """
    Internal server error (500).

    Usage:
        raise InternalError("Could not allocate ticket number", branch_id=1)
    """

    def __init__(self, detail: str = "Internal server error", **log_context: Any):
        super().__init__(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=detail,
            log_level="error",
            **log_context,
        )


class ExternalServiceError(AppException):
    """External service error (503)."""

    def __init__(self, service: str, retry_after: int | None = None, **log_context: Any):
        headers = None
        if retry_after:
            headers = {"Retry-After": str(retry_after)}

        super().__init__(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Service {service} temporarily unavailable",
            log_level="error",
            headers=headers,
            service=service,
            **log_context,
        )
