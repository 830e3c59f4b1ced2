"""
Request IDs for log correlation.

Every HTTP request gets an id, either the X-Request-ID sent by the kiosk,
console or display board, or a fresh UUID. The id is echoed on the
response and stamped on every log record written while the request runs.
"""

import re
import uuid
from contextvars import ContextVar
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

REQUEST_ID_HEADER = "X-Request-ID"

# Client-supplied ids end up in log lines; anything else is replaced
_CLIENT_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,64}$")

current_request_id: ContextVar[str] = ContextVar("current_request_id", default="")


def resolve_request_id(header_value: str | None) -> str:
    """The client's id when it is well-formed, otherwise a new UUID."""
    if header_value and _CLIENT_ID_PATTERN.match(header_value):
        return header_value
    return str(uuid.uuid4())


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        token = current_request_id.set(request_id)
        try:
            response = await call_next(request)
        finally:
            current_request_id.reset(token)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class CorrelationIdFilter:
    """Sets record.request_id ("-" outside a request) for the log formatters."""

    def filter(self, record) -> bool:
        record.request_id = current_request_id.get() or "-"
        return True
