"""
Middleware for request correlation ID tracking.

Control-plane requests are tagged with a short correlation ID so that the
log lines of a register or push call (and of the fanout it triggers) can be
grouped together.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from notificator.constants import CORRELATION_ID_HEADER, CORRELATION_ID_LENGTH
from notificator.logging import clear_log_context

# Context variable for storing correlation ID per request
correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add correlation IDs to control-plane requests.

    This middleware:
    - Takes the correlation ID from the X-Correlation-ID header or generates one
    - Truncates it to 8 characters
    - Resets the structured log context for the request
    - Echoes the correlation ID back in the response headers
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        cid = request.headers.get(CORRELATION_ID_HEADER) or uuid.uuid4().hex
        cid = cid[:CORRELATION_ID_LENGTH]

        request.state.request_id = cid
        correlation_id.set(cid)
        clear_log_context()

        response = await call_next(request)
        response.headers[CORRELATION_ID_HEADER] = cid

        return response


def get_correlation_id() -> str:
    """
    Get the correlation ID for the current request context.

    Returns:
        The correlation ID string, or empty string if not set.
    """
    return correlation_id.get()
