"""
Request context middleware.

Every request gets a request id (echoed from ``X-Request-ID`` or generated)
and, when the upstream gateway supplies one, a caller identity taken from
``X-Actor-Id``. Both live in context variables so that log records, problem
responses and history attribution can read them without threading them
through every call.
"""

import uuid
import logging
from contextvars import ContextVar
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
ACTOR_HEADER = "X-Actor-Id"

correlation_id_ctx: ContextVar[str] = ContextVar("correlation_id", default="")
request_id_ctx: ContextVar[str] = ContextVar("request_id", default="")
actor_id_ctx: ContextVar[Optional[int]] = ContextVar("actor_id", default=None)


def generate_id() -> str:
    """Generate a short unique ID suitable for logging."""
    return uuid.uuid4().hex[:12]


def _parse_actor(raw: Optional[str]) -> Optional[int]:
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric actor header")
        return None


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Bind request id and caller identity for the lifetime of one request."""

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Response]
    ) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or generate_id()
        correlation_id = request.headers.get("X-Correlation-ID") or request_id
        actor_id = _parse_actor(request.headers.get(ACTOR_HEADER))

        tokens = (
            request_id_ctx.set(request_id),
            correlation_id_ctx.set(correlation_id),
            actor_id_ctx.set(actor_id),
        )
        request.state.request_id = request_id
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(tokens[0])
            correlation_id_ctx.reset(tokens[1])
            actor_id_ctx.reset(tokens[2])

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Correlation-ID"] = correlation_id
        return response


def get_correlation_id() -> str:
    return correlation_id_ctx.get() or "unknown"


def get_request_id() -> str:
    return request_id_ctx.get() or "unknown"


def get_actor_id() -> Optional[int]:
    """Caller identity forwarded by the gateway, if any."""
    return actor_id_ctx.get()


class CorrelationLogFilter(logging.Filter):
    """
    Logging filter that injects request context into log records.

    Usage:
        handler = logging.StreamHandler()
        handler.addFilter(CorrelationLogFilter())
        handler.setFormatter(logging.Formatter(
            '%(asctime)s [%(request_id)s] [actor=%(actor_id)s] %(message)s'
        ))
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = get_correlation_id()
        record.request_id = get_request_id()
        record.actor_id = get_actor_id() or "-"
        return True
