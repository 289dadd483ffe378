"""
Middleware modules for the inventory API.

Provides request processing middleware for:
- Correlation ID tracking, injected into log records and error responses
"""

from .correlation import CorrelationIdMiddleware, CorrelationLogFilter, correlation_id_ctx, request_id_ctx

__all__ = [
    "CorrelationIdMiddleware",
    "CorrelationLogFilter",
    "correlation_id_ctx",
    "request_id_ctx",
]
