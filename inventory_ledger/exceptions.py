"""
RFC 7807 Problem Details exception handling.

Every failure of a ledger or financial operation surfaces as one of the
exception classes below. All of them guarantee the same user-visible
outcome: the prior state of the inventory item is unchanged.

See: https://datatracker.ietf.org/doc/html/rfc7807
"""

from typing import Optional, Dict, Any, List
from enum import Enum
from pydantic import BaseModel, Field
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
import traceback
import uuid
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATEs a caller may safely retry after
RETRYABLE_SQLSTATES = {
    "40001",  # serialization_failure
    "40P01",  # deadlock_detected
    "55P03",  # lock_not_available (lock_timeout)
}


def _get_trace_id() -> str:
    """Get trace ID from correlation context or generate a new one."""
    from inventory_ledger.middleware.correlation import get_request_id

    request_id = get_request_id()
    if request_id and request_id != "unknown":
        return request_id
    return str(uuid.uuid4())[:12]


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class ErrorCode(str, Enum):
    """Standardized error codes for the inventory API."""

    # Validation
    VALIDATION_ERROR = "VAL_001"

    # Resource
    NOT_FOUND = "RES_001"
    ALREADY_EXISTS = "RES_002"
    CONFLICT = "RES_003"

    # Business Logic
    INSUFFICIENT_STOCK = "BIZ_001"

    # Datastore
    DATABASE_ERROR = "EXT_004"

    # Server
    INTERNAL_ERROR = "SRV_001"
    TIMEOUT = "SRV_003"


class ProblemDetail(BaseModel):
    """
    RFC 7807 Problem Details response schema.

    Attributes:
        type: URI reference identifying the problem type
        title: Short, human-readable summary
        status: HTTP status code
        detail: Human-readable explanation specific to this occurrence
        instance: URI reference identifying this specific occurrence
        code: Machine-readable error code for client handling
        timestamp: ISO 8601 timestamp of when the error occurred
        trace_id: Unique identifier for tracing in logs
        errors: List of field-level validation errors (for 422)
        retryable: Whether repeating the same request may succeed
    """

    type: str = Field(
        default="about:blank",
        description="URI reference identifying the problem type"
    )
    title: str = Field(
        description="Short, human-readable summary of the problem"
    )
    status: int = Field(
        description="HTTP status code"
    )
    detail: str = Field(
        description="Human-readable explanation specific to this occurrence"
    )
    instance: Optional[str] = Field(
        default=None,
        description="URI reference for this specific occurrence"
    )
    code: str = Field(
        description="Machine-readable error code"
    )
    timestamp: str = Field(
        description="ISO 8601 timestamp"
    )
    trace_id: str = Field(
        description="Unique trace ID for debugging"
    )
    errors: Optional[List[Dict[str, Any]]] = Field(
        default=None,
        description="Field-level validation errors"
    )
    retryable: Optional[bool] = Field(
        default=None,
        description="Whether the caller may retry the request"
    )

    model_config = {
        "json_schema_extra": {
            "example": {
                "type": "/problems/biz-001",
                "title": "Conflict",
                "status": 409,
                "detail": "Insufficient stock. Available: 5, requested: 7",
                "instance": "/api/v2/inventory/3f2a/remove-stock",
                "code": "BIZ_001",
                "timestamp": "2026-01-29T10:30:00Z",
                "trace_id": "abc123def456"
            }
        }
    }


def _problem_type(code: ErrorCode) -> str:
    return f"/problems/{code.value.lower().replace('_', '-')}"


class InventoryException(HTTPException):
    """
    Base exception for inventory operations with RFC 7807 support.

    Usage:
        raise InventoryException(
            status_code=404,
            code=ErrorCode.NOT_FOUND,
            detail="Inventory item not found",
        )
    """

    retryable = False

    def __init__(
        self,
        status_code: int,
        code: ErrorCode,
        detail: str,
        title: Optional[str] = None,
        instance: Optional[str] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.code = code
        self.title = title or self._default_title(status_code)
        self.instance = instance
        self.errors = errors
        self.trace_id = _get_trace_id()
        self.timestamp = _utc_timestamp()

        super().__init__(status_code=status_code, detail=detail, headers=headers)

    def __str__(self) -> str:
        return self.detail

    @staticmethod
    def _default_title(status_code: int) -> str:
        """Get default title based on status code."""
        titles = {
            400: "Bad Request",
            404: "Not Found",
            409: "Conflict",
            422: "Validation Error",
            500: "Internal Server Error",
            503: "Service Unavailable",
            504: "Gateway Timeout",
        }
        return titles.get(status_code, "Error")

    def to_problem_detail(self) -> ProblemDetail:
        """Convert to RFC 7807 ProblemDetail."""
        return ProblemDetail(
            type=_problem_type(self.code),
            title=self.title,
            status=self.status_code,
            detail=self.detail,
            instance=self.instance,
            code=self.code.value,
            timestamp=self.timestamp,
            trace_id=self.trace_id,
            errors=self.errors,
            retryable=self.retryable or None,
        )


# Convenience exception classes

class NotFoundError(InventoryException):
    """Resource not found (404)."""

    def __init__(self, resource: str, resource_id: Any):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(
            status_code=404,
            code=ErrorCode.NOT_FOUND,
            detail=f"{resource} with ID {resource_id} was not found",
        )


class ValidationError(InventoryException):
    """Malformed input, rejected before any transaction starts (422)."""

    def __init__(
        self,
        detail: str,
        errors: Optional[List[Dict[str, Any]]] = None
    ):
        super().__init__(
            status_code=422,
            code=ErrorCode.VALIDATION_ERROR,
            detail=detail,
            errors=errors,
        )

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        return cls(
            detail=f"{field}: {message}",
            errors=[{"field": field, "message": message, "type": "value_error"}],
        )


class DuplicateSkuError(InventoryException):
    """SKU already assigned to another item (409)."""

    def __init__(self, sku: str):
        self.sku = sku
        super().__init__(
            status_code=409,
            code=ErrorCode.ALREADY_EXISTS,
            detail=f"SKU '{sku}' already exists",
        )


class InsufficientStockError(InventoryException):
    """Removal requested more units than the item holds (409)."""

    def __init__(self, item_id: str, requested: int, available: int):
        self.item_id = item_id
        self.requested = requested
        self.available = available
        super().__init__(
            status_code=409,
            code=ErrorCode.INSUFFICIENT_STOCK,
            detail=f"Insufficient stock. Available: {available}, requested: {requested}",
        )


class ConflictError(InventoryException):
    """Lock contention or serialization failure; safe for the caller to retry (409)."""

    retryable = True

    def __init__(self, detail: str):
        super().__init__(
            status_code=409,
            code=ErrorCode.CONFLICT,
            detail=detail,
            headers={"Retry-After": "1"},
        )


class PersistenceError(InventoryException):
    """Any other datastore failure, with the driver diagnostic attached (500)."""

    def __init__(self, detail: str, diagnostic: Optional[str] = None):
        self.diagnostic = diagnostic
        super().__init__(
            status_code=500,
            code=ErrorCode.DATABASE_ERROR,
            detail=detail if not diagnostic else f"{detail}: {diagnostic}",
        )


def _sqlstate(exc: SQLAlchemyError) -> Optional[str]:
    orig = getattr(exc, "orig", None)
    if orig is None:
        return None
    # asyncpg exposes ``sqlstate``; psycopg exposes ``pgcode``
    for attr in ("sqlstate", "pgcode"):
        value = getattr(orig, attr, None)
        if value:
            return str(value)
    cause = getattr(orig, "__cause__", None)
    return getattr(cause, "sqlstate", None)


def translate_db_error(exc: SQLAlchemyError) -> InventoryException:
    """Map a SQLAlchemy error to the retryable/non-retryable taxonomy."""
    diagnostic = str(getattr(exc, "orig", None) or exc)
    sqlstate = _sqlstate(exc)

    if sqlstate in RETRYABLE_SQLSTATES or "database is locked" in diagnostic:
        logger.warning(f"Retryable datastore contention (sqlstate={sqlstate}): {diagnostic}")
        return ConflictError("The item is being modified by another operation, retry the request")

    logger.error(f"Datastore failure ({type(exc).__name__}): {diagnostic}")
    return PersistenceError("Datastore operation failed", diagnostic=diagnostic)


# Exception handlers for FastAPI

def create_problem_response(
    status_code: int,
    code: ErrorCode,
    detail: str,
    request: Request,
    errors: Optional[List[Dict[str, Any]]] = None,
    trace_id: Optional[str] = None,
) -> JSONResponse:
    """Create a RFC 7807 compliant JSON response."""
    problem = ProblemDetail(
        type=_problem_type(code),
        title=InventoryException._default_title(status_code),
        status=status_code,
        detail=detail,
        instance=str(request.url.path),
        code=code.value,
        timestamp=_utc_timestamp(),
        trace_id=trace_id or _get_trace_id(),
        errors=errors,
    )

    return JSONResponse(
        status_code=status_code,
        content=problem.model_dump(exclude_none=True),
        media_type="application/problem+json",
    )


def create_exception_handlers(debug: bool = False):
    """
    Create exception handlers for the application.

    Usage in main.py:
        handlers = create_exception_handlers(settings.DEBUG)
        app.add_exception_handler(InventoryException, handlers["inventory"])
        app.add_exception_handler(RequestValidationError, handlers["validation"])
        app.add_exception_handler(Exception, handlers["generic"])
    """

    async def handle_inventory_exception(request: Request, exc: InventoryException) -> JSONResponse:
        log = logger.error if exc.status_code >= 500 else logger.warning
        log(
            f"InventoryException: {exc.code.value} - {exc.detail}",
            extra={
                "trace_id": exc.trace_id,
                "status_code": exc.status_code,
                "path": request.url.path,
            }
        )
        problem = exc.to_problem_detail()
        problem.instance = problem.instance or str(request.url.path)
        if exc.status_code >= 500 and not debug:
            problem.detail = "A datastore error occurred; no changes were applied"

        return JSONResponse(
            status_code=exc.status_code,
            content=problem.model_dump(exclude_none=True),
            media_type="application/problem+json",
            headers=exc.headers,
        )

    async def handle_http_exception(
        request: Request,
        exc: StarletteHTTPException
    ) -> JSONResponse:
        """Handle standard HTTPException with RFC 7807 response."""
        code_map = {
            400: ErrorCode.VALIDATION_ERROR,
            404: ErrorCode.NOT_FOUND,
            409: ErrorCode.CONFLICT,
            422: ErrorCode.VALIDATION_ERROR,
            500: ErrorCode.INTERNAL_ERROR,
            504: ErrorCode.TIMEOUT,
        }

        code = code_map.get(exc.status_code, ErrorCode.INTERNAL_ERROR)

        return create_problem_response(
            status_code=exc.status_code,
            code=code,
            detail=str(exc.detail),
            request=request,
        )

    async def handle_validation_exception(
        request: Request,
        exc: RequestValidationError
    ) -> JSONResponse:
        """Handle Pydantic validation errors with field-level details."""
        errors = []
        for error in exc.errors():
            errors.append({
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            })

        return create_problem_response(
            status_code=422,
            code=ErrorCode.VALIDATION_ERROR,
            detail="Request validation failed",
            request=request,
            errors=errors,
        )

    async def handle_generic_exception(
        request: Request,
        exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions with RFC 7807 response."""
        trace_id = _get_trace_id()

        logger.error(
            f"Unhandled exception: {exc}",
            extra={"trace_id": trace_id, "path": request.url.path},
        )
        logger.error(traceback.format_exc())

        # Don't expose internal details in production
        detail = str(exc) if debug else "An unexpected error occurred"

        return create_problem_response(
            status_code=500,
            code=ErrorCode.INTERNAL_ERROR,
            detail=detail,
            request=request,
            trace_id=trace_id,
        )

    return {
        "inventory": handle_inventory_exception,
        "http": handle_http_exception,
        "validation": handle_validation_exception,
        "generic": handle_generic_exception,
    }
