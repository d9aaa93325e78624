"""Custom exceptions and RFC 7807 Problem Detail error handlers."""

from __future__ import annotations

import logging
from http import HTTPStatus
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

BASE_ERROR_URI = "https://hr.example.com/errors/leave"


# ── Exception hierarchy ─────────────────────────────────────────────

class AppException(Exception):
    """Base for all application exceptions → RFC 7807 JSON."""

    def __init__(
        self,
        status_code: int,
        error_type: str,
        title: str,
        detail: str,
        errors: Optional[dict[str, Any]] = None,
    ) -> None:
        self.status_code = status_code
        self.error_type = error_type
        self.title = title
        self.detail = detail
        self.errors = errors
        super().__init__(detail)


class NotFoundException(AppException):
    """404 — entity not found."""

    def __init__(self, entity_type: str, entity_id: Any) -> None:
        super().__init__(
            status_code=404,
            error_type="not-found",
            title=f"{entity_type} Not Found",
            detail=f"{entity_type} with id '{entity_id}' does not exist.",
        )


class ForbiddenException(AppException):
    """403 — actor lacks authority for the action."""

    def __init__(
        self,
        detail: str = "You do not have permission to perform this action.",
    ) -> None:
        super().__init__(
            status_code=403,
            error_type="forbidden",
            title="Forbidden",
            detail=detail,
        )


class ValidationException(AppException):
    """422 — malformed input, rejected before any side effect."""

    def __init__(self, errors: dict[str, list[str]]) -> None:
        super().__init__(
            status_code=422,
            error_type="validation-error",
            title="Validation Error",
            detail="One or more fields failed validation.",
            errors=errors,
        )


class OverlapConflict(AppException):
    """409 — an active request of the employee intersects the range."""

    def __init__(self, detail: str, conflicting_request_id: Any = None) -> None:
        super().__init__(
            status_code=409,
            error_type="overlap-conflict",
            title="Overlapping Leave Request",
            detail=detail,
            errors=(
                {"conflicting_request_id": [str(conflicting_request_id)]}
                if conflicting_request_id is not None
                else None
            ),
        )
        self.conflicting_request_id = conflicting_request_id


class InsufficientBalance(AppException):
    """409 — quota exhausted for the (employee, type, year) key."""

    def __init__(self, requested: int, available: int) -> None:
        super().__init__(
            status_code=409,
            error_type="insufficient-balance",
            title="Insufficient Leave Balance",
            detail=f"Requested {requested} day(s) but only {available} available.",
            errors={"balance": [f"Available: {available}, Requested: {requested}."]},
        )
        self.requested = requested
        self.available = available


class InvalidTransition(AppException):
    """409 — the decision is not legal from the request's current state."""

    def __init__(self, current_status: Any, action: str) -> None:
        status_value = getattr(current_status, "value", current_status)
        super().__init__(
            status_code=409,
            error_type="invalid-transition",
            title="Invalid State Transition",
            detail=f"Cannot {action} a leave request that is '{status_value}'.",
        )
        self.current_status = current_status
        self.action = action


class StorageFailure(AppException):
    """503 — persistence collaborator could not store the change. Not retried."""

    def __init__(self, detail: str = "Leave data could not be persisted.") -> None:
        super().__init__(
            status_code=503,
            error_type="storage-failure",
            title="Storage Failure",
            detail=detail,
        )


class InvariantViolation(AppException):
    """500 — internal accounting invariant broken. Indicates a bug."""

    def __init__(self, detail: str) -> None:
        super().__init__(
            status_code=500,
            error_type="invariant-violation",
            title="Invariant Violation",
            detail=detail,
        )


# Names used by the workflow taxonomy
ValidationError = ValidationException
Forbidden = ForbiddenException


# ── RFC 7807 builder ────────────────────────────────────────────────

def _problem(
    request: Request,
    *,
    status: int,
    error_type: str,
    title: str,
    detail: str,
    errors: Optional[dict[str, Any]] = None,
) -> JSONResponse:
    body: dict[str, Any] = {
        "type": f"{BASE_ERROR_URI}/{error_type}",
        "title": title,
        "status": status,
        "detail": detail,
        "instance": str(request.url.path),
    }
    if errors:
        body["errors"] = errors
    return JSONResponse(
        status_code=status,
        content=body,
        media_type="application/problem+json",
    )


# ── FastAPI handlers ────────────────────────────────────────────────

async def _handle_app_exception(
    request: Request,
    exc: AppException,
) -> JSONResponse:
    if isinstance(exc, InvariantViolation):
        logger.critical("Invariant violation on %s: %s", request.url.path, exc.detail)
    elif exc.status_code >= 500:
        logger.error("%s on %s: %s", exc.title, request.url.path, exc.detail)
    return _problem(
        request,
        status=exc.status_code,
        error_type=exc.error_type,
        title=exc.title,
        detail=exc.detail,
        errors=exc.errors,
    )


async def _handle_http_exception(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    # 401 from the gateway identity headers, 404/405 from routing
    slug = {401: "unauthenticated", 404: "not-found", 405: "method-not-allowed"}
    return _problem(
        request,
        status=exc.status_code,
        error_type=slug.get(exc.status_code, "http-error"),
        title=HTTPStatus(exc.status_code).phrase,
        detail=str(exc.detail),
    )


async def _handle_validation_error(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    field_errors: dict[str, list[str]] = {}
    for err in exc.errors():
        loc = err.get("loc", ())
        name = (
            ".".join(str(p) for p in loc[1:])
            if len(loc) > 1
            else str(loc[0]) if loc else "unknown"
        )
        field_errors.setdefault(name, []).append(err.get("msg", "Invalid value"))

    return _problem(
        request,
        status=422,
        error_type="validation-error",
        title="Validation Error",
        detail="Request validation failed.",
        errors=field_errors,
    )


# ── Registration helper (called from main.py) ──────────────────────

def register_exception_handlers(app: FastAPI) -> None:
    """Attach all custom exception handlers to the FastAPI app."""
    app.add_exception_handler(AppException, _handle_app_exception)          # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, _handle_http_exception)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _handle_validation_error)  # type: ignore[arg-type]
