"""
Domain error taxonomy and global exception handlers.

Engines raise the typed errors below; the handlers translate them into
JSON responses so the HTTP layer never leaks stack traces.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

logger = logging.getLogger(__name__)


class DomainError(Exception):
    """Base exception for business rule violations."""

    status_code = 400
    code = "domain_error"

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class ValidationError(DomainError):
    """Missing or malformed input. Nothing was mutated."""

    code = "validation_error"


class Conflict(DomainError):
    """Duplicate record or an illegal state change (double punch, etc.)."""

    status_code = 409
    code = "conflict"


class NotFound(DomainError):
    status_code = 404
    code = "not_found"


class Forbidden(DomainError):
    """Caller is known but lacks the role or ownership for the action."""

    status_code = 403
    code = "forbidden"


class InvalidTransition(DomainError):
    """Task state machine guard failed."""

    status_code = 409
    code = "invalid_transition"

    def __init__(self, action: str, current: str, required: Iterable[str]) -> None:
        self.action = action
        self.current = current
        self.required = tuple(required)
        super().__init__(
            f"Cannot {action} a task in status '{current}'; "
            f"requires one of: {', '.join(self.required)}"
        )


class InvalidReceiver(DomainError):
    code = "invalid_receiver"


class NoValidReceivers(DomainError):
    code = "no_valid_receivers"


class IdExhausted(DomainError):
    """Task id generation ran out of attempts."""

    status_code = 503
    code = "id_exhausted"


# ── Handlers ────────────────────────────────────────────────────────
async def _domain_error_handler(_request: Request, exc: DomainError) -> JSONResponse:
    content = {"detail": exc.detail, "code": exc.code, "success": False}
    if isinstance(exc, InvalidTransition):
        content["required"] = list(exc.required)
    return JSONResponse(status_code=exc.status_code, content=content)


async def _http_exception_handler(_request: Request, exc: HTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "success": False},
        headers=getattr(exc, "headers", None),
    )


async def _integrity_error_handler(_request: Request, exc: IntegrityError) -> JSONResponse:
    logger.error("Database integrity error: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=409,
        content={"detail": "Database constraint violation", "code": "conflict", "success": False},
    )


async def _sqlalchemy_error_handler(_request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Database error: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal database error", "code": "internal_error", "success": False},
    )


async def _generic_exception_handler(_request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "code": "internal_error", "success": False},
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to the FastAPI app."""
    app.add_exception_handler(DomainError, _domain_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(HTTPException, _http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(IntegrityError, _integrity_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(SQLAlchemyError, _sqlalchemy_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _generic_exception_handler)
