"""
Domain errors and the app-wide exception handlers.

Handlers answer with ``{"success": false, ...}`` bodies and never leak a
stack trace; details go to the log instead.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

logger = logging.getLogger(__name__)


class PosDeskError(Exception):
    """Base for errors raised by the back office services."""

    status_code = 500


class TextGenerationError(PosDeskError):
    """The text-generation backend is not configured or did not answer."""

    status_code = 502


class NotificationError(PosDeskError):
    """A message could not be handed to the notification channel."""

    status_code = 502


class LoanFetchError(PosDeskError):
    """The loan set could not be listed; a reminder run cannot start."""

    status_code = 500


def _failure(status_code: int, **content) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, **content})


async def _http_error(_request: Request, exc: HTTPException) -> JSONResponse:
    response = _failure(exc.status_code, detail=exc.detail)
    for name, value in (getattr(exc, "headers", None) or {}).items():
        response.headers[name] = value
    return response


async def _domain_error(request: Request, exc: PosDeskError) -> JSONResponse:
    logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc)
    return _failure(exc.status_code, error=str(exc))


async def _integrity_error(_request: Request, exc: IntegrityError) -> JSONResponse:
    logger.error("Database integrity error: %s", exc, exc_info=True)
    return _failure(409, detail="Database constraint violation")


async def _database_error(_request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.error("Database error: %s", exc, exc_info=True)
    return _failure(500, detail="Internal database error")


async def _unhandled_error(_request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception: %s", exc)
    return _failure(500, detail="Internal server error")


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(HTTPException, _http_error)  # type: ignore[arg-type]
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)  # type: ignore[arg-type]
    app.add_exception_handler(PosDeskError, _domain_error)  # type: ignore[arg-type]
    app.add_exception_handler(IntegrityError, _integrity_error)  # type: ignore[arg-type]
    app.add_exception_handler(SQLAlchemyError, _database_error)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled_error)
