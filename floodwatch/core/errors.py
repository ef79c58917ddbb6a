"""
Centralised error handling — exception hierarchy + FastAPI handlers.

Provides:
    • Domain-specific exception classes for the ingestion and risk layers
    • Consistent JSON error response format
    • Automatic logging of unhandled errors

Source and adapter errors (TransportError, SourceTimeoutError, FormatError)
never reach a consumer: the aggregator catches them at the pipeline boundary
and substitutes fallback data. They still carry status codes so the HTTP
surface can render them if one escapes a manual call.

Usage:
    from floodwatch.core.errors import (
        FloodWatchError,
        TransportError,
        SourceTimeoutError,
        FormatError,
        ClassificationError,
        NotFoundError,
        register_error_handlers,
    )

    raise SourceTimeoutError("tomorrow.io", timeout_s=10.0)
"""

from __future__ import annotations

import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from floodwatch.core.config import settings

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Exception Hierarchy
# ═══════════════════════════════════════════════════════════════════════════

class FloodWatchError(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


class TransportError(FloodWatchError):
    """Provider unreachable or answered with a non-success status (502)."""

    def __init__(self, source: str, message: str = "", **details: Any):
        super().__init__(
            message=f"Source '{source}' failed: {message}",
            status_code=502,
            error_code="TRANSPORT_ERROR",
            details={"source": source, **details},
        )
        self.source = source


class SourceTimeoutError(FloodWatchError, TimeoutError):
    """Bounded wait for a provider exceeded (504)."""

    def __init__(self, source: str, timeout_s: float):
        super().__init__(
            message=f"Source '{source}' timed out after {timeout_s:.1f}s",
            status_code=504,
            error_code="SOURCE_TIMEOUT",
            details={"source": source, "timeout_s": timeout_s},
        )
        self.source = source


class FormatError(FloodWatchError):
    """Payload shape unexpected — missing structure or malformed feed (502)."""

    def __init__(self, source: str, message: str = "", **details: Any):
        super().__init__(
            message=f"Unexpected payload from '{source}': {message}",
            status_code=502,
            error_code="FORMAT_ERROR",
            details={"source": source, **details},
        )
        self.source = source


class ClassificationError(FloodWatchError):
    """Invalid numeric input to a classifier (422)."""

    def __init__(self, message: str, **details: Any):
        super().__init__(
            message=message,
            status_code=422,
            error_code="CLASSIFICATION_ERROR",
            details=details,
        )


class NotFoundError(FloodWatchError):
    """Resource not found (404)."""

    def __init__(self, resource: str, **identifiers: Any):
        super().__init__(
            message=f"{resource} not found",
            status_code=404,
            error_code="NOT_FOUND",
            details={"resource": resource, **identifiers},
        )


# ═══════════════════════════════════════════════════════════════════════════
# Error Response Builder
# ═══════════════════════════════════════════════════════════════════════════

def _build_error_response(
    status_code: int,
    error_code: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    request: Optional[Request] = None,
) -> JSONResponse:
    """Build a consistent JSON error response."""
    body: Dict[str, Any] = {
        "error": {
            "code": error_code,
            "message": message,
            "status": status_code,
        }
    }

    if details:
        body["error"]["details"] = details

    if request and not settings.is_production:
        body["error"]["path"] = str(request.url.path)
        body["error"]["method"] = request.method

    return JSONResponse(status_code=status_code, content=body)


# ═══════════════════════════════════════════════════════════════════════════
# FastAPI Exception Handlers
# ═══════════════════════════════════════════════════════════════════════════

def register_error_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app."""

    @app.exception_handler(FloodWatchError)
    async def handle_floodwatch_error(request: Request, exc: FloodWatchError):
        logger.error(
            "API Error [%s]: %s | details=%s",
            exc.error_code, exc.message, exc.details,
        )
        return _build_error_response(
            exc.status_code, exc.error_code, exc.message,
            exc.details, request,
        )

    @app.exception_handler(Exception)
    async def handle_unhandled(request: Request, exc: Exception):
        logger.critical(
            "Unhandled exception: %s\n%s",
            exc, traceback.format_exc(),
        )
        message = str(exc) if settings.DEBUG else "Internal server error"
        return _build_error_response(500, "INTERNAL_ERROR", message, request=request)
