"""
Response envelope and exception handlers.

Every response has the shape ``{success, data?, error?, usage?}``.
"""

import logging
import sqlite3
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from ..errors import (
    AuthenticationError,
    ForbiddenError,
    ModelClientError,
    NotFoundError,
    QuotaExceededError,
    ResponseParseError,
)

logger = logging.getLogger(__name__)

PARSE_FAILURE_MESSAGE = "Failed to parse AI response"
MODEL_FAILURE_MESSAGE = "AI service request failed. Please try again later."
INTERNAL_ERROR_MESSAGE = "Internal server error"


def envelope(data: Any = None, usage: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Successful response body."""
    body: Dict[str, Any] = {"success": True}
    if data is not None:
        body["data"] = data
    if usage is not None:
        body["usage"] = usage
    return body


def error_response(
    status_code: int,
    error: str,
    details: Optional[Any] = None
) -> JSONResponse:
    """Failed response with the standard envelope."""
    body: Dict[str, Any] = {"success": False, "error": error}
    if details is not None:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=body)


def _validation_details(exc: RequestValidationError) -> List[Dict[str, str]]:
    details = []
    for error in exc.errors():
        location = [str(part) for part in error.get("loc", ()) if part != "body"]
        details.append({"field": ".".join(location), "message": error.get("msg", "")})
    return details


def register_exception_handlers(app: FastAPI, debug: bool = False) -> None:
    """Map service errors onto envelope responses."""

    @app.exception_handler(AuthenticationError)
    async def handle_authentication(request: Request, exc: AuthenticationError):
        return error_response(401, "Unauthorized")

    @app.exception_handler(RequestValidationError)
    async def handle_validation(request: Request, exc: RequestValidationError):
        return error_response(400, "Validation failed", _validation_details(exc))

    @app.exception_handler(StarletteHTTPException)
    async def handle_http(request: Request, exc: StarletteHTTPException):
        return error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(QuotaExceededError)
    async def handle_quota(request: Request, exc: QuotaExceededError):
        return error_response(429, str(exc))

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return error_response(404, str(exc))

    @app.exception_handler(ForbiddenError)
    async def handle_forbidden(request: Request, exc: ForbiddenError):
        return error_response(403, str(exc))

    @app.exception_handler(ResponseParseError)
    async def handle_parse(request: Request, exc: ResponseParseError):
        return error_response(500, PARSE_FAILURE_MESSAGE, str(exc) if debug else None)

    @app.exception_handler(ModelClientError)
    async def handle_model(request: Request, exc: ModelClientError):
        logger.error("Model call failed on %s: %s", request.url.path, exc)
        return error_response(500, MODEL_FAILURE_MESSAGE, str(exc) if debug else None)

    @app.exception_handler(sqlite3.Error)
    async def handle_storage(request: Request, exc: sqlite3.Error):
        logger.error("Storage failure on %s", request.url.path, exc_info=exc)
        return error_response(500, INTERNAL_ERROR_MESSAGE, str(exc) if debug else None)

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.error("Unhandled error on %s", request.url.path, exc_info=exc)
        return error_response(500, INTERNAL_ERROR_MESSAGE, str(exc) if debug else None)
