"""
Exception handlers rendering every failure as an error envelope.

- MockAPIError (including simulated failures): its own status, code and headers
- SimulatedTimeout: empty-body 504 once the hang bound elapses
- Request validation: 400 VALIDATION_ERROR with field errors
- Unknown routes: 404 ROUTE_NOT_FOUND; wrong method: 405 METHOD_NOT_ALLOWED
- Anything else: logged with an error id, 500 INTERNAL_SERVER_ERROR
"""

import uuid

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, Response
from starlette.exceptions import HTTPException as StarletteHTTPException

from mock_ota.errors import MockAPIError, SimulatedFailure, SimulatedTimeout, error_envelope
from mock_ota.logging import get_logger

logger = get_logger(__name__)


async def mock_api_error_handler(request: Request, exc: MockAPIError) -> JSONResponse:
    if not isinstance(exc, SimulatedFailure):
        logger.info(
            "%s %s -> %d %s: %s",
            request.method,
            request.url.path,
            exc.status_code,
            exc.code,
            exc.message,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_envelope(request.url.path),
        headers=exc.headers,
    )


async def simulated_timeout_handler(request: Request, exc: SimulatedTimeout) -> Response:
    logger.warning(
        "Aborting hung request %s %s after %.1fs",
        request.method,
        request.url.path,
        exc.waited_s,
    )
    return Response(status_code=504, headers=exc.headers)


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content=error_envelope(
            "VALIDATION_ERROR",
            "Invalid request parameters",
            {"errors": jsonable_encoder(exc.errors())},
            request.url.path,
        ),
    )


async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404:
        code = "ROUTE_NOT_FOUND"
        message = f"Route {request.method} {request.url.path} not found"
    elif exc.status_code == 405:
        code = "METHOD_NOT_ALLOWED"
        message = f"Method {request.method} not allowed for {request.url.path}"
    else:
        code = "HTTP_ERROR"
        message = str(exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(code, message, None, request.url.path),
        headers=getattr(exc, "headers", None),
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Log the defect with context and return a generic envelope."""
    error_id = uuid.uuid4().hex
    logger.error(
        "Unhandled exception %s on %s %s",
        error_id,
        request.method,
        request.url.path,
        exc_info=exc,
    )
    return JSONResponse(
        status_code=500,
        content=error_envelope(
            "INTERNAL_SERVER_ERROR",
            "An unexpected error occurred.",
            {"errorId": error_id},
            request.url.path,
        ),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(MockAPIError, mock_api_error_handler)
    app.add_exception_handler(SimulatedTimeout, simulated_timeout_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
