"""Request correlation and the last-resort error response.

Every request gets an ID that is bound into the structlog context for the
duration of the request and echoed in ``X-Request-ID``. Exceptions that
no handler turned into a response become a 500 in the shape the route's
callers read: the payment routes answer with their flat bodies, all other
routes with the error envelope.
"""

import re
import time
from typing import Any, Callable
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

logger = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"

# Caller-supplied IDs end up in every log line of the request
_REQUEST_ID_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,64}$")

PAYMENT_PREFIX = "/api/payment/"
WEBHOOK_PATH = "/api/payment/webhook"


def resolve_request_id(header_value: str | None) -> str:
    """Return the caller's request ID if it is usable, else a new one."""
    if header_value and _REQUEST_ID_PATTERN.match(header_value):
        return header_value
    return uuid4().hex


def internal_error_body(path: str, request_id: str | None) -> dict[str, Any]:
    """Body of the 500 returned when a request failed unexpectedly."""
    if path == WEBHOOK_PATH:
        return {"message": "Webhook processing failed"}
    if path.startswith(PAYMENT_PREFIX):
        return {"error": "Internal Server Error"}
    return {
        "error_code": "INTERNAL_ERROR",
        "message": "An internal error occurred",
        "details": {},
        "request_id": request_id,
    }


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Binds a request ID into the log context and echoes it back."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id
        structlog.contextvars.bind_contextvars(request_id=request_id)

        started = time.perf_counter()
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            logger.info(
                "Request completed",
                method=request.method,
                path=request.url.path,
                status_code=status_code,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            structlog.contextvars.unbind_contextvars("request_id")

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Turns an exception that escaped every handler into a 500.

    The exception is logged with its traceback; its text never reaches
    the response.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception as e:
            path = request.url.path
            request_id = getattr(request.state, "request_id", None)
            logger.exception(
                "Unhandled exception",
                path=path,
                method=request.method,
                error_type=type(e).__name__,
            )
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content=internal_error_body(path, request_id),
            )


def setup_middleware(app: FastAPI) -> None:
    """Install the middleware.

    The last one added runs first, so the request ID is bound before the
    error handler can log.
    """
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(RequestIdMiddleware)
