"""Request middleware: request ids, access logging, HTTP metrics and error fallbacks."""

import time
import uuid
from typing import Callable

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import Counter, Histogram
from starlette.exceptions import HTTPException as StarletteHTTPException

from graft_hook.core.exceptions import GraftHookError

logger = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"

HTTP_REQUESTS = Counter(
    "graft_hook_http_requests_total",
    "HTTP requests by route and status",
    ["method", "endpoint", "status"],
)

HTTP_REQUEST_SECONDS = Histogram(
    "graft_hook_http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint"],
)


def _error_body(error: str, message: str, **extra) -> dict:
    return {"error": error, "message": message, **extra}


def setup_error_handling(app: FastAPI) -> None:
    """Register fallbacks for errors that escape the webhook outcome.

    Deployment failures are reported by the dispatcher as outcomes; these
    handlers only see programming errors and framework-level HTTP errors.
    """

    @app.exception_handler(GraftHookError)
    async def graft_error_handler(request: Request, exc: GraftHookError) -> JSONResponse:
        logger.error("Dispatcher error escaped outcome handling", error=str(exc), code=exc.code)
        return JSONResponse(
            status_code=500,
            content=_error_body(exc.__class__.__name__, str(exc), code=exc.code),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body("HTTPException", exc.detail),
        )

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unexpected error", exc_info=exc)
        return JSONResponse(
            status_code=500,
            content=_error_body("InternalServerError", "An unexpected error occurred"),
        )


def setup_logging_middleware(app: FastAPI) -> None:
    """Bind a request id to the log context and log each completed request."""

    @app.middleware("http")
    async def log_requests(request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )
        started = time.monotonic()

        try:
            response = await call_next(request)
        except Exception:
            logger.exception("Request failed", duration_seconds=round(time.monotonic() - started, 3))
            raise

        logger.info(
            "Request completed",
            status_code=response.status_code,
            duration_seconds=round(time.monotonic() - started, 3),
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def setup_metrics_middleware(app: FastAPI) -> None:
    """Count requests and observe their latency per route."""

    @app.middleware("http")
    async def collect_metrics(request: Request, call_next: Callable) -> Response:
        started = time.monotonic()
        response = await call_next(request)

        endpoint = request.url.path
        HTTP_REQUESTS.labels(method=request.method, endpoint=endpoint, status=response.status_code).inc()
        HTTP_REQUEST_SECONDS.labels(method=request.method, endpoint=endpoint).observe(
            time.monotonic() - started
        )
        return response
