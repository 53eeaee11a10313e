import logging
import sys
import time
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from pythonjsonlogger import jsonlogger

from app.metrics import record_http_request


# Set by RequestLoggingMiddleware for the duration of a request
request_id_ctx: ContextVar[Optional[str]] = ContextVar("request_id", default=None)

request_logger = logging.getLogger("app.requests")

UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")

# Paths that are not counted in the HTTP metrics
UNMETERED_PATHS = frozenset({"/metrics"})


class RequestContextJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter stamping every record with its creation time (ISO-8601,
    UTC, millisecond precision), its level name and the current request id.
    """

    def add_fields(self, log_record, record, message_dict):
        super().add_fields(log_record, record, message_dict)
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        log_record.setdefault("ts", created.isoformat(timespec="milliseconds").replace("+00:00", "Z"))
        log_record["level"] = record.levelname

        request_id = request_id_ctx.get()
        if request_id and "request_id" not in log_record:
            log_record["request_id"] = request_id


def setup_logging(log_level: str = "INFO") -> logging.Logger:
    """
    Send the root logger and Uvicorn's loggers to one JSON stdout handler.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(RequestContextJsonFormatter("%(ts)s %(level)s %(name)s %(message)s"))

    root = logging.getLogger()
    root.setLevel(log_level.upper())
    root.handlers = [handler]

    for name in UVICORN_LOGGERS:
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers = [handler]
        uvicorn_logger.propagate = False

    # RequestLoggingMiddleware writes the access log
    logging.getLogger("uvicorn.access").disabled = True

    return root


def route_path(request: Request) -> str:
    """
    Route template the request matched (e.g. /messages/{message_id}),
    or the raw path when no route matched.
    """
    route = request.scope.get("route")
    return getattr(route, "path", request.url.path)


def level_for_status(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Assign each request an id (returned as X-Request-ID), record HTTP
    metrics labelled by route template, and write one structured log
    line per request.

    Log fields: request_id, method, path, status, latency_ms, plus any
    fields the route attached with log_event_data (message_id,
    client_id, result).
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = uuid.uuid4().hex
        request.state.request_id = request_id
        token = request_id_ctx.set(request_id)
        started = time.perf_counter()

        try:
            response = await call_next(request)
            elapsed = time.perf_counter() - started
            response.headers["X-Request-ID"] = request_id

            if request.url.path not in UNMETERED_PATHS:
                record_http_request(request.method, route_path(request), response.status_code, elapsed)

            fields = {
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "latency_ms": round(elapsed * 1000, 2),
                **getattr(request.state, "event_log_data", {}),
            }
            request_logger.log(level_for_status(response.status_code), "Request completed", extra=fields)
            return response
        finally:
            request_id_ctx.reset(token)


def log_event_data(request: Request, message_id: str = None, client_id: str = None, result: str = None):
    """
    Attach route-specific fields to the request log line written by
    RequestLoggingMiddleware. Fields left as None are omitted.
    """
    fields = {"message_id": message_id, "client_id": client_id, "result": result}
    request.state.event_log_data = {key: value for key, value in fields.items() if value is not None}
