"""
Structured Logging Configuration for SmartSpec

Provides:
- JSON-formatted structured logging
- Request correlation IDs propagated into every log line
- Timed lifecycle operations with the initiative they touch
"""
import inspect
import sys
import json
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Optional, Callable
from functools import wraps
from contextvars import ContextVar

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from services.errors import NotFoundError, InvalidStateError, ConflictError

# Context variables for request correlation
request_id_var: ContextVar[str] = ContextVar("request_id", default="")
initiative_id_var: ContextVar[str] = ContextVar("initiative_id", default="")

_RESERVED_ATTRS = {
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "taskName", "message", "request_id", "initiative_id"
}


class StructuredJSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.
    Outputs one JSON object per line for log aggregation tools.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": request_id_var.get(""),
        }

        initiative_id = initiative_id_var.get("")
        if initiative_id:
            log_data["initiative_id"] = initiative_id

        log_data["location"] = {
            "file": record.filename,
            "line": record.lineno,
            "function": record.funcName
        }

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info)
            }

        extra_fields = {}
        for key, value in record.__dict__.items():
            if key in _RESERVED_ATTRS:
                continue
            try:
                json.dumps(value)
                extra_fields[key] = value
            except (TypeError, ValueError):
                extra_fields[key] = str(value)

        if extra_fields:
            log_data["extra"] = extra_fields

        return json.dumps(log_data)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware for logging HTTP requests with correlation IDs.
    """

    def __init__(self, app, logger: logging.Logger = None):
        super().__init__(app)
        self.logger = logger or logging.getLogger("smartspec.requests")

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4())[:12])
        request_id_var.set(request_id)
        start_time = time.perf_counter()

        self.logger.info(
            f"Request started: {request.method} {request.url.path}",
            extra={
                "event_type": "request_start",
                "method": request.method,
                "path": request.url.path,
                "query": str(request.query_params),
                "client_ip": request.client.host if request.client else None,
            }
        )

        try:
            response = await call_next(request)
        except Exception as e:
            self.logger.error(
                f"Request failed: {request.method} {request.url.path} - {type(e).__name__}",
                extra={
                    "event_type": "request_error",
                    "method": request.method,
                    "path": request.url.path,
                    "duration_ms": round((time.perf_counter() - start_time) * 1000, 2),
                    "error_type": type(e).__name__,
                },
                exc_info=True
            )
            raise

        self.logger.info(
            f"Request completed: {request.method} {request.url.path} - {response.status_code}",
            extra={
                "event_type": "request_complete",
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round((time.perf_counter() - start_time) * 1000, 2),
            }
        )
        response.headers["X-Request-ID"] = request_id
        return response


def log_operation(operation_name: str, logger: logging.Logger = None) -> Callable:
    """
    Decorator to log async lifecycle operations with timing.
    When the wrapped function takes an `initiative_id` argument it is bound to the log context.

    Usage:
        @log_operation("finalize")
        async def finalize(self, initiative_id, tasks):
            ...
    """
    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)
        has_initiative_id = "initiative_id" in signature.parameters

        @wraps(func)
        async def wrapper(*args, **kwargs):
            op_logger = logger or logging.getLogger(f"smartspec.operations.{operation_name}")
            initiative_id = None
            if has_initiative_id:
                initiative_id = signature.bind_partial(*args, **kwargs).arguments.get("initiative_id")
            token = initiative_id_var.set(initiative_id or "")
            start_time = time.perf_counter()

            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                # Expected domain outcomes (404/409) are logged without a traceback
                expected = isinstance(e, (NotFoundError, InvalidStateError, ConflictError))
                op_logger.log(
                    logging.WARNING if expected else logging.ERROR,
                    f"Operation failed: {operation_name} - {type(e).__name__}: {e}",
                    extra={
                        "event_type": "operation_error",
                        "operation": operation_name,
                        "duration_ms": round((time.perf_counter() - start_time) * 1000, 2),
                        "error_type": type(e).__name__,
                    },
                    exc_info=not expected
                )
                raise
            finally:
                initiative_id_var.reset(token)

            op_logger.info(
                f"Operation completed: {operation_name}",
                extra={
                    "event_type": "operation_complete",
                    "operation": operation_name,
                    "duration_ms": round((time.perf_counter() - start_time) * 1000, 2),
                }
            )
            return result

        return wrapper
    return decorator


def setup_logging(
    level: str = "INFO",
    json_format: bool = True,
    log_file: Optional[str] = None
):
    """
    Configure logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        json_format: Use JSON formatting for structured logging
        log_file: Optional file path to write logs
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    if json_format:
        console_handler.setFormatter(StructuredJSONFormatter())
    else:
        console_handler.setFormatter(logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        ))
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(StructuredJSONFormatter())
        root_logger.addHandler(file_handler)

    # Silence noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    return root_logger
