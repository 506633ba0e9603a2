"""
Structured JSON logging for the ephemeris server.

Provides consistent, structured logging with request correlation and
operation context for both the REST and MCP surfaces.
"""

import json
import logging
import time
import uuid
from contextvars import ContextVar
from typing import Dict, Any, Optional
from datetime import datetime, timezone


# Context variables for request correlation
request_id_context: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
surface_context: ContextVar[Optional[str]] = ContextVar('surface', default=None)

_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
    'filename', 'module', 'lineno', 'funcName', 'created',
    'msecs', 'relativeCreated', 'thread', 'threadName',
    'processName', 'process', 'getMessage', 'exc_info',
    'exc_text', 'stack_info', 'taskName', 'message'
}


class JsonFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs in a consistent JSON format with:
    - Standard fields: timestamp, level, logger, message
    - Request correlation: request_id, surface (rest or mcp)
    - Extra fields passed through ``extra=`` (operation, bodies, duration_ms...)
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = request_id_context.get()
        if request_id:
            log_entry["request_id"] = request_id

        surface = surface_context.get()
        if surface:
            log_entry["surface"] = surface

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith('_'):
                log_entry[key] = value

        return json.dumps(log_entry, ensure_ascii=False, separators=(',', ':'), default=str)


class StructuredLogger:
    """
    Structured logger with operation context support.

    Provides methods for logging the common server events with
    consistent structure and correlation.
    """

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def operation_completed(
        self,
        operation: str,
        surface: str,
        duration_ms: float,
        bodies: Optional[list] = None
    ):
        """Log a successfully completed operation."""
        self.logger.info(
            f"Operation completed: {operation}",
            extra={
                "operation": operation,
                "surface": surface,
                "bodies": bodies,
                "body_count": len(bodies) if bodies is not None else None,
                "duration_ms": round(duration_ms, 2),
                "performance_category": self._categorize_performance(duration_ms)
            }
        )

    def operation_error(
        self,
        operation: str,
        surface: str,
        error_code: str,
        error_message: str,
        duration_ms: float
    ):
        """Log a failed operation."""
        self.logger.error(
            f"Operation failed: {operation}",
            extra={
                "operation": operation,
                "surface": surface,
                "error_code": error_code,
                "error_message": error_message,
                "duration_ms": round(duration_ms, 2)
            }
        )

    def kernel_operation(
        self,
        operation: str,  # "loaded", "verified", "error"
        kernel_path: str,
        bundle: str,
        checksum_valid: Optional[bool] = None,
        duration_ms: Optional[float] = None
    ):
        """Log SPICE kernel operations."""
        level = logging.ERROR if operation == "error" else logging.INFO
        self.logger.log(
            level,
            f"SPICE kernel {operation}",
            extra={
                "operation": f"kernel_{operation}",
                "kernel_path": kernel_path,
                "bundle": bundle,
                "checksum_valid": checksum_valid,
                "duration_ms": round(duration_ms, 2) if duration_ms else None
            }
        )

    def startup_event(
        self,
        component: str,
        status: str,  # "starting", "ready", "error"
        duration_ms: Optional[float] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        """Log application startup events."""
        level = logging.ERROR if status == "error" else logging.INFO
        self.logger.log(
            level,
            f"Startup: {component} {status}",
            extra={
                "operation": "startup",
                "component": component,
                "status": status,
                "duration_ms": round(duration_ms, 2) if duration_ms else None,
                **(details or {})
            }
        )

    @staticmethod
    def _categorize_performance(duration_ms: float) -> str:
        """Categorize performance for easy filtering."""
        if duration_ms < 50:
            return "fast"
        elif duration_ms < 200:
            return "normal"
        elif duration_ms < 1000:
            return "slow"
        else:
            return "very_slow"


def setup_logging(level: str = "INFO", enable_json: bool = True) -> None:
    """
    Setup structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        enable_json: Whether to use JSON formatting
    """
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        handlers=[],
        force=True
    )

    # stderr keeps stdout free for the MCP stdio transport
    console_handler = logging.StreamHandler()

    if enable_json:
        console_handler.setFormatter(JsonFormatter())
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )
        console_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.addHandler(console_handler)

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("mcp").setLevel(logging.WARNING)


def set_request_context(request_id: Optional[str] = None, surface: Optional[str] = None) -> str:
    """
    Set request context for correlation.

    Args:
        request_id: Optional request ID (generated if not provided)
        surface: Which facade is serving the request ("rest" or "mcp")

    Returns:
        The request ID (generated or provided)
    """
    if request_id is None:
        request_id = str(uuid.uuid4())

    request_id_context.set(request_id)
    if surface:
        surface_context.set(surface)

    return request_id


def clear_request_context():
    """Clear request context."""
    request_id_context.set(None)
    surface_context.set(None)


def get_request_id() -> Optional[str]:
    """Get current request ID from context."""
    return request_id_context.get()


class TimedOperation:
    """Context manager for timing operations with automatic logging."""

    def __init__(self, logger: StructuredLogger, operation_name: str, **context):
        self.logger = logger
        self.operation_name = operation_name
        self.context = context
        self.start_time = None
        self.duration_ms = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration_ms = (time.perf_counter() - self.start_time) * 1000

        if exc_type is None:
            self.logger.logger.info(
                f"Operation completed: {self.operation_name}",
                extra={
                    "operation": self.operation_name,
                    "duration_ms": round(self.duration_ms, 2),
                    "performance_category": StructuredLogger._categorize_performance(self.duration_ms),
                    **self.context
                }
            )
        else:
            self.logger.logger.error(
                f"Operation failed: {self.operation_name}",
                extra={
                    "operation": self.operation_name,
                    "duration_ms": round(self.duration_ms, 2),
                    "error_type": exc_type.__name__ if exc_type else None,
                    "error_message": str(exc_val) if exc_val else None,
                    **self.context
                }
            )
