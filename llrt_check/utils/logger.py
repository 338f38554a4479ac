"""
Structured logging utility for the checker.

Provides JSON-formatted logging with body truncation, context injection,
and operation timing. Log lines go to stderr so the CLI report on stdout
stays readable.
"""

import json
import logging
import os
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from functools import wraps

DEFAULT_LOG_LEVEL = os.getenv("LLRT_CHECK_LOG_LEVEL", "WARNING").upper()

# Handler bodies posted to the emulator can be arbitrarily large
DEFAULT_BODY_LIMIT = 500


def truncate_body(body: Optional[str], limit: int = DEFAULT_BODY_LIMIT) -> str:
    """
    Shorten a request/response body for logging.

    Args:
        body: Body text (may be None)
        limit: Maximum number of characters to keep

    Returns:
        The body, or its first ``limit`` characters followed by a marker

    Example:
        >>> truncate_body("abcdef", limit=3)
        'abc...(3 more chars)'
        >>> truncate_body(None)
        '(empty)'
    """
    if not body:
        return "(empty)"

    if len(body) <= limit:
        return body

    return f"{body[:limit]}...({len(body) - limit} more chars)"


class StructuredLogger:
    """
    JSON-formatted logger with context injection and operation timing.

    All log output is one JSON object per line for easier parsing.
    """

    def __init__(self, name: str, level: Optional[str] = None):
        """
        Initialize structured logger.

        Args:
            name: Logger name (typically __name__ from calling module)
            level: Optional level name; defaults to LLRT_CHECK_LOG_LEVEL
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(level or DEFAULT_LOG_LEVEL)

        # Create stderr handler with JSON formatting
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setLevel(logging.DEBUG)

            formatter = logging.Formatter("%(message)s", datefmt="%Y-%m-%dT%H:%M:%S")
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)
            self.logger.propagate = False

    def _format_log(
        self,
        level: str,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        duration_ms: Optional[float] = None,
        error: Optional[str] = None,
    ) -> str:
        """
        Format log entry as JSON.

        Args:
            level: Log level (DEBUG, INFO, WARNING, ERROR)
            message: Human-readable message
            operation: Operation name (e.g., "execute_runtime", "load_matrix")
            context: Context dict with runtime, handler path, etc.
            duration_ms: Operation duration in milliseconds
            error: Error message if applicable

        Returns:
            JSON-formatted log string
        """
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": level,
            "message": message,
        }

        if operation:
            log_entry["operation"] = operation

        if context:
            log_entry["context"] = context

        if duration_ms is not None:
            log_entry["duration_ms"] = round(duration_ms, 2)

        if error:
            log_entry["error"] = error

        return json.dumps(log_entry, ensure_ascii=False, default=str)

    def debug(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        """Log debug message."""
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(self._format_log("DEBUG", message, operation, context))

    def info(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        duration_ms: Optional[float] = None,
    ):
        """Log info message."""
        if self.logger.isEnabledFor(logging.INFO):
            log_json = self._format_log("INFO", message, operation, context, duration_ms)
            self.logger.info(log_json)

    def warning(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
    ):
        """Log warning message."""
        log_json = self._format_log("WARNING", message, operation, context, error=error)
        self.logger.warning(log_json)

    def error(
        self,
        message: str,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        error: Optional[str] = None,
        duration_ms: Optional[float] = None,
    ):
        """Log error message."""
        log_json = self._format_log(
            "ERROR", message, operation, context, duration_ms, error
        )
        self.logger.error(log_json)

    def set_level(self, level: str) -> None:
        """Change the level of the underlying logger (e.g. for --verbose)."""
        self.logger.setLevel(level.upper())


def log_operation(operation_name: str):
    """
    Decorator to automatically log operation start, duration, and completion.

    Usage:
        @log_operation("compare_runtimes")
        def run(self, handler_path):
            ...
    """

    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            logger = StructuredLogger(func.__module__)

            context = {
                "function": func.__name__,
            }
            if len(args) > 0:
                context["arg_count"] = len(args)

            logger.debug(
                f"Starting {operation_name}", operation=operation_name, context=context
            )

            start_time = time.time()
            try:
                result = func(*args, **kwargs)
                duration_ms = (time.time() - start_time) * 1000
                logger.info(
                    f"Completed {operation_name}",
                    operation=operation_name,
                    context=context,
                    duration_ms=duration_ms,
                )
                return result
            except Exception as e:
                duration_ms = (time.time() - start_time) * 1000
                logger.error(
                    f"Failed {operation_name}",
                    operation=operation_name,
                    context=context,
                    error=str(e),
                    duration_ms=duration_ms,
                )
                raise

        return wrapper

    return decorator


def get_logger(name: str) -> StructuredLogger:
    """
    Factory function to get a structured logger instance.

    Args:
        name: Logger name (typically __name__ from calling module)

    Returns:
        StructuredLogger instance
    """
    return StructuredLogger(name)


def set_global_level(level: str) -> None:
    """Apply a level to every ``llrt_check`` logger created so far and later."""
    global DEFAULT_LOG_LEVEL
    DEFAULT_LOG_LEVEL = level.upper()
    root = logging.getLogger("llrt_check")
    root.setLevel(DEFAULT_LOG_LEVEL)
    for name, existing in logging.root.manager.loggerDict.items():
        if name.startswith("llrt_check") and isinstance(existing, logging.Logger):
            existing.setLevel(DEFAULT_LOG_LEVEL)
