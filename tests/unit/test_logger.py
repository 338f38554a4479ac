"""
Unit tests for structured logging utility (llrt_check/utils/logger.py)

Tests covering:
- JSON log formatting with required fields
- Body truncation for emulator logs
- Level filtering and global level changes
- Log operation decorator
"""

import json
import logging
from datetime import datetime
from io import StringIO
from unittest.mock import patch

import pytest

from llrt_check.utils import logger as logger_module
from llrt_check.utils.logger import (
    StructuredLogger,
    get_logger,
    log_operation,
    set_global_level,
    truncate_body,
)


def _attach_stream(logger: logging.Logger) -> StringIO:
    logger.handlers.clear()
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.propagate = False
    return stream


class TestTruncateBody:
    """Tests for body truncation."""

    def test_short_body_unchanged(self):
        assert truncate_body('{"ok":true}') == '{"ok":true}'

    def test_long_body_truncated_with_marker(self):
        result = truncate_body("x" * 520, limit=500)
        assert result.startswith("x" * 500)
        assert result.endswith("...(20 more chars)")

    def test_exact_limit_not_truncated(self):
        assert truncate_body("abc", limit=3) == "abc"

    @pytest.mark.parametrize("body", [None, ""])
    def test_empty_body(self, body):
        assert truncate_body(body) == "(empty)"


class TestStructuredLogger:
    """Tests for StructuredLogger class."""

    @pytest.fixture
    def logger_with_stream(self):
        """Logger at DEBUG writing to an in-memory stream."""
        logger = StructuredLogger("llrt_check.tests.structured", level="DEBUG")
        stream = _attach_stream(logger.logger)
        return logger, stream

    def test_format_log_basic_fields(self, logger_with_stream):
        """Test required fields and UTC timestamp with Z suffix."""
        logger, _ = logger_with_stream

        parsed = json.loads(logger._format_log("INFO", "Emulator started"))

        assert parsed["level"] == "INFO"
        assert parsed["message"] == "Emulator started"
        assert parsed["timestamp"].endswith("Z")
        datetime.fromisoformat(parsed["timestamp"].replace("Z", "+00:00"))

    def test_format_log_omits_empty_optional_fields(self, logger_with_stream):
        logger, _ = logger_with_stream

        parsed = json.loads(logger._format_log("INFO", "Plain"))

        for key in ("operation", "context", "duration_ms", "error"):
            assert key not in parsed

    def test_format_log_all_fields(self, logger_with_stream):
        """Test every optional field is serialised; duration rounded to 2 places."""
        logger, _ = logger_with_stream

        parsed = json.loads(
            logger._format_log(
                "ERROR",
                "Runtime failed",
                operation="execute_runtime",
                context={"runtime": "llrt", "exit_code": 1},
                duration_ms=45.678,
                error="exit code 1",
            )
        )

        assert parsed["operation"] == "execute_runtime"
        assert parsed["context"] == {"runtime": "llrt", "exit_code": 1}
        assert parsed["duration_ms"] == 45.68
        assert parsed["error"] == "exit code 1"

    def test_format_log_non_serialisable_context(self, logger_with_stream):
        """Paths and other objects fall back to str()."""
        from pathlib import Path

        logger, _ = logger_with_stream

        parsed = json.loads(logger._format_log("INFO", "x", context={"path": Path("/tmp/a.js")}))

        assert parsed["context"]["path"] == "/tmp/a.js"

    def test_each_call_is_one_json_line(self, logger_with_stream):
        logger, stream = logger_with_stream

        logger.debug("first", operation="op")
        logger.info("second", duration_ms=1.5)
        logger.warning("third", error="careful")
        logger.error("fourth", error="boom")

        lines = stream.getvalue().strip().split("\n")
        assert [json.loads(line)["level"] for line in lines] == [
            "DEBUG",
            "INFO",
            "WARNING",
            "ERROR",
        ]

    def test_level_filtering(self):
        logger = StructuredLogger("llrt_check.tests.filtered", level="WARNING")
        stream = _attach_stream(logger.logger)

        logger.debug("hidden")
        logger.info("hidden")
        logger.warning("shown")

        lines = stream.getvalue().strip().split("\n")
        assert len(lines) == 1
        assert json.loads(lines[0])["message"] == "shown"

    def test_set_level(self):
        logger = StructuredLogger("llrt_check.tests.set_level", level="ERROR")
        logger.set_level("debug")
        assert logger.logger.level == logging.DEBUG


class TestLogOperationDecorator:
    """Tests for log_operation decorator."""

    @pytest.fixture
    def module_stream(self):
        """Capture output of the logger the decorator creates for this module."""
        with patch.object(logger_module, "DEFAULT_LOG_LEVEL", "DEBUG"):
            yield _attach_stream(logging.getLogger(__name__))

    def test_logs_start_and_completion(self, module_stream):
        @log_operation("compare_runtimes")
        def run():
            return "verdict"

        assert run() == "verdict"

        entries = [json.loads(line) for line in module_stream.getvalue().strip().split("\n")]
        assert entries[0]["message"] == "Starting compare_runtimes"
        assert entries[-1]["message"] == "Completed compare_runtimes"
        assert entries[-1]["operation"] == "compare_runtimes"
        assert "duration_ms" in entries[-1]

    def test_logs_failure_and_reraises(self, module_stream):
        @log_operation("build_matrix")
        def build():
            raise ValueError("no table")

        with pytest.raises(ValueError, match="no table"):
            build()

        last = json.loads(module_stream.getvalue().strip().split("\n")[-1])
        assert last["level"] == "ERROR"
        assert last["message"] == "Failed build_matrix"
        assert last["error"] == "no table"

    def test_preserves_function_metadata(self):
        @log_operation("op")
        def documented():
            """Docstring."""

        assert documented.__name__ == "documented"
        assert documented.__doc__ == "Docstring."


class TestLoggerFactory:
    """Tests for get_logger and set_global_level."""

    def test_get_logger_returns_structured_logger(self):
        logger = get_logger("llrt_check.tests.factory")
        assert isinstance(logger, StructuredLogger)
        assert logger.logger.name == "llrt_check.tests.factory"

    def test_set_global_level_updates_existing_loggers(self):
        existing = get_logger("llrt_check.tests.global_level")
        original = logger_module.DEFAULT_LOG_LEVEL
        try:
            set_global_level("debug")
            assert existing.logger.level == logging.DEBUG
            assert logger_module.DEFAULT_LOG_LEVEL == "DEBUG"
        finally:
            set_global_level(original)
