"""Tests for structured logging."""

import json
import logging
import sys
from io import StringIO

import pytest

from kernel_builder.core import logging as core_logging
from kernel_builder.core.logging import ConsoleFormatter, JSONFormatter, LoggerAdapter, get_logger


def make_record(msg="Test message", level=logging.INFO, exc_info=None):
    return logging.LogRecord(
        name="kernel_builder.test",
        level=level,
        pathname="/src/kernel_builder/services/ssh/session.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )


@pytest.fixture
def captured():
    """Logger wired to an in-memory JSON handler; removed afterwards."""
    logger = logging.getLogger("kernel_builder.test.captured")
    logger.setLevel(logging.DEBUG)
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(JSONFormatter())
    logger.addHandler(handler)
    yield logger, stream
    logger.removeHandler(handler)


class TestJSONFormatter:
    def test_basic_log_format(self):
        parsed = json.loads(JSONFormatter().format(make_record()))

        assert parsed["level"] == "INFO"
        assert parsed["logger"] == "kernel_builder.test"
        assert parsed["message"] == "Test message"
        assert parsed["line"] == 42
        assert "timestamp" in parsed
        assert "extra" not in parsed

    def test_extra_fields_included(self):
        record = make_record("Connected")
        record.ssh_host = "10.0.2.15"
        record.ssh_port = 10022

        parsed = json.loads(JSONFormatter().format(record))

        assert parsed["extra"] == {"ssh_host": "10.0.2.15", "ssh_port": 10022}

    def test_extra_fields_can_be_excluded(self):
        record = make_record()
        record.ssh_host = "10.0.2.15"

        parsed = json.loads(JSONFormatter(include_extra=False).format(record))

        assert "extra" not in parsed

    def test_exception_info(self):
        try:
            raise ValueError("Test error")
        except ValueError:
            exc_info = sys.exc_info()

        parsed = json.loads(JSONFormatter().format(make_record(level=logging.ERROR, exc_info=exc_info)))

        assert parsed["exception"]["type"] == "ValueError"
        assert parsed["exception"]["message"] == "Test error"
        assert isinstance(parsed["exception"]["traceback"], list)

    def test_non_serializable_extra_is_stringified(self):
        record = make_record()
        record.custom_object = object()

        parsed = json.loads(JSONFormatter().format(record))

        assert "object" in parsed["extra"]["custom_object"].lower()


class TestConsoleFormatter:
    def test_basic_console_format(self):
        output = ConsoleFormatter().format(make_record())

        assert "INFO" in output
        assert "kernel_builder.test" in output
        assert "Test message" in output

    def test_host_context_shown(self):
        record = make_record("Connected")
        record.ssh_host = "10.0.2.15"

        assert "kernel_builder.test [10.0.2.15]" in ConsoleFormatter().format(record)

    def test_colors_per_level(self):
        formatter = ConsoleFormatter()
        for level, color in ConsoleFormatter.COLORS.items():
            output = formatter.format(make_record(level=getattr(logging, level)))
            assert color in output, f"Color code missing for {level}"


class TestLoggerAdapter:
    def test_adapter_adds_context(self, captured):
        logger, stream = captured

        LoggerAdapter(logger, {"ssh_host": "10.0.2.15", "ssh_port": 22}).info("Connecting")

        parsed = json.loads(stream.getvalue())
        assert parsed["extra"]["ssh_host"] == "10.0.2.15"
        assert parsed["extra"]["ssh_port"] == 22

    def test_adapter_merges_extra(self, captured):
        logger, stream = captured

        LoggerAdapter(logger, {"ssh_host": "10.0.2.15"}).info("Batch", extra={"step": 2})

        parsed = json.loads(stream.getvalue())
        assert parsed["extra"]["ssh_host"] == "10.0.2.15"
        assert parsed["extra"]["step"] == 2

    def test_adapter_does_not_mutate_its_context(self, captured):
        logger, _ = captured
        adapter = LoggerAdapter(logger, {"ssh_host": "10.0.2.15"})

        adapter.info("one", extra={"step": 1})

        assert adapter.extra == {"ssh_host": "10.0.2.15"}


class TestSetupLogging:
    @pytest.fixture(autouse=True)
    def restore_root(self):
        root = logging.getLogger()
        handlers, level = root.handlers[:], root.level
        yield
        root.handlers[:] = handlers
        root.setLevel(level)

    def test_get_logger_returns_logger(self):
        logger = get_logger("kernel_builder.module")
        assert isinstance(logger, logging.Logger)
        assert logger.name == "kernel_builder.module"

    @pytest.mark.parametrize(
        ("log_format", "expected"), [("json", JSONFormatter), ("console", ConsoleFormatter)]
    )
    def test_explicit_format(self, monkeypatch, log_format, expected):
        monkeypatch.setattr(core_logging.settings, "log_format", log_format)

        core_logging.setup_logging()

        handlers = logging.getLogger().handlers
        assert len(handlers) == 1
        assert isinstance(handlers[0].formatter, expected)

    def test_production_defaults_to_json(self, monkeypatch):
        monkeypatch.setattr(core_logging.settings, "log_format", None)
        monkeypatch.setattr(core_logging.settings, "environment", "production")

        core_logging.setup_logging()

        assert isinstance(logging.getLogger().handlers[0].formatter, JSONFormatter)
        assert logging.getLogger("asyncssh").level == logging.WARNING
