"""Tests for logging configuration."""

from __future__ import annotations

import json
import sys
import logging
from io import StringIO

import pytest
from rich.console import Console
from rich.logging import RichHandler

from natpmpc.models import LogLevel, ObservabilityConfig
from natpmpc.utils import logging_config
from natpmpc.utils.logging_config import (
    CorrelationFilter,
    StructuredFormatter,
    create_rich_handler,
    get_logger,
    setup_logging,
)

pytestmark = [pytest.mark.unit]


def _record(msg="Mapped %s", args=("udp",), **extra):
    record = logging.LogRecord(
        name="natpmpc.client",
        level=logging.INFO,
        pathname="client.py",
        lineno=10,
        msg=msg,
        args=args,
        exc_info=None,
    )
    record.__dict__.update(extra)
    return record


def test_correlation_filter_default():
    """Test records get a placeholder when no correlation ID is set."""
    token = logging_config.correlation_id.set(None)
    try:
        record = _record()
        assert CorrelationFilter().filter(record) is True
        assert record.correlation_id == "no-correlation-id"
    finally:
        logging_config.correlation_id.reset(token)


def test_correlation_filter_uses_context():
    """Test the active correlation ID is attached."""
    token = logging_config.correlation_id.set("abc-123")
    try:
        record = _record()
        CorrelationFilter().filter(record)
        assert record.correlation_id == "abc-123"
    finally:
        logging_config.correlation_id.reset(token)


def test_structured_formatter_json():
    """Test records are rendered as JSON including extra fields."""
    record = _record(correlation_id="cid", gateway="192.168.1.1")

    entry = json.loads(StructuredFormatter().format(record))

    assert entry["level"] == "INFO"
    assert entry["logger"] == "natpmpc.client"
    assert entry["message"] == "Mapped udp"
    assert entry["correlation_id"] == "cid"
    assert entry["gateway"] == "192.168.1.1"
    assert "msg" not in entry


def test_structured_formatter_exception():
    """Test exception info is formatted into the entry."""
    try:
        raise OSError("boom")
    except OSError:
        record = logging.LogRecord(
            "natpmpc", logging.ERROR, "x.py", 1, "failed", (), sys.exc_info()
        )

    entry = json.loads(StructuredFormatter().format(record))

    assert "OSError: boom" in entry["exception"]


def test_create_rich_handler():
    """Test the rich handler factory."""
    console = Console(file=StringIO(), width=80)

    handler = create_rich_handler(console=console, level=logging.DEBUG)

    assert isinstance(handler, RichHandler)
    assert handler.console is console
    assert handler.level == logging.DEBUG


def test_setup_logging_rich_console():
    """Test the default setup installs a Rich console handler."""
    setup_logging(ObservabilityConfig(log_level=LogLevel.INFO))

    logger = logging.getLogger("natpmpc")
    assert logger.level == logging.INFO
    assert logger.propagate is False
    assert any(isinstance(h, RichHandler) for h in logger.handlers)


def test_setup_logging_structured_with_file(tmp_path):
    """Test structured output and the rotating file handler."""
    log_file = tmp_path / "logs" / "natpmpc.log"

    setup_logging(
        ObservabilityConfig(
            log_level=LogLevel.DEBUG,
            log_file=str(log_file),
            structured_logging=True,
        )
    )
    get_logger("test").debug("hello %s", "file")
    for handler in logging.getLogger("natpmpc").handlers:
        handler.flush()

    line = log_file.read_text(encoding="utf-8").strip().splitlines()[-1]
    entry = json.loads(line)
    assert entry["message"] == "hello file"
    assert entry["logger"] == "natpmpc.test"
    assert entry["correlation_id"] != "no-correlation-id"


def test_get_logger_namespace():
    """Test loggers live under the natpmpc namespace."""
    assert get_logger("cli").name == "natpmpc.cli"
