"""Tests for logging configuration and correlation IDs."""

import json
import logging
import sys
from collections.abc import Generator

import pytest

from cadence.infrastructure.observability.logging import (
    CompactExceptionFormatter,
    CorrelationIdFilter,
    CustomJsonFormatter,
    configure_logging,
    correlation_id_var,
    get_correlation_id,
    set_correlation_id,
)


@pytest.fixture(autouse=True)
def restore_root_logger() -> Generator[None, None, None]:
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    token = correlation_id_var.set("")
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    correlation_id_var.reset(token)


def make_record(msg: str = "hello", exc_info=None) -> logging.LogRecord:
    return logging.LogRecord(
        name="cadence.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=42,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )


class TestCorrelationId:
    """Test the correlation ID context variable."""

    def test_set_explicit_id(self) -> None:
        assert set_correlation_id("abc-123") == "abc-123"
        assert get_correlation_id() == "abc-123"

    def test_set_generates_uuid(self) -> None:
        generated = set_correlation_id()
        assert len(generated) == 36
        assert get_correlation_id() == generated

    def test_filter_attaches_id(self) -> None:
        set_correlation_id("run-1")
        record = make_record()

        assert CorrelationIdFilter().filter(record)
        assert record.correlation_id == "run-1"


class TestFormatters:
    """Test the JSON and compact formatters."""

    def test_json_formatter_fields(self) -> None:
        set_correlation_id("req-9")
        record = make_record("synced %d artists")
        record.args = (3,)
        CorrelationIdFilter().filter(record)

        output = json.loads(CustomJsonFormatter("%(message)s").format(record))

        assert output["message"] == "synced 3 artists"
        assert output["level"] == "INFO"
        assert output["logger"] == "cadence.test"
        assert output["line"] == 42
        assert output["correlation_id"] == "req-9"

    def test_json_formatter_omits_empty_correlation_id(self) -> None:
        record = make_record()
        CorrelationIdFilter().filter(record)

        output = json.loads(CustomJsonFormatter("%(message)s").format(record))

        assert "correlation_id" not in output

    def test_compact_formatter_prints_root_cause_first(self) -> None:
        try:
            try:
                raise ConnectionError("refused")
            except ConnectionError as e:
                raise RuntimeError("page failed") from e
        except RuntimeError:
            exc_info = sys.exc_info()

        text = CompactExceptionFormatter().formatException(exc_info)

        lines = [line for line in text.splitlines() if line.startswith("╰─►")]
        assert lines == ["╰─► ConnectionError: refused", "╰─► RuntimeError: page failed"]


class TestConfigureLogging:
    """Test configure_logging()."""

    def test_replaces_root_handlers(self) -> None:
        configure_logging("DEBUG")
        configure_logging("WARNING")

        root = logging.getLogger()
        assert len(root.handlers) == 1
        assert root.level == logging.WARNING
        assert isinstance(root.handlers[0].filters[0], CorrelationIdFilter)

    def test_json_format(self) -> None:
        configure_logging("INFO", json_format=True)

        assert isinstance(logging.getLogger().handlers[0].formatter, CustomJsonFormatter)

    def test_quiets_http_libraries(self) -> None:
        configure_logging("DEBUG")

        assert logging.getLogger("httpx").level == logging.WARNING
