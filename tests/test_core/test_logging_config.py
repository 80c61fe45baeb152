import json
import logging
import sys
import pytest
from unittest.mock import patch

from core.logging_config import (
    ColoredConsoleFormatter,
    CorrelationFilter,
    JSONFormatter,
    get_correlation_id,
    get_logger,
    get_logging_config,
    log_function_call,
    mask_secret,
    set_correlation_id,
)


def make_record(message="hello", **extra):
    record = logging.LogRecord(
        name="services.lookup_service",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestLoggingConfig:
    """Test logging configuration selection."""

    def test_development_uses_colored_console(self):
        with patch.dict("os.environ", {"ENVIRONMENT": "development", "LOG_LEVEL": "info"}):
            config = get_logging_config()

        assert config["handlers"]["console"]["formatter"] == "colored_console"
        assert config["handlers"]["console"]["level"] == "INFO"
        assert config["handlers"]["console"]["filters"] == ["correlation"]

    def test_production_uses_json(self):
        with patch.dict("os.environ", {"ENVIRONMENT": "production"}):
            config = get_logging_config()

        assert config["handlers"]["console"]["formatter"] == "json"

    def test_application_loggers_configured(self):
        config = get_logging_config()

        for name in ("api", "core", "providers", "services"):
            assert name in config["loggers"]

    def test_get_logger(self):
        logger = get_logger("services.lookup_service")

        assert isinstance(logger, logging.Logger)
        assert logger.name == "services.lookup_service"


class TestCorrelation:
    def test_filter_adds_correlation_id(self):
        set_correlation_id("corr-1")
        record = make_record()

        assert CorrelationFilter().filter(record) is True
        assert record.correlation_id == "corr-1"
        assert get_correlation_id() == "corr-1"

        set_correlation_id(None)


class TestFormatters:
    def test_json_formatter_includes_extra_fields(self):
        record = make_record("Cache hit", correlation_id="abc", code="taken-code")

        entry = json.loads(JSONFormatter().format(record))

        assert entry["message"] == "Cache hit"
        assert entry["level"] == "INFO"
        assert entry["logger"] == "services.lookup_service"
        assert entry["correlation_id"] == "abc"
        assert entry["code"] == "taken-code"

    def test_json_formatter_includes_exception(self):
        try:
            raise ValueError("bad payload")
        except ValueError:
            record = make_record("failed")
            record.exc_info = sys.exc_info()

        entry = json.loads(JSONFormatter().format(record))

        assert entry["exception"]["type"] == "ValueError"
        assert entry["exception"]["message"] == "bad payload"

    def test_colored_formatter(self):
        record = make_record("Request started", correlation_id="abc")

        output = ColoredConsoleFormatter().format(record)

        assert "INFO" in output
        assert "[abc]" in output
        assert "Request started" in output
        assert output.startswith("\033[32m")


class TestMaskSecret:
    def test_masks_all_but_prefix(self):
        assert mask_secret("MTIzNDU2Nzg5.abc.def") == "MTIz***"

    def test_unset(self):
        assert mask_secret("") == "<unset>"
        assert mask_secret(None) == "<unset>"

    def test_custom_visible(self):
        assert mask_secret("abcdef", visible=2) == "ab***"


class TestLogFunctionCall:
    @pytest.mark.asyncio
    async def test_wraps_coroutine(self):
        logger = logging.getLogger("tests.log_function_call")

        @log_function_call(logger)
        async def lookup(value):
            return value * 2

        assert await lookup(21) == 42
        assert lookup.__name__ == "lookup"

    @pytest.mark.asyncio
    async def test_reraises(self):
        logger = logging.getLogger("tests.log_function_call")

        @log_function_call(logger)
        async def broken():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await broken()

    def test_rejects_sync_functions(self):
        with pytest.raises(TypeError):

            @log_function_call(logging.getLogger("tests"))
            def sync():
                return 1
