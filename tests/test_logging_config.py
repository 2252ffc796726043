"""Tests for structured logging and cycle context."""

import json
import logging
import sys
import time

import pytest

from src.logging_config.config import ENGINE_LOGGER, LogFormat, LoggingConfig, LogLevel
from src.logging_config.context import CycleContext, get_context_dict
from src.logging_config.performance import PerformanceTimer, log_performance
from src.logging_config.setup import (
    ConsoleFormatter,
    StructuredFormatter,
    configure_logging,
    get_logger,
)


def _record(msg="test", level=logging.INFO, name="test", lineno=1, exc_info=None):
    return logging.LogRecord(
        name=name, level=level, pathname="test.py",
        lineno=lineno, msg=msg, args=(), exc_info=exc_info,
    )


@pytest.fixture
def restore_root_logger():
    root = logging.getLogger()
    engine = logging.getLogger(ENGINE_LOGGER)
    handlers, level, engine_level = list(root.handlers), root.level, engine.level
    yield root
    root.handlers[:] = handlers
    root.setLevel(level)
    engine.setLevel(engine_level)


class TestLoggingConfig:
    """Tests for logging configuration dataclasses."""

    def test_default_config_values(self):
        config = LoggingConfig()
        assert config.level == LogLevel.INFO
        assert config.format == LogFormat.JSON
        assert config.include_caller is True
        assert config.slow_threshold_ms == 50.0
        assert config.service_name == "regime-fusion"

    def test_custom_config(self):
        config = LoggingConfig(
            level=LogLevel.DEBUG,
            format=LogFormat.CONSOLE,
            slow_threshold_ms=5.0,
            service_name="test",
        )
        assert config.level == LogLevel.DEBUG
        assert config.format == LogFormat.CONSOLE
        assert config.slow_threshold_ms == 5.0

    def test_log_format_enum_values(self):
        assert LogFormat.JSON.value == "json"
        assert LogFormat.CONSOLE.value == "console"


class TestCycleContext:
    """Tests for per-cycle context binding."""

    def test_binds_symbol_timeframe_cycle(self):
        with CycleContext(symbol="BTCUSDT", timeframe="1h", cycle=3):
            ctx = get_context_dict()
            assert ctx == {"symbol": "BTCUSDT", "timeframe": "1h", "cycle": 3}

    def test_context_dict_empty_outside(self):
        assert get_context_dict() == {}

    def test_cleanup_on_exit(self):
        with CycleContext(symbol="ETHUSDT", timeframe="4h", cycle=1):
            pass
        assert get_context_dict() == {}

    def test_cleanup_on_exception(self):
        with pytest.raises(RuntimeError):
            with CycleContext(symbol="ETHUSDT", cycle=1):
                raise RuntimeError("boom")
        assert get_context_dict() == {}

    def test_cycle_zero_is_bound(self):
        with CycleContext(cycle=0):
            assert get_context_dict()["cycle"] == 0

    def test_bind_extra_context(self):
        with CycleContext(symbol="BTCUSDT") as ctx:
            ctx.bind(dimension="volatility")
            d = get_context_dict()
            assert d["dimension"] == "volatility"
            assert d["symbol"] == "BTCUSDT"
        assert "dimension" not in get_context_dict()

    def test_nested_contexts_restore_outer(self):
        with CycleContext(symbol="outer", cycle=1):
            with CycleContext(symbol="inner", cycle=2):
                assert get_context_dict()["symbol"] == "inner"
            assert get_context_dict() == {"symbol": "outer", "cycle": 1}

    def test_elapsed_ms(self):
        with CycleContext() as ctx:
            time.sleep(0.01)
            assert ctx.elapsed_ms >= 10


class TestStructuredFormatter:
    """Tests for JSON structured log formatting."""

    def test_formats_as_json(self):
        parsed = json.loads(StructuredFormatter().format(_record("hello world")))
        assert parsed["message"] == "hello world"
        assert parsed["level"] == "INFO"
        assert parsed["logger"] == "test"
        assert parsed["service"] == "regime-fusion"
        assert "timestamp" in parsed

    def test_includes_caller_info(self):
        parsed = json.loads(StructuredFormatter(include_caller=True).format(_record(lineno=42)))
        assert parsed["line"] == 42
        assert "module" in parsed
        assert "function" in parsed

    def test_excludes_caller_when_disabled(self):
        parsed = json.loads(StructuredFormatter(include_caller=False).format(_record()))
        assert "line" not in parsed
        assert "function" not in parsed

    def test_includes_cycle_context(self):
        formatter = StructuredFormatter()
        with CycleContext(symbol="BTCUSDT", timeframe="1h", cycle=9):
            parsed = json.loads(formatter.format(_record()))
        assert parsed["symbol"] == "BTCUSDT"
        assert parsed["timeframe"] == "1h"
        assert parsed["cycle"] == 9

    def test_formats_exception(self):
        formatter = StructuredFormatter()
        try:
            raise ValueError("test error")
        except ValueError:
            record = _record("failed", level=logging.ERROR, exc_info=sys.exc_info())
        parsed = json.loads(formatter.format(record))
        assert parsed["exception"]["type"] == "ValueError"
        assert "test error" in parsed["exception"]["message"]

    def test_includes_known_extra_fields_only(self):
        record = _record()
        record.duration_ms = 4.5
        record.condition = "trending"
        record.unrelated = "x"
        parsed = json.loads(StructuredFormatter().format(record))
        assert parsed["duration_ms"] == 4.5
        assert parsed["condition"] == "trending"
        assert "unrelated" not in parsed


class TestConsoleFormatter:
    """Tests for colored console log formatting."""

    def test_formats_readable_output(self):
        output = ConsoleFormatter().format(_record("hello", name="regime.tracker"))
        assert "regime.tracker" in output
        assert "hello" in output

    def test_includes_cycle_tag(self):
        with CycleContext(symbol="BTCUSDT", timeframe="1h", cycle=2):
            output = ConsoleFormatter().format(_record())
        assert "[BTCUSDT/1h #2]" in output

    def test_bound_extra_in_tag(self):
        with CycleContext(symbol="BTCUSDT") as ctx:
            ctx.bind(dimension="trend")
            output = ConsoleFormatter().format(_record())
        assert "[BTCUSDT dimension=trend]" in output

    def test_no_tag_outside_cycle(self):
        output = ConsoleFormatter().format(_record("plain"))
        assert " [" not in output

    def test_includes_extra_fields(self):
        record = _record()
        record.duration_ms = 3.2
        assert "duration_ms=3.2" in ConsoleFormatter().format(record)

    def test_has_color_codes(self):
        output = ConsoleFormatter().format(_record(level=logging.ERROR))
        assert "\033[31m" in output


class TestConfigureLogging:
    """Tests for the configure_logging setup function."""

    def test_json_format(self, restore_root_logger):
        configure_logging(LoggingConfig(format=LogFormat.JSON))
        assert len(restore_root_logger.handlers) == 1
        assert isinstance(restore_root_logger.handlers[0].formatter, StructuredFormatter)

    def test_console_format(self, restore_root_logger):
        configure_logging(LoggingConfig(format=LogFormat.CONSOLE))
        assert isinstance(restore_root_logger.handlers[0].formatter, ConsoleFormatter)

    def test_sets_log_level(self, restore_root_logger):
        configure_logging(LoggingConfig(level=LogLevel.DEBUG))
        assert restore_root_logger.level == logging.DEBUG

    def test_engine_level(self, restore_root_logger):
        configure_logging(LoggingConfig(level=LogLevel.WARNING, engine_level=LogLevel.DEBUG))
        assert restore_root_logger.level == logging.WARNING
        assert logging.getLogger("src.regime_fusion.tracker").getEffectiveLevel() == logging.DEBUG
        configure_logging(LoggingConfig(level=LogLevel.WARNING))
        assert logging.getLogger(ENGINE_LOGGER).level == logging.NOTSET

    def test_env_overrides_defaults(self, restore_root_logger, monkeypatch):
        monkeypatch.setenv("REGIME_FUSION_LOG_LEVEL", "warning")
        monkeypatch.setenv("REGIME_FUSION_LOG_FORMAT", "CONSOLE")
        config = configure_logging()
        assert config.level == LogLevel.WARNING
        assert config.format == LogFormat.CONSOLE
        assert restore_root_logger.level == logging.WARNING
        assert isinstance(restore_root_logger.handlers[0].formatter, ConsoleFormatter)

    def test_invalid_env_value_keeps_default(self, restore_root_logger, monkeypatch):
        monkeypatch.setenv("REGIME_FUSION_LOG_LEVEL", "verbose")
        config = configure_logging()
        assert config.level == LogLevel.INFO

    def test_get_logger_returns_logger(self):
        logger = get_logger("regime.test")
        assert isinstance(logger, logging.Logger)
        assert logger.name == "regime.test"


class TestPerformanceLogging:
    """Tests for performance timing decorator and context manager."""

    def test_log_performance_returns_value(self):
        @log_performance(threshold_ms=10000)
        def fast_func():
            return 42

        assert fast_func() == 42

    def test_log_performance_preserves_name(self):
        @log_performance()
        def my_function():
            """My docstring."""

        assert my_function.__name__ == "my_function"
        assert my_function.__doc__ == "My docstring."

    def test_log_performance_with_exception(self, caplog):
        @log_performance(threshold_ms=10000)
        def failing_func():
            raise ValueError("test error")

        with caplog.at_level(logging.DEBUG):
            with pytest.raises(ValueError, match="test error"):
                failing_func()
        failures = [r for r in caplog.records if "failed after" in r.getMessage()]
        assert len(failures) == 1
        assert not any("completed in" in r.getMessage() for r in caplog.records)

    def test_slow_call_logged_as_warning(self, caplog):
        @log_performance(threshold_ms=0)
        def slow_func():
            return None

        with caplog.at_level(logging.WARNING):
            slow_func()
        assert any("Slow operation" in r.getMessage() for r in caplog.records)
        assert caplog.records[-1].duration_ms >= 0

    def test_performance_timer_records_duration(self):
        with PerformanceTimer("cluster") as timer:
            time.sleep(0.01)
        assert timer.duration_ms >= 10

    def test_performance_timer_with_exception(self):
        with pytest.raises(ValueError):
            with PerformanceTimer("failing_op") as timer:
                raise ValueError("oops")
        assert timer.duration_ms >= 0

    def test_default_threshold(self):
        assert PerformanceTimer("op").threshold_ms == 50.0

    def test_custom_threshold(self):
        timer = PerformanceTimer("op", threshold_ms=5.0)
        assert timer.operation_name == "op"
        assert timer.threshold_ms == 5.0
