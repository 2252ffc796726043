"""Logging Setup.

One-call configuration for the engine's logs. JSON lines for production
hosts, a compact colored line per record for development. Both carry the
evaluation context (symbol, timeframe, cycle) bound by ``CycleContext``.
"""

import dataclasses
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional

from src.logging_config.config import (
    DEFAULT_LOGGING_CONFIG,
    ENGINE_LOGGER,
    LogFormat,
    LoggingConfig,
    LogLevel,
)
from src.logging_config.context import get_context_dict
from src.settings import Settings

# Record attributes copied into the output when set via ``extra=``.
EXTRA_FIELDS = ("duration_ms", "dimension", "error_kind", "condition")

_CYCLE_KEYS = ("symbol", "timeframe", "cycle")


def _record_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {key: getattr(record, key) for key in EXTRA_FIELDS if hasattr(record, key)}


def _cycle_tag(ctx: dict[str, Any]) -> str:
    """Render bound context as ``[BTCUSDT/1h #42 key=value]``."""
    market = "/".join(str(ctx[k]) for k in ("symbol", "timeframe") if k in ctx)
    parts = [market] if market else []
    if "cycle" in ctx:
        parts.append(f"#{ctx['cycle']}")
    parts.extend(f"{k}={v}" for k, v in ctx.items() if k not in _CYCLE_KEYS)
    return f" [{' '.join(parts)}]" if parts else ""


class StructuredFormatter(logging.Formatter):
    """JSON structured log formatter.

    One JSON object per line. The bound cycle context and any known extra
    fields are merged at the top level so log pipelines can filter on
    ``symbol`` or ``cycle`` directly.
    """

    def __init__(self, service_name: str = "regime-fusion", include_caller: bool = True):
        super().__init__()
        self.service_name = service_name
        self.include_caller = include_caller

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
        }
        if self.include_caller:
            log_entry.update(
                module=record.module, function=record.funcName, line=record.lineno
            )
        log_entry.update(get_context_dict())
        log_entry.update(_record_fields(record))

        if record.exc_info and record.exc_info[0] is not None:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }
        return json.dumps(log_entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Colored single-line formatter for development.

    ``12:00:01.250 INFO     [BTCUSDT/1h #42] src.regime_fusion.tracker: ...``
    """

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        timestamp = datetime.fromtimestamp(record.created, timezone.utc).strftime("%H:%M:%S.%f")[:-3]
        fields = "".join(f" {k}={v}" for k, v in _record_fields(record).items())

        line = (
            f"{color}{timestamp} {record.levelname:8s}{self.RESET}"
            f"{_cycle_tag(get_context_dict())} "
            f"{record.name}: {record.getMessage()}{fields}"
        )
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


def _config_from_settings(base: LoggingConfig) -> LoggingConfig:
    """Apply REGIME_FUSION_LOG_LEVEL / REGIME_FUSION_LOG_FORMAT overrides."""
    settings = Settings()
    overrides: dict[str, Any] = {}

    env_level = settings.log_level.upper()
    if env_level in LogLevel.__members__:
        overrides["level"] = LogLevel(env_level)
    env_format = settings.log_format.lower()
    if env_format in [f.value for f in LogFormat]:
        overrides["format"] = LogFormat(env_format)

    return dataclasses.replace(base, **overrides)


def configure_logging(config: Optional[LoggingConfig] = None) -> LoggingConfig:
    """Configure logging for the host process.

    Call once at startup. Without an explicit config, the defaults are
    overridden from the environment through ``src.settings.Settings``.

    Returns:
        The effective LoggingConfig.
    """
    if config is None:
        config = _config_from_settings(DEFAULT_LOGGING_CONFIG)

    if config.format == LogFormat.JSON:
        formatter: logging.Formatter = StructuredFormatter(
            service_name=config.service_name,
            include_caller=config.include_caller,
        )
    else:
        formatter = ConsoleFormatter()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, config.level.value))

    engine_logger = logging.getLogger(ENGINE_LOGGER)
    if config.engine_level is not None:
        engine_logger.setLevel(getattr(logging, config.engine_level.value))
    else:
        engine_logger.setLevel(logging.NOTSET)
    return config


def get_logger(name: str) -> logging.Logger:
    """Get a standard library logger; typically called with __name__."""
    return logging.getLogger(name)
