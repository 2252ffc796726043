"""Logging Configuration.

Log levels, output formats and slow-cycle threshold for the engine.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class LogLevel(str, Enum):
    """Log level options."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output format."""
    JSON = "json"
    CONSOLE = "console"


# Logger hierarchy of the engine modules.
ENGINE_LOGGER = "src.regime_fusion"


@dataclass
class LoggingConfig:
    """Structured logging configuration.

    Attributes:
        level: Root log level for the host process.
        engine_level: Separate level for the engine's loggers, e.g. DEBUG
            to see per-cycle detail while the host stays at INFO.
        slow_threshold_ms: Cycle time above which an evaluation is logged
            as slow.
    """

    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.JSON
    engine_level: Optional[LogLevel] = None
    include_caller: bool = True
    slow_threshold_ms: float = 50.0
    service_name: str = "regime-fusion"


DEFAULT_LOGGING_CONFIG = LoggingConfig()
