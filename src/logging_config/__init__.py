"""Structured Logging & Cycle Context.

Provides structured JSON logging, per-cycle context binding
(symbol, timeframe, cycle), and performance timing for the engine.
"""

from src.logging_config.config import LogFormat, LoggingConfig, LogLevel
from src.logging_config.context import CycleContext, get_context_dict
from src.logging_config.performance import PerformanceTimer, log_performance
from src.logging_config.setup import configure_logging, get_logger

__all__ = [
    "CycleContext",
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "PerformanceTimer",
    "configure_logging",
    "get_context_dict",
    "get_logger",
    "log_performance",
]
