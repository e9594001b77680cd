"""Structured logging for push delivery.

Provides JSON/console logging, delivery context binding and
performance timing.
"""

from src.logging_config.config import LogFormat, LoggingConfig, LogLevel
from src.logging_config.context import LogContext, get_context_dict
from src.logging_config.performance import log_performance
from src.logging_config.setup import configure_logging, get_logger

__all__ = [
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "LogContext",
    "configure_logging",
    "get_context_dict",
    "get_logger",
    "log_performance",
]
