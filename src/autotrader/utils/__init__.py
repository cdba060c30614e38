"""Shared utilities."""

from .log_buffer import LogBuffer, setup_log_buffer
from .logger import JSONFormatter, TradingLogger, get_trading_logger, setup_logging

__all__ = [
    'JSONFormatter',
    'TradingLogger',
    'get_trading_logger',
    'setup_logging',
    'LogBuffer',
    'setup_log_buffer',
]
