"""
Configuration management module.

Loads configuration from YAML files and validates it with pydantic.
"""

from .loader import ConfigLoader, load_app_config
from .settings import (
    AnalyzerConfig,
    AppConfig,
    EventBusConfig,
    SystemConfig,
    TradingConfig,
)

__all__ = [
    'ConfigLoader',
    'load_app_config',
    'AppConfig',
    'SystemConfig',
    'TradingConfig',
    'EventBusConfig',
    'AnalyzerConfig',
]
