"""
Configuration loader with YAML + environment variable support.

Loads config/config.yaml (optional), replaces ${VAR} / ${VAR:default}
placeholders, applies environment overrides and validates the result with
the pydantic models in settings.py.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from ..exceptions import ConfigurationError
from .settings import AppConfig

logger = logging.getLogger(__name__)

# Repository root (src/autotrader/config -> repo)
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent.parent


class ConfigLoader:
    """
    Configuration loader.

    Features:
    - Loads YAML files from the config directory
    - Loads a .env file through python-dotenv
    - Overrides selected keys from environment variables
    - Validates with pydantic and caches the result
    """

    def __init__(self, config_dir: Optional[Path] = None, env_file: Optional[Path] = None):
        """
        Args:
            config_dir: Configuration directory (defaults to PROJECT_ROOT/config)
            env_file: .env file to load (defaults to PROJECT_ROOT/.env)
        """
        self.config_dir = Path(config_dir) if config_dir else PROJECT_ROOT / "config"
        self.env_file = Path(env_file) if env_file else PROJECT_ROOT / ".env"
        self._cache: Dict[str, AppConfig] = {}

        if self.env_file.exists():
            load_dotenv(self.env_file)
            logger.debug(f"Loaded environment from {self.env_file}")

        logger.info(f"ConfigLoader initialized with config_dir: {self.config_dir}")

    def load_yaml(self, config_name: str) -> Dict[str, Any]:
        """
        Load a YAML configuration file.

        Raises:
            FileNotFoundError: If the file does not exist
            ConfigurationError: If the file is not valid YAML
        """
        config_path = self.config_dir / f"{config_name}.yaml"
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        logger.debug(f"Loading YAML config from: {config_path}")
        try:
            with open(config_path, 'r') as f:
                config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

        return self._replace_env_vars(config)

    def _replace_env_vars(self, config: Any) -> Any:
        """Recursively replace ${VAR} and ${VAR:default} placeholders."""
        if isinstance(config, dict):
            return {k: self._replace_env_vars(v) for k, v in config.items()}
        if isinstance(config, list):
            return [self._replace_env_vars(item) for item in config]
        if isinstance(config, str) and config.startswith("${") and config.endswith("}"):
            env_expr = config[2:-1]
            if ":" in env_expr:
                var_name, default_value = env_expr.split(":", 1)
                return os.getenv(var_name.strip(), default_value.strip())

            value = os.getenv(env_expr.strip())
            if value is None:
                logger.warning(f"Environment variable {env_expr.strip()} not set, using empty string")
                return ""
            return value
        return config

    def load_app_config(self, use_cache: bool = True) -> AppConfig:
        """
        Load and validate the complete application configuration.

        Raises:
            ConfigurationError: If validation fails
        """
        cache_key = "app_config"
        if use_cache and cache_key in self._cache:
            return self._cache[cache_key]

        config_data: Dict[str, Any] = {}
        try:
            config_data.update(self.load_yaml("config"))
        except FileNotFoundError:
            logger.warning("config.yaml not found, using defaults")

        config_data = self._apply_env_overrides(config_data)

        try:
            app_config = AppConfig(**config_data)
        except ValidationError as e:
            logger.error(f"Configuration validation failed: {e}")
            raise ConfigurationError(str(e)) from e

        logger.info("Application configuration loaded and validated successfully")
        if use_cache:
            self._cache[cache_key] = app_config
        return app_config

    def _apply_env_overrides(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply environment variable overrides.

        ENVIRONMENT, LOG_LEVEL, LOG_FILE, API_HOST, API_PORT -> system
        TRADE_UNIT -> trading.trade_unit
        EVENT_QUEUE_SIZE -> event_bus.max_queue_size
        """
        system = config.setdefault("system", {}) or {}
        config["system"] = system
        trading = config.setdefault("trading", {}) or {}
        config["trading"] = trading
        event_bus = config.setdefault("event_bus", {}) or {}
        config["event_bus"] = event_bus

        if env_val := os.getenv("ENVIRONMENT"):
            system["environment"] = env_val
        if env_val := os.getenv("LOG_LEVEL"):
            system["log_level"] = env_val.upper()
        if env_val := os.getenv("LOG_FILE"):
            system["log_file"] = env_val
        if env_val := os.getenv("API_HOST"):
            system["api_host"] = env_val
        if env_val := os.getenv("API_PORT"):
            system["api_port"] = int(env_val)
        if env_val := os.getenv("TRADE_UNIT"):
            trading["trade_unit"] = float(env_val)
        if env_val := os.getenv("EVENT_QUEUE_SIZE"):
            event_bus["max_queue_size"] = int(env_val)

        return config

    def reload(self) -> AppConfig:
        """Drop the cache and load from disk again."""
        logger.info("Reloading configuration from disk")
        self._cache.clear()
        return self.load_app_config(use_cache=False)


def load_app_config(config_dir: Optional[Path] = None) -> AppConfig:
    """Convenience wrapper: build a loader and return a validated AppConfig."""
    return ConfigLoader(config_dir=config_dir).load_app_config()
