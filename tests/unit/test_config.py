"""
Unit tests for configuration models and the YAML loader.
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from autotrader.config.loader import ConfigLoader
from autotrader.config.settings import AppConfig, EventBusConfig, TradingConfig
from autotrader.exceptions import ConfigurationError

REPO_CONFIG_DIR = Path(__file__).resolve().parents[2] / "config"

OVERRIDE_VARS = (
    "ENVIRONMENT",
    "LOG_LEVEL",
    "LOG_FILE",
    "API_HOST",
    "API_PORT",
    "TRADE_UNIT",
    "EVENT_QUEUE_SIZE",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in OVERRIDE_VARS + ("AUTOTRADER_TEST_UNIT",):
        monkeypatch.delenv(name, raising=False)


def make_loader(tmp_path, yaml_text=None):
    if yaml_text is not None:
        (tmp_path / "config.yaml").write_text(yaml_text)
    return ConfigLoader(config_dir=tmp_path, env_file=tmp_path / ".env")


# ============================================================================
# Settings Tests
# ============================================================================

def test_trading_defaults():
    config = TradingConfig()

    assert config.trade_unit == 500.0
    assert config.sell_only_enter_cash == 500.0
    assert config.sell_only_exit_cash == 1000.0
    assert config.stop_loss_pct == 8.0
    assert config.take_profit_pct == 15.0
    assert config.sell_only_take_profit_pct == 5.0
    assert "bull_flag" in config.bullish_patterns
    assert "double_top" in config.bearish_patterns


def test_hysteresis_band_scales_with_trade_unit():
    config = TradingConfig(trade_unit=250.0)

    assert config.sell_only_enter_cash == 250.0
    assert config.sell_only_exit_cash == 500.0


def test_inverted_hysteresis_band_rejected():
    with pytest.raises(ValidationError):
        TradingConfig(sell_only_enter_units=2.0, sell_only_exit_units=1.0)


def test_invalid_values_rejected():
    with pytest.raises(ValidationError):
        TradingConfig(trade_unit=0)
    with pytest.raises(ValidationError):
        EventBusConfig(overflow_policy="explode")


# ============================================================================
# Loader Tests
# ============================================================================

def test_missing_yaml_uses_defaults(tmp_path):
    config = make_loader(tmp_path).load_app_config()

    assert config == AppConfig()


def test_yaml_values_and_placeholders(tmp_path, monkeypatch):
    monkeypatch.setenv("AUTOTRADER_TEST_UNIT", "750")
    loader = make_loader(tmp_path, (
        "system:\n"
        "  environment: ${ENVIRONMENT:staging}\n"
        "trading:\n"
        "  trade_unit: ${AUTOTRADER_TEST_UNIT}\n"
        "  stop_loss_pct: 6.5\n"
        "event_bus:\n"
        "  overflow_policy: drop\n"
    ))

    config = loader.load_app_config()

    assert config.system.environment == "staging"
    assert config.trading.trade_unit == 750.0
    assert config.trading.stop_loss_pct == 6.5
    assert config.event_bus.overflow_policy == "drop"


def test_environment_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("TRADE_UNIT", "250")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("EVENT_QUEUE_SIZE", "64")
    loader = make_loader(tmp_path, "trading:\n  trade_unit: 500\n")

    config = loader.load_app_config()

    assert config.trading.trade_unit == 250.0
    assert config.system.log_level == "DEBUG"
    assert config.event_bus.max_queue_size == 64


def test_invalid_yaml_raises(tmp_path):
    loader = make_loader(tmp_path, "trading: [unclosed\n")

    with pytest.raises(ConfigurationError):
        loader.load_app_config()


def test_invalid_values_raise_configuration_error(tmp_path):
    loader = make_loader(tmp_path, "trading:\n  trade_unit: -5\n")

    with pytest.raises(ConfigurationError):
        loader.load_app_config()


def test_config_is_cached_until_reload(tmp_path):
    loader = make_loader(tmp_path, "trading:\n  trade_unit: 500\n")

    first = loader.load_app_config()
    assert loader.load_app_config() is first

    (tmp_path / "config.yaml").write_text("trading:\n  trade_unit: 300\n")
    reloaded = loader.reload()

    assert reloaded is not first
    assert reloaded.trading.trade_unit == 300.0


def test_repository_config_is_valid():
    config = ConfigLoader(config_dir=REPO_CONFIG_DIR, env_file=REPO_CONFIG_DIR / ".env").load_app_config()

    assert config.trading.trade_unit == 500.0
    assert config.system.environment == "development"
    assert config.event_bus.overflow_policy == "block"
