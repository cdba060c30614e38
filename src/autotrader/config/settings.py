"""
Configuration models using Pydantic for type-safe validation.

Models:
- SystemConfig: environment, logging, status API
- TradingConfig: trade unit, sell-only hysteresis, exit bands, pattern lists
- EventBusConfig: queue bound and overflow policy
- AnalyzerConfig: technical analyzer tolerances and windows
- AppConfig: everything above
"""

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, validator


# ============================================================================
# Enums for Configuration
# ============================================================================

class Environment(str, Enum):
    """Deployment environment."""
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    """Logging level."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


# ============================================================================
# System Configuration
# ============================================================================

class SystemConfig(BaseModel):
    """System-wide settings."""

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Deployment environment"
    )

    log_level: LogLevel = Field(
        default=LogLevel.INFO,
        description="Logging level"
    )

    log_file: Optional[str] = Field(
        default=None,
        description="Optional log file path"
    )

    json_logs: bool = Field(
        default=False,
        description="Emit JSON-formatted log lines"
    )

    api_host: str = Field(
        default="0.0.0.0",
        description="Status API host"
    )

    api_port: int = Field(
        default=8000,
        ge=1024,
        le=65535,
        description="Status API port"
    )

    class Config:
        use_enum_values = True


# ============================================================================
# Trading Configuration
# ============================================================================

DEFAULT_BULLISH_PATTERNS = [
    "enhanced_bull_flag",
    "macd_golden_cross",
    "stochastic_oversold_reversal",
    "volume_breakout",
    "bull_flag",
]

DEFAULT_BEARISH_PATTERNS = [
    "ml_reversal",
    "head_and_shoulders",
    "double_top",
    "bearish_flag",
    "volume_collapse",
]


class TradingConfig(BaseModel):
    """Decision engine parameters."""

    trade_unit: float = Field(
        default=500.0,
        gt=0.0,
        description="Fixed notional (USD) used for every automated buy"
    )

    sell_only_enter_units: float = Field(
        default=1.0,
        gt=0.0,
        description="Enter sell-only mode when cash < trade_unit x this"
    )

    sell_only_exit_units: float = Field(
        default=2.0,
        gt=0.0,
        description="Leave sell-only mode when cash >= trade_unit x this"
    )

    stop_loss_pct: float = Field(
        default=8.0,
        gt=0.0,
        le=100.0,
        description="Stop-loss when unrealized loss reaches this percentage"
    )

    take_profit_pct: float = Field(
        default=15.0,
        gt=0.0,
        description="Take-profit gain percentage in normal mode"
    )

    sell_only_take_profit_pct: float = Field(
        default=5.0,
        gt=0.0,
        description="Take-profit gain percentage in sell-only mode"
    )

    cash_generation_pct: float = Field(
        default=2.0,
        ge=0.0,
        description="Sell-only mode exits any position above this gain"
    )

    rebalance_min_gain_pct: float = Field(
        default=0.0,
        description="Lower gain bound for a stagnant position"
    )

    rebalance_max_gain_pct: float = Field(
        default=3.0,
        description="Upper gain bound for a stagnant position"
    )

    strong_bullish_confidence: float = Field(
        default=80.0,
        ge=0.0,
        le=100.0,
        description="Bullish confidence above which sell-only mode takes profit"
    )

    profit_taking_confidence_factor: float = Field(
        default=0.8,
        gt=0.0,
        le=1.0,
        description="Confidence discount for profit-taking sells"
    )

    bullish_patterns: List[str] = Field(
        default_factory=lambda: list(DEFAULT_BULLISH_PATTERNS),
        description="Pattern types that produce buy signals"
    )

    bearish_patterns: List[str] = Field(
        default_factory=lambda: list(DEFAULT_BEARISH_PATTERNS),
        description="Pattern types that produce sell signals on held positions"
    )

    buy_alert_types: List[str] = Field(
        default_factory=lambda: ["volume_surge", "price_spike"],
        description="Scanner alert types treated as bullish patterns"
    )

    default_min_confidence: float = Field(
        default=75.0,
        ge=0.0,
        le=100.0,
        description="Minimum confidence when no feedback threshold is available"
    )

    min_pattern_win_rate: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Reject patterns whose historical win rate is below this"
    )

    min_pattern_expectancy: float = Field(
        default=0.5,
        description="Reject patterns whose average return per trade is below this"
    )

    monitor_interval_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="Position monitor sweep interval"
    )

    sync_interval_seconds: float = Field(
        default=60.0,
        gt=0.0,
        description="Enabled-portfolio reconciliation interval"
    )

    startup_timeout_seconds: float = Field(
        default=15.0,
        gt=0.0,
        description="Timeout for starting the performance feedback service"
    )

    default_starting_capital: float = Field(
        default=10000.0,
        gt=0.0,
        description="Starting capital assumed when a portfolio has none recorded"
    )

    @validator('sell_only_exit_units')
    def exit_band_above_entry(cls, v, values):
        """Validate the hysteresis band is not inverted."""
        if 'sell_only_enter_units' in values and v < values['sell_only_enter_units']:
            raise ValueError('sell_only_exit_units must be >= sell_only_enter_units')
        return v

    @property
    def sell_only_enter_cash(self) -> float:
        return self.trade_unit * self.sell_only_enter_units

    @property
    def sell_only_exit_cash(self) -> float:
        return self.trade_unit * self.sell_only_exit_units


# ============================================================================
# Event Bus Configuration
# ============================================================================

class EventBusConfig(BaseModel):
    """Bounded event queue settings."""

    max_queue_size: int = Field(
        default=1000,
        ge=1,
        description="Maximum queued events"
    )

    overflow_policy: str = Field(
        default="block",
        pattern="^(block|drop)$",
        description="block: wait publish_timeout then drop; drop: drop immediately"
    )

    publish_timeout_seconds: float = Field(
        default=1.0,
        gt=0.0,
        description="How long a blocking publish waits for a free slot"
    )


# ============================================================================
# Analyzer Configuration
# ============================================================================

class AnalyzerConfig(BaseModel):
    """Technical analyzer parameters."""

    max_samples: int = Field(
        default=1000,
        ge=10,
        description="Only the most recent N samples are analyzed"
    )

    touch_tolerance_pct: float = Field(
        default=1.5,
        gt=0.0,
        description="Price distance counted as a touch of a level"
    )

    merge_tolerance_pct: float = Field(
        default=2.0,
        gt=0.0,
        description="Same-type levels closer than this are merged"
    )

    max_levels: int = Field(
        default=10,
        ge=1,
        description="Support/resistance levels returned"
    )

    pivot_lookback: int = Field(
        default=24,
        ge=1,
        description="Samples used for pivot points"
    )

    level_proximity_pct: float = Field(
        default=2.0,
        gt=0.0,
        description="Distance to a support/resistance level counted as 'near'"
    )

    fib_proximity_pct: float = Field(
        default=2.0,
        gt=0.0,
        description="Distance to a Fibonacci entry level counted as 'near'"
    )

    trailing_stop_pct: float = Field(
        default=5.0,
        gt=0.0,
        lt=100.0,
        description="Default trailing stop distance"
    )


# ============================================================================
# Complete Application Configuration
# ============================================================================

class AppConfig(BaseModel):
    """Complete application configuration."""

    system: SystemConfig = Field(
        default_factory=SystemConfig,
        description="System configuration"
    )

    trading: TradingConfig = Field(
        default_factory=TradingConfig,
        description="Decision engine configuration"
    )

    event_bus: EventBusConfig = Field(
        default_factory=EventBusConfig,
        description="Event bus configuration"
    )

    analyzer: AnalyzerConfig = Field(
        default_factory=AnalyzerConfig,
        description="Technical analyzer configuration"
    )

    class Config:
        use_enum_values = True
