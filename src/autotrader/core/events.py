"""
Event definitions for the autotrader event bus.

Inbound events (published by pattern/alert sources):
- PatternDetected
- AlertTriggered

Outbound events (published by the AutoTrader for downstream transport):
- TradeExecuted
- StatsUpdate
- SellOnlyModeChanged
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


# ============================================================================
# Base Event
# ============================================================================

@dataclass
class Event:
    """Base class for all events. Subclasses carry their own timestamp."""

    @property
    def event_type(self) -> str:
        return self.__class__.__name__

    def to_dict(self) -> Dict[str, Any]:
        """Shallow dict view, used by the status API and JSON logging."""
        data = {"event_type": self.event_type}
        for name, value in self.__dict__.items():
            if isinstance(value, datetime):
                value = value.isoformat()
            elif hasattr(value, "to_dict"):
                value = value.to_dict()
            data[name] = value
        return data


# ============================================================================
# Inbound Events
# ============================================================================

@dataclass
class PatternDetected(Event):
    """A pattern detector found a pattern on a token."""
    id: str
    token_id: str
    pattern_type: str
    confidence: float
    timeframe: str = "1h"
    timestamp: datetime = field(default_factory=utc_now)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class AlertTriggered(Event):
    """A scanner alert fired on a token."""
    token_id: str
    alert_type: str
    confidence: float
    timestamp: datetime = field(default_factory=utc_now)
    metadata: Dict[str, Any] = field(default_factory=dict)


# ============================================================================
# Outbound Events
# ============================================================================

@dataclass
class TradeExecuted(Event):
    """A paper (or real-money) trade was executed for a portfolio."""
    portfolio_id: str
    trade: Any
    signal: Any
    token: Any
    stats: Optional[Dict[str, Any]] = None
    mode: str = "paper"
    profit_loss: Optional[float] = None
    profit_percentage: Optional[float] = None
    timestamp: datetime = field(default_factory=utc_now)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class StatsUpdate(Event):
    """Portfolio valuation after a monitor sweep."""
    portfolio_id: str
    total_value: float
    total_pnl: float
    total_trades: int
    today_trades: int
    active_positions: int
    timestamp: datetime = field(default_factory=utc_now)
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SellOnlyModeChanged(Event):
    """A portfolio entered or left sell-only mode."""
    portfolio_id: str
    sell_only: bool
    cash_balance: float
    timestamp: datetime = field(default_factory=utc_now)
    metadata: Dict[str, Any] = field(default_factory=dict)
