"""
Value types produced by the technical analyzer.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional


@dataclass
class PricePoint:
    """One sample of an ascending-time price series."""
    price: float
    volume: float = 0.0
    timestamp: Optional[datetime] = None


@dataclass
class PriceLevel:
    """Support or resistance level."""
    price: float
    strength: float  # 0-100 score
    touches: int
    level_type: str  # 'support' or 'resistance'
    confidence: float


@dataclass
class FibonacciLevels:
    """Fibonacci retracement/extension levels over the analyzed range."""
    levels: Dict[float, float]  # ratio -> price
    trend: str  # 'up' or 'down'
    direction: str  # 'retracement' (uptrend) or 'extension' (downtrend)
    entry_levels: List[float]
    exit_levels: List[float]
    stop_loss: float


@dataclass
class PivotPoints:
    """Classic pivots plus Fibonacci and Camarilla variants."""
    pivot: float
    resistance1: float
    resistance2: float
    resistance3: float
    support1: float
    support2: float
    support3: float
    fibonacci: Dict[str, float] = field(default_factory=dict)
    camarilla: Dict[str, float] = field(default_factory=dict)


@dataclass
class ChartPattern:
    """Geometric chart pattern with its trade plan."""
    pattern_type: str
    confidence: float
    entry: float
    target: float
    stop_loss: float
    risk_reward_ratio: float
    direction: str  # 'bullish', 'bearish' or 'neutral'
    description: str = ""

    @property
    def is_bullish(self) -> bool:
        return self.direction == "bullish"

    @property
    def is_bearish(self) -> bool:
        return self.direction == "bearish"


@dataclass
class EntryExitSignal:
    """Composite buy/sell/hold recommendation."""
    action: str  # 'buy', 'sell' or 'hold'
    price: float
    confidence: float
    stop_loss: float
    take_profit: List[float]
    risk_reward_ratio: float
    reasoning: List[str]
    support_levels: List[float]
    resistance_levels: List[float]


@dataclass
class TrailingStopState:
    """Trailing stop after observing the latest price."""
    current_stop: float
    highest_price: float
    trail_pct: float
    triggered: bool
