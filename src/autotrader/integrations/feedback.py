"""
Pattern performance feedback.

The AutoTrader scales raw pattern confidence by a per-pattern multiplier
and compares it against a dynamic minimum confidence. PatternPerformanceTracker
derives both from closed-trade outcomes:

- multiplier 1.2 when win rate > 60% and average return > 0.02,
  0.9 when win rate < 40% or average return < -0.02, else 1.0
  (needs at least 5 outcomes per pattern)
- minimum confidence 90 when the recent win rate < 40%, 60 when > 70%,
  otherwise the configured default (needs at least 10 recent outcomes)
"""

import logging
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Deque, Dict, List, Optional, Protocol, runtime_checkable

from ..core.events import TradeExecuted

logger = logging.getLogger(__name__)


@dataclass
class PatternPerformance:
    """Historical performance of one pattern type."""
    pattern_type: str
    timeframe: str
    confidence_multiplier: float = 1.0
    win_rate: Optional[float] = None
    average_return: Optional[float] = None
    total_trades: int = 0
    successful_trades: int = 0


@runtime_checkable
class PatternPerformanceFeedback(Protocol):
    """Interface the AutoTrader consumes for confidence scaling."""

    async def start(self) -> None: ...

    async def get_pattern_performance(
        self, pattern_type: str, timeframe: str
    ) -> Optional[PatternPerformance]: ...

    async def get_current_min_confidence(self) -> float: ...


class PatternPerformanceTracker:
    """
    In-process feedback implementation.

    Outcomes are aggregated per pattern type; the timeframe argument is
    echoed back but not split on.
    """

    MIN_TRADES_FOR_LEARNING = 5
    MIN_RECENT_FOR_THRESHOLD = 10
    RECENT_WINDOW = 50

    WIN_RATE_GOOD = 0.6
    PROFITABILITY_GOOD = 0.02
    BOOST_RATE = 0.2
    DECAY_RATE = 0.1
    MAX_MULTIPLIER = 2.0
    MIN_MULTIPLIER = 0.3

    def __init__(self, default_min_confidence: float = 75.0):
        self.default_min_confidence = default_min_confidence
        self._outcomes: Dict[str, List[float]] = defaultdict(list)
        self._recent: Deque[float] = deque(maxlen=self.RECENT_WINDOW)
        self._overrides: Dict[str, PatternPerformance] = {}
        self._min_confidence = default_min_confidence
        self.is_started = False
        self.logger = logging.getLogger(f"{__name__}.PatternPerformanceTracker")

    async def start(self) -> None:
        self.is_started = True
        self.logger.info("🧠 Pattern performance tracker started")

    # ========================================================================
    # Recording
    # ========================================================================

    def record_outcome(self, pattern_type: str, realized_pnl: float) -> None:
        """Record the realized P&L of a closed trade opened by `pattern_type`."""
        self._outcomes[pattern_type].append(realized_pnl)
        self._recent.append(realized_pnl)
        self._adjust_min_confidence()

    def set_performance(self, performance: PatternPerformance) -> None:
        """Pin a pattern's performance (seeding from an external history)."""
        self._overrides[performance.pattern_type] = performance

    async def on_trade_executed(self, event: TradeExecuted) -> None:
        """Event bus handler: learn from closed paper trades."""
        pattern_type = event.metadata.get("pattern_type")
        if event.mode != "paper" or event.profit_loss is None or not pattern_type:
            return
        self.record_outcome(pattern_type, event.profit_loss)

    def _adjust_min_confidence(self) -> None:
        if len(self._recent) < self.MIN_RECENT_FOR_THRESHOLD:
            return

        recent_win_rate = sum(1 for pnl in self._recent if pnl > 0) / len(self._recent)
        if recent_win_rate < 0.4:
            new_min = min(90.0, self.default_min_confidence + 15)
        elif recent_win_rate > 0.7:
            new_min = max(60.0, self.default_min_confidence - 15)
        else:
            new_min = self.default_min_confidence

        if new_min != self._min_confidence:
            self.logger.info(
                f"🎯 Dynamic threshold updated: {new_min}% "
                f"(recent win rate {recent_win_rate * 100:.1f}%)"
            )
        self._min_confidence = new_min

    # ========================================================================
    # Queries
    # ========================================================================

    async def get_pattern_performance(
        self, pattern_type: str, timeframe: str
    ) -> Optional[PatternPerformance]:
        if pattern_type in self._overrides:
            return self._overrides[pattern_type]

        outcomes = self._outcomes.get(pattern_type)
        if not outcomes or len(outcomes) < self.MIN_TRADES_FOR_LEARNING:
            return None

        wins = sum(1 for pnl in outcomes if pnl > 0)
        win_rate = wins / len(outcomes)
        average_return = sum(outcomes) / len(outcomes)

        multiplier = 1.0
        if win_rate > self.WIN_RATE_GOOD and average_return > self.PROFITABILITY_GOOD:
            multiplier = min(1.0 + self.BOOST_RATE, self.MAX_MULTIPLIER)
        elif win_rate < 0.4 or average_return < -0.02:
            multiplier = max(1.0 - self.DECAY_RATE, self.MIN_MULTIPLIER)

        return PatternPerformance(
            pattern_type=pattern_type,
            timeframe=timeframe,
            confidence_multiplier=multiplier,
            win_rate=win_rate,
            average_return=average_return,
            total_trades=len(outcomes),
            successful_trades=wins,
        )

    async def get_current_min_confidence(self) -> float:
        return self._min_confidence
