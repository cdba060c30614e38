"""
Technical Analyzer - pure price-series analysis.

Turns an ascending-time sequence of PricePoints into support/resistance
levels, Fibonacci levels, pivot points, chart patterns and a composite
entry/exit recommendation. No I/O and no state beyond configuration.
"""

import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..config.settings import AnalyzerConfig
from .levels import fibonacci_levels, pivot_points, support_resistance
from .models import (
    ChartPattern,
    EntryExitSignal,
    FibonacciLevels,
    PivotPoints,
    PricePoint,
    PriceLevel,
    TrailingStopState,
)
from .patterns import detect_chart_patterns

logger = logging.getLogger(__name__)

BASE_CONFIDENCE = 60.0
HOLD_CONFIDENCE = 50.0
MAX_CONFIDENCE = 95.0
FALLBACK_BAND = 0.05
MAX_TARGETS = 3


class TechnicalAnalyzer:
    """
    Facade over the level, pattern and signal calculations.

    Every method accepts the raw PricePoint sequence; non-positive or
    non-finite prices are discarded and only the most recent
    `max_samples` points are used.
    """

    def __init__(self, config: Optional[AnalyzerConfig] = None):
        self.config = config or AnalyzerConfig()

    def _prepare(self, points: Sequence[PricePoint]) -> Tuple[np.ndarray, np.ndarray]:
        if not points:
            return np.array([], dtype=float), np.array([], dtype=float)

        prices = np.array([float(p.price) for p in points], dtype=float)
        volumes = np.array([float(p.volume or 0.0) for p in points], dtype=float)
        valid = np.isfinite(prices) & (prices > 0)
        prices, volumes = prices[valid], volumes[valid]

        cap = self.config.max_samples
        return prices[-cap:], volumes[-cap:]

    # ========================================================================
    # Levels and patterns
    # ========================================================================

    def support_resistance(self, points: Sequence[PricePoint]) -> List[PriceLevel]:
        prices, volumes = self._prepare(points)
        return support_resistance(
            prices,
            volumes,
            touch_tolerance=self.config.touch_tolerance_pct / 100,
            merge_tolerance=self.config.merge_tolerance_pct / 100,
            max_levels=self.config.max_levels,
        )

    def fibonacci(self, points: Sequence[PricePoint]) -> Optional[FibonacciLevels]:
        prices, _ = self._prepare(points)
        return fibonacci_levels(prices)

    def pivot_points(self, points: Sequence[PricePoint]) -> Optional[PivotPoints]:
        prices, _ = self._prepare(points)
        return pivot_points(prices, lookback=self.config.pivot_lookback)

    def chart_patterns(self, points: Sequence[PricePoint]) -> List[ChartPattern]:
        prices, _ = self._prepare(points)
        return detect_chart_patterns(prices)

    # ========================================================================
    # Composite signal
    # ========================================================================

    def entry_exit_signal(self, points: Sequence[PricePoint]) -> Optional[EntryExitSignal]:
        """
        Combine levels, Fibonacci, patterns and pivots into one recommendation.

        Buy when near support, near a Fibonacci entry level or a bullish
        pattern is present; sell overrides buy when near resistance or a
        bearish pattern is present; otherwise hold.

        Returns:
            EntryExitSignal, or None for an empty series
        """
        prices, _ = self._prepare(points)
        if len(prices) == 0:
            return None

        current = float(prices[-1])
        levels = self.support_resistance(points)
        supports = [l.price for l in levels if l.level_type == "support"]
        resistances = [l.price for l in levels if l.level_type == "resistance"]
        fib = self.fibonacci(points)
        pivots = self.pivot_points(points)
        patterns = self.chart_patterns(points)

        level_tol = self.config.level_proximity_pct / 100
        fib_tol = self.config.fib_proximity_pct / 100

        near_support = [s for s in supports if abs(current - s) / s < level_tol]
        near_resistance = [r for r in resistances if abs(current - r) / r < level_tol]
        near_fib_entry = fib is not None and any(
            e > 0 and abs(current - e) / e < fib_tol for e in fib.entry_levels
        )
        bullish = next((p for p in patterns if p.is_bullish), None)
        bearish = next((p for p in patterns if p.is_bearish), None)

        reasoning: List[str] = []
        action = "hold"
        confidence = HOLD_CONFIDENCE
        stop_loss = current * (1 - FALLBACK_BAND)
        targets: List[float] = []

        if near_resistance or bearish:
            action = "sell"
            confidence = BASE_CONFIDENCE
            if near_resistance:
                confidence += 10
                reasoning.append(f"Price near resistance at ${near_resistance[0]:.6f}")
            if bearish:
                confidence += 15
                reasoning.append(
                    f"{bearish.pattern_type.replace('_', ' ')} pattern detected "
                    f"({bearish.confidence:.0f}% confidence)"
                )
            stop_loss, targets = self._sell_plan(current, bearish, supports, resistances)

        elif near_support or near_fib_entry or bullish:
            action = "buy"
            confidence = BASE_CONFIDENCE
            if near_support:
                confidence += 10
                reasoning.append(f"Price near support at ${near_support[0]:.6f}")
            if near_fib_entry:
                confidence += 10
                reasoning.append("Price at a key Fibonacci entry level")
            if bullish:
                confidence += 15
                reasoning.append(
                    f"{bullish.pattern_type.replace('_', ' ')} pattern detected "
                    f"({bullish.confidence:.0f}% confidence)"
                )
            stop_loss, targets = self._buy_plan(current, bullish, supports, resistances, fib)

        if pivots is not None:
            if current > pivots.pivot:
                reasoning.append(f"Price above pivot point (${pivots.pivot:.6f}) - bullish bias")
            else:
                reasoning.append(f"Price below pivot point (${pivots.pivot:.6f}) - bearish bias")

        targets = targets[:MAX_TARGETS]
        return EntryExitSignal(
            action=action,
            price=current,
            confidence=min(confidence, MAX_CONFIDENCE),
            stop_loss=stop_loss,
            take_profit=targets,
            risk_reward_ratio=self._risk_reward(action, current, stop_loss, targets),
            reasoning=reasoning,
            support_levels=supports[:3],
            resistance_levels=resistances[:3],
        )

    @staticmethod
    def _buy_plan(
        current: float,
        pattern: Optional[ChartPattern],
        supports: List[float],
        resistances: List[float],
        fib: Optional[FibonacciLevels],
    ) -> Tuple[float, List[float]]:
        below = [s for s in supports if s < current]
        above = [r for r in resistances if r > current]

        if pattern is not None:
            stop = pattern.stop_loss
            targets = [pattern.target]
        else:
            stop = max(below) if below else current * (1 - FALLBACK_BAND)
            targets = [min(above)] if above else [current * (1 + FALLBACK_BAND)]

        if fib is not None:
            if stop < fib.stop_loss < current:
                stop = fib.stop_loss
            targets.extend(e for e in fib.exit_levels if e > current and e not in targets)
        return stop, targets

    @staticmethod
    def _sell_plan(
        current: float,
        pattern: Optional[ChartPattern],
        supports: List[float],
        resistances: List[float],
    ) -> Tuple[float, List[float]]:
        if pattern is not None:
            return pattern.stop_loss, [pattern.target]

        below = [s for s in supports if s < current]
        above = [r for r in resistances if r > current]
        stop = min(above) if above else current * (1 + FALLBACK_BAND)
        targets = [max(below)] if below else [current * (1 - FALLBACK_BAND)]
        return stop, targets

    @staticmethod
    def _risk_reward(action: str, current: float, stop: float, targets: List[float]) -> float:
        if action == "hold" or not targets:
            return 0.0

        avg_target = sum(targets) / len(targets)
        if action == "buy":
            risk, reward = current - stop, avg_target - current
        else:
            risk, reward = stop - current, current - avg_target
        if risk <= 0:
            return 0.0
        return max(reward / risk, 0.0)

    # ========================================================================
    # Trailing stop
    # ========================================================================

    def trailing_stop(
        self,
        current_price: float,
        highest_price: float,
        trail_pct: Optional[float] = None,
    ) -> TrailingStopState:
        """
        Ratchet a trailing stop to the new high.

        Args:
            current_price: Latest price
            highest_price: Highest price seen since entry
            trail_pct: Trail distance in percent (config default 5)
        """
        pct = self.config.trailing_stop_pct if trail_pct is None else trail_pct
        high = max(highest_price, current_price)
        stop = high * (1 - pct / 100)
        return TrailingStopState(
            current_stop=stop,
            highest_price=high,
            trail_pct=pct,
            triggered=current_price <= stop,
        )
