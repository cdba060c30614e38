"""
Signal Evaluator - turns patterns and alerts into trading signals.

Stateless rules, applied per portfolio:

Sell-only mode, position held:
- bearish pattern                          -> SELL at the pattern confidence
- bullish pattern, confidence > 80 and the
  position is up more than 5%              -> SELL (profit taking) at 0.8x

Normal mode, no open position:
- bullish pattern                          -> BUY
- volume_surge / price_spike alert         -> BUY

Unpriced tokens never produce a signal.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

from ..config.settings import TradingConfig
from ..position.exit_rules import GAIN_PRECISION
from ..position.models import Position, Token, TradeSide

logger = logging.getLogger(__name__)


@dataclass
class TradingSignal:
    """
    A decision to buy or sell one token.

    Attributes:
        token_id: Token to trade
        side: BUY or SELL
        confidence: Adjusted confidence (0-100)
        price: Token price when the signal was generated
        source: What produced it ('ml_pattern', 'alert', 'order', ...)
        reason: Human-readable explanation
        pattern_id: Originating pattern id, if any
        pattern_type: Originating pattern type, if any
    """
    token_id: str
    side: TradeSide
    confidence: float
    price: float
    source: str
    reason: str = ""
    pattern_id: Optional[str] = None
    pattern_type: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token_id": self.token_id,
            "side": self.side.value,
            "confidence": self.confidence,
            "price": self.price,
            "source": self.source,
            "reason": self.reason,
            "pattern_id": self.pattern_id,
            "pattern_type": self.pattern_type,
        }

    def __repr__(self) -> str:
        return (
            f"TradingSignal({self.side.value.upper()} {self.token_id} "
            f"@ {self.price}, confidence={self.confidence:.1f}, source={self.source})"
        )


class SignalEvaluator:
    """Applies the pattern and alert rules for one portfolio snapshot."""

    def __init__(self, config: TradingConfig):
        self.config = config
        self._bullish = {p.lower() for p in config.bullish_patterns}
        self._bearish = {p.lower() for p in config.bearish_patterns}
        self._buy_alerts = {a.lower() for a in config.buy_alert_types}

    def is_bullish(self, pattern_type: str) -> bool:
        return pattern_type.lower() in self._bullish

    def is_bearish(self, pattern_type: str) -> bool:
        return pattern_type.lower() in self._bearish

    def is_buy_alert(self, alert_type: str) -> bool:
        return alert_type.lower() in self._buy_alerts

    def evaluate_pattern(
        self,
        pattern_type: str,
        confidence: float,
        token: Token,
        position: Optional[Position],
        sell_only: bool,
        pattern_id: Optional[str] = None,
    ) -> Optional[TradingSignal]:
        """
        Evaluate a pattern against the portfolio's position in `token`.

        Args:
            pattern_type: Detector pattern name
            confidence: Confidence already scaled by the performance multiplier
            token: Token with its current price
            position: Portfolio position in the token (open or soft-closed)
            sell_only: Portfolio mode
            pattern_id: Pattern identifier carried onto the trade

        Returns:
            TradingSignal or None
        """
        price = token.current_price
        if not price or price <= 0:
            return None

        held = position is not None and position.is_open

        if sell_only:
            if not held:
                return None

            if self.is_bearish(pattern_type):
                return TradingSignal(
                    token_id=token.id,
                    side=TradeSide.SELL,
                    confidence=confidence,
                    price=price,
                    source="ml_pattern",
                    reason=f"Sell-only mode: {pattern_type} pattern detected",
                    pattern_id=pattern_id,
                    pattern_type=pattern_type,
                )

            if self.is_bullish(pattern_type) and confidence > self.config.strong_bullish_confidence:
                gain = round(position.gain_pct(price), GAIN_PRECISION)
                if gain > self.config.sell_only_take_profit_pct:
                    return TradingSignal(
                        token_id=token.id,
                        side=TradeSide.SELL,
                        confidence=confidence * self.config.profit_taking_confidence_factor,
                        price=price,
                        source="ml_pattern",
                        reason=f"Sell-only mode: taking {gain:.1f}% profit on strong {pattern_type}",
                        pattern_id=pattern_id,
                        pattern_type=pattern_type,
                    )
            return None

        if held or not self.is_bullish(pattern_type):
            return None

        return TradingSignal(
            token_id=token.id,
            side=TradeSide.BUY,
            confidence=confidence,
            price=price,
            source="ml_pattern",
            reason=f"Bullish {pattern_type} pattern ({confidence:.1f}% confidence)",
            pattern_id=pattern_id,
            pattern_type=pattern_type,
        )

    def evaluate_alert(
        self,
        alert_type: str,
        confidence: float,
        token: Token,
        position: Optional[Position],
        sell_only: bool,
    ) -> Optional[TradingSignal]:
        """Buy alerts behave like bullish patterns outside sell-only mode."""
        price = token.current_price
        if not price or price <= 0 or sell_only:
            return None
        if not self.is_buy_alert(alert_type):
            return None
        if position is not None and position.is_open:
            return None

        return TradingSignal(
            token_id=token.id,
            side=TradeSide.BUY,
            confidence=confidence,
            price=price,
            source="alert",
            reason=f"{alert_type} alert ({confidence:.1f}% confidence)",
        )
