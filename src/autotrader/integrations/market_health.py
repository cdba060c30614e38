"""
Market health gate.

Sits between the confidence multiplier and the minimum-confidence check:
a pattern only trades when the market conditions accept its adjusted
confidence.

- OpenMarket: always allows (the default wiring)
- RecommendationMarketHealth: confidence floors per recommendation
  (trade_normally 80, trade_cautiously 85, minimize_trading 90,
  halt_trading never, 85 before any recommendation is known)
"""

import logging
from enum import Enum
from typing import Dict, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


class MarketRecommendation(str, Enum):
    TRADE_NORMALLY = "trade_normally"
    TRADE_CAUTIOUSLY = "trade_cautiously"
    MINIMIZE_TRADING = "minimize_trading"
    HALT_TRADING = "halt_trading"


@runtime_checkable
class MarketHealth(Protocol):
    """Interface the AutoTrader consumes for the market-wide trade gate."""

    async def should_trade(self, confidence: float) -> bool: ...


class OpenMarket:
    """Market health that never blocks a trade."""

    async def should_trade(self, confidence: float) -> bool:
        return True


class RecommendationMarketHealth:
    """Confidence floor chosen by the latest market recommendation."""

    THRESHOLDS: Dict[MarketRecommendation, Optional[float]] = {
        MarketRecommendation.TRADE_NORMALLY: 80.0,
        MarketRecommendation.TRADE_CAUTIOUSLY: 85.0,
        MarketRecommendation.MINIMIZE_TRADING: 90.0,
        MarketRecommendation.HALT_TRADING: None,
    }
    UNKNOWN_THRESHOLD = 85.0

    def __init__(self, recommendation: Optional[MarketRecommendation] = None):
        self.recommendation = recommendation
        self.logger = logging.getLogger(f"{__name__}.RecommendationMarketHealth")

    def set_recommendation(self, recommendation: MarketRecommendation) -> None:
        if recommendation != self.recommendation:
            self.logger.info(f"📊 Market recommendation: {recommendation.value}")
        self.recommendation = recommendation

    async def should_trade(self, confidence: float) -> bool:
        if self.recommendation is None:
            return confidence >= self.UNKNOWN_THRESHOLD
        threshold = self.THRESHOLDS[self.recommendation]
        if threshold is None:
            return False
        return confidence >= threshold
