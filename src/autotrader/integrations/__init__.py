"""
External collaborators consumed by the AutoTrader.

- feedback: pattern performance (confidence multiplier, min confidence)
- market_health: market-wide trade gate
- risk: pre-trade risk gate
- exchange: real-money exchange service (stubbed)
"""

from .exchange import (
    ExchangeService,
    ExchangeTrade,
    ExchangeTradingSignal,
    StubExchangeService,
)
from .feedback import (
    PatternPerformance,
    PatternPerformanceFeedback,
    PatternPerformanceTracker,
)
from .market_health import (
    MarketHealth,
    MarketRecommendation,
    OpenMarket,
    RecommendationMarketHealth,
)
from .risk import PortfolioRiskGate, RiskAssessment, RiskGate, RiskLimits

__all__ = [
    'ExchangeService',
    'ExchangeTrade',
    'ExchangeTradingSignal',
    'StubExchangeService',
    'PatternPerformance',
    'PatternPerformanceFeedback',
    'PatternPerformanceTracker',
    'MarketHealth',
    'MarketRecommendation',
    'OpenMarket',
    'RecommendationMarketHealth',
    'RiskGate',
    'RiskAssessment',
    'RiskLimits',
    'PortfolioRiskGate',
]
