"""
Decision layer: pattern/alert evaluation and the AutoTrader orchestrator.
"""

from .engine import AutoTrader
from .signals import SignalEvaluator, TradingSignal
from .state import PortfolioDecisionState, TradingStats

__all__ = [
    'AutoTrader',
    'SignalEvaluator',
    'TradingSignal',
    'PortfolioDecisionState',
    'TradingStats',
]
