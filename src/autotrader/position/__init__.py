"""
Position management: records, exit rules, rebalance selection.
"""

from .exit_rules import (
    ExitDecision,
    RebalanceCandidate,
    evaluate_exit,
    select_rebalance_candidates,
)
from .models import ExitReason, Portfolio, Position, Token, Trade, TradeSide

__all__ = [
    'Portfolio',
    'Position',
    'Trade',
    'Token',
    'TradeSide',
    'ExitReason',
    'ExitDecision',
    'RebalanceCandidate',
    'evaluate_exit',
    'select_rebalance_candidates',
]
