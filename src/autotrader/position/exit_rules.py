"""
Exit rules for open positions and rebalance candidate selection.

Rules are evaluated in strict priority order:
1. Stop-loss:      gain <= -stop_loss_pct
2. Take-profit:    gain >= take_profit_pct (sell_only_take_profit_pct in sell-only mode)
3. Cash generation (sell-only mode only): gain > cash_generation_pct
"""

from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple

from ..config.settings import TradingConfig
from .models import ExitReason, Position, Token

# Percent gains are compared at this precision so 0.92 vs 1.00 reads as -8.0
GAIN_PRECISION = 8


@dataclass
class ExitDecision:
    """Outcome of exit-rule evaluation for one position."""
    reason: ExitReason
    message: str

    @property
    def trigger(self) -> str:
        return self.reason.value


def evaluate_exit(gain_pct: float, sell_only: bool, config: TradingConfig) -> Optional[ExitDecision]:
    """
    Decide whether an open position should be sold.

    Args:
        gain_pct: Unrealized gain in percent
        sell_only: Whether the portfolio is in sell-only mode
        config: Trading thresholds

    Returns:
        ExitDecision, or None to keep holding
    """
    gain = round(gain_pct, GAIN_PRECISION)

    if gain <= -config.stop_loss_pct:
        return ExitDecision(
            ExitReason.STOP_LOSS,
            f"Stop-loss triggered at {gain:.1f}% loss",
        )

    take_profit = config.sell_only_take_profit_pct if sell_only else config.take_profit_pct
    if gain >= take_profit:
        mode = " (sell-only mode)" if sell_only else ""
        return ExitDecision(
            ExitReason.TAKE_PROFIT,
            f"Take-profit triggered at {gain:.1f}% gain{mode}",
        )

    if sell_only and gain > config.cash_generation_pct:
        return ExitDecision(
            ExitReason.CASH_GENERATION,
            f"Sell-only mode: exiting profitable position ({gain:.1f}% gain)",
        )

    return None


# ============================================================================
# Rebalancing
# ============================================================================

@dataclass
class RebalanceCandidate:
    """A stagnant position that may be sold to fund a new buy."""
    position: Position
    token: Token
    gain_pct: float
    current_value: float


def select_rebalance_candidates(
    holdings: Iterable[Tuple[Position, Token]],
    exclude_token_id: str,
    config: TradingConfig,
) -> List[RebalanceCandidate]:
    """
    Pick stagnant positions, most stagnant (lowest gain) first.

    A position is stagnant when its gain lies in
    [rebalance_min_gain_pct, rebalance_max_gain_pct]. The token of the
    pending buy, closed positions and unpriced tokens are skipped.
    """
    candidates = []
    for position, token in holdings:
        if not position.is_open or token.current_price <= 0:
            continue
        if position.token_id == exclude_token_id:
            continue

        gain = round(position.gain_pct(token.current_price), GAIN_PRECISION)
        if config.rebalance_min_gain_pct <= gain <= config.rebalance_max_gain_pct:
            candidates.append(
                RebalanceCandidate(
                    position=position,
                    token=token,
                    gain_pct=gain,
                    current_value=position.market_value(token.current_price),
                )
            )

    candidates.sort(key=lambda c: c.gain_pct)
    return candidates
