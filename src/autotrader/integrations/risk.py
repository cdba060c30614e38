"""
Pre-trade risk gate for the generic order path.

PortfolioRiskGate checks, in order:
- sells: a position exists and holds at least the requested amount
- buys: resulting position <= max_position_pct of portfolio value
        (denied with a suggested_size that fits)
- buys of a new token: open positions < max_open_positions
- daily loss: |today's realized P&L| + potential stop-loss hit <= max_daily_loss_pct
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol, runtime_checkable

from ..core.events import utc_now
from ..storage.base import PersistenceStore

logger = logging.getLogger(__name__)


@dataclass
class RiskAssessment:
    """Result of a pre-trade risk check."""
    allowed: bool
    reason: Optional[str] = None
    suggested_size: Optional[float] = None
    stop_loss_price: Optional[float] = None
    risk_reward_ratio: Optional[float] = None


@dataclass
class RiskLimits:
    """Limits applied by PortfolioRiskGate (percentages of portfolio value)."""
    max_position_pct: float = 10.0
    max_daily_loss_pct: float = 5.0
    max_open_positions: int = 15
    stop_loss_pct: float = 8.0
    take_profit_pct: float = 15.0


@runtime_checkable
class RiskGate(Protocol):
    """Interface consumed by AutoTrader.submit_order()."""

    async def analyze_trade_risk(
        self,
        portfolio_id: str,
        token_id: str,
        side: str,
        amount: float,
        price: float,
    ) -> RiskAssessment: ...


class PortfolioRiskGate:
    """Risk gate backed by the persistence store."""

    def __init__(self, store: PersistenceStore, limits: Optional[RiskLimits] = None):
        self.store = store
        self.limits = limits or RiskLimits()
        self.logger = logging.getLogger(f"{__name__}.PortfolioRiskGate")

    async def analyze_trade_risk(
        self,
        portfolio_id: str,
        token_id: str,
        side: str,
        amount: float,
        price: float,
    ) -> RiskAssessment:
        try:
            portfolio = await self.store.get_portfolio(portfolio_id)
            if portfolio is None:
                return RiskAssessment(allowed=False, reason="Portfolio not found")

            existing = await self.store.get_position_by_portfolio_and_token(portfolio_id, token_id)
            held = existing.amount if existing else 0.0
            trade_value = amount * price
            portfolio_value = portfolio.total_value

            if side == "sell":
                if held <= 0:
                    return RiskAssessment(
                        allowed=False,
                        reason="Cannot sell - no open position for this token",
                    )
                if amount > held:
                    return RiskAssessment(
                        allowed=False,
                        reason=f"Cannot sell {amount} tokens - only {held} available",
                        suggested_size=held,
                    )

            if side == "buy":
                new_value = (held * price) + trade_value
                position_pct = (new_value / portfolio_value * 100) if portfolio_value > 0 else 100.0
                if position_pct > self.limits.max_position_pct:
                    allowed_value = portfolio_value * self.limits.max_position_pct / 100
                    return RiskAssessment(
                        allowed=False,
                        reason=f"Position would exceed {self.limits.max_position_pct}% portfolio limit",
                        suggested_size=max(0.0, allowed_value / price - held),
                    )

                if held <= 0:
                    positions = await self.store.get_positions_by_portfolio(portfolio_id)
                    open_count = sum(1 for p in positions if p.amount > 0)
                    if open_count >= self.limits.max_open_positions:
                        return RiskAssessment(
                            allowed=False,
                            reason=f"Maximum {self.limits.max_open_positions} open positions reached",
                        )

            if side == "buy":
                stop_loss_price = price * (1 - self.limits.stop_loss_pct / 100)
            else:
                stop_loss_price = price * (1 + self.limits.stop_loss_pct / 100)
            risk_reward = self.limits.take_profit_pct / self.limits.stop_loss_pct

            potential_loss = trade_value * self.limits.stop_loss_pct / 100
            max_daily_loss = portfolio_value * self.limits.max_daily_loss_pct / 100
            daily_pnl = portfolio.daily_pnl_on(utc_now().date())
            if side == "buy" and abs(daily_pnl) + potential_loss > max_daily_loss:
                return RiskAssessment(
                    allowed=False,
                    reason=f"Trade would exceed daily loss limit of {self.limits.max_daily_loss_pct}%",
                )

            return RiskAssessment(
                allowed=True,
                stop_loss_price=stop_loss_price,
                risk_reward_ratio=risk_reward,
            )

        except Exception as e:
            self.logger.error(f"Error analyzing trade risk for portfolio {portfolio_id}: {e}")
            return RiskAssessment(allowed=False, reason="Risk analysis failed")
