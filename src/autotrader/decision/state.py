"""
In-memory decision state per enabled portfolio.

The persisted auto_trading_enabled flag is the source of truth; this state
is a disposable cache created on enable/reconcile and dropped on disable.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Set

from ..core.events import utc_now


def _today() -> date:
    return utc_now().date()


@dataclass
class TradingStats:
    """Running trade counters for one portfolio."""
    total_trades: int = 0
    successful_trades: int = 0
    today_trades: int = 0
    total_value: float = 0.0
    day: date = field(default_factory=_today)

    def record_trade(self, successful: bool = False) -> None:
        today = _today()
        if today != self.day:
            self.day = today
            self.today_trades = 0

        self.total_trades += 1
        self.today_trades += 1
        if successful:
            self.successful_trades += 1

    @property
    def win_rate(self) -> float:
        if not self.total_trades:
            return 0.0
        return self.successful_trades / self.total_trades * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_trades": self.total_trades,
            "successful_trades": self.successful_trades,
            "today_trades": self.today_trades,
            "total_value": self.total_value,
        }


@dataclass
class PortfolioDecisionState:
    """
    Mode, guards and counters for one portfolio.

    selling:     position ids with a sell in flight
    ledger_lock: serializes cash / realized P&L read-modify-write
    buy_lock:    serializes buys so duplicate checks cannot interleave
    """
    portfolio_id: str
    sell_only: bool = False
    selling: Set[str] = field(default_factory=set)
    stats: TradingStats = field(default_factory=TradingStats)
    ledger_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    buy_lock: asyncio.Lock = field(default_factory=asyncio.Lock)
