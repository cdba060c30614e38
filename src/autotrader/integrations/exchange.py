"""
Exchange service interface for the real-money path.

Live order routing is out of scope: StubExchangeService only records the
signals it receives and answers with synthetic trade identifiers.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Protocol, Set, runtime_checkable

from ..core.events import utc_now

logger = logging.getLogger(__name__)


@dataclass
class ExchangeTradingSignal:
    """Order request handed to an exchange."""
    portfolio_id: str
    token_id: str
    symbol: str
    side: str
    amount: float
    price: float
    confidence: float
    source: str
    pattern_id: Optional[str] = None


@dataclass
class ExchangeTrade:
    """Exchange acknowledgement of an executed order."""
    id: str
    exchange: str
    symbol: str
    side: str
    amount: float
    price: float
    status: str = "filled"
    executed_at: datetime = field(default_factory=utc_now)


@runtime_checkable
class ExchangeService(Protocol):
    """Interface consumed by the AutoTrader."""

    async def is_real_trading_enabled(self, portfolio_id: str) -> bool: ...

    async def execute_trade_signal(self, signal: ExchangeTradingSignal) -> Optional[ExchangeTrade]: ...


class StubExchangeService:
    """
    Exchange service that never touches a venue.

    Real trading is reported enabled only for portfolios explicitly listed
    in `real_trading_portfolios`.
    """

    def __init__(self, real_trading_portfolios: Optional[Set[str]] = None, exchange_name: str = "stub"):
        self.real_trading_portfolios = set(real_trading_portfolios or ())
        self.exchange_name = exchange_name
        self.executed: List[ExchangeTradingSignal] = []

    async def is_real_trading_enabled(self, portfolio_id: str) -> bool:
        return portfolio_id in self.real_trading_portfolios

    async def execute_trade_signal(self, signal: ExchangeTradingSignal) -> Optional[ExchangeTrade]:
        self.executed.append(signal)
        trade = ExchangeTrade(
            id=f"{self.exchange_name}-{uuid.uuid4().hex[:12]}",
            exchange=self.exchange_name,
            symbol=signal.symbol,
            side=signal.side,
            amount=signal.amount,
            price=signal.price,
        )
        logger.info(
            f"Stub exchange acknowledged {signal.side.upper()} {signal.amount:.6f} "
            f"{signal.symbol} @ {signal.price} ({trade.id})"
        )
        return trade
