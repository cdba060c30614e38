"""
In-memory persistence store.

Reference implementation of PersistenceStore for tests, demos and
single-process paper trading. Records are copied on the way in and out so
callers never hold a live reference to stored state; every call yields to
the event loop (optionally after `latency` seconds) like a real I/O call.
"""

import asyncio
import dataclasses
import logging
import uuid
from typing import Any, Dict, List, Optional

from ..core.events import utc_now
from ..exceptions import StaleWriteError
from ..position.models import Portfolio, Position, Token, Trade, TradeSide

logger = logging.getLogger(__name__)


class InMemoryStore:
    """Dictionary-backed store implementing the PersistenceStore protocol."""

    def __init__(self, latency: float = 0.0):
        """
        Args:
            latency: Artificial delay per call in seconds
        """
        self.latency = latency
        self._portfolios: Dict[str, Portfolio] = {}
        self._positions: Dict[str, Position] = {}
        self._trades: Dict[str, Trade] = {}
        self._tokens: Dict[str, Token] = {}

    async def _io(self) -> None:
        await asyncio.sleep(self.latency)

    # ========================================================================
    # Portfolios
    # ========================================================================

    async def create_portfolio(
        self,
        portfolio_id: Optional[str] = None,
        name: str = "",
        starting_capital: float = 10000.0,
        cash_balance: Optional[float] = None,
        auto_trading_enabled: bool = False,
    ) -> Portfolio:
        await self._io()
        cash = starting_capital if cash_balance is None else cash_balance
        portfolio = Portfolio(
            id=portfolio_id or str(uuid.uuid4()),
            name=name,
            cash_balance=cash,
            starting_capital=starting_capital,
            total_value=cash,
            auto_trading_enabled=auto_trading_enabled,
        )
        self._portfolios[portfolio.id] = portfolio
        return dataclasses.replace(portfolio)

    async def get_portfolio(self, portfolio_id: str) -> Optional[Portfolio]:
        await self._io()
        portfolio = self._portfolios.get(portfolio_id)
        return dataclasses.replace(portfolio) if portfolio else None

    async def get_all_portfolios(self) -> List[Portfolio]:
        await self._io()
        return [dataclasses.replace(p) for p in self._portfolios.values()]

    async def update_portfolio(self, portfolio_id: str, changes: Dict[str, Any]) -> Optional[Portfolio]:
        await self._io()
        portfolio = self._portfolios.get(portfolio_id)
        if portfolio is None:
            return None
        updated = dataclasses.replace(portfolio, **changes, updated_at=utc_now())
        self._portfolios[portfolio_id] = updated
        return dataclasses.replace(updated)

    # ========================================================================
    # Positions
    # ========================================================================

    async def get_position(self, position_id: str) -> Optional[Position]:
        await self._io()
        position = self._positions.get(position_id)
        return dataclasses.replace(position) if position else None

    async def get_position_by_portfolio_and_token(
        self, portfolio_id: str, token_id: str
    ) -> Optional[Position]:
        await self._io()
        for position in self._positions.values():
            if position.portfolio_id == portfolio_id and position.token_id == token_id:
                return dataclasses.replace(position)
        return None

    async def get_positions_by_portfolio(self, portfolio_id: str) -> List[Position]:
        await self._io()
        return [
            dataclasses.replace(p)
            for p in self._positions.values()
            if p.portfolio_id == portfolio_id
        ]

    async def create_position(
        self,
        portfolio_id: str,
        token_id: str,
        amount: float,
        avg_buy_price: float,
        buy_trade_id: Optional[str] = None,
    ) -> Position:
        await self._io()
        position = Position(
            id=str(uuid.uuid4()),
            portfolio_id=portfolio_id,
            token_id=token_id,
            amount=amount,
            avg_buy_price=avg_buy_price,
            buy_trade_id=buy_trade_id,
        )
        self._positions[position.id] = position
        return dataclasses.replace(position)

    async def update_position(
        self,
        position_id: str,
        changes: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> Optional[Position]:
        await self._io()
        position = self._positions.get(position_id)
        if position is None:
            return None
        if expected_version is not None and position.version != expected_version:
            raise StaleWriteError(
                f"Position {position_id} is at version {position.version}, "
                f"expected {expected_version}"
            )
        updated = dataclasses.replace(
            position, **changes, version=position.version + 1, updated_at=utc_now()
        )
        self._positions[position_id] = updated
        return dataclasses.replace(updated)

    # ========================================================================
    # Trades
    # ========================================================================

    async def create_trade(self, trade_data: Dict[str, Any]) -> Trade:
        await self._io()
        data = dict(trade_data)
        data.setdefault("id", str(uuid.uuid4()))
        data["side"] = TradeSide(data["side"])
        trade = Trade(**data)
        self._trades[trade.id] = trade
        return dataclasses.replace(trade)

    async def update_trade(self, trade_id: str, changes: Dict[str, Any]) -> Optional[Trade]:
        await self._io()
        trade = self._trades.get(trade_id)
        if trade is None:
            return None
        updated = dataclasses.replace(trade, **changes)
        self._trades[trade_id] = updated
        return dataclasses.replace(updated)

    async def get_trade(self, trade_id: str) -> Optional[Trade]:
        await self._io()
        trade = self._trades.get(trade_id)
        return dataclasses.replace(trade) if trade else None

    async def get_trades_by_portfolio(self, portfolio_id: str) -> List[Trade]:
        await self._io()
        trades = [t for t in self._trades.values() if t.portfolio_id == portfolio_id]
        trades.sort(key=lambda t: t.created_at)
        return [dataclasses.replace(t) for t in trades]

    # ========================================================================
    # Tokens
    # ========================================================================

    async def upsert_token(self, token_id: str, symbol: str, current_price: float) -> Token:
        await self._io()
        token = Token(id=token_id, symbol=symbol, current_price=current_price)
        self._tokens[token_id] = token
        return dataclasses.replace(token)

    async def set_token_price(self, token_id: str, current_price: float) -> Optional[Token]:
        await self._io()
        token = self._tokens.get(token_id)
        if token is None:
            return None
        token.current_price = current_price
        return dataclasses.replace(token)

    async def get_token(self, token_id: str) -> Optional[Token]:
        await self._io()
        token = self._tokens.get(token_id)
        return dataclasses.replace(token) if token else None
