"""
Persistence store interface consumed by the AutoTrader.

Every accessor is a suspension point. Lookups of missing records return
None. update_position() accepts an expected_version for compare-and-swap
writes and raises StaleWriteError when the stored version has moved on.
"""

from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

from ..position.models import Portfolio, Position, Token, Trade


@runtime_checkable
class PersistenceStore(Protocol):
    """CRUD accessors for portfolios, positions, trades and tokens."""

    # Portfolios
    async def get_portfolio(self, portfolio_id: str) -> Optional[Portfolio]: ...

    async def get_all_portfolios(self) -> List[Portfolio]: ...

    async def update_portfolio(self, portfolio_id: str, changes: Dict[str, Any]) -> Optional[Portfolio]: ...

    # Positions
    async def get_position(self, position_id: str) -> Optional[Position]: ...

    async def get_position_by_portfolio_and_token(
        self, portfolio_id: str, token_id: str
    ) -> Optional[Position]: ...

    async def get_positions_by_portfolio(self, portfolio_id: str) -> List[Position]: ...

    async def create_position(
        self,
        portfolio_id: str,
        token_id: str,
        amount: float,
        avg_buy_price: float,
        buy_trade_id: Optional[str] = None,
    ) -> Position: ...

    async def update_position(
        self,
        position_id: str,
        changes: Dict[str, Any],
        expected_version: Optional[int] = None,
    ) -> Optional[Position]: ...

    # Trades
    async def create_trade(self, trade_data: Dict[str, Any]) -> Trade: ...

    async def update_trade(self, trade_id: str, changes: Dict[str, Any]) -> Optional[Trade]: ...

    async def get_trade(self, trade_id: str) -> Optional[Trade]: ...

    async def get_trades_by_portfolio(self, portfolio_id: str) -> List[Trade]: ...

    # Tokens
    async def get_token(self, token_id: str) -> Optional[Token]: ...
