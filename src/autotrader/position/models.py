"""
Portfolio, position, trade and token records.

These are the rows the persistence store hands back. Amounts and prices
may arrive from a store as decimal text; from_dict() parses them.
"""

from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, Optional

from ..core.events import utc_now


class TradeSide(str, Enum):
    """Trade direction."""
    BUY = "buy"
    SELL = "sell"


class ExitReason(str, Enum):
    """Why a position was sold."""
    STOP_LOSS = "stop_loss"
    TAKE_PROFIT = "take_profit"
    CASH_GENERATION = "cash_generation"
    REBALANCE = "rebalance"
    PATTERN_SIGNAL = "ml_pattern"
    MANUAL = "manual"


def _to_float(value: Any, default: float = 0.0) -> float:
    if value is None or value == "":
        return default
    return float(value)


def _to_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    return value


def _to_date(value: Any) -> Optional[date]:
    if isinstance(value, str):
        return date.fromisoformat(value)
    return value


def _serialize(record: Any) -> Dict[str, Any]:
    data = asdict(record)
    for key, value in data.items():
        if isinstance(value, (datetime, date)):
            data[key] = value.isoformat()
        elif isinstance(value, Enum):
            data[key] = value.value
    return data


# ============================================================================
# Token
# ============================================================================

@dataclass
class Token:
    """A tradable token and its last known price."""
    id: str
    symbol: str
    current_price: float = 0.0
    name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _serialize(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Token":
        return cls(
            id=data["id"],
            symbol=data["symbol"],
            current_price=_to_float(data.get("current_price")),
            name=data.get("name"),
        )


# ============================================================================
# Portfolio
# ============================================================================

@dataclass
class Portfolio:
    """
    A paper-trading account.

    total_value = cash_balance + sum(position values); it is recomputed by
    every monitor sweep rather than maintained incrementally.
    """

    # ========================================================================
    # Identity
    # ========================================================================
    id: str
    name: str = ""

    # ========================================================================
    # Balances
    # ========================================================================
    cash_balance: float = 10000.0
    starting_capital: float = 10000.0
    total_value: float = 10000.0
    total_pnl: float = 0.0
    realized_pnl: float = 0.0
    daily_pnl: float = 0.0
    daily_pnl_date: Optional[date] = None

    # ========================================================================
    # Flags
    # ========================================================================
    auto_trading_enabled: bool = False

    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return _serialize(self)

    def daily_pnl_on(self, day: date) -> float:
        """Realized P&L booked on `day`; a stale counter reads as zero."""
        return self.daily_pnl if self.daily_pnl_date == day else 0.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Portfolio":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            cash_balance=_to_float(data.get("cash_balance"), 10000.0),
            starting_capital=_to_float(data.get("starting_capital"), 10000.0),
            total_value=_to_float(data.get("total_value"), 10000.0),
            total_pnl=_to_float(data.get("total_pnl")),
            realized_pnl=_to_float(data.get("realized_pnl")),
            daily_pnl=_to_float(data.get("daily_pnl")),
            daily_pnl_date=_to_date(data.get("daily_pnl_date")),
            auto_trading_enabled=bool(data.get("auto_trading_enabled", False)),
            created_at=_to_datetime(data.get("created_at")) or utc_now(),
            updated_at=_to_datetime(data.get("updated_at")) or utc_now(),
        )


# ============================================================================
# Position
# ============================================================================

@dataclass
class Position:
    """
    Holding of one token in one portfolio.

    amount == 0 is a soft-close: the row is kept and revived by the next buy.
    version increments on every write and backs compare-and-swap updates.
    """
    id: str
    portfolio_id: str
    token_id: str
    amount: float
    avg_buy_price: float

    # Lot link to the buy trade that opened the current holding
    buy_trade_id: Optional[str] = None

    version: int = 0
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    @property
    def is_open(self) -> bool:
        return self.amount > 0

    def gain_pct(self, current_price: float) -> float:
        """Unrealized gain in percent at the given price."""
        if self.avg_buy_price <= 0:
            return 0.0
        return (current_price - self.avg_buy_price) / self.avg_buy_price * 100

    def market_value(self, current_price: float) -> float:
        return self.amount * current_price

    def to_dict(self) -> Dict[str, Any]:
        return _serialize(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Position":
        return cls(
            id=data["id"],
            portfolio_id=data["portfolio_id"],
            token_id=data["token_id"],
            amount=_to_float(data.get("amount")),
            avg_buy_price=_to_float(data.get("avg_buy_price")),
            buy_trade_id=data.get("buy_trade_id"),
            version=int(data.get("version", 0)),
            created_at=_to_datetime(data.get("created_at")) or utc_now(),
            updated_at=_to_datetime(data.get("updated_at")) or utc_now(),
        )


# ============================================================================
# Trade
# ============================================================================

@dataclass
class Trade:
    """
    Execution record.

    A buy row is amended in place with exit_price, realized_pnl and
    closed_at when its position is sold; the sell leg is appended as its
    own row.
    """
    id: str
    portfolio_id: str
    token_id: str
    side: TradeSide
    amount: float
    price: float
    total_value: float
    pattern_id: Optional[str] = None
    pattern_type: Optional[str] = None
    exit_price: Optional[float] = None
    realized_pnl: Optional[float] = None
    created_at: datetime = field(default_factory=utc_now)
    closed_at: Optional[datetime] = None

    @property
    def is_closed(self) -> bool:
        return self.closed_at is not None

    def to_dict(self) -> Dict[str, Any]:
        return _serialize(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Trade":
        exit_price = data.get("exit_price")
        realized_pnl = data.get("realized_pnl")
        return cls(
            id=data["id"],
            portfolio_id=data["portfolio_id"],
            token_id=data["token_id"],
            side=TradeSide(data["side"]),
            amount=_to_float(data.get("amount")),
            price=_to_float(data.get("price")),
            total_value=_to_float(data.get("total_value")),
            pattern_id=data.get("pattern_id"),
            pattern_type=data.get("pattern_type"),
            exit_price=_to_float(exit_price) if exit_price is not None else None,
            realized_pnl=_to_float(realized_pnl) if realized_pnl is not None else None,
            created_at=_to_datetime(data.get("created_at")) or utc_now(),
            closed_at=_to_datetime(data.get("closed_at")),
        )
