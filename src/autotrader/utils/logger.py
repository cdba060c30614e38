"""
Logging utilities.

Provides:
- JSONFormatter for structured production logs
- TradingLogger for trade, signal and mode-change records
- setup_logging() to configure the root logger once at startup
"""

import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

# Extra record attributes copied into JSON output when present
_EXTRA_FIELDS = (
    'portfolio_id',
    'token_id',
    'side',
    'confidence',
    'price',
    'amount',
    'realized_pnl',
    'trigger',
)


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record):
        log_entry = {
            'timestamp': datetime.fromtimestamp(record.created).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno
        }

        for name in _EXTRA_FIELDS:
            if hasattr(record, name):
                log_entry[name] = getattr(record, name)

        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class TradingLogger:
    """Logger for trading records with structured extras."""

    def __init__(self, name: str):
        self.logger = logging.getLogger(name)

    def trade_signal(self, portfolio_id: str, token_id: str, side: str, confidence: float, reason: str = ""):
        extra = {
            'portfolio_id': portfolio_id,
            'token_id': token_id,
            'side': side,
            'confidence': confidence,
        }
        self.logger.info(
            f"[Portfolio {portfolio_id}] Signal: {side.upper()} {token_id} "
            f"({confidence:.1f}% confidence) {reason}".rstrip(),
            extra=extra,
        )

    def trade_executed(
        self,
        portfolio_id: str,
        side: str,
        symbol: str,
        amount: float,
        price: float,
        realized_pnl: Optional[float] = None,
        trigger: Optional[str] = None,
    ):
        extra = {
            'portfolio_id': portfolio_id,
            'side': side,
            'amount': amount,
            'price': price,
        }
        message = (
            f"[Portfolio {portfolio_id}] TRADE EXECUTED: {side.upper()} "
            f"{amount:.6f} {symbol} at ${price:.6f}"
        )
        if trigger:
            extra['trigger'] = trigger
            message += f" ({trigger})"
        if realized_pnl is not None:
            extra['realized_pnl'] = realized_pnl
            sign = "+" if realized_pnl >= 0 else "-"
            message += f" P&L: {sign}${abs(realized_pnl):.2f}"
        self.logger.info(message, extra=extra)

    def mode_change(self, portfolio_id: str, sell_only: bool, cash: float, required: float):
        extra = {'portfolio_id': portfolio_id}
        if sell_only:
            self.logger.warning(
                f"🔴 [Portfolio {portfolio_id}] SELL-ONLY MODE ACTIVATED "
                f"(cash ${cash:.2f} < ${required:.2f})",
                extra=extra,
            )
        else:
            self.logger.info(
                f"🟢 [Portfolio {portfolio_id}] BUY MODE REACTIVATED "
                f"(cash ${cash:.2f} >= ${required:.2f})",
                extra=extra,
            )


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    json_format: bool = False,
) -> logging.Logger:
    """
    Configure the root logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional log file path
        json_format: Use JSON formatting

    Returns:
        The configured root logger
    """
    logger = logging.getLogger()
    logger.setLevel(getattr(logging, str(log_level).upper(), logging.INFO))

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_trading_logger(name: str) -> TradingLogger:
    """Get a trading-specific logger instance."""
    return TradingLogger(name)
