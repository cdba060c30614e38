"""
Unit tests for logging utilities and the log buffer.
"""

import json
import logging

import pytest

from autotrader.utils.log_buffer import LogBuffer, setup_log_buffer
from autotrader.utils.logger import JSONFormatter, get_trading_logger


def make_record(message, level=logging.INFO, **extra):
    record = logging.LogRecord("tests", level, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


# ============================================================================
# Formatter and TradingLogger Tests
# ============================================================================

def test_json_formatter_includes_trading_extras():
    record = make_record("filled", portfolio_id="p1", side="buy", unrelated="x")

    entry = json.loads(JSONFormatter().format(record))

    assert entry["message"] == "filled"
    assert entry["level"] == "INFO"
    assert entry["portfolio_id"] == "p1"
    assert entry["side"] == "buy"
    assert "unrelated" not in entry


def test_trade_executed_record(caplog):
    caplog.set_level(logging.INFO)
    trade_logger = get_trading_logger("tests.trades")

    trade_logger.trade_executed("p1", "sell", "TOK", 100.0, 1.2, realized_pnl=-20.0, trigger="stop_loss")

    record = caplog.records[-1]
    assert "SELL" in record.getMessage()
    assert "(stop_loss)" in record.getMessage()
    assert "P&L: -$20.00" in record.getMessage()
    assert record.portfolio_id == "p1"
    assert record.realized_pnl == -20.0


def test_mode_change_levels(caplog):
    caplog.set_level(logging.INFO)
    trade_logger = get_trading_logger("tests.trades")

    trade_logger.mode_change("p1", True, 400.0, 500.0)
    trade_logger.mode_change("p1", False, 1000.0, 1000.0)

    assert [r.levelno for r in caplog.records[-2:]] == [logging.WARNING, logging.INFO]
    assert "SELL-ONLY" in caplog.records[-2].getMessage()


# ============================================================================
# LogBuffer Tests
# ============================================================================

def test_buffer_filters_newest_first():
    buffer = LogBuffer(max_size=10)
    buffer.emit(make_record("first", portfolio_id="p1"))
    buffer.emit(make_record("second failure", level=logging.ERROR))
    buffer.emit(make_record("third", portfolio_id="p1"))

    assert [log["message"] for log in buffer.get_logs()] == ["third", "second failure", "first"]
    assert [log["message"] for log in buffer.get_logs(portfolio_id="p1")] == ["third", "first"]
    assert [log["message"] for log in buffer.get_logs(level="error")] == ["second failure"]
    assert [log["message"] for log in buffer.get_logs(search="FAIL")] == ["second failure"]
    assert len(buffer.get_logs(lines=1)) == 1


def test_buffer_is_bounded():
    buffer = LogBuffer(max_size=3)
    for i in range(5):
        buffer.emit(make_record(f"line {i}"))

    stats = buffer.get_stats()
    assert stats["total_logs"] == 3
    assert stats["info"] == 5
    assert stats["buffer_full"]

    buffer.clear()
    assert buffer.get_logs() == []
    assert buffer.get_stats()["info"] == 0


def test_setup_log_buffer_is_idempotent():
    root = logging.getLogger()
    first = setup_log_buffer(max_size=5)
    try:
        assert setup_log_buffer() is first
        assert sum(1 for h in root.handlers if isinstance(h, LogBuffer)) == 1
    finally:
        root.removeHandler(first)
