"""
Unit tests for the pattern performance tracker.
"""

import pytest

from autotrader.core.events import TradeExecuted
from autotrader.integrations.feedback import (
    PatternPerformance,
    PatternPerformanceFeedback,
    PatternPerformanceTracker,
)


@pytest.fixture
def tracker():
    return PatternPerformanceTracker(default_min_confidence=75.0)


def closed_trade(pnl, pattern_type="bull_flag", mode="paper"):
    return TradeExecuted(
        portfolio_id="p1",
        trade=None,
        signal=None,
        token=None,
        mode=mode,
        profit_loss=pnl,
        metadata={"pattern_type": pattern_type},
    )


def test_tracker_implements_protocol(tracker):
    assert isinstance(tracker, PatternPerformanceFeedback)


@pytest.mark.asyncio
async def test_start(tracker):
    await tracker.start()
    assert tracker.is_started


# ============================================================================
# Pattern Performance Tests
# ============================================================================

@pytest.mark.asyncio
async def test_no_performance_until_enough_outcomes(tracker):
    for _ in range(4):
        tracker.record_outcome("bull_flag", 10.0)

    assert await tracker.get_pattern_performance("bull_flag", "1h") is None


@pytest.mark.asyncio
async def test_winning_pattern_boosted(tracker):
    for pnl in (10.0, 12.0, 8.0, 5.0, -2.0):
        tracker.record_outcome("bull_flag", pnl)

    performance = await tracker.get_pattern_performance("bull_flag", "4h")

    assert performance.timeframe == "4h"
    assert performance.total_trades == 5
    assert performance.successful_trades == 4
    assert performance.win_rate == pytest.approx(0.8)
    assert performance.average_return == pytest.approx(6.6)
    assert performance.confidence_multiplier == pytest.approx(1.2)


@pytest.mark.asyncio
async def test_losing_pattern_decayed(tracker):
    for pnl in (-5.0, -3.0, 1.0, -4.0, -1.0):
        tracker.record_outcome("double_top", pnl)

    performance = await tracker.get_pattern_performance("double_top", "1h")

    assert performance.confidence_multiplier == pytest.approx(0.9)


@pytest.mark.asyncio
async def test_pinned_performance_wins(tracker):
    pinned = PatternPerformance(pattern_type="bull_flag", timeframe="1h", confidence_multiplier=1.5)
    tracker.set_performance(pinned)

    assert await tracker.get_pattern_performance("bull_flag", "1h") is pinned


# ============================================================================
# Dynamic Threshold Tests
# ============================================================================

@pytest.mark.asyncio
async def test_threshold_default_until_ten_outcomes(tracker):
    for _ in range(9):
        tracker.record_outcome("bull_flag", -1.0)

    assert await tracker.get_current_min_confidence() == 75.0


@pytest.mark.asyncio
async def test_threshold_raised_after_losses(tracker):
    for _ in range(10):
        tracker.record_outcome("bull_flag", -1.0)

    assert await tracker.get_current_min_confidence() == 90.0


@pytest.mark.asyncio
async def test_threshold_lowered_after_wins(tracker):
    for _ in range(10):
        tracker.record_outcome("bull_flag", 1.0)

    assert await tracker.get_current_min_confidence() == 60.0


# ============================================================================
# Event Handler Tests
# ============================================================================

@pytest.mark.asyncio
async def test_learns_from_closed_paper_trades(tracker):
    for _ in range(5):
        await tracker.on_trade_executed(closed_trade(3.0))

    performance = await tracker.get_pattern_performance("bull_flag", "1h")
    assert performance.total_trades == 5


@pytest.mark.asyncio
async def test_ignores_buys_and_real_money_trades(tracker):
    await tracker.on_trade_executed(closed_trade(None))
    await tracker.on_trade_executed(closed_trade(3.0, mode="real_money"))
    await tracker.on_trade_executed(closed_trade(3.0, pattern_type=None))

    assert tracker._outcomes == {}
