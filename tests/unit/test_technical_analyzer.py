"""
Unit tests for the TechnicalAnalyzer.

Tests:
- Support/resistance detection, scoring and merging
- Fibonacci levels (uptrend, downtrend)
- Pivot points
- Chart pattern detection
- Composite entry/exit signal
- Trailing stop
"""

import math

import numpy as np
import pytest

from autotrader.analytics import TechnicalAnalyzer
from autotrader.analytics.levels import (
    find_local_maxima,
    find_local_minima,
    merge_levels,
)
from autotrader.analytics.models import PriceLevel, PricePoint
from autotrader.analytics.patterns import (
    detect_ascending_triangle,
    detect_channel,
    detect_chart_patterns,
    detect_descending_triangle,
    detect_falling_wedge,
    detect_head_and_shoulders,
    detect_inverse_head_and_shoulders,
    detect_rising_wedge,
    detect_symmetrical_triangle,
)
from autotrader.config.settings import AnalyzerConfig


def series(prices, volume=1000.0):
    return [PricePoint(price=p, volume=volume) for p in prices]


# Two equal-ish peaks around a single trough, 40 samples
DOUBLE_TOP = (
    [100.0] * 10
    + [102.0, 105.0, 110.0, 105.0, 102.0]
    + [100.0] * 5
    + [98.0, 96.0, 95.0, 96.0, 98.0]
    + [100.0] * 3
    + [102.0, 105.0, 110.5, 105.0, 102.0]
    + [100.0] * 7
)

# Mirror image: two equal-ish troughs around a single peak
DOUBLE_BOTTOM = (
    [100.0] * 10
    + [98.0, 95.0, 90.0, 95.0, 98.0]
    + [100.0] * 5
    + [102.0, 104.0, 105.0, 104.0, 102.0]
    + [100.0] * 3
    + [98.0, 95.0, 89.5, 95.0, 98.0]
    + [100.0] * 7
)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def analyzer():
    return TechnicalAnalyzer()


# ============================================================================
# Support / Resistance Tests
# ============================================================================

def test_local_extrema_need_two_neighbours_each_side():
    prices = np.array([1.0, 2.0, 5.0, 2.0, 1.0, 0.5, 0.2, 0.5, 1.0])

    assert find_local_maxima(prices) == [2]
    assert find_local_minima(prices) == [6]
    assert find_local_maxima(np.array([1.0, 2.0, 3.0, 2.0])) == []


def test_support_resistance_requires_five_samples(analyzer):
    assert analyzer.support_resistance(series([1.0, 2.0, 3.0, 2.0])) == []


def test_single_peak_scored_as_resistance(analyzer):
    levels = analyzer.support_resistance(series([1.0, 2.0, 5.0, 2.0, 1.0]))

    assert len(levels) == 1
    level = levels[0]
    assert level.level_type == "resistance"
    assert level.price == 5.0
    assert level.touches == 1
    # 15 for one touch + 30 for average volume
    assert level.strength == pytest.approx(45.0)
    assert level.confidence == 55.0


def test_invalid_prices_are_discarded(analyzer):
    points = [PricePoint(price=0.0), PricePoint(price=float("nan"))] + series([1.0, 2.0, 5.0, 2.0, 1.0])

    levels = analyzer.support_resistance(points)

    assert [l.price for l in levels] == [5.0]


def test_merge_levels_combines_close_levels_of_same_type():
    levels = [
        PriceLevel(price=100.0, strength=40.0, touches=1, level_type="resistance", confidence=55.0),
        PriceLevel(price=101.0, strength=75.0, touches=2, level_type="resistance", confidence=85.0),
        PriceLevel(price=100.5, strength=60.0, touches=1, level_type="support", confidence=70.0),
    ]

    merged = merge_levels(levels, tolerance=0.02)

    resistances = [l for l in merged if l.level_type == "resistance"]
    assert len(merged) == 2
    assert len(resistances) == 1
    assert resistances[0].price == pytest.approx(100.5)
    assert resistances[0].touches == 3
    assert resistances[0].strength == 75.0
    assert resistances[0].confidence == 85.0


def test_levels_sorted_by_strength(analyzer):
    levels = analyzer.support_resistance(series(DOUBLE_TOP))

    strengths = [l.strength for l in levels]
    assert strengths == sorted(strengths, reverse=True)
    assert {l.level_type for l in levels} == {"support", "resistance"}


# ============================================================================
# Fibonacci Tests
# ============================================================================

def test_fibonacci_uptrend(analyzer):
    fib = analyzer.fibonacci(series([10.0, 12.0, 15.0, 20.0]))

    assert fib.trend == "up"
    assert fib.direction == "retracement"
    assert fib.levels[0.0] == pytest.approx(20.0)
    assert fib.levels[0.5] == pytest.approx(15.0)
    assert fib.levels[0.618] == pytest.approx(13.82)
    assert fib.levels[1.0] == pytest.approx(10.0)
    assert fib.levels[1.618] == pytest.approx(26.18)
    assert fib.entry_levels == pytest.approx([16.18, 15.0, 13.82])
    assert fib.stop_loss == pytest.approx(12.14 * 0.98)


def test_fibonacci_downtrend(analyzer):
    fib = analyzer.fibonacci(series([20.0, 15.0, 12.0, 10.0]))

    assert fib.trend == "down"
    assert fib.direction == "extension"
    assert fib.levels[0.5] == pytest.approx(15.0)
    assert fib.levels[0.618] == pytest.approx(16.18)
    assert fib.levels[1.272] == pytest.approx(7.28)
    assert fib.entry_levels == pytest.approx([16.18, 15.0, 13.82])
    assert fib.stop_loss == pytest.approx(17.86 * 1.02)


def test_fibonacci_empty_series(analyzer):
    assert analyzer.fibonacci([]) is None


def test_only_most_recent_samples_are_used():
    analyzer = TechnicalAnalyzer(AnalyzerConfig(max_samples=10))

    fib = analyzer.fibonacci(series([float(p) for p in range(1, 21)]))

    assert fib.levels[1.0] == pytest.approx(11.0)
    assert fib.levels[0.0] == pytest.approx(20.0)


# ============================================================================
# Pivot Point Tests
# ============================================================================

def test_pivot_points(analyzer):
    pivots = analyzer.pivot_points(series([10.0, 12.0, 8.0, 11.0]))

    pivot = (12.0 + 8.0 + 11.0) / 3
    assert pivots.pivot == pytest.approx(pivot)
    assert pivots.resistance1 == pytest.approx(2 * pivot - 8.0)
    assert pivots.support1 == pytest.approx(2 * pivot - 12.0)
    assert pivots.resistance2 == pytest.approx(pivot + 4.0)
    assert pivots.support3 == pytest.approx(8.0 - 2 * (12.0 - pivot))
    assert pivots.fibonacci["r1"] == pytest.approx(pivot + 0.382 * 4.0)
    assert pivots.camarilla["r4"] == pytest.approx(11.0 + 4.0 * 1.1 / 2)
    assert pivots.camarilla["s1"] == pytest.approx(11.0 - 4.0 * 1.1 / 12)


def test_pivot_points_use_lookback():
    analyzer = TechnicalAnalyzer(AnalyzerConfig(pivot_lookback=2))

    pivots = analyzer.pivot_points(series([50.0, 10.0, 11.0]))

    assert pivots.pivot == pytest.approx((11.0 + 10.0 + 11.0) / 3)


def test_pivot_points_empty_series(analyzer):
    assert analyzer.pivot_points([]) is None


# ============================================================================
# Chart Pattern Tests
# ============================================================================

def zigzag(*pivots, step=5):
    """Straight legs of `step` samples between turning points."""
    legs = [np.linspace(a, b, step, endpoint=False) for a, b in zip(pivots, pivots[1:])]
    return np.concatenate(legs + [np.array([pivots[-1]])])


def test_patterns_need_thirty_samples():
    assert detect_chart_patterns(np.array(DOUBLE_TOP[:29])) == []


@pytest.mark.parametrize("detector,prices,expected", [
    # flat highs at 100, lows 92 -> 95
    (detect_ascending_triangle, zigzag(90, 100, 92, 100, 95, 100, 98),
     ("ascending_triangle", 75, 98.0, 105.0, 92 * 0.98)),
    # flat lows at 100, highs 108 -> 105
    (detect_descending_triangle, zigzag(110, 100, 108, 100, 105, 100, 102),
     ("descending_triangle", 75, 102.0, 95.0, 108 * 1.02)),
    # highs 120 -> 110, lows 90 -> 95; range 30
    (detect_symmetrical_triangle, zigzag(100, 120, 90, 115, 95, 110, 100),
     ("symmetrical_triangle", 80, 100.0, 115.0, 91.0)),
    # highs +6%, lows +7.8%
    (detect_rising_wedge, zigzag(95, 100, 90, 103, 97, 106, 100),
     ("rising_wedge", 72, 100.0, 90 * 0.95, 106 * 1.02)),
    # highs -5.5%, lows -7%
    (detect_falling_wedge, zigzag(105, 110, 100, 107, 93, 104, 98),
     ("falling_wedge", 72, 98.0, 110 * 1.05, 93 * 0.98)),
    (detect_channel, zigzag(95, 100, 92, 102, 94, 104, 96, 106, 98),
     ("channel_up", 70, 98.0, 106.0, 92 * 0.98)),
    (detect_channel, zigzag(105, 100, 108, 98, 106, 96, 104, 94, 102),
     ("channel_down", 70, 102.0, 94.0, 108 * 1.02)),
    # shoulders 100 / 101, head 110, neckline 96
    (detect_head_and_shoulders, zigzag(90, 100, 94, 110, 96, 101, 92, step=9),
     ("head_and_shoulders", 80, 92.0, 82.0, 110 * 1.02)),
    # shoulders 100 / 99, head 90, neckline 104
    (detect_inverse_head_and_shoulders, zigzag(110, 100, 106, 90, 104, 99, 108, step=9),
     ("inverse_head_and_shoulders", 80, 108.0, 118.0, 90 * 0.98)),
])
def test_pattern_detectors(detector, prices, expected):
    pattern_type, confidence, entry, target, stop = expected

    pattern = detector(prices)

    assert pattern.pattern_type == pattern_type
    assert pattern.confidence == confidence
    assert pattern.entry == pytest.approx(entry)
    assert pattern.target == pytest.approx(target)
    assert pattern.stop_loss == pytest.approx(stop)
    if pattern.is_bullish or pattern_type == "symmetrical_triangle":
        rr = (target - entry) / (entry - stop)
    else:
        rr = (entry - target) / (stop - entry)
    assert pattern.risk_reward_ratio == pytest.approx(rr)


@pytest.mark.parametrize("detector,prices", [
    # lows rise only 1%
    (detect_ascending_triangle, zigzag(90, 100, 95, 100, 96, 100, 98)),
    # highs fall only 1%
    (detect_descending_triangle, zigzag(110, 100, 108, 100, 107, 100, 102)),
    # lows rise only 1%
    (detect_symmetrical_triangle, zigzag(100, 120, 90, 115, 91, 110, 100)),
    # lows rise slower than highs
    (detect_rising_wedge, zigzag(95, 100, 90, 103, 92, 106, 100)),
    # lows fall slower than highs
    (detect_falling_wedge, zigzag(105, 110, 100, 107, 97, 104, 98)),
    # highs rise while lows fall
    (detect_channel, zigzag(95, 100, 92, 102, 90, 104, 88, 106, 98)),
    # shoulders 6% apart
    (detect_head_and_shoulders, zigzag(90, 100, 94, 110, 96, 106, 92, step=9)),
    # head only 2% under the left shoulder
    (detect_inverse_head_and_shoulders, zigzag(110, 100, 106, 98, 104, 99, 108, step=9)),
])
def test_pattern_detectors_reject_near_misses(detector, prices):
    assert detector(prices) is None


def test_neckline_falls_back_without_two_valleys():
    # the only dip between the left shoulder and the head is flat, so one strict valley remains
    prices = zigzag(90, 100, 94, 94, 110, 96, 101, 92, step=7)

    pattern = detect_head_and_shoulders(prices)

    neckline = 100 * 0.95
    assert pattern.target == pytest.approx(neckline - (110 - neckline))
    assert "neckline 95.0" in pattern.description


def test_double_top_detected(analyzer):
    patterns = analyzer.chart_patterns(series(DOUBLE_TOP))

    assert [p.pattern_type for p in patterns] == ["double_top"]
    pattern = patterns[0]
    assert pattern.is_bearish
    assert pattern.entry == 100.0
    assert pattern.target == pytest.approx(95.0 * 0.95)
    assert pattern.stop_loss == pytest.approx(110.5 * 1.02)
    assert pattern.risk_reward_ratio > 0


def test_double_bottom_detected(analyzer):
    patterns = analyzer.chart_patterns(series(DOUBLE_BOTTOM))

    assert [p.pattern_type for p in patterns] == ["double_bottom"]
    assert patterns[0].is_bullish
    assert patterns[0].target == pytest.approx(105.0 * 1.05)


def test_monotonic_series_has_no_patterns(analyzer):
    assert analyzer.chart_patterns(series([100.0 + i for i in range(60)])) == []


# ============================================================================
# Composite Signal Tests
# ============================================================================

def test_signal_empty_series(analyzer):
    assert analyzer.entry_exit_signal([]) is None


def test_bearish_pattern_gives_sell(analyzer):
    signal = analyzer.entry_exit_signal(series(DOUBLE_TOP))

    assert signal.action == "sell"
    assert signal.confidence == pytest.approx(75.0)
    assert signal.stop_loss == pytest.approx(110.5 * 1.02)
    assert signal.take_profit == [pytest.approx(95.0 * 0.95)]
    assert signal.risk_reward_ratio > 0
    assert any("double top" in r for r in signal.reasoning)


def test_bullish_pattern_gives_buy(analyzer):
    signal = analyzer.entry_exit_signal(series(DOUBLE_BOTTOM))

    assert signal.action == "buy"
    assert 60.0 < signal.confidence <= 95.0
    assert signal.stop_loss < signal.price
    assert 1 <= len(signal.take_profit) <= 3
    assert all(t > signal.price for t in signal.take_profit)
    assert signal.risk_reward_ratio >= 0


def test_price_near_fibonacci_entry_gives_buy(analyzer):
    # 100 -> 200 -> 152.25: 1.5% above the .5 retracement at 150
    prices = [100.0 + 10 * i for i in range(11)] + [190.0, 180.0, 170.0, 160.0, 152.25]

    signal = analyzer.entry_exit_signal(series(prices))

    assert signal.action == "buy"
    assert signal.confidence == pytest.approx(70.0)
    assert "Price at a key Fibonacci entry level" in signal.reasoning

    narrow = TechnicalAnalyzer(AnalyzerConfig(fib_proximity_pct=1.0))
    assert narrow.entry_exit_signal(series(prices)).action == "hold"


def test_trending_series_holds(analyzer):
    signal = analyzer.entry_exit_signal(series([100.0 + i for i in range(40)]))

    assert signal.action == "hold"
    assert signal.confidence == 50.0
    assert signal.take_profit == []
    assert signal.risk_reward_ratio == 0.0
    assert signal.reasoning[-1].endswith("bullish bias")


@pytest.mark.parametrize("prices", [DOUBLE_TOP, DOUBLE_BOTTOM, [1.0, 2.0, 5.0, 2.0, 1.0], [3.0]])
def test_signal_bounds(analyzer, prices):
    signal = analyzer.entry_exit_signal(series(prices))

    assert signal.confidence <= 95.0
    assert signal.risk_reward_ratio >= 0
    assert not math.isnan(signal.risk_reward_ratio)
    assert len(signal.take_profit) <= 3
    assert len(signal.support_levels) <= 3
    assert len(signal.resistance_levels) <= 3


# ============================================================================
# Trailing Stop Tests
# ============================================================================

def test_trailing_stop_ratchets_to_new_high(analyzer):
    state = analyzer.trailing_stop(current_price=108.0, highest_price=100.0, trail_pct=5.0)

    assert state.highest_price == 108.0
    assert state.current_stop == pytest.approx(102.6)
    assert not state.triggered


def test_trailing_stop_triggers_on_pullback(analyzer):
    state = analyzer.trailing_stop(current_price=100.0, highest_price=110.0)

    assert state.trail_pct == 5.0
    assert state.current_stop == pytest.approx(104.5)
    assert state.triggered
