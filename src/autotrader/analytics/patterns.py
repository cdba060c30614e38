"""
Chart Pattern Detector - geometric patterns from swing highs and lows.

Detects:
1. Triangles (ascending, descending, symmetrical) over the last 30 samples
2. Wedges (rising, falling) over the last 30 samples
3. Channels (up, down) over the last 40 samples
4. Double top / double bottom over the last 40 samples
5. Head and shoulders (and inverse) over the last 50 samples

A trend line is "rising"/"falling" when its swing points move more than 2%
first to last, and "horizontal" when their coefficient of variation is
below 1%. A head-and-shoulders neckline is the last opposite swing when
there are at least two of them, else 5% beyond the left shoulder.
"""

import logging
from typing import Callable, List, Optional

import numpy as np

from .levels import find_local_maxima, find_local_minima
from .models import ChartPattern

logger = logging.getLogger(__name__)

MIN_SAMPLES = 30
TREND_THRESHOLD = 0.02
HORIZONTAL_CV = 0.01

BULLISH_PATTERNS = {
    "ascending_triangle",
    "falling_wedge",
    "channel_up",
    "double_bottom",
    "inverse_head_and_shoulders",
}
BEARISH_PATTERNS = {
    "descending_triangle",
    "rising_wedge",
    "channel_down",
    "double_top",
    "head_and_shoulders",
}


def _direction(pattern_type: str) -> str:
    if pattern_type in BULLISH_PATTERNS:
        return "bullish"
    if pattern_type in BEARISH_PATTERNS:
        return "bearish"
    return "neutral"


def _trend(values: np.ndarray) -> float:
    return float((values[-1] - values[0]) / values[0])


def _is_horizontal(values: np.ndarray) -> bool:
    mean = float(np.mean(values))
    return mean > 0 and float(np.std(values)) / mean < HORIZONTAL_CV


def _long_rr(entry: float, target: float, stop: float) -> float:
    risk = entry - stop
    return (target - entry) / risk if risk > 0 else 0.0


def _short_rr(entry: float, target: float, stop: float) -> float:
    risk = stop - entry
    return (entry - target) / risk if risk > 0 else 0.0


def _pattern(pattern_type: str, confidence: float, entry: float, target: float,
             stop: float, rr: float, description: str) -> ChartPattern:
    return ChartPattern(
        pattern_type=pattern_type,
        confidence=confidence,
        entry=entry,
        target=target,
        stop_loss=stop,
        risk_reward_ratio=rr,
        direction=_direction(pattern_type),
        description=description,
    )


def _swings(prices: np.ndarray, window: int, min_swings: int = 2):
    """(recent, peak prices, valley prices) or None when too few swings."""
    if len(prices) < window:
        return None
    recent = prices[-window:]
    peaks = recent[find_local_maxima(recent)]
    valleys = recent[find_local_minima(recent)]
    if len(peaks) < min_swings or len(valleys) < min_swings:
        return None
    return recent, peaks, valleys


# ============================================================================
# Triangles
# ============================================================================

def detect_ascending_triangle(prices: np.ndarray) -> Optional[ChartPattern]:
    swings = _swings(prices, 30)
    if swings is None:
        return None
    recent, peaks, valleys = swings

    if not (_is_horizontal(peaks) and _trend(valleys) > TREND_THRESHOLD):
        return None

    resistance = float(np.max(peaks))
    entry = float(recent[-1])
    target = resistance * 1.05
    stop = float(np.min(valleys)) * 0.98
    rr = _long_rr(entry, target, stop)
    return _pattern(
        "ascending_triangle", 75 + (10 if rr > 2 else 0), entry, target, stop, rr,
        f"Flat resistance near {resistance:.6f} with rising support",
    )


def detect_descending_triangle(prices: np.ndarray) -> Optional[ChartPattern]:
    swings = _swings(prices, 30)
    if swings is None:
        return None
    recent, peaks, valleys = swings

    if not (_is_horizontal(valleys) and _trend(peaks) < -TREND_THRESHOLD):
        return None

    support = float(np.min(valleys))
    entry = float(recent[-1])
    target = support * 0.95
    stop = float(np.max(peaks)) * 1.02
    rr = _short_rr(entry, target, stop)
    return _pattern(
        "descending_triangle", 75 + (10 if rr > 2 else 0), entry, target, stop, rr,
        f"Flat support near {support:.6f} with falling resistance",
    )


def detect_symmetrical_triangle(prices: np.ndarray) -> Optional[ChartPattern]:
    swings = _swings(prices, 30)
    if swings is None:
        return None
    recent, peaks, valleys = swings

    if not (_trend(peaks) < -TREND_THRESHOLD and _trend(valleys) > TREND_THRESHOLD):
        return None

    entry = float(recent[-1])
    price_range = float(np.max(peaks) - np.min(valleys))
    target = entry + price_range * 0.5
    stop = entry - price_range * 0.3
    rr = _long_rr(entry, target, stop)
    return _pattern(
        "symmetrical_triangle", 70 + (10 if rr > 1.5 else 0), entry, target, stop, rr,
        "Converging highs and lows",
    )


# ============================================================================
# Wedges
# ============================================================================

def detect_rising_wedge(prices: np.ndarray) -> Optional[ChartPattern]:
    swings = _swings(prices, 30)
    if swings is None:
        return None
    recent, peaks, valleys = swings

    peak_trend, valley_trend = _trend(peaks), _trend(valleys)
    if not (peak_trend > TREND_THRESHOLD and valley_trend > TREND_THRESHOLD and peak_trend < valley_trend):
        return None

    entry = float(recent[-1])
    target = float(np.min(valleys)) * 0.95
    stop = float(np.max(peaks)) * 1.02
    return _pattern(
        "rising_wedge", 72, entry, target, stop, _short_rr(entry, target, stop),
        "Rising highs and lows converging upward",
    )


def detect_falling_wedge(prices: np.ndarray) -> Optional[ChartPattern]:
    swings = _swings(prices, 30)
    if swings is None:
        return None
    recent, peaks, valleys = swings

    peak_trend, valley_trend = _trend(peaks), _trend(valleys)
    if not (peak_trend < -TREND_THRESHOLD and valley_trend < -TREND_THRESHOLD and valley_trend < peak_trend):
        return None

    entry = float(recent[-1])
    target = float(np.max(peaks)) * 1.05
    stop = float(np.min(valleys)) * 0.98
    return _pattern(
        "falling_wedge", 72, entry, target, stop, _long_rr(entry, target, stop),
        "Falling highs and lows converging downward",
    )


# ============================================================================
# Channels
# ============================================================================

def detect_channel(prices: np.ndarray) -> Optional[ChartPattern]:
    swings = _swings(prices, 40, min_swings=3)
    if swings is None:
        return None
    recent, peaks, valleys = swings

    peak_trend, valley_trend = _trend(peaks), _trend(valleys)
    if abs(peak_trend - valley_trend) >= 0.03:
        return None

    current = float(recent[-1])
    resistance = float(np.max(peaks))
    support = float(np.min(valleys))
    mid = (resistance + support) / 2

    if peak_trend > TREND_THRESHOLD:
        entry = current if current < mid else support
        stop = support * 0.98
        return _pattern(
            "channel_up", 70, entry, resistance, stop, _long_rr(entry, resistance, stop),
            f"Parallel rising channel {support:.6f}-{resistance:.6f}",
        )

    if peak_trend < -TREND_THRESHOLD:
        entry = current if current > mid else resistance
        stop = resistance * 1.02
        return _pattern(
            "channel_down", 70, entry, support, stop, _short_rr(entry, support, stop),
            f"Parallel falling channel {support:.6f}-{resistance:.6f}",
        )

    return None


# ============================================================================
# Reversal patterns
# ============================================================================

def detect_head_and_shoulders(prices: np.ndarray) -> Optional[ChartPattern]:
    if len(prices) < 50:
        return None
    recent = prices[-50:]
    peak_idx = find_local_maxima(recent)
    if len(peak_idx) < 3:
        return None

    left, head, right = (float(p) for p in recent[peak_idx[-3:]])
    if not (head > left * 1.03 and head > right * 1.03 and abs(left - right) / left < 0.05):
        return None

    valley_idx = find_local_minima(recent)
    neckline = float(recent[valley_idx[-1]]) if len(valley_idx) > 1 else left * 0.95
    entry = float(recent[-1])
    target = neckline - (head - neckline)
    stop = head * 1.02
    return _pattern(
        "head_and_shoulders", 80, entry, target, stop, _short_rr(entry, target, stop),
        f"Head at {head:.6f} over shoulders, neckline {neckline:.6f}",
    )


def detect_inverse_head_and_shoulders(prices: np.ndarray) -> Optional[ChartPattern]:
    if len(prices) < 50:
        return None
    recent = prices[-50:]
    valley_idx = find_local_minima(recent)
    if len(valley_idx) < 3:
        return None

    left, head, right = (float(v) for v in recent[valley_idx[-3:]])
    if not (head < left * 0.97 and head < right * 0.97 and abs(left - right) / left < 0.05):
        return None

    peak_idx = find_local_maxima(recent)
    neckline = float(recent[peak_idx[-1]]) if len(peak_idx) > 1 else left * 1.05
    entry = float(recent[-1])
    target = neckline + (neckline - head)
    stop = head * 0.98
    return _pattern(
        "inverse_head_and_shoulders", 80, entry, target, stop, _long_rr(entry, target, stop),
        f"Head at {head:.6f} under shoulders, neckline {neckline:.6f}",
    )


def detect_double_top_bottom(prices: np.ndarray) -> Optional[ChartPattern]:
    if len(prices) < 40:
        return None
    recent = prices[-40:]
    peak_idx = find_local_maxima(recent)
    valley_idx = find_local_minima(recent)
    entry = float(recent[-1])

    if len(peak_idx) >= 2:
        first, second = (float(p) for p in recent[peak_idx[-2:]])
        if abs(first - second) / first < 0.03:
            support = float(recent[valley_idx[-1]]) if valley_idx else float(np.min(recent))
            target = support * 0.95
            stop = max(first, second) * 1.02
            return _pattern(
                "double_top", 75, entry, target, stop, _short_rr(entry, target, stop),
                f"Twin highs near {max(first, second):.6f}",
            )

    if len(valley_idx) >= 2:
        first, second = (float(v) for v in recent[valley_idx[-2:]])
        if abs(first - second) / first < 0.03:
            resistance = float(recent[peak_idx[-1]]) if peak_idx else float(np.max(recent))
            target = resistance * 1.05
            stop = min(first, second) * 0.98
            return _pattern(
                "double_bottom", 75, entry, target, stop, _long_rr(entry, target, stop),
                f"Twin lows near {min(first, second):.6f}",
            )

    return None


DETECTORS: List[Callable[[np.ndarray], Optional[ChartPattern]]] = [
    detect_ascending_triangle,
    detect_descending_triangle,
    detect_symmetrical_triangle,
    detect_rising_wedge,
    detect_falling_wedge,
    detect_channel,
    detect_head_and_shoulders,
    detect_inverse_head_and_shoulders,
    detect_double_top_bottom,
]


def detect_chart_patterns(prices: np.ndarray) -> List[ChartPattern]:
    """All detected patterns, highest confidence first; [] under 30 samples."""
    if len(prices) < MIN_SAMPLES:
        return []

    patterns = [p for p in (detector(prices) for detector in DETECTORS) if p is not None]
    patterns.sort(key=lambda p: p.confidence, reverse=True)
    return patterns
