"""
Price levels: support/resistance, Fibonacci and pivot points.

All functions take numpy arrays of already-cleaned prices (and volumes)
in ascending time order.
"""

import logging
from typing import List, Optional

import numpy as np

from .models import FibonacciLevels, PivotPoints, PriceLevel

logger = logging.getLogger(__name__)

FIB_RATIOS = (0.0, 0.236, 0.382, 0.5, 0.618, 0.786, 1.0, 1.272, 1.618, 2.618)
FIB_ENTRY_RATIOS = (0.382, 0.5, 0.618)
FIB_EXIT_RATIOS = (1.272, 1.618, 2.618)
FIB_STOP_RATIO = 0.786


# ============================================================================
# Local extrema
# ============================================================================

def find_local_maxima(prices: np.ndarray) -> List[int]:
    """Indices strictly above both neighbours on each side (5-point window)."""
    if len(prices) < 5:
        return []

    center = prices[2:-2]
    mask = (
        (center > prices[1:-3]) & (center > prices[:-4])
        & (center > prices[3:-1]) & (center > prices[4:])
    )
    return (np.nonzero(mask)[0] + 2).tolist()


def find_local_minima(prices: np.ndarray) -> List[int]:
    """Indices strictly below both neighbours on each side (5-point window)."""
    if len(prices) < 5:
        return []

    center = prices[2:-2]
    mask = (
        (center < prices[1:-3]) & (center < prices[:-4])
        & (center < prices[3:-1]) & (center < prices[4:])
    )
    return (np.nonzero(mask)[0] + 2).tolist()


# ============================================================================
# Support / Resistance
# ============================================================================

def count_touches(prices: np.ndarray, level: float, tolerance: float) -> int:
    """Samples within `tolerance` (fraction) of `level`."""
    return int(np.count_nonzero(np.abs(prices - level) / level <= tolerance))


def level_strength(touches: int, volume: float, volumes: np.ndarray) -> float:
    """
    Score 0-100: up to 60 from touches (15 each), up to 40 from the
    volume at the extremum relative to average volume.
    """
    avg_volume = float(np.mean(volumes)) if len(volumes) else 0.0
    volume_ratio = volume / avg_volume if avg_volume > 0 else 1.0

    touch_score = min(touches * 15, 60)
    volume_score = min(volume_ratio * 30, 40)
    return min(touch_score + volume_score, 100.0)


def level_confidence(strength: float) -> float:
    if strength > 70:
        return 85.0
    if strength > 50:
        return 70.0
    return 55.0


def merge_levels(levels: List[PriceLevel], tolerance: float) -> List[PriceLevel]:
    """
    Merge same-type levels closer than `tolerance` (fraction).

    Merged levels keep the averaged price, the stronger strength and the
    summed touches.
    """
    merged: List[PriceLevel] = []
    for level in sorted(levels, key=lambda l: l.price):
        similar = next(
            (
                m for m in merged
                if m.level_type == level.level_type
                and abs(m.price - level.price) / level.price < tolerance
            ),
            None,
        )
        if similar is None:
            merged.append(level)
            continue

        similar.touches += level.touches
        similar.strength = max(similar.strength, level.strength)
        similar.confidence = level_confidence(similar.strength)
        similar.price = (similar.price + level.price) / 2
    return merged


def support_resistance(
    prices: np.ndarray,
    volumes: np.ndarray,
    touch_tolerance: float = 0.015,
    merge_tolerance: float = 0.02,
    max_levels: int = 10,
) -> List[PriceLevel]:
    """
    Identify support (local minima) and resistance (local maxima) levels.

    Returns:
        Up to `max_levels` levels, strongest first; [] for fewer than 5 samples
    """
    if len(prices) < 5:
        return []

    levels: List[PriceLevel] = []
    for level_type, indices in (
        ("resistance", find_local_maxima(prices)),
        ("support", find_local_minima(prices)),
    ):
        for i in indices:
            price = float(prices[i])
            touches = count_touches(prices, price, touch_tolerance)
            strength = level_strength(touches, float(volumes[i]), volumes)
            levels.append(
                PriceLevel(
                    price=price,
                    strength=strength,
                    touches=touches,
                    level_type=level_type,
                    confidence=level_confidence(strength),
                )
            )

    merged = merge_levels(levels, merge_tolerance)
    merged.sort(key=lambda l: l.strength, reverse=True)
    return merged[:max_levels]


# ============================================================================
# Fibonacci
# ============================================================================

def fibonacci_levels(prices: np.ndarray) -> Optional[FibonacciLevels]:
    """
    Fibonacci levels over the full range of `prices`.

    Uptrend (last > first): retracements measured down from the high,
    extensions above it. Downtrend: mirrored from the low.
    """
    if len(prices) == 0:
        return None

    high = float(np.max(prices))
    low = float(np.min(prices))
    price_range = high - low
    uptrend = prices[-1] > prices[0]

    levels = {}
    for ratio in FIB_RATIOS:
        if uptrend:
            if ratio <= 1.0:
                levels[ratio] = high - price_range * ratio
            else:
                levels[ratio] = high + price_range * (ratio - 1.0)
        else:
            if ratio <= 1.0:
                levels[ratio] = low + price_range * ratio
            else:
                levels[ratio] = low - price_range * (ratio - 1.0)

    entry_ratios = FIB_ENTRY_RATIOS if uptrend else tuple(reversed(FIB_ENTRY_RATIOS))
    stop_factor = 0.98 if uptrend else 1.02

    return FibonacciLevels(
        levels=levels,
        trend="up" if uptrend else "down",
        direction="retracement" if uptrend else "extension",
        entry_levels=[levels[r] for r in entry_ratios],
        exit_levels=[levels[r] for r in FIB_EXIT_RATIOS],
        stop_loss=levels[FIB_STOP_RATIO] * stop_factor,
    )


# ============================================================================
# Pivot points
# ============================================================================

def pivot_points(prices: np.ndarray, lookback: int = 24) -> Optional[PivotPoints]:
    """Classic, Fibonacci and Camarilla pivots over the last `lookback` samples."""
    recent = prices[-lookback:]
    if len(recent) == 0:
        return None

    high = float(np.max(recent))
    low = float(np.min(recent))
    close = float(recent[-1])
    price_range = high - low
    pivot = (high + low + close) / 3

    fibonacci = {
        "pivot": pivot,
        "r1": pivot + 0.382 * price_range,
        "r2": pivot + 0.618 * price_range,
        "r3": pivot + 1.000 * price_range,
        "s1": pivot - 0.382 * price_range,
        "s2": pivot - 0.618 * price_range,
        "s3": pivot - 1.000 * price_range,
    }

    camarilla = {"pivot": pivot}
    for n, divisor in enumerate((12, 6, 4, 2), start=1):
        offset = price_range * 1.1 / divisor
        camarilla[f"r{n}"] = close + offset
        camarilla[f"s{n}"] = close - offset

    return PivotPoints(
        pivot=pivot,
        resistance1=2 * pivot - low,
        resistance2=pivot + price_range,
        resistance3=high + 2 * (pivot - low),
        support1=2 * pivot - high,
        support2=pivot - price_range,
        support3=low - 2 * (high - pivot),
        fibonacci=fibonacci,
        camarilla=camarilla,
    )
