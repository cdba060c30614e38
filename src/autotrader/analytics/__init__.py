"""
Technical analysis over price/volume series.

- levels: support/resistance, Fibonacci, pivot points
- patterns: triangles, wedges, channels, head and shoulders, double tops/bottoms
- analyzer: TechnicalAnalyzer facade, composite signal, trailing stop
"""

from .analyzer import TechnicalAnalyzer
from .models import (
    ChartPattern,
    EntryExitSignal,
    FibonacciLevels,
    PivotPoints,
    PriceLevel,
    PricePoint,
    TrailingStopState,
)
from .patterns import BEARISH_PATTERNS, BULLISH_PATTERNS, detect_chart_patterns

__all__ = [
    'TechnicalAnalyzer',
    'PricePoint',
    'PriceLevel',
    'FibonacciLevels',
    'PivotPoints',
    'ChartPattern',
    'EntryExitSignal',
    'TrailingStopState',
    'BULLISH_PATTERNS',
    'BEARISH_PATTERNS',
    'detect_chart_patterns',
]
