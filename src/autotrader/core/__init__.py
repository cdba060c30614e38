"""
Core infrastructure: events, event bus, dependency injection.
"""

from .base import Component
from .di_container import (
    CircularDependencyError,
    DependencyContainer,
    DependencyResolutionError,
)
from .event_bus import EventBus, EventBusStats, OverflowPolicy
from .events import (
    AlertTriggered,
    Event,
    PatternDetected,
    SellOnlyModeChanged,
    StatsUpdate,
    TradeExecuted,
)

__all__ = [
    'Component',
    'DependencyContainer',
    'DependencyResolutionError',
    'CircularDependencyError',
    'EventBus',
    'EventBusStats',
    'OverflowPolicy',
    'Event',
    'PatternDetected',
    'AlertTriggered',
    'TradeExecuted',
    'StatsUpdate',
    'SellOnlyModeChanged',
]
