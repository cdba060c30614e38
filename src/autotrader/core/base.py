"""
Base class for long-running engine components.

Provides start/stop bookkeeping, uptime and a health_check() hook that the
status API aggregates.
"""

import logging
from abc import ABC
from datetime import datetime
from typing import Any, Dict, Optional

from .event_bus import EventBus
from .events import utc_now


class Component(ABC):
    """
    Base class for engine components.

    Subclasses call super().start() / super().stop() and may extend
    health_check() with component-specific details.
    """

    def __init__(self, name: str, event_bus: Optional[EventBus] = None):
        self.name = name
        self.event_bus = event_bus
        self._started = False
        self._started_at: Optional[datetime] = None
        self._logger = logging.getLogger(f"{self.__class__.__module__}.{name}")

    async def start(self) -> None:
        if self._started:
            self._logger.warning("%s already started", self.name)
            return

        self._logger.info("Starting %s", self.name)
        self._started = True
        self._started_at = utc_now()

    async def stop(self) -> None:
        if not self._started:
            self._logger.warning("%s not started", self.name)
            return

        self._logger.info("Stopping %s", self.name)
        self._started = False

    async def health_check(self) -> Dict[str, Any]:
        """
        Returns:
            {"component", "status": "healthy" | "degraded" | "stopped",
             "uptime_seconds", "details"}
        """
        return {
            "component": self.name,
            "status": "healthy" if self._started else "stopped",
            "uptime_seconds": self.uptime_seconds,
            "details": {},
        }

    @property
    def is_started(self) -> bool:
        return self._started

    @property
    def uptime_seconds(self) -> float:
        if not self._started_at or not self._started:
            return 0.0
        return (utc_now() - self._started_at).total_seconds()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(name={self.name}, started={self._started})"
