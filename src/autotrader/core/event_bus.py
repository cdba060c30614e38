"""
Event Bus - bounded publish/subscribe channel between components.

Pattern/alert sources publish inbound events here and the AutoTrader
publishes TradeExecuted / StatsUpdate for downstream transport.

Key Features:
- Bounded asyncio.Queue with an explicit overflow policy
- Type-keyed and wildcard subscriptions
- Parallel handler execution with error isolation
- Statistics tracking (published, processed, dropped, handler errors)
- Graceful shutdown that drains the queue

Overflow policy:
- "block": publishers wait up to publish_timeout for a free slot, then the
  event is dropped
- "drop": a full queue drops the event immediately

Dropped events are counted and logged; publish() never raises on overflow.
"""

import asyncio
import inspect
import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Type

from .events import Event, utc_now

logger = logging.getLogger(__name__)


class OverflowPolicy(str, Enum):
    """What publish() does when the queue is full."""
    BLOCK = "block"
    DROP = "drop"


# ============================================================================
# Event Bus Statistics
# ============================================================================

@dataclass
class EventBusStats:
    """Counters for event bus monitoring."""
    events_published: int = 0
    events_processed: int = 0
    events_dropped: int = 0
    handlers_executed: int = 0
    handler_errors: int = 0
    total_processing_time_ms: float = 0.0
    started_at: Optional[datetime] = None
    last_event_at: Optional[datetime] = None

    @property
    def avg_processing_time_ms(self) -> float:
        if not self.events_processed:
            return 0.0
        return self.total_processing_time_ms / self.events_processed

    def get_stats_dict(self, queue_size: int = 0) -> Dict[str, Any]:
        return {
            "events_published": self.events_published,
            "events_processed": self.events_processed,
            "events_dropped": self.events_dropped,
            "handlers_executed": self.handlers_executed,
            "handler_errors": self.handler_errors,
            "avg_processing_time_ms": round(self.avg_processing_time_ms, 2),
            "queue_size": queue_size,
            "uptime_seconds": (
                (utc_now() - self.started_at).total_seconds()
                if self.started_at
                else 0
            ),
        }


# ============================================================================
# Event Bus
# ============================================================================

class EventBus:
    """
    Bounded event distribution system.

    Usage:
        bus = EventBus(max_queue_size=1000, overflow_policy="block")
        bus.subscribe(PatternDetected, trader.on_pattern_detected)
        await bus.start()
        await bus.publish(PatternDetected(...))
        await bus.stop()
    """

    def __init__(
        self,
        max_queue_size: int = 1000,
        overflow_policy: str = OverflowPolicy.BLOCK,
        publish_timeout: float = 1.0,
    ):
        """
        Args:
            max_queue_size: Queue capacity before the overflow policy applies
            overflow_policy: "block" or "drop"
            publish_timeout: Seconds a blocking publish waits for a free slot
        """
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue_size)
        self._overflow_policy = OverflowPolicy(overflow_policy)
        self._publish_timeout = publish_timeout

        # Subscribers: {EventType: [handler1, handler2, ...]}
        self._subscribers: Dict[Type[Event], List[Callable]] = defaultdict(list)
        self._wildcard_subscribers: List[Callable] = []

        self._running = False
        self._event_loop_task: Optional[asyncio.Task] = None
        self._stats = EventBusStats()

        logger.info(
            "EventBus initialized (max queue size: %d, overflow: %s)",
            max_queue_size,
            self._overflow_policy.value,
        )

    # ========================================================================
    # Subscription Management
    # ========================================================================

    def subscribe(self, event_type: Type[Event], handler: Callable[[Event], Any]) -> None:
        """Subscribe an async or sync handler to one event type."""
        if handler in self._subscribers[event_type]:
            logger.warning(
                "Handler %s already subscribed to %s",
                _handler_name(handler),
                event_type.__name__,
            )
            return

        self._subscribers[event_type].append(handler)
        logger.info(
            "Subscribed %s to %s (total: %d handlers)",
            _handler_name(handler),
            event_type.__name__,
            len(self._subscribers[event_type]),
        )

    def subscribe_to_all(self, handler: Callable[[Event], Any]) -> None:
        """Subscribe a handler to every event (logging, transport bridges)."""
        if handler not in self._wildcard_subscribers:
            self._wildcard_subscribers.append(handler)
            logger.info("Subscribed %s to ALL events", _handler_name(handler))

    def unsubscribe(self, event_type: Type[Event], handler: Callable[[Event], Any]) -> None:
        if handler in self._subscribers[event_type]:
            self._subscribers[event_type].remove(handler)
            logger.info(
                "Unsubscribed %s from %s", _handler_name(handler), event_type.__name__
            )

    def unsubscribe_all(self, handler: Callable[[Event], Any]) -> None:
        for handlers in self._subscribers.values():
            if handler in handlers:
                handlers.remove(handler)
        if handler in self._wildcard_subscribers:
            self._wildcard_subscribers.remove(handler)

    def get_subscriber_count(self, event_type: Optional[Type[Event]] = None) -> int:
        if event_type:
            return len(self._subscribers[event_type])
        return sum(len(handlers) for handlers in self._subscribers.values())

    # ========================================================================
    # Event Publishing
    # ========================================================================

    async def publish(self, event: Event) -> bool:
        """
        Publish an event.

        Returns:
            True if the event was queued, False if it was dropped
        """
        try:
            if self._overflow_policy is OverflowPolicy.DROP:
                self._queue.put_nowait(event)
            else:
                await asyncio.wait_for(self._queue.put(event), timeout=self._publish_timeout)
        except (asyncio.QueueFull, asyncio.TimeoutError):
            self._stats.events_dropped += 1
            logger.warning(
                "Event queue full (max: %d), dropping %s",
                self._queue.maxsize,
                event.__class__.__name__,
            )
            return False

        self._stats.events_published += 1
        self._stats.last_event_at = utc_now()
        logger.debug(
            "Published event: %s (queue size: %d)",
            event.__class__.__name__,
            self._queue.qsize(),
        )
        return True

    # ========================================================================
    # Event Loop Management
    # ========================================================================

    async def start(self) -> None:
        """Start the background dispatch loop."""
        if self._running:
            logger.warning("EventBus already running")
            return

        self._running = True
        self._stats.started_at = utc_now()
        self._event_loop_task = asyncio.create_task(self._process_events())
        logger.info("EventBus started")

    async def stop(self, timeout: float = 5.0) -> None:
        """Stop the bus, draining queued events for up to `timeout` seconds."""
        if not self._running:
            logger.warning("EventBus not running")
            return

        logger.info("Stopping EventBus (draining queue: %d events)...", self._queue.qsize())
        self._running = False

        if self._event_loop_task:
            try:
                await asyncio.wait_for(self._event_loop_task, timeout=timeout)
                logger.info("EventBus stopped gracefully")
            except asyncio.TimeoutError:
                logger.warning("EventBus shutdown timeout - forcing stop")
                self._event_loop_task.cancel()
                try:
                    await self._event_loop_task
                except asyncio.CancelledError:
                    pass

    async def join(self) -> None:
        """Wait until every queued event has been dispatched."""
        await self._queue.join()

    async def _process_events(self) -> None:
        logger.info("Event processing loop started")

        while self._running or not self._queue.empty():
            try:
                try:
                    event = await asyncio.wait_for(self._queue.get(), timeout=0.1)
                except asyncio.TimeoutError:
                    continue

                try:
                    self._stats.events_processed += 1
                    start_time = utc_now()
                    await self._dispatch_event(event)
                    self._stats.total_processing_time_ms += (
                        (utc_now() - start_time).total_seconds() * 1000
                    )
                finally:
                    self._queue.task_done()

            except Exception as e:
                logger.exception("Error in event processing loop: %s", e)

        logger.info("Event processing loop stopped")

    async def _dispatch_event(self, event: Event) -> None:
        handlers = self._subscribers.get(type(event), []) + self._wildcard_subscribers
        if not handlers:
            logger.debug("No handlers for event: %s", type(event).__name__)
            return

        tasks = [
            asyncio.create_task(
                self._execute_handler(handler, event),
                name=f"handler_{_handler_name(handler)}",
            )
            for handler in handlers
        ]
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _execute_handler(self, handler: Callable, event: Event) -> None:
        try:
            if inspect.iscoroutinefunction(handler):
                await handler(event)
            else:
                loop = asyncio.get_running_loop()
                await loop.run_in_executor(None, handler, event)
            self._stats.handlers_executed += 1
        except Exception as e:
            self._stats.handler_errors += 1
            logger.exception(
                "Error in handler %s for event %s: %s",
                _handler_name(handler),
                event.__class__.__name__,
                e,
            )

    # ========================================================================
    # Statistics & Monitoring
    # ========================================================================

    def get_stats(self) -> Dict[str, Any]:
        return self._stats.get_stats_dict(queue_size=self._queue.qsize())

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def queue_size(self) -> int:
        return self._queue.qsize()

    @property
    def overflow_policy(self) -> OverflowPolicy:
        return self._overflow_policy

    def __repr__(self) -> str:
        return (
            f"EventBus(running={self._running}, "
            f"queue_size={self._queue.qsize()}, "
            f"subscribers={self.get_subscriber_count()}, "
            f"events_dropped={self._stats.events_dropped})"
        )


def _handler_name(handler: Callable) -> str:
    return getattr(handler, "__qualname__", None) or getattr(handler, "__name__", repr(handler))
