"""
Unit tests for the EventBus.

Tests:
- Event publishing and subscription
- Handler execution (async and sync)
- Error isolation
- Overflow policies (block with timeout, drop)
- Statistics tracking
- Graceful shutdown
"""

import asyncio

import pytest

from autotrader.core.event_bus import EventBus, OverflowPolicy
from autotrader.core.events import (
    AlertTriggered,
    PatternDetected,
    SellOnlyModeChanged,
    StatsUpdate,
)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
async def event_bus():
    """Create and start an event bus for testing."""
    bus = EventBus(max_queue_size=100)
    await bus.start()
    yield bus
    await bus.stop()


@pytest.fixture
def sample_pattern():
    return PatternDetected(
        id="pattern-1",
        token_id="token-1",
        pattern_type="bull_flag",
        confidence=82.0,
    )


# ============================================================================
# Basic Functionality Tests
# ============================================================================

@pytest.mark.asyncio
async def test_event_bus_initialization():
    """Test event bus can be initialized and started."""
    bus = EventBus(max_queue_size=50)

    assert not bus.is_running
    assert bus.queue_size == 0
    assert bus.overflow_policy is OverflowPolicy.BLOCK

    await bus.start()
    assert bus.is_running

    await bus.stop()
    assert not bus.is_running


@pytest.mark.asyncio
async def test_publish_and_subscribe(event_bus, sample_pattern):
    """Test basic event publishing and subscription."""
    received = []

    async def handler(event: PatternDetected):
        received.append(event)

    event_bus.subscribe(PatternDetected, handler)

    assert await event_bus.publish(sample_pattern) is True
    await event_bus.join()

    assert received == [sample_pattern]
    assert received[0].pattern_type == "bull_flag"


@pytest.mark.asyncio
async def test_multiple_subscribers(event_bus, sample_pattern):
    """Test multiple handlers can subscribe to the same event type."""
    first, second = [], []

    async def handler1(event):
        first.append(event)

    async def handler2(event):
        second.append(event)

    event_bus.subscribe(PatternDetected, handler1)
    event_bus.subscribe(PatternDetected, handler2)
    assert event_bus.get_subscriber_count(PatternDetected) == 2

    await event_bus.publish(sample_pattern)
    await event_bus.join()

    assert len(first) == 1
    assert len(second) == 1


@pytest.mark.asyncio
async def test_duplicate_subscription_ignored(event_bus):
    async def handler(event):
        pass

    event_bus.subscribe(PatternDetected, handler)
    event_bus.subscribe(PatternDetected, handler)

    assert event_bus.get_subscriber_count(PatternDetected) == 1


@pytest.mark.asyncio
async def test_events_routed_by_type(event_bus, sample_pattern):
    """Handlers only receive the event type they subscribed to."""
    patterns, alerts = [], []

    async def on_pattern(event):
        patterns.append(event)

    async def on_alert(event):
        alerts.append(event)

    event_bus.subscribe(PatternDetected, on_pattern)
    event_bus.subscribe(AlertTriggered, on_alert)

    await event_bus.publish(sample_pattern)
    await event_bus.publish(AlertTriggered(token_id="token-1", alert_type="volume_surge", confidence=90.0))
    await event_bus.join()

    assert len(patterns) == 1
    assert len(alerts) == 1
    assert alerts[0].alert_type == "volume_surge"


@pytest.mark.asyncio
async def test_wildcard_subscription(event_bus, sample_pattern):
    """subscribe_to_all receives every event type."""
    seen = []

    async def audit(event):
        seen.append(event.event_type)

    event_bus.subscribe_to_all(audit)

    await event_bus.publish(sample_pattern)
    await event_bus.publish(SellOnlyModeChanged(portfolio_id="p1", sell_only=True, cash_balance=100.0))
    await event_bus.join()

    assert seen == ["PatternDetected", "SellOnlyModeChanged"]


@pytest.mark.asyncio
async def test_sync_handler(event_bus, sample_pattern):
    """Synchronous handlers run in an executor."""
    received = []

    def handler(event):
        received.append(event)

    event_bus.subscribe(PatternDetected, handler)
    await event_bus.publish(sample_pattern)
    await event_bus.join()

    assert len(received) == 1


@pytest.mark.asyncio
async def test_unsubscribe(event_bus, sample_pattern):
    received = []

    async def handler(event):
        received.append(event)

    event_bus.subscribe(PatternDetected, handler)
    event_bus.unsubscribe(PatternDetected, handler)

    await event_bus.publish(sample_pattern)
    await event_bus.join()

    assert received == []
    assert event_bus.get_subscriber_count(PatternDetected) == 0


# ============================================================================
# Error Isolation Tests
# ============================================================================

@pytest.mark.asyncio
async def test_handler_error_isolation(event_bus, sample_pattern):
    """A failing handler does not prevent other handlers from running."""
    received = []

    async def failing_handler(event):
        raise ValueError("boom")

    async def working_handler(event):
        received.append(event)

    event_bus.subscribe(PatternDetected, failing_handler)
    event_bus.subscribe(PatternDetected, working_handler)

    await event_bus.publish(sample_pattern)
    await event_bus.join()

    assert len(received) == 1
    stats = event_bus.get_stats()
    assert stats["handler_errors"] == 1
    assert stats["handlers_executed"] == 1


# ============================================================================
# Overflow Tests
# ============================================================================

@pytest.mark.asyncio
async def test_drop_policy_drops_when_full(sample_pattern):
    """With the drop policy a full queue rejects immediately and counts the drop."""
    bus = EventBus(max_queue_size=2, overflow_policy="drop")

    assert await bus.publish(sample_pattern) is True
    assert await bus.publish(sample_pattern) is True
    assert await bus.publish(sample_pattern) is False

    stats = bus.get_stats()
    assert stats["events_published"] == 2
    assert stats["events_dropped"] == 1
    assert stats["queue_size"] == 2


@pytest.mark.asyncio
async def test_block_policy_times_out_then_drops(sample_pattern):
    """With the block policy publish waits up to the timeout, then drops."""
    bus = EventBus(max_queue_size=1, overflow_policy="block", publish_timeout=0.05)

    assert await bus.publish(sample_pattern) is True
    assert await bus.publish(sample_pattern) is False
    assert bus.get_stats()["events_dropped"] == 1


@pytest.mark.asyncio
async def test_block_policy_waits_for_free_slot(sample_pattern):
    """A blocked publish succeeds once the consumer frees a slot."""
    bus = EventBus(max_queue_size=1, overflow_policy="block", publish_timeout=2.0)
    await bus.publish(sample_pattern)

    publish_task = asyncio.create_task(bus.publish(sample_pattern))
    await asyncio.sleep(0.05)
    assert not publish_task.done()

    await bus.start()
    assert await publish_task is True
    await bus.stop()

    assert bus.get_stats()["events_dropped"] == 0


def test_invalid_overflow_policy():
    with pytest.raises(ValueError):
        EventBus(overflow_policy="explode")


# ============================================================================
# Statistics & Shutdown Tests
# ============================================================================

@pytest.mark.asyncio
async def test_statistics_tracking(event_bus):
    async def handler(event):
        pass

    event_bus.subscribe(StatsUpdate, handler)

    for i in range(5):
        await event_bus.publish(StatsUpdate(
            portfolio_id="p1",
            total_value=10000.0 + i,
            total_pnl=float(i),
            total_trades=i,
            today_trades=i,
            active_positions=0,
        ))
    await event_bus.join()

    stats = event_bus.get_stats()
    assert stats["events_published"] == 5
    assert stats["events_processed"] == 5
    assert stats["handlers_executed"] == 5
    assert stats["events_dropped"] == 0
    assert stats["uptime_seconds"] >= 0


@pytest.mark.asyncio
async def test_graceful_shutdown_drains_queue(sample_pattern):
    """Events queued before stop() are still dispatched."""
    bus = EventBus(max_queue_size=100)
    received = []

    async def handler(event):
        received.append(event)

    bus.subscribe(PatternDetected, handler)
    for _ in range(10):
        await bus.publish(sample_pattern)

    await bus.start()
    await bus.stop()

    assert len(received) == 10
    assert not bus.is_running
