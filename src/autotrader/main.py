"""
Autotrader Engine - Main Entry Point

Wires the components together and serves the status API:
- Event Bus (bounded queue, always on)
- DI Container (dependency injection)
- Persistence store (in-memory)
- Pattern performance feedback, market health, risk gate, exchange service
- Technical analyzer
- AutoTrader (reactive + timed)
- FastAPI status app, served with uvicorn

Run with:
    python -m autotrader.main
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI

from .analytics.analyzer import TechnicalAnalyzer
from .api import create_app
from .config.loader import load_app_config
from .config.settings import AnalyzerConfig, AppConfig, TradingConfig
from .core.di_container import DependencyContainer
from .core.event_bus import EventBus
from .core.events import TradeExecuted
from .decision.engine import AutoTrader
from .integrations.exchange import ExchangeService, StubExchangeService
from .integrations.feedback import PatternPerformanceFeedback, PatternPerformanceTracker
from .integrations.market_health import MarketHealth, OpenMarket
from .integrations.risk import PortfolioRiskGate, RiskGate
from .storage.base import PersistenceStore
from .storage.memory import InMemoryStore
from .utils.log_buffer import LogBuffer, setup_log_buffer
from .utils.logger import setup_logging

logger = logging.getLogger(__name__)


# ============================================================================
# Setup Functions
# ============================================================================

def setup_di_container(config: AppConfig) -> DependencyContainer:
    """
    Register every service in a DI container.

    Services with constructor dependencies (risk gate, analyzer, AutoTrader)
    are registered as types and resolved through their type hints.
    """
    container = DependencyContainer()

    logger.info("=" * 70)
    logger.info("Setting up DI Container...")
    logger.info("=" * 70)

    container.register_singleton(AppConfig, config)
    container.register_singleton(TradingConfig, config.trading)
    container.register_singleton(AnalyzerConfig, config.analyzer)

    bus = EventBus(
        max_queue_size=config.event_bus.max_queue_size,
        overflow_policy=config.event_bus.overflow_policy,
        publish_timeout=config.event_bus.publish_timeout_seconds,
    )
    container.register_singleton(EventBus, bus)
    logger.info("✓ Registered EventBus")

    container.register_singleton(InMemoryStore, InMemoryStore())
    container.register_alias(PersistenceStore.__name__, InMemoryStore)
    logger.info("✓ Registered PersistenceStore (in-memory)")

    tracker = PatternPerformanceTracker(default_min_confidence=config.trading.default_min_confidence)
    container.register_singleton(PatternPerformanceTracker, tracker)
    container.register_alias(PatternPerformanceFeedback.__name__, PatternPerformanceTracker)
    logger.info("✓ Registered PatternPerformanceFeedback")

    container.register_singleton(MarketHealth, OpenMarket())
    logger.info("✓ Registered MarketHealth (open market)")

    container.register_type(RiskGate, PortfolioRiskGate, as_singleton=True)
    container.register_singleton(ExchangeService, StubExchangeService())
    logger.info("✓ Registered RiskGate and ExchangeService")

    container.register_type(TechnicalAnalyzer, as_singleton=True)
    container.register_type(AutoTrader, as_singleton=True)
    logger.info("✓ Registered TechnicalAnalyzer and AutoTrader")

    logger.info(f"DI Container setup complete: {len(container.get_registered_names())} services")
    return container


async def start_components(container: DependencyContainer) -> None:
    """Start the event bus first, then the engine."""
    bus = container.resolve(EventBus)
    await bus.start()
    logger.info("✓ Event Bus started")

    tracker = container.resolve(PatternPerformanceTracker)
    bus.subscribe(TradeExecuted, tracker.on_trade_executed)

    trader = container.resolve(AutoTrader)
    await trader.start()
    logger.info("✓ AutoTrader started")


async def stop_components(container: DependencyContainer) -> None:
    """Stop in reverse order; the event bus goes last."""
    trader = container.resolve(AutoTrader)
    await trader.stop()
    logger.info("✓ AutoTrader stopped")

    bus = container.resolve(EventBus)
    await bus.stop()
    logger.info("✓ Event Bus stopped")


def create_application(config: AppConfig, log_buffer: Optional[LogBuffer] = None) -> FastAPI:
    """Build the container and the API app whose lifespan runs the engine."""
    container = setup_di_container(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("🚀 Starting Autotrader Engine")
        try:
            await start_components(container)
        except Exception as e:
            logger.error(f"❌ Failed to start autotrader engine: {e}")
            logger.exception("Full traceback:")
            raise
        yield
        logger.info("Shutting down Autotrader Engine...")
        await stop_components(container)

    app = create_app(
        container.resolve(AutoTrader),
        container.resolve(EventBus),
        log_buffer=log_buffer,
        lifespan=lifespan,
    )
    app.state.container = container
    return app


def main() -> None:
    config = load_app_config()
    setup_logging(
        log_level=config.system.log_level,
        log_file=config.system.log_file,
        json_format=config.system.json_logs,
    )
    log_buffer = setup_log_buffer()

    app = create_application(config, log_buffer)
    uvicorn.run(
        app,
        host=config.system.api_host,
        port=config.system.api_port,
        log_level=str(config.system.log_level).lower(),
    )


if __name__ == "__main__":
    main()
