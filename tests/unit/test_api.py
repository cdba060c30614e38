"""
Unit tests for the status and control API.
"""

import asyncio
import logging

import pytest
from fastapi.testclient import TestClient

from autotrader.api import create_app
from autotrader.config.settings import AppConfig
from autotrader.core.event_bus import EventBus
from autotrader.decision.engine import AutoTrader
from autotrader.integrations.exchange import StubExchangeService
from autotrader.integrations.feedback import PatternPerformanceTracker
from autotrader.integrations.risk import PortfolioRiskGate
from autotrader.main import create_application
from autotrader.storage.memory import InMemoryStore
from autotrader.utils.log_buffer import LogBuffer


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def store():
    store = InMemoryStore()
    asyncio.run(store.create_portfolio("p1", name="Main"))
    return store


@pytest.fixture
def trader(store):
    bus = EventBus()
    return AutoTrader(store, bus, PatternPerformanceTracker(), PortfolioRiskGate(store), StubExchangeService())


@pytest.fixture
def log_buffer():
    return LogBuffer(max_size=50)


@pytest.fixture
def client(trader, log_buffer):
    app = create_app(trader, trader.event_bus, log_buffer=log_buffer)
    return TestClient(app)


# ============================================================================
# Status Endpoint Tests
# ============================================================================

def test_root(client):
    response = client.get("/")

    assert response.status_code == 200
    body = response.json()
    assert body["name"] == "Autotrader Engine"
    assert body["status"] == "stopped"
    assert body["components"]["event_bus"] == "inactive"


def test_health(client):
    body = client.get("/health").json()

    assert body["status"] == "stopped"
    assert body["components"]["auto_trader"]["component"] == "AutoTrader"
    assert body["components"]["event_bus"]["queue_size"] == 0


def test_stats_without_enabled_portfolios(client):
    body = client.get("/stats").json()

    assert body["auto_trader"]["portfolio_id"] is None
    assert "events_published" in body["event_bus"]


# ============================================================================
# Portfolio Endpoint Tests
# ============================================================================

def test_enable_and_disable_auto_trading(client, trader):
    response = client.post("/portfolios/p1/auto-trading/enable")
    assert response.status_code == 200
    assert response.json() == {"portfolio_id": "p1", "auto_trading_enabled": True}
    assert "p1" in trader.portfolios
    assert client.get("/stats").json()["auto_trader"]["portfolio_id"] == "p1"

    response = client.post("/portfolios/p1/auto-trading/disable")
    assert response.json()["auto_trading_enabled"] is False
    assert "p1" not in trader.portfolios


def test_unknown_portfolio_returns_404(client):
    assert client.post("/portfolios/missing/auto-trading/enable").status_code == 404
    assert client.post("/portfolios/missing/auto-trading/disable").status_code == 404
    assert client.get("/portfolios/missing/stats").status_code == 404


def test_portfolio_stats(client):
    client.post("/portfolios/p1/auto-trading/enable")

    body = client.get("/portfolios/p1/stats").json()

    assert body["cash_balance"] == 10000.0
    assert body["positions"] == []
    assert body["engine"]["sell_only_mode"] is False
    assert body["engine"]["strategy"]["trade_unit"] == 500.0


# ============================================================================
# Log Endpoint Tests
# ============================================================================

def test_logs(client, log_buffer):
    test_logger = logging.getLogger("tests.api")
    test_logger.setLevel(logging.INFO)
    test_logger.addHandler(log_buffer)
    try:
        test_logger.info("Signal for portfolio", extra={"portfolio_id": "p1"})
        test_logger.warning("Something else")
    finally:
        test_logger.removeHandler(log_buffer)

    body = client.get("/logs", params={"portfolio_id": "p1"}).json()
    assert body["lines_returned"] == 1
    assert body["logs"][0]["message"] == "Signal for portfolio"

    body = client.get("/logs", params={"level": "warning"}).json()
    assert [log["message"] for log in body["logs"]] == ["Something else"]
    assert body["stats"]["warnings"] == 1


def test_logs_without_buffer(trader):
    client = TestClient(create_app(trader, trader.event_bus))

    assert client.get("/logs").status_code == 404


# ============================================================================
# Application Tests
# ============================================================================

def test_application_lifespan_runs_engine():
    app = create_application(AppConfig())

    with TestClient(app) as client:
        body = client.get("/").json()
        assert body["status"] == "running"
        assert body["components"]["event_bus"] == "active"
        assert client.get("/health").json()["status"] == "healthy"

    container = app.state.container
    assert not container.resolve(AutoTrader).is_active
    assert not container.resolve(EventBus).is_running
