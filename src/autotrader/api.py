"""
Status and control API.

Endpoints:
- GET  /                                    - service status
- GET  /health                              - engine and event bus health
- GET  /stats                               - engine stats and event bus stats
- GET  /portfolios/{id}/stats               - detailed portfolio stats
- POST /portfolios/{id}/auto-trading/enable - enable auto trading
- POST /portfolios/{id}/auto-trading/disable
- GET  /logs                                - recent application logs
"""

import logging
from typing import Any, Callable, Dict, Optional

from fastapi import FastAPI, HTTPException

from . import __version__
from .core.event_bus import EventBus
from .core.events import utc_now
from .decision.engine import AutoTrader
from .utils.log_buffer import LogBuffer

logger = logging.getLogger(__name__)


def create_app(
    trader: AutoTrader,
    event_bus: EventBus,
    log_buffer: Optional[LogBuffer] = None,
    lifespan: Optional[Callable] = None,
) -> FastAPI:
    """Build the FastAPI app around an AutoTrader and its event bus."""
    app = FastAPI(
        title="Autotrader Engine",
        version=__version__,
        description="Multi-portfolio autonomous paper trading engine",
        lifespan=lifespan,
    )

    @app.get("/")
    async def root() -> Dict[str, Any]:
        return {
            "name": "Autotrader Engine",
            "version": __version__,
            "status": "running" if trader.is_active else "stopped",
            "components": {
                "event_bus": "active" if event_bus.is_running else "inactive",
                "auto_trader": "active" if trader.is_active else "inactive",
            },
        }

    @app.get("/health")
    async def health() -> Dict[str, Any]:
        trader_health = await trader.health_check()
        bus_stats = event_bus.get_stats()
        return {
            "status": trader_health["status"],
            "timestamp": utc_now().isoformat(),
            "components": {
                "auto_trader": trader_health,
                "event_bus": {
                    "status": "running" if event_bus.is_running else "stopped",
                    "queue_size": event_bus.queue_size,
                    "events_dropped": bus_stats.get("events_dropped", 0),
                },
            },
        }

    @app.get("/stats")
    async def stats() -> Dict[str, Any]:
        return {
            "timestamp": utc_now().isoformat(),
            "auto_trader": trader.get_stats(),
            "event_bus": event_bus.get_stats(),
        }

    @app.get("/portfolios/{portfolio_id}/stats")
    async def portfolio_stats(portfolio_id: str) -> Dict[str, Any]:
        detailed = await trader.get_detailed_stats(portfolio_id)
        if detailed is None:
            raise HTTPException(status_code=404, detail=f"Portfolio {portfolio_id} not found")
        detailed["engine"] = trader.get_stats_for_portfolio(portfolio_id)
        return detailed

    @app.post("/portfolios/{portfolio_id}/auto-trading/enable")
    async def enable_auto_trading(portfolio_id: str) -> Dict[str, Any]:
        if not await trader.enable_auto_trading(portfolio_id):
            raise HTTPException(status_code=404, detail=f"Portfolio {portfolio_id} not found")
        return {"portfolio_id": portfolio_id, "auto_trading_enabled": True}

    @app.post("/portfolios/{portfolio_id}/auto-trading/disable")
    async def disable_auto_trading(portfolio_id: str) -> Dict[str, Any]:
        if not await trader.disable_auto_trading(portfolio_id):
            raise HTTPException(status_code=404, detail=f"Portfolio {portfolio_id} not found")
        return {"portfolio_id": portfolio_id, "auto_trading_enabled": False}

    @app.get("/logs")
    async def logs(
        lines: int = 100,
        level: Optional[str] = None,
        search: Optional[str] = None,
        portfolio_id: Optional[str] = None,
    ) -> Dict[str, Any]:
        if log_buffer is None:
            raise HTTPException(status_code=404, detail="Log buffer not configured")

        lines = min(lines, 1000)
        entries = log_buffer.get_logs(lines=lines, level=level, search=search, portfolio_id=portfolio_id)
        return {
            "timestamp": utc_now().isoformat(),
            "lines_requested": lines,
            "lines_returned": len(entries),
            "filters": {"level": level, "search": search, "portfolio_id": portfolio_id},
            "logs": entries,
            "stats": log_buffer.get_stats(),
        }

    return app
