"""
Autotrader - multi-portfolio paper-trading decision engine.

Packages:
- core: event bus, events, dependency injection
- config: pydantic settings and YAML loader
- position: portfolio/position/trade models and exit rules
- storage: persistence protocol and in-memory store
- integrations: performance feedback, risk gate, exchange service
- decision: the AutoTrader orchestrator
- analytics: pure technical analyzer
- utils: logging setup, trade logger, in-memory log buffer
- api / main: FastAPI status app and the uvicorn entry point
"""

__version__ = "0.1.0"
