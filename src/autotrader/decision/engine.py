"""
AutoTrader - multi-portfolio paper trading decision engine.

Reactive + timed component that:
1. Reacts to PatternDetected / AlertTriggered events on the bus
2. Sweeps every enabled portfolio on a timer (exit rules, valuation)
3. Reconciles the enabled-portfolio set with storage on a slower timer
4. Publishes TradeExecuted / StatsUpdate / SellOnlyModeChanged

Every portfolio is evaluated in isolation: a failure in one never stops
processing of the others.

Concurrency:
- per-portfolio guard set: a position is never sold twice concurrently
- versioned position writes: the store rejects stale soft-closes
- per-portfolio ledger lock around cash / realized P&L updates
- per-portfolio buy lock: duplicate checks and position opens do not interleave
"""

import asyncio
import dataclasses
import logging
import math
from typing import Any, Dict, List, Optional, Set

from ..config.settings import TradingConfig
from ..core.base import Component
from ..core.event_bus import EventBus
from ..core.events import (
    AlertTriggered,
    PatternDetected,
    SellOnlyModeChanged,
    StatsUpdate,
    TradeExecuted,
    utc_now,
)
from ..exceptions import StaleWriteError
from ..integrations.exchange import ExchangeService, ExchangeTradingSignal
from ..integrations.feedback import PatternPerformance, PatternPerformanceFeedback
from ..integrations.market_health import MarketHealth, OpenMarket
from ..integrations.risk import RiskGate
from ..position.exit_rules import evaluate_exit, select_rebalance_candidates
from ..position.models import ExitReason, Position, Token, Trade, TradeSide
from ..storage.base import PersistenceStore
from ..utils.logger import get_trading_logger
from .signals import SignalEvaluator, TradingSignal
from .state import PortfolioDecisionState

logger = logging.getLogger(__name__)


class AutoTrader(Component):
    """
    Autonomous trading decision engine for paper portfolios.

    Lifecycle:
        trader = AutoTrader(store, event_bus, feedback, risk_gate, exchange, config)
        await trader.start()    # sync, feedback, subscriptions, initial sweep, timers
        ...
        await trader.stop()

    Portfolios participate while their persisted auto_trading_enabled flag is
    set; enable_auto_trading() / disable_auto_trading() flip it.
    """

    def __init__(
        self,
        store: PersistenceStore,
        event_bus: EventBus,
        feedback: PatternPerformanceFeedback,
        risk_gate: RiskGate,
        exchange: ExchangeService,
        config: Optional[TradingConfig] = None,
        market_health: Optional[MarketHealth] = None,
        name: str = "AutoTrader",
    ):
        super().__init__(name, event_bus)
        self.store = store
        self.feedback = feedback
        self.market_health = market_health or OpenMarket()
        self.risk_gate = risk_gate
        self.exchange = exchange
        self.config = config or TradingConfig()
        self.evaluator = SignalEvaluator(self.config)

        self.portfolios: Dict[str, PortfolioDecisionState] = {}
        self.is_active = False
        self.feedback_available = False

        self._monitor_task: Optional[asyncio.Task] = None
        self._sync_task: Optional[asyncio.Task] = None

        self.logger = logging.getLogger(f"{__name__}.{name}")
        self.trade_logger = get_trading_logger(f"{__name__}.{name}.trades")
        self.logger.info(
            f"AutoTrader initialized: trade unit ${self.config.trade_unit:.2f}, "
            f"sell-only below ${self.config.sell_only_enter_cash:.2f}, "
            f"buy mode from ${self.config.sell_only_exit_cash:.2f}"
        )

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def start(self) -> None:
        if self.is_active:
            self.logger.warning("AutoTrader already active")
            return

        await super().start()
        self.is_active = True
        self.logger.info("🚀 Starting AutoTrader")

        await self.sync_enabled_portfolios()

        try:
            await asyncio.wait_for(
                self.feedback.start(),
                timeout=self.config.startup_timeout_seconds,
            )
            self.feedback_available = True
        except asyncio.TimeoutError:
            self.logger.warning(
                f"⚠️ Pattern feedback did not start within "
                f"{self.config.startup_timeout_seconds}s, continuing in degraded mode"
            )
        except Exception as e:
            self.logger.warning(f"⚠️ Pattern feedback failed to start ({e}), continuing in degraded mode")

        self.event_bus.subscribe(PatternDetected, self.handle_pattern)
        self.event_bus.subscribe(AlertTriggered, self.handle_alert)

        await self.monitor_all_portfolios()

        self._monitor_task = asyncio.create_task(self._monitoring_loop())
        self._sync_task = asyncio.create_task(self._sync_loop())

        self.logger.info(f"✅ AutoTrader started with {len(self.portfolios)} enabled portfolio(s)")

    async def stop(self) -> None:
        if not self.is_active:
            return

        self.logger.info("🛑 Stopping AutoTrader")
        self.is_active = False

        for task in (self._monitor_task, self._sync_task):
            if task:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._monitor_task = None
        self._sync_task = None

        self.event_bus.unsubscribe(PatternDetected, self.handle_pattern)
        self.event_bus.unsubscribe(AlertTriggered, self.handle_alert)

        self.portfolios.clear()
        await super().stop()
        self.logger.info("AutoTrader stopped")

    async def _monitoring_loop(self) -> None:
        interval = self.config.monitor_interval_seconds
        while self.is_active:
            try:
                await asyncio.sleep(interval)
                await self.monitor_all_portfolios()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.logger.error(f"Error in monitoring loop: {e}")
                self.logger.exception("Full traceback:")

    async def _sync_loop(self) -> None:
        interval = self.config.sync_interval_seconds
        while self.is_active:
            try:
                await asyncio.sleep(interval)
                await self.sync_enabled_portfolios()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self.logger.error(f"Error in portfolio sync loop: {e}")

    async def health_check(self) -> Dict[str, Any]:
        health = await super().health_check()
        if self.is_active and not self.feedback_available:
            health["status"] = "degraded"
        health["details"] = {
            "enabled_portfolios": len(self.portfolios),
            "sell_only_portfolios": sum(1 for s in self.portfolios.values() if s.sell_only),
            "feedback_available": self.feedback_available,
        }
        return health

    # ========================================================================
    # Enabled-portfolio management
    # ========================================================================

    async def enable_auto_trading(self, portfolio_id: str) -> bool:
        """Persist the enabled flag and start tracking the portfolio."""
        try:
            portfolio = await self.store.update_portfolio(portfolio_id, {"auto_trading_enabled": True})
            if portfolio is None:
                self.logger.warning(f"[Portfolio {portfolio_id}] Cannot enable auto trading: not found")
                return False

            if portfolio_id not in self.portfolios:
                state = PortfolioDecisionState(portfolio_id=portfolio_id)
                state.stats.total_value = portfolio.total_value
                self.portfolios[portfolio_id] = state
                await self.update_sell_only_mode(portfolio_id)

            self.logger.info(f"✅ [Portfolio {portfolio_id}] Auto trading enabled")
            return True

        except Exception as e:
            self.logger.error(f"[Portfolio {portfolio_id}] Error enabling auto trading: {e}")
            return False

    async def disable_auto_trading(self, portfolio_id: str) -> bool:
        """Clear the enabled flag and drop the portfolio's in-memory state."""
        try:
            portfolio = await self.store.update_portfolio(portfolio_id, {"auto_trading_enabled": False})
            self.portfolios.pop(portfolio_id, None)
            if portfolio is None:
                self.logger.warning(f"[Portfolio {portfolio_id}] Cannot disable auto trading: not found")
                return False

            self.logger.info(f"⏸️ [Portfolio {portfolio_id}] Auto trading disabled")
            return True

        except Exception as e:
            self.logger.error(f"[Portfolio {portfolio_id}] Error disabling auto trading: {e}")
            return False

    async def sync_enabled_portfolios(self) -> None:
        """Reconcile tracked portfolios with the persisted enabled flags."""
        try:
            portfolios = await self.store.get_all_portfolios()
            enabled = {p.id: p for p in portfolios if p.auto_trading_enabled}

            for portfolio_id in list(self.portfolios):
                if portfolio_id not in enabled:
                    self.portfolios.pop(portfolio_id, None)
                    self.logger.info(f"[Portfolio {portfolio_id}] No longer enabled, stopped tracking")

            for portfolio_id, portfolio in enabled.items():
                if portfolio_id in self.portfolios:
                    continue
                state = PortfolioDecisionState(portfolio_id=portfolio_id)
                state.stats.total_value = portfolio.total_value
                self.portfolios[portfolio_id] = state
                await self.update_sell_only_mode(portfolio_id)
                self.logger.info(f"[Portfolio {portfolio_id}] Tracking enabled portfolio")

        except Exception as e:
            self.logger.error(f"Error syncing enabled portfolios: {e}")

    # ========================================================================
    # Event handlers
    # ========================================================================

    async def handle_pattern(self, pattern: PatternDetected) -> None:
        """
        Evaluate a detected pattern for every enabled portfolio.

        Confidence is scaled by the pattern's performance multiplier. Patterns
        with a poor track record (win rate or average return below the
        configured floor) are dropped, then the market health gate sees the
        scaled confidence, then the current minimum confidence applies.
        """
        if not self.is_active or not self.portfolios:
            return

        try:
            performance = await self._get_pattern_performance(pattern)
            if performance is not None and self._has_poor_record(performance):
                self.logger.info(
                    f"🚫 Rejected {pattern.pattern_type} on {pattern.token_id}: "
                    f"win rate {performance.win_rate}, average return {performance.average_return}"
                )
                return

            multiplier = performance.confidence_multiplier if performance else 1.0
            confidence = float(pattern.confidence) * multiplier
            if not await self._market_allows(confidence):
                self.logger.info(
                    f"🚫 Market health blocked {pattern.pattern_type} on {pattern.token_id} "
                    f"at confidence {confidence:.1f}"
                )
                return

            min_confidence = await self._get_min_confidence()
            if confidence < min_confidence:
                self.logger.debug(
                    f"Pattern {pattern.pattern_type} on {pattern.token_id} below threshold "
                    f"({confidence:.1f} < {min_confidence:.1f})"
                )
                return

            token = await self.store.get_token(pattern.token_id)
            if token is None:
                self.logger.debug(f"Pattern for unknown token {pattern.token_id}")
                return

        except Exception as e:
            self.logger.error(f"Error preparing pattern {pattern.id}: {e}")
            self.logger.exception("Full traceback:")
            return

        for portfolio_id in list(self.portfolios):
            try:
                state = self.portfolios.get(portfolio_id)
                if state is None:
                    continue
                position = await self.store.get_position_by_portfolio_and_token(portfolio_id, token.id)
                signal = self.evaluator.evaluate_pattern(
                    pattern.pattern_type,
                    confidence,
                    token,
                    position,
                    state.sell_only,
                    pattern_id=pattern.id,
                )
                if signal:
                    self.trade_logger.trade_signal(
                        portfolio_id, token.id, signal.side.value, signal.confidence, signal.reason
                    )
                    await self.execute_trade_signal(signal, portfolio_id)
            except Exception as e:
                self.logger.error(f"[Portfolio {portfolio_id}] Error evaluating pattern {pattern.id}: {e}")

    async def handle_alert(self, alert: AlertTriggered) -> None:
        """Treat buy-type scanner alerts as bullish patterns."""
        if not self.is_active or not self.portfolios:
            return
        if not self.evaluator.is_buy_alert(alert.alert_type):
            return

        try:
            min_confidence = await self._get_min_confidence()
            if alert.confidence < min_confidence:
                return

            token = await self.store.get_token(alert.token_id)
            if token is None:
                return

        except Exception as e:
            self.logger.error(f"Error preparing {alert.alert_type} alert on {alert.token_id}: {e}")
            return

        for portfolio_id in list(self.portfolios):
            try:
                state = self.portfolios.get(portfolio_id)
                if state is None:
                    continue
                position = await self.store.get_position_by_portfolio_and_token(portfolio_id, token.id)
                signal = self.evaluator.evaluate_alert(
                    alert.alert_type, alert.confidence, token, position, state.sell_only
                )
                if signal:
                    self.trade_logger.trade_signal(
                        portfolio_id, token.id, signal.side.value, signal.confidence, signal.reason
                    )
                    await self.execute_trade_signal(signal, portfolio_id)
            except Exception as e:
                self.logger.error(f"[Portfolio {portfolio_id}] Error evaluating alert: {e}")

    async def _get_pattern_performance(self, pattern: PatternDetected) -> Optional[PatternPerformance]:
        try:
            return await self.feedback.get_pattern_performance(pattern.pattern_type, pattern.timeframe)
        except Exception as e:
            self.logger.warning(f"Pattern feedback unavailable ({e}), using raw confidence")
            return None

    async def _market_allows(self, confidence: float) -> bool:
        try:
            return bool(await self.market_health.should_trade(confidence))
        except Exception as e:
            self.logger.warning(f"Market health unavailable ({e}), allowing trade")
            return True

    async def _get_min_confidence(self) -> float:
        try:
            return float(await self.feedback.get_current_min_confidence())
        except Exception as e:
            self.logger.warning(f"Dynamic threshold unavailable ({e}), using default")
            return self.config.default_min_confidence

    def _has_poor_record(self, performance: PatternPerformance) -> bool:
        if performance.win_rate is None or performance.average_return is None:
            return False
        return (
            performance.win_rate < self.config.min_pattern_win_rate
            or performance.average_return < self.config.min_pattern_expectancy
        )

    # ========================================================================
    # Execution
    # ========================================================================

    async def execute_trade_signal(self, signal: TradingSignal, portfolio_id: str) -> Optional[Any]:
        """
        Route a signal to the real-money path or the paper buy/sell path.

        Returns:
            The resulting Trade (or exchange trade), None when nothing executed
        """
        if portfolio_id not in self.portfolios:
            return None

        try:
            if await self._is_real_trading(portfolio_id):
                return await self.execute_real_money_trade(signal, portfolio_id)

            if signal.side == TradeSide.SELL:
                return await self._execute_sell_signal(signal, portfolio_id)
            return await self.execute_buy(signal, portfolio_id)

        except Exception as e:
            self.logger.error(f"[Portfolio {portfolio_id}] Error executing {signal}: {e}")
            self.logger.exception("Full traceback:")
            return None

    async def _is_real_trading(self, portfolio_id: str) -> bool:
        try:
            return bool(await self.exchange.is_real_trading_enabled(portfolio_id))
        except Exception as e:
            self.logger.warning(f"[Portfolio {portfolio_id}] Real trading check failed ({e}), using paper")
            return False

    async def execute_buy(
        self,
        signal: TradingSignal,
        portfolio_id: str,
        notional: Optional[float] = None,
    ) -> Optional[Trade]:
        """
        Open a paper position worth `notional` (trade unit by default).

        Rebalances stagnant positions when cash is short, rejects a buy when
        an open position in the token already exists.
        """
        state = self.portfolios.get(portfolio_id)
        if state is None:
            return None
        notional = notional if notional is not None else self.config.trade_unit

        async with state.buy_lock:
            existing = await self.store.get_position_by_portfolio_and_token(portfolio_id, signal.token_id)
            if existing is not None and existing.is_open:
                self.logger.info(
                    f"[Portfolio {portfolio_id}] Skipping buy of {signal.token_id}: position already open"
                )
                return None

            portfolio = await self.store.get_portfolio(portfolio_id)
            if portfolio is None:
                return None

            if portfolio.cash_balance < notional:
                shortfall = notional - portfolio.cash_balance
                self.logger.info(
                    f"💸 [Portfolio {portfolio_id}] Insufficient cash "
                    f"(${portfolio.cash_balance:.2f} < ${notional:.2f}), rebalancing"
                )
                freed = await self.rebalance_portfolio(signal, shortfall, portfolio_id)
                if portfolio.cash_balance + freed < notional:
                    self.logger.info(
                        f"[Portfolio {portfolio_id}] Rebalancing freed ${freed:.2f}, "
                        f"not enough to buy {signal.token_id}"
                    )
                    return None

                portfolio = await self.store.get_portfolio(portfolio_id)
                if portfolio is None or portfolio.cash_balance < notional:
                    self.logger.info(f"[Portfolio {portfolio_id}] Still insufficient cash after rebalancing")
                    return None

            amount = notional / signal.price
            trade = await self.store.create_trade({
                "portfolio_id": portfolio_id,
                "token_id": signal.token_id,
                "side": TradeSide.BUY,
                "amount": amount,
                "price": signal.price,
                "total_value": notional,
                "pattern_id": signal.pattern_id,
                "pattern_type": signal.pattern_type,
            })

            if existing is not None:
                await self.store.update_position(existing.id, {
                    "amount": amount,
                    "avg_buy_price": signal.price,
                    "buy_trade_id": trade.id,
                })
            else:
                await self.store.create_position(
                    portfolio_id, signal.token_id, amount, signal.price, buy_trade_id=trade.id
                )

            async with state.ledger_lock:
                portfolio = await self.store.get_portfolio(portfolio_id)
                if portfolio is not None:
                    await self.store.update_portfolio(
                        portfolio_id, {"cash_balance": portfolio.cash_balance - notional}
                    )

        await self.update_sell_only_mode(portfolio_id)
        state.stats.record_trade()

        token = await self.store.get_token(signal.token_id)
        symbol = token.symbol if token else signal.token_id
        self.trade_logger.trade_executed(portfolio_id, "buy", symbol, amount, signal.price, trigger=signal.source)

        await self.event_bus.publish(TradeExecuted(
            portfolio_id=portfolio_id,
            trade=trade,
            signal=signal,
            token=token,
            stats=self.get_stats_for_portfolio(portfolio_id),
            metadata={"pattern_type": signal.pattern_type},
        ))
        return trade

    async def _execute_sell_signal(self, signal: TradingSignal, portfolio_id: str) -> Optional[Trade]:
        position = await self.store.get_position_by_portfolio_and_token(portfolio_id, signal.token_id)
        if position is None or not position.is_open:
            self.logger.info(f"[Portfolio {portfolio_id}] No open position in {signal.token_id} to sell")
            return None

        token = await self.store.get_token(signal.token_id)
        if token is None:
            return None

        return await self.execute_sell(position, token, ExitReason.PATTERN_SIGNAL, signal.reason, portfolio_id)

    async def execute_sell(
        self,
        position: Position,
        token: Token,
        reason: ExitReason,
        message: str,
        portfolio_id: str,
    ) -> Optional[Trade]:
        """
        Soft-close a position at the token's current price.

        Returns the sell trade, or None when the position is already being
        sold, already closed, or was changed concurrently.
        """
        state = self.portfolios.get(portfolio_id)
        if state is None:
            return None

        if position.id in state.selling:
            self.logger.info(f"[Portfolio {portfolio_id}] Position {position.id} is already being sold")
            return None
        state.selling.add(position.id)

        try:
            current = await self.store.get_position(position.id)
            if current is None or not current.is_open:
                self.logger.info(f"[Portfolio {portfolio_id}] Position {position.id} already closed")
                return None

            amount = current.amount
            avg_price = current.avg_buy_price
            exit_price = token.current_price

            try:
                await self.store.update_position(current.id, {"amount": 0.0}, expected_version=current.version)
            except StaleWriteError:
                self.logger.info(f"[Portfolio {portfolio_id}] Position {current.id} changed concurrently, skipping")
                return None

            proceeds = amount * exit_price
            realized_pnl = amount * (exit_price - avg_price)
            cost_basis = amount * avg_price
            profit_pct = realized_pnl / cost_basis * 100 if cost_basis > 0 else 0.0
            closed_at = utc_now()

            buy_trade = await self._find_buy_trade(current, portfolio_id)
            pattern_type = buy_trade.pattern_type if buy_trade else None
            if buy_trade is not None:
                await self.store.update_trade(buy_trade.id, {
                    "exit_price": exit_price,
                    "realized_pnl": realized_pnl,
                    "closed_at": closed_at,
                })

            sell_trade = await self.store.create_trade({
                "portfolio_id": portfolio_id,
                "token_id": current.token_id,
                "side": TradeSide.SELL,
                "amount": amount,
                "price": exit_price,
                "total_value": proceeds,
                "pattern_id": buy_trade.pattern_id if buy_trade else None,
                "pattern_type": pattern_type,
                "exit_price": exit_price,
                "realized_pnl": realized_pnl,
                "closed_at": closed_at,
            })

            async with state.ledger_lock:
                portfolio = await self.store.get_portfolio(portfolio_id)
                if portfolio is not None:
                    today = closed_at.date()
                    await self.store.update_portfolio(portfolio_id, {
                        "cash_balance": portfolio.cash_balance + proceeds,
                        "realized_pnl": portfolio.realized_pnl + realized_pnl,
                        "daily_pnl": portfolio.daily_pnl_on(today) + realized_pnl,
                        "daily_pnl_date": today,
                    })

            await self.update_sell_only_mode(portfolio_id)
            state.stats.record_trade(successful=realized_pnl > 0)

            self.trade_logger.trade_executed(
                portfolio_id, "sell", token.symbol, amount, exit_price,
                realized_pnl=realized_pnl, trigger=reason.value,
            )

            await self.event_bus.publish(TradeExecuted(
                portfolio_id=portfolio_id,
                trade=sell_trade,
                signal={"side": TradeSide.SELL.value, "source": reason.value, "reason": message},
                token=token,
                stats=self.get_stats_for_portfolio(portfolio_id),
                profit_loss=realized_pnl,
                profit_percentage=profit_pct,
                metadata={"pattern_type": pattern_type, "trigger": reason.value},
            ))
            return sell_trade

        except Exception as e:
            self.logger.error(f"[Portfolio {portfolio_id}] Error selling position {position.id}: {e}")
            self.logger.exception("Full traceback:")
            return None

        finally:
            state.selling.discard(position.id)

    async def _find_buy_trade(self, position: Position, portfolio_id: str) -> Optional[Trade]:
        """Locate the buy trade that opened the position's current lot."""
        if position.buy_trade_id:
            trade = await self.store.get_trade(position.buy_trade_id)
            if trade is not None:
                return trade

        trades = await self.store.get_trades_by_portfolio(portfolio_id)
        for trade in reversed(trades):
            if (
                trade.token_id == position.token_id
                and trade.side == TradeSide.BUY
                and not trade.is_closed
                and math.isclose(trade.price, position.avg_buy_price, rel_tol=1e-9)
            ):
                return trade
        return None

    async def execute_real_money_trade(self, signal: TradingSignal, portfolio_id: str) -> Optional[Any]:
        """Hand the signal to the exchange service for a portfolio trading real money."""
        token = await self.store.get_token(signal.token_id)
        if token is None:
            self.logger.error(f"[Portfolio {portfolio_id}] Token {signal.token_id} not found for real-money trade")
            return None

        exchange_signal = ExchangeTradingSignal(
            portfolio_id=portfolio_id,
            token_id=signal.token_id,
            symbol=token.symbol,
            side=signal.side.value,
            amount=self.config.trade_unit / signal.price,
            price=signal.price,
            confidence=signal.confidence,
            source=signal.source,
            pattern_id=signal.pattern_id,
        )

        trade = await self.exchange.execute_trade_signal(exchange_signal)
        if trade is None:
            self.logger.warning(f"[Portfolio {portfolio_id}] Exchange rejected {signal}")
            return None

        state = self.portfolios.get(portfolio_id)
        if state is not None:
            state.stats.record_trade()

        self.logger.info(f"💰 [Portfolio {portfolio_id}] Real-money {signal.side.value.upper()} {token.symbol}: {trade.id}")
        await self.event_bus.publish(TradeExecuted(
            portfolio_id=portfolio_id,
            trade=trade,
            signal=signal,
            token=token,
            stats=self.get_stats_for_portfolio(portfolio_id),
            mode="real_money",
            metadata={"pattern_type": signal.pattern_type},
        ))
        return trade

    async def submit_order(
        self,
        portfolio_id: str,
        token_id: str,
        side: str,
        amount: float,
        price: float,
        reason: str = "Manual order",
    ) -> Optional[Trade]:
        """
        Generic order path: risk-gated buy or sell on an enabled portfolio.

        A denial that carries a smaller suggested size is re-checked once at
        that size. Sells always close the whole position.
        """
        if portfolio_id not in self.portfolios:
            self.logger.warning(f"[Portfolio {portfolio_id}] Order rejected: auto trading not enabled")
            return None

        side = side.lower()
        if side not in (TradeSide.BUY.value, TradeSide.SELL.value):
            raise ValueError(f"Unknown order side: {side}")
        if amount <= 0 or price <= 0:
            raise ValueError("Order amount and price must be positive")

        assessment = await self.risk_gate.analyze_trade_risk(portfolio_id, token_id, side, amount, price)
        suggested = assessment.suggested_size
        if not assessment.allowed and suggested is not None and 0 < suggested < amount:
            self.logger.info(
                f"[Portfolio {portfolio_id}] {assessment.reason}; retrying at suggested size {suggested:.6f}"
            )
            amount = suggested
            assessment = await self.risk_gate.analyze_trade_risk(portfolio_id, token_id, side, amount, price)
        if not assessment.allowed:
            self.logger.warning(f"[Portfolio {portfolio_id}] Trade blocked by risk gate: {assessment.reason}")
            return None

        signal = TradingSignal(
            token_id=token_id,
            side=TradeSide(side),
            confidence=100.0,
            price=price,
            source="order",
            reason=reason,
        )

        if signal.side == TradeSide.BUY:
            return await self.execute_buy(signal, portfolio_id, notional=amount * price)

        position = await self.store.get_position_by_portfolio_and_token(portfolio_id, token_id)
        token = await self.store.get_token(token_id)
        if position is None or not position.is_open or token is None:
            return None
        return await self.execute_sell(
            position,
            dataclasses.replace(token, current_price=price),
            ExitReason.MANUAL,
            reason,
            portfolio_id,
        )

    # ========================================================================
    # Sell-only mode
    # ========================================================================

    async def update_sell_only_mode(self, portfolio_id: str) -> None:
        """
        Apply the cash hysteresis: enter sell-only below 1x the trade unit,
        leave it at 2x or more; in between the mode is unchanged.
        """
        state = self.portfolios.get(portfolio_id)
        if state is None:
            return

        try:
            portfolio = await self.store.get_portfolio(portfolio_id)
            if portfolio is None:
                return

            cash = portfolio.cash_balance
            previous = state.sell_only
            if cash < self.config.sell_only_enter_cash:
                state.sell_only = True
            elif cash >= self.config.sell_only_exit_cash:
                state.sell_only = False

            if state.sell_only != previous:
                required = (
                    self.config.sell_only_enter_cash if state.sell_only
                    else self.config.sell_only_exit_cash
                )
                self.trade_logger.mode_change(portfolio_id, state.sell_only, cash, required)
                await self.event_bus.publish(SellOnlyModeChanged(
                    portfolio_id=portfolio_id,
                    sell_only=state.sell_only,
                    cash_balance=cash,
                ))

        except Exception as e:
            self.logger.error(f"[Portfolio {portfolio_id}] Error updating sell-only mode: {e}")

    # ========================================================================
    # Monitoring and rebalancing
    # ========================================================================

    async def monitor_all_portfolios(self) -> None:
        """One monitoring sweep over every enabled portfolio."""
        if not self.is_active:
            return
        for portfolio_id in list(self.portfolios):
            await self.monitor_positions(portfolio_id)

    async def monitor_positions(self, portfolio_id: str) -> None:
        """
        Apply exit rules to every open position, then revalue the portfolio.

        The mode is refreshed before the rules run; each position is sold at
        most once per sweep.
        """
        state = self.portfolios.get(portfolio_id)
        if state is None:
            return

        try:
            await self.update_sell_only_mode(portfolio_id)

            sold: Set[str] = set()
            for position in await self.store.get_positions_by_portfolio(portfolio_id):
                if not position.is_open or position.id in sold:
                    continue

                token = await self.store.get_token(position.token_id)
                if token is None or token.current_price <= 0:
                    continue

                decision = evaluate_exit(position.gain_pct(token.current_price), state.sell_only, self.config)
                if decision is None:
                    continue

                self.logger.info(f"📉 [Portfolio {portfolio_id}] {token.symbol}: {decision.message}")
                sold.add(position.id)
                await self.execute_sell(position, token, decision.reason, decision.message, portfolio_id)

            await self._revalue_portfolio(portfolio_id, state)

        except Exception as e:
            self.logger.error(f"[Portfolio {portfolio_id}] Error monitoring positions: {e}")
            self.logger.exception("Full traceback:")

    async def _revalue_portfolio(self, portfolio_id: str, state: PortfolioDecisionState) -> None:
        portfolio = await self.store.get_portfolio(portfolio_id)
        if portfolio is None:
            return

        positions_value = 0.0
        active_positions = 0
        for position in await self.store.get_positions_by_portfolio(portfolio_id):
            if not position.is_open:
                continue
            token = await self.store.get_token(position.token_id)
            if token is None or token.current_price <= 0:
                continue
            positions_value += position.market_value(token.current_price)
            active_positions += 1

        total_value = portfolio.cash_balance + positions_value
        starting_capital = portfolio.starting_capital or self.config.default_starting_capital
        total_pnl = total_value - starting_capital

        await self.store.update_portfolio(portfolio_id, {"total_value": total_value, "total_pnl": total_pnl})
        state.stats.total_value = total_value

        await self.event_bus.publish(StatsUpdate(
            portfolio_id=portfolio_id,
            total_value=total_value,
            total_pnl=total_pnl,
            total_trades=state.stats.total_trades,
            today_trades=state.stats.today_trades,
            active_positions=active_positions,
            metadata={"sell_only_mode": state.sell_only},
        ))

    async def rebalance_portfolio(self, signal: TradingSignal, target: float, portfolio_id: str) -> float:
        """
        Sell stagnant positions (least gain first) until `target` is freed.

        Returns:
            Pre-sale quoted value of the positions actually sold
        """
        freed = 0.0
        try:
            holdings = []
            for position in await self.store.get_positions_by_portfolio(portfolio_id):
                if not position.is_open:
                    continue
                token = await self.store.get_token(position.token_id)
                if token is not None:
                    holdings.append((position, token))

            candidates = select_rebalance_candidates(holdings, signal.token_id, self.config)
            if not candidates:
                self.logger.info(f"[Portfolio {portfolio_id}] No stagnant positions to rebalance")
                return 0.0

            for candidate in candidates:
                if freed >= target:
                    break
                message = (
                    f"Rebalancing: freeing capital for {signal.token_id} "
                    f"({candidate.gain_pct:.1f}% gain)"
                )
                trade = await self.execute_sell(
                    candidate.position, candidate.token, ExitReason.REBALANCE, message, portfolio_id
                )
                if trade is not None:
                    freed += candidate.current_value

            self.logger.info(f"🔄 [Portfolio {portfolio_id}] Rebalancing freed ${freed:.2f}")

        except Exception as e:
            self.logger.error(f"[Portfolio {portfolio_id}] Error rebalancing: {e}")

        return freed

    # ========================================================================
    # Statistics
    # ========================================================================

    def get_stats_for_portfolio(self, portfolio_id: str) -> Optional[Dict[str, Any]]:
        state = self.portfolios.get(portfolio_id)
        if state is None:
            return None

        return {
            "is_active": self.is_active,
            "portfolio_id": portfolio_id,
            "sell_only_mode": state.sell_only,
            **state.stats.to_dict(),
            "strategy": {
                "trade_unit": self.config.trade_unit,
                "stop_loss_pct": self.config.stop_loss_pct,
                "take_profit_pct": self.config.take_profit_pct,
                "sell_only_take_profit_pct": self.config.sell_only_take_profit_pct,
                "sell_only_enter_cash": self.config.sell_only_enter_cash,
                "sell_only_exit_cash": self.config.sell_only_exit_cash,
            },
        }

    def get_stats(self) -> Dict[str, Any]:
        """Stats of the first enabled portfolio, or an inactive summary."""
        for portfolio_id in self.portfolios:
            stats = self.get_stats_for_portfolio(portfolio_id)
            if stats is not None:
                stats["enabled_portfolios"] = len(self.portfolios)
                return stats

        return {
            "is_active": self.is_active,
            "portfolio_id": None,
            "sell_only_mode": False,
            "total_trades": 0,
            "successful_trades": 0,
            "today_trades": 0,
            "total_value": 0.0,
            "enabled_portfolios": 0,
        }

    async def get_detailed_stats(self, portfolio_id: str) -> Optional[Dict[str, Any]]:
        """Cash, open positions with live P&L, and closed-trade win rate."""
        portfolio = await self.store.get_portfolio(portfolio_id)
        if portfolio is None:
            return None

        positions: List[Dict[str, Any]] = []
        for position in await self.store.get_positions_by_portfolio(portfolio_id):
            if not position.is_open:
                continue
            token = await self.store.get_token(position.token_id)
            price = token.current_price if token else 0.0
            positions.append({
                "position_id": position.id,
                "token_id": position.token_id,
                "symbol": token.symbol if token else position.token_id,
                "amount": position.amount,
                "avg_buy_price": position.avg_buy_price,
                "current_price": price,
                "current_value": position.market_value(price),
                "unrealized_pnl": position.amount * (price - position.avg_buy_price),
                "gain_pct": position.gain_pct(price) if price > 0 else 0.0,
            })

        trades = await self.store.get_trades_by_portfolio(portfolio_id)
        buys = [t for t in trades if t.side == TradeSide.BUY]
        sells = [t for t in trades if t.side == TradeSide.SELL]
        winners = [t for t in sells if (t.realized_pnl or 0.0) > 0]

        state = self.portfolios.get(portfolio_id)
        return {
            "portfolio_id": portfolio_id,
            "auto_trading_enabled": portfolio.auto_trading_enabled,
            "sell_only_mode": state.sell_only if state else False,
            "cash_balance": portfolio.cash_balance,
            "total_value": portfolio.total_value,
            "total_pnl": portfolio.total_pnl,
            "realized_pnl": portfolio.realized_pnl,
            "positions": positions,
            "buy_trades": len(buys),
            "sell_trades": len(sells),
            "win_rate": len(winners) / len(sells) * 100 if sells else 0.0,
        }
