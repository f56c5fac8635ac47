"""TickSignal — trading engine (orchestration loop).

Connects the OANDA feed, the signal core and order execution into a single
polling loop.  Each cycle is one tick:

1. fetch candles, the current quote and open trades,
2. close positions that reached their profit target,
3. ask the decision engine for an entry and submit it.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from ticksignal.broker.models import OrderRejectedError, OrderRequest, Quote, Trade
from ticksignal.broker.oanda_client import OandaClient
from ticksignal.config import Config
from ticksignal.risk.lifecycle import PositionLifecycleManager, profit_in_pips
from ticksignal.risk.position_sizer import VolumeLimits, calculate_units, normalize_units
from ticksignal.strategy.base import StrategyProtocol
from ticksignal.strategy.context import StrategyContext
from ticksignal.strategy.decision import TradeDecisionEngine
from ticksignal.strategy.indicators import build_snapshot
from ticksignal.strategy.models import (
    INSTRUMENT_PIP_VALUES,
    CandleData,
    InsufficientHistoryError,
    OpenPosition,
    TradeSignal,
)
from ticksignal.strategy.registry import get_strategy

logger = logging.getLogger("ticksignal")

# Extra candles fetched beyond the strict lookback so EMA/RSI smoothing settles.
_HISTORY_BUFFER = 100


class TradingEngine:
    """Runs one evaluation-and-execution cycle per call.

    Args:
        config: Application configuration.
        broker: An ``OandaClient`` (or compatible duck-type / mock).
        strategy: Signal variant; defaults to the one named by ``config.strategy``.
        context: Per-instrument state; a fresh one is created if omitted.
    """

    def __init__(
        self,
        config: Config,
        broker: OandaClient,
        strategy: Optional[StrategyProtocol] = None,
        context: Optional[StrategyContext] = None,
    ) -> None:
        self._config = config
        self._broker = broker
        self._params = config.params
        self._strategy = strategy or get_strategy(config.strategy)
        self._pip_size = INSTRUMENT_PIP_VALUES.get(config.trade_pair, 0.0001)
        self.context = context or StrategyContext(config.trade_pair, self._pip_size)
        self._decision = TradeDecisionEngine(self._strategy, self._params)
        self._lifecycle = PositionLifecycleManager(self._params.take_profit_pips)
        self._limits: Optional[VolumeLimits] = None
        self._units: float = self._params.lot_size
        self._running: bool = False
        self.last_signal: Optional[TradeSignal] = None

    @property
    def instrument(self) -> str:
        return self._config.trade_pair

    @property
    def strategy_name(self) -> str:
        return self._strategy.name

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def initialize(self) -> None:
        """Fetch instrument metadata and fit the lot size to its limits."""
        try:
            spec = await self._broker.get_instrument(self.instrument)
            self._pip_size = spec.pip_size
            self.context.set_pip_size(spec.pip_size)
            self._limits = VolumeLimits(spec.min_units, spec.max_units, spec.unit_step)
            self._units = normalize_units(self._params.lot_size, self._limits)
            logger.info(
                "Adjusted lot size: %s (min %s, max %s, step %s)",
                self._units, spec.min_units, spec.max_units, spec.unit_step,
            )
        except Exception as exc:
            logger.error(
                "Failed to load instrument metadata for %s (%s), "
                "using pip size %s and lot size %s",
                self.instrument, exc, self._pip_size, self._units,
            )

        p = self._params
        logger.info(
            "Started %s on %s: TP %s pips, SL %s pips, EMA %d/%d, RSI %d "
            "(oversold %.1f, lookback %d, up-ticks %d, angle %.1f), Fib period %d",
            self.strategy_name, self.instrument, p.take_profit_pips, p.stop_loss_pips,
            p.ema_fast_period, p.ema_slow_period, p.rsi_period, p.rsi_oversold_level,
            p.rsi_lookback_periods, p.min_rsi_up_ticks, p.min_rsi_angle, p.fib_period,
        )
        self._running = True

    def stop(self) -> None:
        """Signal the engine to stop after the current cycle."""
        self._running = False

    # ── Polling loop ─────────────────────────────────────────────────────

    async def run(
        self,
        poll_interval: int | None = None,
        max_cycles: int = 0,
    ) -> list[dict]:
        """Run the tick loop until stopped.

        Args:
            poll_interval: Seconds between ticks. Defaults to the config value.
            max_cycles: Stop after this many cycles (0 = unlimited).

        Returns:
            List of per-cycle result dicts.
        """
        if poll_interval is None:
            poll_interval = self._config.poll_interval_seconds
        results: list[dict] = []
        cycle = 0

        while self._running:
            cycle += 1
            try:
                result = await self.run_once()
            except Exception as exc:
                logger.error("Cycle %d error: %s", cycle, exc)
                result = {"action": "error", "reason": str(exc)}
            results.append(result)
            logger.debug("Cycle %d: %s", cycle, result.get("action", "unknown"))

            if max_cycles > 0 and cycle >= max_cycles:
                break
            await asyncio.sleep(poll_interval)

        return results

    # ── Single tick ──────────────────────────────────────────────────────

    async def run_once(self, utc_now: Optional[datetime] = None) -> dict:
        """Execute one tick.

        Returns a dict describing the action taken:

        - ``{"action": "skipped", "reason": "..."}``
        - ``{"action": "closed", "closed": [...], "reason": "..."}``
        - ``{"action": "order_placed", ...}``
        - ``{"action": "order_failed", "reason": "..."}``

        Args:
            utc_now: Current UTC datetime.  Defaults to ``datetime.now(UTC)``.
        """
        if utc_now is None:
            utc_now = datetime.now(timezone.utc)

        required = self._strategy.required_history(self._params)
        raw = await self._broker.fetch_candles(
            self.instrument, self._config.granularity, count=required + _HISTORY_BUFFER,
        )
        if len(raw) < required:
            logger.debug(
                "%s: %d bars available, %d required", self.instrument, len(raw), required,
            )
            return {"action": "skipped", "reason": "insufficient_history"}

        candles = [
            CandleData(c.time, c.open, c.high, c.low, c.close, c.volume) for c in raw
        ]
        quote = await self._broker.get_quote(self.instrument)
        fast, slow = self._strategy.ma_periods(self._params)
        try:
            snapshot = build_snapshot(
                candles, quote.bid, quote.ask, self._pip_size,
                fast, slow, self._params.rsi_period,
            )
        except InsufficientHistoryError as exc:
            logger.debug("%s: %s", self.instrument, exc)
            return {"action": "skipped", "reason": "insufficient_history"}

        # 1 ── Profit-target exits (always before entries)
        trades = await self._broker.list_open_trades(self.instrument)
        positions = [
            self._to_position(t, quote) for t in trades if t.instrument == self.instrument
        ]
        closed = await self._close_positions(positions, utc_now)
        still_open = [p for p in positions if p.trade_id not in closed]

        # 2 ── Entry decision
        try:
            signal = self._decision.decide(
                snapshot, self.context, utc_now, has_open_position=bool(still_open),
            )
        except InsufficientHistoryError as exc:
            logger.debug("%s: %s", self.instrument, exc)
            return {"action": "skipped", "reason": "insufficient_history", "closed": closed}
        self.last_signal = signal

        if not signal.is_entry:
            logger.debug("%s: no entry (%s) %s", self.instrument, signal.reason, signal.checks)
            if closed:
                return {"action": "closed", "closed": closed, "reason": signal.reason}
            return {"action": "skipped", "reason": signal.reason}

        # 3 ── Order submission
        logger.info("All conditions met for %s %s: %s",
                    signal.direction, self.instrument, signal.reason)
        units = await self._order_units()
        if signal.direction == "sell":
            units = -units
        order = OrderRequest(
            instrument=self.instrument,
            units=units,
            stop_loss_pips=self._params.stop_loss_pips,
            take_profit_pips=self._params.take_profit_pips,
            pip_size=self._pip_size,
            reference_price=quote.ask if units > 0 else quote.bid,
            label=self._strategy.order_label(signal.direction),
        )
        try:
            fill = await self._broker.place_order(order)
        except OrderRejectedError as exc:
            logger.warning("Trade execution failed: %s", exc.reason)
            return {
                "action": "order_failed",
                "direction": signal.direction,
                "reason": exc.reason,
                "closed": closed,
            }

        self._decision.record_fill(self.context, quote.bid, utc_now)
        logger.info(
            "Trade executed: %s %s units of %s at %.5f (SL %s pips, TP %s pips)",
            signal.direction, abs(units), self.instrument, fill.price,
            self._params.stop_loss_pips, self._params.take_profit_pips,
        )
        return {
            "action": "order_placed",
            "order_id": fill.order_id,
            "direction": signal.direction,
            "units": units,
            "entry": fill.price,
            "label": order.label,
            "reason": signal.reason,
            "closed": closed,
        }

    # ── Helpers ──────────────────────────────────────────────────────────

    def _to_position(self, trade: Trade, quote: Quote) -> OpenPosition:
        direction = "buy" if trade.units > 0 else "sell"
        return OpenPosition(
            trade_id=trade.trade_id,
            instrument=trade.instrument,
            direction=direction,
            units=abs(trade.units),
            entry_price=trade.price,
            profit_pips=profit_in_pips(
                direction, trade.price, quote.bid, quote.ask, self._pip_size,
            ),
            label=trade.label,
            open_time=trade.open_time,
        )

    async def _close_positions(
        self, positions: list[OpenPosition], utc_now: datetime,
    ) -> list[str]:
        """Close every position the lifecycle manager flags; return closed ids."""
        closed: list[str] = []
        for instruction in self._lifecycle.review(positions, self.context, utc_now):
            trade_id = instruction.position.trade_id
            try:
                await self._broker.close_trade(trade_id)
            except OrderRejectedError as exc:
                logger.warning("Close of trade %s failed: %s", trade_id, exc.reason)
                continue
            closed.append(trade_id)
        return closed

    async def _order_units(self) -> float:
        """Order size: fixed lot size, or risk-percentage sizing if configured."""
        if self._config.position_sizing != "risk":
            return self._units

        summary = await self._broker.get_account_summary()
        units = calculate_units(
            summary.equity,
            self._params.risk_percentage,
            self._params.stop_loss_pips,
            pip_value=self._pip_size,
        )
        if self._limits is not None:
            units = normalize_units(units, self._limits)
        return float(int(units)) or 1.0
