"""Fibonacci Zone strategy — trade retracements in the direction of the MA.

Trend comes from the slope of ``EMA(fib_period)``; entries require the bid
to sit inside the retracement band of the last five candles' swing range.
"""

import logging

from ticksignal.config import StrategyParams
from ticksignal.strategy.context import StrategyContext
from ticksignal.strategy.fibonacci import (
    SWING_BARS,
    evaluate_zone,
    find_swing,
    identify_trend,
)
from ticksignal.strategy.models import MarketSnapshot, TradeSignal

logger = logging.getLogger("ticksignal")

_LABELS = {"buy": "FibBuy", "sell": "FibSell"}


class FibonacciZoneStrategy:
    """Implements ``StrategyProtocol``."""

    name = "fibonacci"

    def ma_periods(self, params: StrategyParams) -> tuple[int, int]:
        return params.fib_period, params.ema_slow_period

    def required_history(self, params: StrategyParams) -> int:
        # Two warmed-up MA values for the slope, plus the swing window. The
        # snapshot always carries RSI, so its warm-up counts too.
        return max(
            params.fib_period + 1,
            params.ema_slow_period,
            params.rsi_period + 1,
            SWING_BARS,
        )

    def order_label(self, direction: str) -> str:
        return _LABELS[direction]

    def evaluate(
        self,
        snapshot: MarketSnapshot,
        context: StrategyContext,
        params: StrategyParams,
    ) -> TradeSignal:
        trend = identify_trend(snapshot.ema_fast)
        swing = find_swing(snapshot.highs, snapshot.lows)
        direction, details = evaluate_zone(trend, snapshot.bid, swing)

        logger.debug(
            "fibonacci: trend=%d swing=%.5f-%.5f bid=%.5f result=%s",
            trend, swing.low, swing.high, snapshot.bid, details["result"],
        )

        if direction is None:
            return TradeSignal(None, details["result"], details)
        return TradeSignal(
            direction,
            f"Price {snapshot.bid:.5f} in Fibonacci {direction} zone",
            details,
        )
