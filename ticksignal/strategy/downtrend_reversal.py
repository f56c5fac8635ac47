"""Downtrend Reversal strategy — buy an RSI turn after a run of lower lows.

The bid is fed through the context's ``DowntrendTracker``; once it has
printed at least ``MIN_LOWER_LOWS`` consecutive new lows, a confirmed RSI
reversal (``simple`` or ``windowed`` policy) triggers a long entry.
"""

import logging

from ticksignal.config import StrategyParams
from ticksignal.strategy.context import StrategyContext
from ticksignal.strategy.models import MarketSnapshot, TradeSignal
from ticksignal.strategy.rsi_reversal import (
    RSI_POLICIES,
    detect_reversal,
    policy_window_size,
)

logger = logging.getLogger("ticksignal")

MIN_LOWER_LOWS = 3
ORDER_LABEL = "Downtrend Reversal"


class DowntrendReversalStrategy:
    """Long-only reversal entries.  Implements ``StrategyProtocol``.

    Args:
        policy: RSI reversal policy name, ``"simple"`` or ``"windowed"``.
    """

    def __init__(self, policy: str = "simple") -> None:
        if policy not in RSI_POLICIES:
            raise KeyError(
                f"Unknown RSI policy '{policy}'. "
                f"Available: {', '.join(RSI_POLICIES.keys())}"
            )
        self.policy = policy
        self.name = (
            "downtrend_reversal" if policy == "simple"
            else f"downtrend_reversal_{policy}"
        )

    def ma_periods(self, params: StrategyParams) -> tuple[int, int]:
        return params.ema_fast_period, params.ema_slow_period

    def required_history(self, params: StrategyParams) -> int:
        rsi_bars = params.rsi_period + policy_window_size(self.policy, params)
        return max(params.ema_slow_period, params.ema_fast_period, rsi_bars)

    def order_label(self, direction: str) -> str:
        return ORDER_LABEL

    def evaluate(
        self,
        snapshot: MarketSnapshot,
        context: StrategyContext,
        params: StrategyParams,
    ) -> TradeSignal:
        # Read the RSI window before touching the tracker so a short series
        # leaves the context unchanged.
        reversal = detect_reversal(self.policy, snapshot.rsi, params)

        tracker = context.downtrend
        lower_lows = tracker.update(snapshot.bid)
        enough_downtrend = lower_lows >= MIN_LOWER_LOWS

        checks = {
            "rsi_reversal": reversal.detected,
            "enough_downtrend": enough_downtrend,
            "consecutive_lower_lows": lower_lows,
            "previous_low": tracker.previous_low,
            **reversal.details,
        }
        logger.debug(
            "%s: bid=%.5f previous_low=%.5f lower_lows=%d rsi_reversal=%s (%s)",
            self.name, snapshot.bid, tracker.previous_low, lower_lows,
            reversal.detected, reversal.reason,
        )

        if not enough_downtrend:
            return TradeSignal(None, "not_enough_downtrend", checks)
        if not reversal.detected:
            return TradeSignal(None, reversal.reason, checks)
        return TradeSignal(
            "buy",
            f"RSI reversal ({reversal.reason}) after {lower_lows} lower lows",
            checks,
        )
