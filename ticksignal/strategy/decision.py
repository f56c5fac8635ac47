"""Trade decision engine — gates a strategy's signal before it becomes an order.

An entry is allowed only when all of these hold:

1. no open position on the instrument,
2. the cool-down since the last trade has elapsed,
3. the strategy itself reports a buy or sell signal.

The strategy is not evaluated at all when gate 1 or 2 fails, so stateful
variants (the downtrend tracker) only advance on eligible ticks.
"""

import logging
from datetime import datetime

from ticksignal.config import StrategyParams
from ticksignal.strategy.base import StrategyProtocol
from ticksignal.strategy.context import StrategyContext
from ticksignal.strategy.models import MarketSnapshot, TradeSignal

logger = logging.getLogger("ticksignal")


class TradeDecisionEngine:
    """Combines position and cool-down gates with a strategy's signal.

    Args:
        strategy: The signal variant to consult.
        params: Strategy parameters.
    """

    def __init__(self, strategy: StrategyProtocol, params: StrategyParams) -> None:
        self.strategy = strategy
        self.params = params

    def decide(
        self,
        snapshot: MarketSnapshot,
        context: StrategyContext,
        now: datetime,
        has_open_position: bool,
    ) -> TradeSignal:
        """Return the signal for this tick (``direction=None`` when idle)."""
        gates = {
            "no_open_position": not has_open_position,
            "cooldown_elapsed": context.cooldown.is_ready(now),
        }
        if has_open_position:
            return TradeSignal(None, "position_open", gates)
        if not gates["cooldown_elapsed"]:
            return TradeSignal(None, "cooldown", gates)

        signal = self.strategy.evaluate(snapshot, context, self.params)
        return TradeSignal(signal.direction, signal.reason, {**gates, **signal.checks})

    def record_fill(self, context: StrategyContext, price: float, now: datetime) -> None:
        """Update the context after an order was filled at *now*."""
        context.downtrend.reset(price)
        context.cooldown.mark(now)
        logger.debug(
            "%s: fill recorded, downtrend reset at %.5f", context.instrument, price,
        )
