"""Position lifecycle — profit-target exits for open positions, no I/O.

Stop-loss is attached to the order at submission and handled by the broker;
this module only decides when a position has reached its take-profit in pips.
"""

import logging
from datetime import datetime

from ticksignal.strategy.context import StrategyContext
from ticksignal.strategy.models import CloseInstruction, OpenPosition

logger = logging.getLogger("ticksignal")


def profit_in_pips(
    direction: str,
    entry_price: float,
    bid: float,
    ask: float,
    pip_size: float,
) -> float:
    """Unrealised profit of a position in pips.

    Longs are marked against the bid, shorts against the ask.
    """
    if pip_size <= 0:
        raise ValueError(f"pip_size must be positive, got {pip_size}")
    if direction == "buy":
        return (bid - entry_price) / pip_size
    if direction == "sell":
        return (entry_price - ask) / pip_size
    raise ValueError(f"direction must be 'buy' or 'sell', got '{direction}'")


class PositionLifecycleManager:
    """Emits close instructions once a position reaches ``take_profit_pips``.

    Args:
        take_profit_pips: Profit target in pips.
    """

    def __init__(self, take_profit_pips: float) -> None:
        self.take_profit_pips = take_profit_pips

    def review(
        self,
        positions: list[OpenPosition],
        context: StrategyContext,
        now: datetime,
    ) -> list[CloseInstruction]:
        """Check every position on the context's instrument.

        Each position at or beyond target yields a ``CloseInstruction`` and
        stamps the cool-down clock with *now*.
        """
        instructions: list[CloseInstruction] = []
        for position in positions:
            if position.instrument != context.instrument:
                continue

            logger.debug(
                "Position %s profit %.2f pips, target %.2f",
                position.trade_id, position.profit_pips, self.take_profit_pips,
            )
            if position.profit_pips >= self.take_profit_pips:
                logger.info(
                    "Take profit target reached on %s (%.2f pips), closing",
                    position.trade_id, position.profit_pips,
                )
                instructions.append(
                    CloseInstruction(position=position, reason="take_profit")
                )
                context.cooldown.mark(now)
        return instructions
