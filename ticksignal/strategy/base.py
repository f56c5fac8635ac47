"""Strategy protocol.

Defines the interface that every signal variant must implement.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from ticksignal.config import StrategyParams
from ticksignal.strategy.context import StrategyContext
from ticksignal.strategy.models import MarketSnapshot, TradeSignal


@runtime_checkable
class StrategyProtocol(Protocol):
    """Interface that all signal variants must satisfy."""

    name: str

    def ma_periods(self, params: StrategyParams) -> tuple[int, int]:
        """Periods of the (fast, slow) moving averages the variant reads."""
        ...

    def required_history(self, params: StrategyParams) -> int:
        """Minimum number of bars before the variant may be evaluated."""
        ...

    def order_label(self, direction: str) -> str:
        """Label attached to orders opened by this variant."""
        ...

    def evaluate(
        self,
        snapshot: MarketSnapshot,
        context: StrategyContext,
        params: StrategyParams,
    ) -> TradeSignal:
        """Return the entry signal for this tick."""
        ...
