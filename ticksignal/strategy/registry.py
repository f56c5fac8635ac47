"""Strategy registry — maps variant names to factories.

Used by the CLI to instantiate the variant named by ``Config.strategy``.
"""

from typing import Callable

from ticksignal.strategy.base import StrategyProtocol
from ticksignal.strategy.downtrend_reversal import DowntrendReversalStrategy
from ticksignal.strategy.fib_zone import FibonacciZoneStrategy


STRATEGY_REGISTRY: dict[str, Callable[[], StrategyProtocol]] = {
    "downtrend_reversal": lambda: DowntrendReversalStrategy("simple"),
    "downtrend_reversal_windowed": lambda: DowntrendReversalStrategy("windowed"),
    "fibonacci": FibonacciZoneStrategy,
}


def get_strategy(name: str) -> StrategyProtocol:
    """Look up and instantiate a strategy by registry key.

    Raises ``KeyError`` if the strategy name is not registered.
    """
    if name not in STRATEGY_REGISTRY:
        raise KeyError(
            f"Unknown strategy '{name}'. "
            f"Available: {', '.join(STRATEGY_REGISTRY.keys())}"
        )
    return STRATEGY_REGISTRY[name]()
