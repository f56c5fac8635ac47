"""Downtrend tracker — counts consecutive new lows in the bid price."""

import math

# Rally size (in pips) above the tracked low that ends the downtrend.
RESET_RALLY_PIPS = 10


class DowntrendTracker:
    """Tracks the running low and how many times it has been broken in a row.

    Args:
        pip_size: Price value of one pip for the instrument.
    """

    def __init__(self, pip_size: float = 0.0001) -> None:
        self.pip_size = pip_size
        self.previous_low: float = math.inf
        self.consecutive_lower_lows: int = 0

    def update(self, current_price: float) -> int:
        """Feed the current price and return the updated lower-low count."""
        if current_price < self.previous_low:
            self.consecutive_lower_lows += 1
            self.previous_low = current_price
        elif current_price > self.previous_low + RESET_RALLY_PIPS * self.pip_size:
            self.consecutive_lower_lows = 0
            self.previous_low = current_price
        return self.consecutive_lower_lows

    def reset(self, price: float) -> None:
        """Start counting afresh from *price* (called after a fill)."""
        self.consecutive_lower_lows = 0
        self.previous_low = price
