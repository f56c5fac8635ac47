"""Per-instrument strategy state carried between ticks."""

import math
from datetime import datetime, timedelta
from typing import Optional

from ticksignal.strategy.downtrend import DowntrendTracker

MINUTES_BETWEEN_TRADES = 5


class CooldownClock:
    """Remembers when the last trade happened and gates the next one."""

    def __init__(self, cooldown: timedelta = timedelta(minutes=MINUTES_BETWEEN_TRADES)) -> None:
        self.cooldown = cooldown
        self.last_trade_time: Optional[datetime] = None

    def mark(self, now: datetime) -> None:
        self.last_trade_time = now

    def is_ready(self, now: datetime) -> bool:
        """``True`` once at least ``cooldown`` has passed since the last trade."""
        if self.last_trade_time is None:
            return True
        return now - self.last_trade_time >= self.cooldown


class StrategyContext:
    """State for one instrument: the downtrend counter and the cool-down clock.

    Args:
        instrument: Instrument this context belongs to, e.g. ``"EUR_USD"``.
        pip_size: Pip size used by the downtrend tracker.
    """

    def __init__(self, instrument: str, pip_size: float = 0.0001) -> None:
        self.instrument = instrument
        self.downtrend = DowntrendTracker(pip_size)
        self.cooldown = CooldownClock()

    def set_pip_size(self, pip_size: float) -> None:
        self.downtrend.pip_size = pip_size

    def as_dict(self) -> dict:
        last = self.cooldown.last_trade_time
        low = self.downtrend.previous_low
        return {
            "instrument": self.instrument,
            # JSON has no infinity; no low has been seen yet
            "previous_low": low if math.isfinite(low) else None,
            "consecutive_lower_lows": self.downtrend.consecutive_lower_lows,
            "last_trade_time": last.isoformat() if last else None,
        }
