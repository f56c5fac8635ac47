"""Fibonacci retracement zones — pure functions, no I/O.

The swing range is taken from the most recent ``SWING_BARS`` candles and
split by the standard retracement ratios.  A long entry is valid in the
38.2–50 % band, a short entry in the 50–61.8 % band.
"""

from typing import Optional

from ticksignal.strategy.models import Series, SwingPoint

FIB_RATIOS: tuple[float, ...] = (0.0, 0.236, 0.382, 0.5, 0.618, 0.786, 1.0)
SWING_BARS = 5


def find_swing(highs: Series, lows: Series, bars: int = SWING_BARS) -> SwingPoint:
    """Highest high and lowest low of the newest *bars* candles."""
    return SwingPoint(high=max(highs.window(bars)), low=min(lows.window(bars)))


def is_valid_swing(swing: SwingPoint) -> bool:
    """A usable swing has positive prices and ``high >= low``."""
    return swing.high > 0 and swing.low > 0 and swing.high >= swing.low


def calculate_fib_levels(low: float, high: float) -> tuple[float, ...]:
    """Map ``FIB_RATIOS`` onto ``[low, high]``.

    The first level equals *low* and the last equals *high* exactly.

    Raises ``ValueError`` if *high* is below *low*.
    """
    if high < low:
        raise ValueError(f"Swing high {high} is below swing low {low}")

    price_range = high - low
    levels = [low + price_range * ratio for ratio in FIB_RATIOS]
    levels[-1] = high
    return tuple(levels)


def is_valid_buy_setup(price: float, levels: tuple[float, ...]) -> bool:
    """Price sits between the 38.2 % and 50 % levels."""
    return levels[2] <= price <= levels[3]


def is_valid_sell_setup(price: float, levels: tuple[float, ...]) -> bool:
    """Price sits between the 50 % and 61.8 % levels."""
    return levels[3] <= price <= levels[4]


def identify_trend(ma: Series) -> int:
    """+1 when the moving average is rising, -1 when falling, 0 when flat."""
    current, previous = ma.last(0), ma.last(1)
    if current > previous:
        return 1
    if current < previous:
        return -1
    return 0


def evaluate_zone(
    trend: int,
    price: float,
    swing: SwingPoint,
) -> tuple[Optional[str], dict]:
    """Decide the zone trade for *price*.

    Returns ``(direction, details)`` where *direction* is ``"buy"``,
    ``"sell"`` or ``None``.
    """
    details: dict = {
        "trend": trend,
        "swing_high": swing.high,
        "swing_low": swing.low,
    }
    if trend == 0:
        details["result"] = "no_trend"
        return None, details
    if not is_valid_swing(swing):
        details["result"] = "invalid_swing"
        return None, details

    levels = calculate_fib_levels(swing.low, swing.high)
    details["levels"] = [round(lv, 5) for lv in levels]

    if trend > 0 and is_valid_buy_setup(price, levels):
        details["result"] = "buy_zone"
        return "buy", details
    if trend < 0 and is_valid_sell_setup(price, levels):
        details["result"] = "sell_zone"
        return "sell", details

    details["result"] = "outside_zone"
    return None, details
