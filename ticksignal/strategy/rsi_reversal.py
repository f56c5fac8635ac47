"""RSI reversal detection — pure functions over an RSI window, no I/O.

Two policies are available and are picked by name at configuration time:

* ``simple`` — three-point pattern: current RSI is oversold, above the
  previous value, and the previous value is a trough.
* ``windowed`` — over ``rsi_lookback_periods`` values: trailing up-tick
  count, least-squares slope angle, and an oversold minimum somewhere in
  the window.

Windows are passed **newest-first** (index 0 = current bar), matching the
order produced by ``Series.window()``.
"""

import math
from dataclasses import dataclass, field
from typing import Callable

from ticksignal.config import StrategyParams
from ticksignal.strategy.models import Series


@dataclass(frozen=True)
class ReversalCheck:
    """Result of one reversal test plus the numbers behind it."""

    detected: bool
    reason: str
    details: dict = field(default_factory=dict)


def simple_reversal(window: list[float], oversold_level: float) -> ReversalCheck:
    """Three-point RSI turn from oversold.

    Args:
        window: ``[current, one_back, two_back]``.
        oversold_level: RSI at or below this is oversold.
    """
    if len(window) < 3:
        raise ValueError(f"Simple reversal needs 3 RSI values, got {len(window)}")

    current, previous, two_back = window[0], window[1], window[2]
    oversold = current <= oversold_level
    turning_up = current > previous and previous < two_back

    details = {
        "rsi": [round(v, 2) for v in window[:3]],
        "oversold": oversold,
        "turning_up": turning_up,
    }
    if not oversold:
        return ReversalCheck(False, "not_oversold", details)
    if not turning_up:
        return ReversalCheck(False, "not_turning_up", details)
    return ReversalCheck(True, "oversold_turn", details)


def count_trailing_up_ticks(window: list[float]) -> int:
    """Count consecutive rises ending at the newest value.

    Walks the window in time order; every strict rise increments the count
    and anything else resets it, so a final down-tick yields 0 even after a
    long climb.
    """
    chronological = list(reversed(window))
    up_ticks = 0
    for earlier, later in zip(chronological, chronological[1:]):
        if later > earlier:
            up_ticks += 1
        else:
            up_ticks = 0
    return up_ticks


def regression_slope(values: list[float]) -> float | None:
    """Least-squares slope of *values* against ``x = 0..n-1``.

    Returns ``None`` when the slope is undefined (fewer than two points).
    """
    n = len(values)
    sum_x = sum_y = sum_xy = sum_xx = 0.0
    for x, y in enumerate(values):
        sum_x += x
        sum_y += y
        sum_xy += x * y
        sum_xx += x * x

    denominator = n * sum_xx - sum_x * sum_x
    if denominator == 0:
        return None
    return (n * sum_xy - sum_x * sum_y) / denominator


def windowed_reversal(
    window: list[float],
    oversold_level: float,
    min_up_ticks: int,
    min_angle: float,
) -> ReversalCheck:
    """Windowed RSI reversal: up-ticks, slope angle and oversold minimum.

    Args:
        window: RSI values, newest-first.
        oversold_level: The window's minimum must be at or below this.
        min_up_ticks: Required trailing up-tick count.
        min_angle: Required regression angle in degrees.
    """
    slope = regression_slope(list(reversed(window)))
    if slope is None:
        return ReversalCheck(
            False, "degenerate_regression", {"window_size": len(window)},
        )

    up_ticks = count_trailing_up_ticks(window)
    angle = math.degrees(math.atan(slope))
    near_min = min(window) <= oversold_level

    details = {
        "rsi": [round(v, 2) for v in window],
        "up_ticks": up_ticks,
        "angle": round(angle, 2),
        "near_min": near_min,
    }
    if up_ticks < min_up_ticks:
        return ReversalCheck(False, "not_enough_up_ticks", details)
    if angle < min_angle:
        return ReversalCheck(False, "angle_too_shallow", details)
    if not near_min:
        return ReversalCheck(False, "not_near_oversold", details)
    return ReversalCheck(True, "windowed_turn", details)


# ── Policy selection ─────────────────────────────────────────────────────


def _run_simple(rsi: Series, params: StrategyParams) -> ReversalCheck:
    return simple_reversal(rsi.window(3), params.rsi_oversold_level)


def _run_windowed(rsi: Series, params: StrategyParams) -> ReversalCheck:
    return windowed_reversal(
        rsi.window(params.rsi_lookback_periods),
        params.rsi_oversold_level,
        params.min_rsi_up_ticks,
        params.min_rsi_angle,
    )


RSI_POLICIES: dict[str, Callable[[Series, StrategyParams], ReversalCheck]] = {
    "simple": _run_simple,
    "windowed": _run_windowed,
}


def policy_window_size(policy: str, params: StrategyParams) -> int:
    """Number of RSI values *policy* reads."""
    if policy == "simple":
        return 3
    return params.rsi_lookback_periods


def detect_reversal(policy: str, rsi: Series, params: StrategyParams) -> ReversalCheck:
    """Run the named policy over the newest RSI values.

    Raises ``KeyError`` for an unknown policy and
    ``InsufficientHistoryError`` when the RSI series is too short.
    """
    if policy not in RSI_POLICIES:
        raise KeyError(
            f"Unknown RSI policy '{policy}'. "
            f"Available: {', '.join(RSI_POLICIES.keys())}"
        )
    return RSI_POLICIES[policy](rsi, params)
