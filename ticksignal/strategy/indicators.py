"""Technical indicators — EMA and RSI over candle closes. Pure functions, no I/O.

Both return a list aligned with the input candles; entries before the
indicator has warmed up are ``float('nan')``.
"""

import math

from ticksignal.strategy.models import (
    CandleData,
    InsufficientHistoryError,
    MarketSnapshot,
    Series,
)


def calculate_ema(candles: list[CandleData], period: int) -> list[float]:
    """Exponential Moving Average of closes.

    ``EMA_t = close_t × k + EMA_(t-1) × (1 - k)`` with ``k = 2 / (period + 1)``,
    seeded with the SMA of the first *period* closes.

    Raises ``ValueError`` if fewer than *period* candles are provided.
    """
    if len(candles) < period:
        raise ValueError(
            f"Need at least {period} candles for EMA({period}), "
            f"got {len(candles)}"
        )

    k = 2.0 / (period + 1)
    closes = [c.close for c in candles]
    ema = [float("nan")] * len(closes)

    ema[period - 1] = sum(closes[:period]) / period
    for i in range(period, len(closes)):
        ema[i] = closes[i] * k + ema[i - 1] * (1 - k)

    return ema


def calculate_rsi(candles: list[CandleData], period: int = 14) -> list[float]:
    """Wilder's Relative Strength Index of closes.

    Average gain/loss are seeded with the SMA of the first *period* deltas
    and then smoothed as ``avg = (prev × (period - 1) + current) / period``.
    A window with no losses reads 100.

    Requires at least ``period + 1`` candles.
    """
    if len(candles) < period + 1:
        raise ValueError(
            f"Need at least {period + 1} candles for RSI({period}), "
            f"got {len(candles)}"
        )

    closes = [c.close for c in candles]
    deltas = [b - a for a, b in zip(closes, closes[1:])]
    gains = [max(d, 0.0) for d in deltas]
    losses = [max(-d, 0.0) for d in deltas]

    def _rsi(avg_gain: float, avg_loss: float) -> float:
        if avg_loss == 0:
            return 100.0
        return 100.0 - 100.0 / (1.0 + avg_gain / avg_loss)

    rsi = [float("nan")] * len(closes)
    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period
    rsi[period] = _rsi(avg_gain, avg_loss)

    for i in range(period, len(deltas)):
        avg_gain = (avg_gain * (period - 1) + gains[i]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i]) / period
        rsi[i + 1] = _rsi(avg_gain, avg_loss)

    return rsi


def _warmed_up(values: list[float]) -> list[float]:
    """Drop the leading NaN entries so offsets never land on a cold value."""
    for i, v in enumerate(values):
        if not math.isnan(v):
            return values[i:]
    return []


def build_snapshot(
    candles: list[CandleData],
    bid: float,
    ask: float,
    pip_size: float,
    fast_period: int,
    slow_period: int,
    rsi_period: int,
) -> MarketSnapshot:
    """Turn oldest-first candles and a quote into the series the core reads.

    Raises ``InsufficientHistoryError`` when any indicator cannot be computed.
    """
    try:
        ema_fast = calculate_ema(candles, fast_period)
        ema_slow = calculate_ema(candles, slow_period)
        rsi = calculate_rsi(candles, rsi_period)
    except ValueError as exc:
        raise InsufficientHistoryError(str(exc)) from exc

    return MarketSnapshot(
        highs=Series([c.high for c in candles]),
        lows=Series([c.low for c in candles]),
        closes=Series([c.close for c in candles]),
        ema_fast=Series(_warmed_up(ema_fast)),
        ema_slow=Series(_warmed_up(ema_slow)),
        rsi=Series(_warmed_up(rsi)),
        bid=bid,
        ask=ask,
        pip_size=pip_size,
    )
