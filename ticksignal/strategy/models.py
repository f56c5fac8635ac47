"""Strategy data models — typed inputs and outputs of the signal core."""

from dataclasses import dataclass, field
from typing import Literal, Optional, Sequence


class InsufficientHistoryError(ValueError):
    """Raised when a lookback reaches further back than the available history."""


@dataclass(frozen=True)
class CandleData:
    """A single candlestick bar for strategy consumption."""

    time: str
    open: float
    high: float
    low: float
    close: float
    volume: int


class Series:
    """Read-only numeric series, stored oldest-first, read newest-first.

    ``last(0)`` is the current value, ``last(1)`` the one before it, and so on.
    """

    def __init__(self, values: Sequence[float]) -> None:
        self._values = tuple(values)

    def __len__(self) -> int:
        return len(self._values)

    def last(self, offset: int) -> float:
        """Return the value *offset* steps back from the newest."""
        if offset < 0 or offset >= len(self._values):
            raise InsufficientHistoryError(
                f"Offset {offset} out of range for series of length "
                f"{len(self._values)}"
            )
        return self._values[-1 - offset]

    def window(self, size: int) -> list[float]:
        """Return the newest *size* values, newest-first."""
        return [self.last(i) for i in range(size)]


@dataclass(frozen=True)
class MarketSnapshot:
    """Everything the core reads on one tick."""

    highs: Series
    lows: Series
    closes: Series
    ema_fast: Series
    ema_slow: Series
    rsi: Series
    bid: float
    ask: float
    pip_size: float

    @property
    def bar_count(self) -> int:
        return len(self.closes)


@dataclass(frozen=True)
class SwingPoint:
    """Swing high/low of the most recent bars."""

    high: float
    low: float


@dataclass(frozen=True)
class TradeSignal:
    """Outcome of one entry evaluation.

    ``direction`` is ``None`` when no trade should be opened.
    """

    direction: Optional[Literal["buy", "sell"]]
    reason: str
    checks: dict = field(default_factory=dict)

    @property
    def is_entry(self) -> bool:
        return self.direction is not None


@dataclass(frozen=True)
class OpenPosition:
    """Read-only view of an open broker trade."""

    trade_id: str
    instrument: str
    direction: Literal["buy", "sell"]
    units: float
    entry_price: float
    profit_pips: float
    label: str = ""
    open_time: str = ""


@dataclass(frozen=True)
class CloseInstruction:
    """Request to close one position."""

    position: OpenPosition
    reason: str


# ── Instrument metadata ──────────────────────────────────────────────────

INSTRUMENT_PIP_VALUES: dict[str, float] = {
    "EUR_USD": 0.0001,
    "GBP_USD": 0.0001,
    "USD_JPY": 0.01,
    "USD_CHF": 0.0001,
    "AUD_USD": 0.0001,
    "NZD_USD": 0.0001,
    "USD_CAD": 0.0001,
    "EUR_JPY": 0.01,
    "GBP_JPY": 0.01,
    "XAU_USD": 0.01,
    "XAG_USD": 0.001,
}
