"""Broker data models — typed representations of OANDA v20 API objects."""

from dataclasses import dataclass


class OrderRejectedError(Exception):
    """The broker accepted the request but did not fill the order."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


@dataclass(frozen=True)
class Candle:
    """A single candlestick bar."""

    time: str
    open: float
    high: float
    low: float
    close: float
    volume: int
    complete: bool


@dataclass(frozen=True)
class Quote:
    """Top-of-book price for an instrument."""

    instrument: str
    bid: float
    ask: float
    time: str


@dataclass(frozen=True)
class InstrumentSpec:
    """Pip size and volume constraints of a tradeable instrument."""

    name: str
    pip_size: float
    min_units: float
    max_units: float
    unit_step: float


@dataclass(frozen=True)
class AccountSummary:
    """Summary of an OANDA account."""

    account_id: str
    balance: float
    equity: float
    open_position_count: int
    currency: str


@dataclass(frozen=True)
class OrderRequest:
    """A market order with pip-distance stop-loss and take-profit."""

    instrument: str
    units: float  # positive=buy, negative=sell
    stop_loss_pips: float
    take_profit_pips: float
    pip_size: float
    reference_price: float  # current bid/ask, anchors the take-profit price
    label: str = ""


@dataclass(frozen=True)
class OrderResponse:
    """Fill details of a placed order."""

    order_id: str
    trade_id: str
    instrument: str
    units: float
    price: float
    time: str


@dataclass(frozen=True)
class Trade:
    """An open trade."""

    trade_id: str
    instrument: str
    units: float  # positive=long, negative=short
    price: float
    unrealized_pnl: float
    label: str = ""
    open_time: str = ""
