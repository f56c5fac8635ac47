"""TickSignal — application configuration.

Loads .env variables into a typed config object.
Strategy parameters are fixed at start and validated before the engine runs.
"""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv


_REQUIRED_VARS = [
    "OANDA_ACCOUNT_ID",
    "OANDA_API_TOKEN",
    "OANDA_ENVIRONMENT",
]

_SIZING_MODES = ("fixed", "risk")


@dataclass(frozen=True)
class StrategyParams:
    """Immutable parameter set shared by every strategy variant."""

    take_profit_pips: float = 50.0
    stop_loss_pips: float = 30.0
    lot_size: float = 1000.0  # instrument units
    ema_fast_period: int = 20
    ema_slow_period: int = 50
    rsi_period: int = 14
    rsi_oversold_level: float = 32.0
    rsi_lookback_periods: int = 5
    min_rsi_up_ticks: int = 2
    min_rsi_angle: float = 15.0
    fib_period: int = 20
    risk_percentage: float = 1.0

    def validate(self) -> None:
        """Raise ``ValueError`` if any parameter is outside its allowed range."""
        if self.take_profit_pips < 1:
            raise ValueError(
                f"take_profit_pips must be at least 1, got {self.take_profit_pips}"
            )
        if self.stop_loss_pips < 1:
            raise ValueError(
                f"stop_loss_pips must be at least 1, got {self.stop_loss_pips}"
            )
        if self.lot_size <= 0:
            raise ValueError(f"lot_size must be positive, got {self.lot_size}")
        for name in ("ema_fast_period", "ema_slow_period", "rsi_period"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")
        if self.rsi_lookback_periods < 2:
            raise ValueError(
                f"rsi_lookback_periods must be at least 2, got {self.rsi_lookback_periods}"
            )
        if self.min_rsi_up_ticks < 0:
            raise ValueError(
                f"min_rsi_up_ticks must be non-negative, got {self.min_rsi_up_ticks}"
            )
        if not 0 <= self.rsi_oversold_level <= 100:
            raise ValueError(
                f"rsi_oversold_level must be within 0-100, got {self.rsi_oversold_level}"
            )
        if self.fib_period < 10:
            raise ValueError(f"fib_period must be at least 10, got {self.fib_period}")
        if not 0.1 <= self.risk_percentage <= 2.0:
            raise ValueError(
                f"risk_percentage must be within 0.1-2.0, got {self.risk_percentage}"
            )


@dataclass(frozen=True)
class Config:
    """Typed configuration loaded from environment variables."""

    oanda_account_id: str
    oanda_api_token: str
    oanda_environment: str  # "practice" or "live"
    trade_pair: str = "EUR_USD"
    strategy: str = "downtrend_reversal"
    granularity: str = "M1"
    poll_interval_seconds: int = 5
    position_sizing: str = "fixed"  # "fixed" or "risk"
    log_level: str = "INFO"
    health_port: int = 8080
    params: StrategyParams = field(default_factory=StrategyParams)

    @property
    def oanda_base_url(self) -> str:
        """Return the OANDA v20 API base URL based on environment."""
        if self.oanda_environment == "live":
            return "https://api-fxtrade.oanda.com"
        return "https://api-fxpractice.oanda.com"


def _load_params() -> StrategyParams:
    env = os.environ.get
    params = StrategyParams(
        take_profit_pips=float(env("TAKE_PROFIT_PIPS", "50")),
        stop_loss_pips=float(env("STOP_LOSS_PIPS", "30")),
        lot_size=float(env("LOT_SIZE", "1000")),
        ema_fast_period=int(env("EMA_FAST_PERIOD", "20")),
        ema_slow_period=int(env("EMA_SLOW_PERIOD", "50")),
        rsi_period=int(env("RSI_PERIOD", "14")),
        rsi_oversold_level=float(env("RSI_OVERSOLD_LEVEL", "32")),
        rsi_lookback_periods=int(env("RSI_LOOKBACK_PERIODS", "5")),
        min_rsi_up_ticks=int(env("MIN_RSI_UP_TICKS", "2")),
        min_rsi_angle=float(env("MIN_RSI_ANGLE", "15.0")),
        fib_period=int(env("FIB_PERIOD", "20")),
        risk_percentage=float(env("RISK_PERCENTAGE", "1.0")),
    )
    params.validate()
    return params


def load_config(env_path: str | None = None) -> Config:
    """Load configuration from environment variables.

    Raises ``ValueError`` with a message naming the missing variable when a
    required variable is absent, or when a strategy parameter is out of range.
    """
    load_dotenv(dotenv_path=env_path)

    missing = [v for v in _REQUIRED_VARS if not os.environ.get(v)]
    if missing:
        raise ValueError(
            f"Missing required environment variable(s): {', '.join(missing)}"
        )

    sizing = os.environ.get("POSITION_SIZING", "fixed")
    if sizing not in _SIZING_MODES:
        raise ValueError(
            f"POSITION_SIZING must be one of {', '.join(_SIZING_MODES)}, got '{sizing}'"
        )

    return Config(
        oanda_account_id=os.environ["OANDA_ACCOUNT_ID"],
        oanda_api_token=os.environ["OANDA_API_TOKEN"],
        oanda_environment=os.environ.get("OANDA_ENVIRONMENT", "practice"),
        trade_pair=os.environ.get("TRADE_PAIR", "EUR_USD"),
        strategy=os.environ.get("STRATEGY", "downtrend_reversal"),
        granularity=os.environ.get("GRANULARITY", "M1"),
        poll_interval_seconds=int(os.environ.get("POLL_INTERVAL_SECONDS", "5")),
        position_sizing=sizing,
        log_level=os.environ.get("LOG_LEVEL", "INFO"),
        health_port=int(os.environ.get("HEALTH_PORT", "8080")),
        params=_load_params(),
    )
