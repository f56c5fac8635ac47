"""OANDA v20 REST API async client.

Feed side: candles, live pricing and instrument metadata.
Execution side: market orders with attached SL/TP, open trades, closes.
"""

import asyncio
import logging
import math
from typing import Optional

import httpx

from ticksignal.broker.models import (
    AccountSummary,
    Candle,
    InstrumentSpec,
    OrderRejectedError,
    OrderRequest,
    OrderResponse,
    Quote,
    Trade,
)
from ticksignal.config import Config

logger = logging.getLogger("ticksignal")

# Retry settings
_MAX_RETRIES = 3
_RETRY_BASE_DELAY = 1.0  # seconds; doubles each attempt
_RETRYABLE_STATUS_CODES = {429, 502, 503, 504}
# Raised before the request leaves the client, safe to resend.
_UNSENT_ERRORS = (httpx.ConnectError, httpx.ConnectTimeout)


def _price_precision(pip_size: float) -> int:
    """Decimal places for prices: one more than the pip (fractional pips)."""
    return max(0, round(-math.log10(pip_size))) + 1


class OandaClient:
    """Async client wrapping the OANDA v20 REST API."""

    def __init__(self, config: Config) -> None:
        self._config = config
        self._base_url = config.oanda_base_url
        self._account_id = config.oanda_account_id
        self._headers = {
            "Authorization": f"Bearer {config.oanda_api_token}",
            "Content-Type": "application/json",
        }

    @property
    def _account_url(self) -> str:
        return f"{self._base_url}/v3/accounts/{self._account_id}"

    # ── Retry helper ─────────────────────────────────────────────────────

    async def _request_with_retry(
        self,
        method: str,
        url: str,
        retry_transport: bool = True,
        **kwargs,
    ) -> httpx.Response:
        """Send a request, retrying transient failures with backoff.

        Rate limits and gateway errors (429, 502-504) and transport errors
        are retried up to ``_MAX_RETRIES`` times.  Any other error status is
        raised immediately as ``httpx.HTTPStatusError``.

        With ``retry_transport=False`` only failures to connect are retried;
        an error after the request may have reached OANDA is raised as-is.
        """
        last_exc: Optional[Exception] = None

        for attempt in range(_MAX_RETRIES):
            delay = _RETRY_BASE_DELAY * (2 ** attempt)
            try:
                async with httpx.AsyncClient() as client:
                    resp = await getattr(client, method)(
                        url,
                        headers=self._headers,
                        timeout=15.0,
                        **kwargs,
                    )
            except httpx.TransportError as exc:
                if not retry_transport and not isinstance(exc, _UNSENT_ERRORS):
                    logger.error(
                        "OANDA %s %s transport error (%s), not retried",
                        method.upper(), url, exc,
                    )
                    raise
                logger.warning(
                    "OANDA %s %s transport error (%s), retry %d/%d in %.1fs",
                    method.upper(), url, exc, attempt + 1, _MAX_RETRIES, delay,
                )
                last_exc = exc
                await asyncio.sleep(delay)
                continue

            if resp.status_code in _RETRYABLE_STATUS_CODES:
                logger.warning(
                    "OANDA %s %s returned %d, retry %d/%d in %.1fs",
                    method.upper(), url, resp.status_code,
                    attempt + 1, _MAX_RETRIES, delay,
                )
                last_exc = httpx.HTTPStatusError(
                    f"Server error '{resp.status_code}'",
                    request=resp.request,
                    response=resp,
                )
                await asyncio.sleep(delay)
                continue

            resp.raise_for_status()
            return resp

        raise last_exc  # type: ignore[misc]

    # ── Feed ─────────────────────────────────────────────────────────────

    async def fetch_candles(
        self,
        instrument: str,
        granularity: str,
        count: int = 100,
    ) -> list[Candle]:
        """Fetch mid-price candles, oldest-first.

        Args:
            instrument: e.g. ``"EUR_USD"``
            granularity: e.g. ``"M1"``, ``"M5"``, ``"H1"``
            count: number of candles to request (max 5000)
        """
        url = f"{self._base_url}/v3/instruments/{instrument}/candles"
        params = {"granularity": granularity, "count": count, "price": "M"}

        resp = await self._request_with_retry("get", url, params=params)

        candles: list[Candle] = []
        for c in resp.json().get("candles", []):
            mid = c["mid"]
            candles.append(
                Candle(
                    time=c["time"],
                    open=float(mid["o"]),
                    high=float(mid["h"]),
                    low=float(mid["l"]),
                    close=float(mid["c"]),
                    volume=int(c["volume"]),
                    complete=bool(c["complete"]),
                )
            )
        return candles

    async def get_quote(self, instrument: str) -> Quote:
        """Return the current best bid and ask."""
        url = f"{self._account_url}/pricing"

        resp = await self._request_with_retry(
            "get", url, params={"instruments": instrument},
        )

        price = resp.json()["prices"][0]
        return Quote(
            instrument=price["instrument"],
            bid=float(price["bids"][0]["price"]),
            ask=float(price["asks"][0]["price"]),
            time=price["time"],
        )

    async def get_instrument(self, instrument: str) -> InstrumentSpec:
        """Return pip size and volume limits for *instrument*."""
        url = f"{self._account_url}/instruments"

        resp = await self._request_with_retry(
            "get", url, params={"instruments": instrument},
        )

        spec = resp.json()["instruments"][0]
        return InstrumentSpec(
            name=spec["name"],
            pip_size=10.0 ** int(spec["pipLocation"]),
            min_units=float(spec.get("minimumTradeSize", "1")),
            max_units=float(spec.get("maximumOrderUnits", "100000000")),
            unit_step=10.0 ** -int(spec.get("tradeUnitsPrecision", 0)),
        )

    async def get_account_summary(self) -> AccountSummary:
        """Query OANDA for account balance, equity, and open position count."""
        resp = await self._request_with_retry("get", f"{self._account_url}/summary")

        acct = resp.json()["account"]
        return AccountSummary(
            account_id=acct["id"],
            balance=float(acct["balance"]),
            equity=float(acct["NAV"]),
            open_position_count=int(acct["openPositionCount"]),
            currency=acct["currency"],
        )

    # ── Execution ────────────────────────────────────────────────────────

    async def place_order(self, order: OrderRequest) -> OrderResponse:
        """Place a fill-or-kill market order with SL and TP attached.

        The stop-loss is sent as a price distance; the take-profit is
        converted to a price from ``order.reference_price``.

        Raises:
            OrderRejectedError: OANDA rejected or cancelled the order.
        """
        prec = _price_precision(order.pip_size)
        sl_distance = order.stop_loss_pips * order.pip_size
        tp_distance = order.take_profit_pips * order.pip_size
        if order.units > 0:
            tp_price = order.reference_price + tp_distance
        else:
            tp_price = order.reference_price - tp_distance

        body: dict = {
            "order": {
                "type": "MARKET",
                "instrument": order.instrument,
                "units": str(int(order.units)),
                "timeInForce": "FOK",
                "positionFill": "DEFAULT",
                "stopLossOnFill": {"distance": f"{sl_distance:.{prec}f}"},
                "takeProfitOnFill": {"price": f"{tp_price:.{prec}f}"},
            }
        }
        if order.label:
            body["order"]["tradeClientExtensions"] = {"tag": order.label}

        try:
            resp = await self._request_with_retry(
                "post", f"{self._account_url}/orders", json=body, retry_transport=False,
            )
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 400:
                try:
                    payload = exc.response.json()
                except ValueError:
                    raise OrderRejectedError(exc.response.text or "rejected") from exc
                reject = payload.get("orderRejectTransaction", {})
                raise OrderRejectedError(
                    reject.get("rejectReason") or payload.get("errorMessage", "rejected")
                ) from exc
            raise

        data = resp.json()
        fill = data.get("orderFillTransaction")
        if fill is None:
            cancel = data.get("orderCancelTransaction", {})
            raise OrderRejectedError(cancel.get("reason", "order not filled"))

        return OrderResponse(
            order_id=fill["id"],
            trade_id=fill.get("tradeOpened", {}).get("tradeID", ""),
            instrument=fill["instrument"],
            units=float(fill["units"]),
            price=float(fill["price"]),
            time=fill["time"],
        )

    async def list_open_trades(self, instrument: Optional[str] = None) -> list[Trade]:
        """Return open trades, optionally filtered to one instrument."""
        params = {"instrument": instrument} if instrument else None
        resp = await self._request_with_retry(
            "get", f"{self._account_url}/openTrades", params=params,
        )

        trades: list[Trade] = []
        for t in resp.json().get("trades", []):
            trades.append(
                Trade(
                    trade_id=t["id"],
                    instrument=t["instrument"],
                    units=float(t["currentUnits"]),
                    price=float(t["price"]),
                    unrealized_pnl=float(t.get("unrealizedPL", "0")),
                    label=t.get("clientExtensions", {}).get("tag", ""),
                    open_time=t.get("openTime", ""),
                )
            )
        return trades

    async def close_trade(self, trade_id: str) -> dict:
        """Close all units of an open trade.

        Raises:
            OrderRejectedError: The closing order was cancelled.
        """
        url = f"{self._account_url}/trades/{trade_id}/close"

        resp = await self._request_with_retry(
            "put", url, json={"units": "ALL"}, retry_transport=False,
        )

        data = resp.json()
        if "orderFillTransaction" not in data:
            cancel = data.get("orderCancelTransaction", {})
            raise OrderRejectedError(cancel.get("reason", "close not filled"))
        return data
