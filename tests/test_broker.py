"""Tests for ticksignal.broker — OANDA client with mocked HTTP responses."""

import httpx
import pytest

from ticksignal.broker.models import (
    Candle,
    InstrumentSpec,
    OrderRejectedError,
    OrderRequest,
    OrderResponse,
    Quote,
    Trade,
)
from ticksignal.broker.oanda_client import OandaClient, _price_precision
from ticksignal.config import Config


def _make_config(environment: str = "practice") -> Config:
    return Config(
        oanda_account_id="101-001-12345678-001",
        oanda_api_token="test-token",
        oanda_environment=environment,
    )


def _order(units: float = 1000, reference_price: float = 1.09500) -> OrderRequest:
    return OrderRequest(
        instrument="EUR_USD",
        units=units,
        stop_loss_pips=30,
        take_profit_pips=50,
        pip_size=0.0001,
        reference_price=reference_price,
        label="Downtrend Reversal",
    )


# ── Mock OANDA responses ────────────────────────────────────────────────

MOCK_CANDLES_RESPONSE = {
    "instrument": "EUR_USD",
    "granularity": "M1",
    "candles": [
        {
            "complete": True,
            "volume": 120,
            "time": "2025-03-03T10:00:00.000000000Z",
            "mid": {"o": "1.09100", "h": "1.09150", "l": "1.09080", "c": "1.09120"},
        },
        {
            "complete": False,
            "volume": 45,
            "time": "2025-03-03T10:01:00.000000000Z",
            "mid": {"o": "1.09120", "h": "1.09130", "l": "1.09090", "c": "1.09095"},
        },
    ],
}

MOCK_PRICING_RESPONSE = {
    "prices": [
        {
            "instrument": "EUR_USD",
            "time": "2025-03-03T10:01:12.000000000Z",
            "bids": [{"price": "1.09093", "liquidity": 1000000}],
            "asks": [{"price": "1.09105", "liquidity": 1000000}],
        }
    ]
}

MOCK_INSTRUMENTS_RESPONSE = {
    "instruments": [
        {
            "name": "USD_JPY",
            "pipLocation": -2,
            "displayPrecision": 3,
            "tradeUnitsPrecision": 0,
            "minimumTradeSize": "1",
            "maximumOrderUnits": "100000000",
        }
    ]
}

MOCK_ORDER_FILL_RESPONSE = {
    "orderCreateTransaction": {"id": "12344"},
    "orderFillTransaction": {
        "id": "12345",
        "instrument": "EUR_USD",
        "units": "1000",
        "price": "1.09500",
        "time": "2025-03-03T10:01:13.000000000Z",
        "tradeOpened": {"tradeID": "12346", "units": "1000"},
    },
}

MOCK_ORDER_CANCEL_RESPONSE = {
    "orderCreateTransaction": {"id": "12344"},
    "orderCancelTransaction": {"id": "12345", "reason": "INSUFFICIENT_MARGIN"},
}

MOCK_ORDER_REJECT_RESPONSE = {
    "orderRejectTransaction": {"rejectReason": "UNITS_INVALID"},
    "errorMessage": "The units specified are invalid",
}

MOCK_OPEN_TRADES_RESPONSE = {
    "trades": [
        {
            "id": "12346",
            "instrument": "EUR_USD",
            "price": "1.09500",
            "currentUnits": "-1000",
            "unrealizedPL": "-1.20",
            "openTime": "2025-03-03T10:01:13.000000000Z",
            "clientExtensions": {"tag": "FibSell"},
        }
    ]
}


def _mock_get(payload):
    async def _get(self, url, *, headers=None, params=None, timeout=None):
        return httpx.Response(200, json=payload, request=httpx.Request("GET", url))
    return _get


# ── Tests ────────────────────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_parse_candles(monkeypatch):
    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get(MOCK_CANDLES_RESPONSE))

    candles = await OandaClient(_make_config()).fetch_candles("EUR_USD", "M1", count=2)

    assert len(candles) == 2
    c = candles[0]
    assert isinstance(c, Candle)
    assert c.open == pytest.approx(1.091)
    assert c.high == pytest.approx(1.0915)
    assert c.low == pytest.approx(1.0908)
    assert c.close == pytest.approx(1.0912)
    assert c.volume == 120
    assert candles[1].complete is False


@pytest.mark.asyncio
async def test_quote(monkeypatch):
    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get(MOCK_PRICING_RESPONSE))

    quote = await OandaClient(_make_config()).get_quote("EUR_USD")

    assert isinstance(quote, Quote)
    assert quote.bid == pytest.approx(1.09093)
    assert quote.ask == pytest.approx(1.09105)


@pytest.mark.asyncio
async def test_instrument_spec(monkeypatch):
    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get(MOCK_INSTRUMENTS_RESPONSE))

    spec = await OandaClient(_make_config()).get_instrument("USD_JPY")

    assert isinstance(spec, InstrumentSpec)
    assert spec.pip_size == pytest.approx(0.01)
    assert spec.min_units == 1.0
    assert spec.max_units == 100_000_000.0
    assert spec.unit_step == 1.0


@pytest.mark.asyncio
async def test_order_payload(monkeypatch):
    """Market order JSON carries signed units, SL distance, TP price and tag."""
    captured_body = {}

    async def _mock_post(self, url, *, headers=None, json=None, timeout=None):
        captured_body.update(json)
        return httpx.Response(201, json=MOCK_ORDER_FILL_RESPONSE, request=httpx.Request("POST", url))

    monkeypatch.setattr(httpx.AsyncClient, "post", _mock_post)

    resp = await OandaClient(_make_config()).place_order(_order())

    assert isinstance(resp, OrderResponse)
    assert resp.order_id == "12345"
    assert resp.trade_id == "12346"
    assert resp.price == pytest.approx(1.095)

    body = captured_body["order"]
    assert body["type"] == "MARKET"
    assert body["units"] == "1000"
    assert body["stopLossOnFill"] == {"distance": "0.00300"}
    assert body["takeProfitOnFill"] == {"price": "1.10000"}
    assert body["tradeClientExtensions"] == {"tag": "Downtrend Reversal"}


@pytest.mark.asyncio
async def test_sell_order_take_profit_below_reference(monkeypatch):
    captured_body = {}

    async def _mock_post(self, url, *, headers=None, json=None, timeout=None):
        captured_body.update(json)
        return httpx.Response(201, json=MOCK_ORDER_FILL_RESPONSE, request=httpx.Request("POST", url))

    monkeypatch.setattr(httpx.AsyncClient, "post", _mock_post)

    await OandaClient(_make_config()).place_order(_order(units=-1000))

    assert captured_body["order"]["units"] == "-1000"
    assert captured_body["order"]["takeProfitOnFill"] == {"price": "1.09000"}


@pytest.mark.asyncio
async def test_cancelled_order_raises(monkeypatch):
    async def _mock_post(self, url, *, headers=None, json=None, timeout=None):
        return httpx.Response(201, json=MOCK_ORDER_CANCEL_RESPONSE, request=httpx.Request("POST", url))

    monkeypatch.setattr(httpx.AsyncClient, "post", _mock_post)

    with pytest.raises(OrderRejectedError) as exc_info:
        await OandaClient(_make_config()).place_order(_order())
    assert exc_info.value.reason == "INSUFFICIENT_MARGIN"


@pytest.mark.asyncio
async def test_rejected_order_raises(monkeypatch):
    async def _mock_post(self, url, *, headers=None, json=None, timeout=None):
        return httpx.Response(400, json=MOCK_ORDER_REJECT_RESPONSE, request=httpx.Request("POST", url))

    monkeypatch.setattr(httpx.AsyncClient, "post", _mock_post)

    with pytest.raises(OrderRejectedError, match="UNITS_INVALID"):
        await OandaClient(_make_config()).place_order(_order())


@pytest.mark.asyncio
async def test_list_open_trades(monkeypatch):
    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get(MOCK_OPEN_TRADES_RESPONSE))

    trades = await OandaClient(_make_config()).list_open_trades("EUR_USD")

    assert len(trades) == 1
    t = trades[0]
    assert isinstance(t, Trade)
    assert t.units == pytest.approx(-1000.0)
    assert t.price == pytest.approx(1.095)
    assert t.label == "FibSell"


@pytest.mark.asyncio
async def test_close_trade(monkeypatch):
    captured = {}

    async def _mock_put(self, url, *, headers=None, json=None, timeout=None):
        captured["url"] = url
        captured["json"] = json
        return httpx.Response(200, json=MOCK_ORDER_FILL_RESPONSE, request=httpx.Request("PUT", url))

    monkeypatch.setattr(httpx.AsyncClient, "put", _mock_put)

    await OandaClient(_make_config()).close_trade("12346")

    assert captured["url"].endswith("/trades/12346/close")
    assert captured["json"] == {"units": "ALL"}


@pytest.mark.asyncio
async def test_retries_then_succeeds(monkeypatch):
    calls = {"n": 0}

    async def _mock_get_flaky(self, url, *, headers=None, params=None, timeout=None):
        calls["n"] += 1
        status = 503 if calls["n"] == 1 else 200
        return httpx.Response(status, json=MOCK_PRICING_RESPONSE, request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx.AsyncClient, "get", _mock_get_flaky)
    monkeypatch.setattr("ticksignal.broker.oanda_client._RETRY_BASE_DELAY", 0.0)

    quote = await OandaClient(_make_config()).get_quote("EUR_USD")
    assert quote.bid == pytest.approx(1.09093)
    assert calls["n"] == 2


def test_price_precision():
    assert _price_precision(0.0001) == 5
    assert _price_precision(0.01) == 3


def test_environment_switching():
    assert OandaClient(_make_config("practice"))._base_url == "https://api-fxpractice.oanda.com"
    assert OandaClient(_make_config("live"))._base_url == "https://api-fxtrade.oanda.com"


@pytest.mark.asyncio
async def test_order_not_resent_after_read_timeout(monkeypatch):
    """A timeout after sending may have filled; resending would double the position."""
    calls = {"n": 0}

    async def _mock_post(self, url, *, headers=None, json=None, timeout=None):
        calls["n"] += 1
        if calls["n"] == 1:
            raise httpx.ReadTimeout("timed out", request=httpx.Request("POST", url))
        return httpx.Response(201, json=MOCK_ORDER_FILL_RESPONSE, request=httpx.Request("POST", url))

    monkeypatch.setattr(httpx.AsyncClient, "post", _mock_post)
    monkeypatch.setattr("ticksignal.broker.oanda_client._RETRY_BASE_DELAY", 0.0)

    with pytest.raises(httpx.ReadTimeout):
        await OandaClient(_make_config()).place_order(_order())
    assert calls["n"] == 1


@pytest.mark.asyncio
async def test_order_resent_after_connect_error(monkeypatch):
    calls = {"n": 0}

    async def _mock_post(self, url, *, headers=None, json=None, timeout=None):
        calls["n"] += 1
        if calls["n"] == 1:
            raise httpx.ConnectError("refused", request=httpx.Request("POST", url))
        return httpx.Response(201, json=MOCK_ORDER_FILL_RESPONSE, request=httpx.Request("POST", url))

    monkeypatch.setattr(httpx.AsyncClient, "post", _mock_post)
    monkeypatch.setattr("ticksignal.broker.oanda_client._RETRY_BASE_DELAY", 0.0)

    resp = await OandaClient(_make_config()).place_order(_order())
    assert resp.order_id == "12345"
    assert calls["n"] == 2


@pytest.mark.asyncio
async def test_close_not_resent_after_read_timeout(monkeypatch):
    calls = {"n": 0}

    async def _mock_put(self, url, *, headers=None, json=None, timeout=None):
        calls["n"] += 1
        raise httpx.ReadTimeout("timed out", request=httpx.Request("PUT", url))

    monkeypatch.setattr(httpx.AsyncClient, "put", _mock_put)
    monkeypatch.setattr("ticksignal.broker.oanda_client._RETRY_BASE_DELAY", 0.0)

    with pytest.raises(httpx.ReadTimeout):
        await OandaClient(_make_config()).close_trade("12346")
    assert calls["n"] == 1


@pytest.mark.asyncio
async def test_rejected_order_with_plain_text_body(monkeypatch):
    async def _mock_post(self, url, *, headers=None, json=None, timeout=None):
        return httpx.Response(400, text="Bad Request", request=httpx.Request("POST", url))

    monkeypatch.setattr(httpx.AsyncClient, "post", _mock_post)

    with pytest.raises(OrderRejectedError) as exc_info:
        await OandaClient(_make_config()).place_order(_order())
    assert exc_info.value.reason == "Bad Request"
