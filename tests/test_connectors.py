"""Tests for the exchange connectors.

HTTP is served by httpx.MockTransport; credentials come from plain dicts
so nothing touches the real environment or network.
"""

from __future__ import annotations

import asyncio
import base64
import hashlib
import hmac
from urllib.parse import parse_qsl

import httpx
import pytest

from apr_finder.config.schema import CollectionConfig
from apr_finder.connectors import (
    BinanceConnector,
    GateConnector,
    KucoinConnector,
    OkxConnector,
    build_connectors,
)
from apr_finder.connectors.base import risk_for_lock
from apr_finder.errors import ParseError, TransientLockout, UpstreamHttpError

BINANCE_ENV = {"BINANCE_API_KEY": "bkey", "BINANCE_API_SECRET": "bsecret"}
OKX_ENV = {"OKX_API_KEY": "okey", "OKX_API_SECRET": "osecret", "OKX_PASSPHRASE": "opass"}
KUCOIN_ENV = {"KUCOIN_API_KEY": "kkey", "KUCOIN_API_SECRET": "ksecret", "KUCOIN_PASSPHRASE": "kpass"}
GATE_ENV = {"GATE_API_KEY": "gkey", "GATE_API_SECRET": "gsecret"}


class Router:
    """Maps URL paths to canned responses and records every request."""

    def __init__(self, routes: dict[str, object]) -> None:
        self.routes = routes
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes[request.url.path]
        if isinstance(route, httpx.Response):
            return route
        if callable(route):
            return route(request)
        return httpx.Response(200, json=route)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))


class FakeClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


# ---------------------------------------------------------------------------
# Binance
# ---------------------------------------------------------------------------

BINANCE_FLEXIBLE = {
    "rows": [
        {"asset": "BTC", "latestAnnualPercentageRate": "0.0085", "canPurchase": True, "minPurchaseAmount": "0.0001"},
        {"asset": "WBETH", "latestAnnualPercentageRate": "0.03", "canPurchase": True},
        {"asset": "DOGE", "latestAnnualPercentageRate": "0.2", "canPurchase": False},
        {"asset": "PEPE", "latestAnnualPercentageRate": "1500"},
    ],
    "total": 4,
}

BINANCE_LOCKED = {
    "rows": [
        {"detail": {"asset": "ETH", "apr": "0.05", "duration": 30, "isSoldOut": False}, "quota": {"minimum": "0.1"}},
        {"detail": {"asset": "DOT", "apr": "0.14", "duration": 120, "isSoldOut": False}, "quota": {"minimum": "1"}},
        {"detail": {"asset": "SOL", "apr": "0.07", "duration": 90, "isSoldOut": True}},
    ],
    "total": 3,
}


def _binance(routes, clock=None, env=BINANCE_ENV):
    router = Router(routes)
    kwargs = {"clock": clock} if clock else {}
    return BinanceConnector(http=router.client(), environ=env, **kwargs), router


class TestBinance:
    @pytest.mark.asyncio
    async def test_unconfigured_returns_empty_without_requests(self):
        conn, router = _binance({}, env={})
        assert await conn.fetch() == []
        assert conn.last_status == "unconfigured"
        assert router.requests == []

    @pytest.mark.asyncio
    async def test_flexible_and_locked_products(self):
        conn, _ = _binance({
            "/sapi/v1/simple-earn/flexible/list": BINANCE_FLEXIBLE,
            "/sapi/v1/simple-earn/locked/list": BINANCE_LOCKED,
        })
        result = await conn.fetch()
        by_key = {(o.asset, o.lock_period): o for o in result}

        assert set(by_key) == {("BTC", "Flexible"), ("ETH", "Flexible"), ("ETH", "30 days"), ("DOT", "120 days")}
        btc = by_key[("BTC", "Flexible")]
        assert btc.apr == pytest.approx(0.85)
        assert btc.platform == "Binance"
        assert btc.chain == "bitcoin"
        assert btc.min_stake == 0.0001
        assert btc.source == "binance_simple_earn_flexible"
        assert by_key[("ETH", "Flexible")].apr == pytest.approx(3.0)

        locked = by_key[("ETH", "30 days")]
        assert locked.apr == pytest.approx(5.0)
        assert locked.risk_level == "low"
        assert locked.min_stake == 0.1
        assert locked.source == "binance_simple_earn_locked"
        assert by_key[("DOT", "120 days")].risk_level == "medium"
        assert conn.last_status == "ok"

    @pytest.mark.asyncio
    async def test_request_is_signed(self):
        conn, router = _binance({
            "/sapi/v1/simple-earn/flexible/list": {"rows": []},
            "/sapi/v1/simple-earn/locked/list": {"rows": []},
        })
        await conn.fetch()

        request = router.requests[0]
        assert request.headers["X-MBX-APIKEY"] == "bkey"
        query = request.url.query.decode()
        unsigned, _, signature = query.rpartition("&signature=")
        assert "timestamp" in dict(parse_qsl(unsigned))
        assert signature == hmac.new(b"bsecret", unsigned.encode(), hashlib.sha256).hexdigest()

    @pytest.mark.asyncio
    async def test_malformed_rows_skipped_individually(self):
        conn, _ = _binance({
            "/sapi/v1/simple-earn/flexible/list": {"rows": [
                {"asset": 123, "latestAnnualPercentageRate": "0.02"},
                {"asset": ["BTC"], "latestAnnualPercentageRate": "0.02"},
                {"asset": "BTC", "latestAnnualPercentageRate": "0.0085"},
            ]},
            "/sapi/v1/simple-earn/locked/list": {"rows": [
                {"detail": "ETH", "quota": {"minimum": "0.1"}},
                {"detail": None},
                {"detail": {"asset": "ETH", "apr": "0.05", "duration": 30}, "quota": "n/a"},
            ]},
        })
        result = await conn.fetch()

        assert sorted((o.asset, o.lock_period) for o in result) == [("BTC", "Flexible"), ("ETH", "30 days")]
        locked = next(o for o in result if o.lock_period == "30 days")
        assert locked.min_stake is None

    @pytest.mark.asyncio
    async def test_partial_product_failure_keeps_other_product(self):
        conn, _ = _binance({
            "/sapi/v1/simple-earn/flexible/list": BINANCE_FLEXIBLE,
            "/sapi/v1/simple-earn/locked/list": httpx.Response(500, text="internal"),
        })
        result = await conn.fetch()
        assert {o.source for o in result} == {"binance_simple_earn_flexible"}

    @pytest.mark.asyncio
    async def test_all_products_failing_raises(self):
        conn, _ = _binance({
            "/sapi/v1/simple-earn/flexible/list": httpx.Response(500, text="internal"),
            "/sapi/v1/simple-earn/locked/list": httpx.Response(503, text="unavailable"),
        })
        with pytest.raises(UpstreamHttpError) as exc_info:
            await conn.fetch()
        assert exc_info.value.status == 500
        assert "Binance HTTP 500" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_non_json_body_is_parse_error(self):
        conn, _ = _binance({
            "/sapi/v1/simple-earn/flexible/list": httpx.Response(200, text="<html>"),
            "/sapi/v1/simple-earn/locked/list": httpx.Response(200, text="<html>"),
        })
        with pytest.raises(ParseError):
            await conn.fetch()

    @pytest.mark.asyncio
    async def test_lockout_starts_cooldown(self):
        clock = FakeClock()
        banned = httpx.Response(418, json={"code": -1003, "msg": "Way too many requests; IP banned until 1700000000000."})
        conn, router = _binance({
            "/sapi/v1/simple-earn/flexible/list": banned,
            "/sapi/v1/simple-earn/locked/list": banned,
        }, clock=clock)

        with pytest.raises(TransientLockout):
            await conn.fetch()
        calls = len(router.requests)
        assert conn.in_cooldown

        # Inside the cooldown: no network, no error.
        clock.now += 30
        assert await conn.fetch() == []
        assert conn.last_status == "cooldown"
        assert len(router.requests) == calls

        # After the cooldown the source is called again.
        clock.now += 31
        with pytest.raises(TransientLockout):
            await conn.fetch()
        assert len(router.requests) > calls

    @pytest.mark.asyncio
    async def test_lockout_detected_from_error_code(self):
        conn, _ = _binance({
            "/sapi/v1/simple-earn/flexible/list": httpx.Response(400, json={"code": -1003, "msg": "Too many requests"}),
            "/sapi/v1/simple-earn/locked/list": BINANCE_LOCKED,
        })
        with pytest.raises(TransientLockout):
            await conn.fetch()
        assert conn.in_cooldown

    @pytest.mark.asyncio
    async def test_plain_client_error_is_not_lockout(self):
        conn, _ = _binance({
            "/sapi/v1/simple-earn/flexible/list": httpx.Response(400, json={"code": -1102, "msg": "Mandatory parameter"}),
            "/sapi/v1/simple-earn/locked/list": httpx.Response(400, json={"code": -1102, "msg": "Mandatory parameter"}),
        })
        with pytest.raises(UpstreamHttpError) as exc_info:
            await conn.fetch()
        assert not isinstance(exc_info.value, TransientLockout)
        assert not conn.in_cooldown

    @pytest.mark.asyncio
    async def test_transport_timeout_becomes_upstream_error(self):
        def timeout(request):
            raise httpx.ReadTimeout("read timed out", request=request)

        conn, _ = _binance({
            "/sapi/v1/simple-earn/flexible/list": timeout,
            "/sapi/v1/simple-earn/locked/list": timeout,
        })
        with pytest.raises(UpstreamHttpError) as exc_info:
            await conn.fetch()
        assert exc_info.value.status is None

    @pytest.mark.asyncio
    async def test_overall_fetch_timeout(self):
        async def slow(request):
            await asyncio.sleep(5)
            return httpx.Response(200, json={"rows": []})

        client = httpx.AsyncClient(transport=httpx.MockTransport(slow))
        conn = BinanceConnector(http=client, environ=BINANCE_ENV, timeout_s=0.05)
        with pytest.raises(UpstreamHttpError, match="timeout"):
            await conn.fetch()


# ---------------------------------------------------------------------------
# OKX
# ---------------------------------------------------------------------------

OKX_SAVINGS = {
    "code": "0",
    "msg": "",
    "data": [
        {"ccy": "USDT", "estRate": "0.05", "avgRate": "0.04"},
        {"ccy": "BTC", "estRate": "", "avgRate": "0.012"},
    ],
}

OKX_STAKING = {
    "code": "0",
    "msg": "",
    "data": [
        {"ccy": "USDT", "apy": "0.085", "term": "0", "state": "purchasable", "investData": [{"minAmt": "10"}]},
        {"ccy": "ETH", "apy": "0.035", "term": "60", "state": "purchasable", "investData": [{"minAmt": "0.01"}]},
        {"ccy": "DOT", "apy": "0.12", "term": "120", "state": "sold_out"},
    ],
}


class TestOkx:
    @pytest.mark.asyncio
    async def test_missing_passphrase_is_unconfigured(self):
        router = Router({})
        env = {k: v for k, v in OKX_ENV.items() if k != "OKX_PASSPHRASE"}
        conn = OkxConnector(http=router.client(), environ=env)
        assert await conn.fetch() == []
        assert conn.last_status == "unconfigured"
        assert router.requests == []

    @pytest.mark.asyncio
    async def test_savings_and_staking_deduped(self):
        router = Router({
            "/api/v5/finance/savings/lending-rate-summary": OKX_SAVINGS,
            "/api/v5/finance/staking-defi/offers": OKX_STAKING,
        })
        conn = OkxConnector(http=router.client(), environ=OKX_ENV)
        result = await conn.fetch()
        by_key = {(o.asset, o.lock_period): o for o in result}

        assert set(by_key) == {("USDT", "Flexible"), ("BTC", "Flexible"), ("ETH", "60 days")}
        # Staking 8.5% beats savings 5% for the same flexible slot.
        usdt = by_key[("USDT", "Flexible")]
        assert usdt.apr == pytest.approx(8.5)
        assert usdt.source == "okx_staking"
        assert usdt.min_stake == 10
        assert by_key[("BTC", "Flexible")].apr == pytest.approx(1.2)
        eth = by_key[("ETH", "60 days")]
        assert eth.apy == pytest.approx(3.5)
        assert eth.risk_level == "medium"

    @pytest.mark.asyncio
    async def test_request_is_signed(self):
        router = Router({
            "/api/v5/finance/savings/lending-rate-summary": {"code": "0", "data": []},
            "/api/v5/finance/staking-defi/offers": {"code": "0", "data": []},
        })
        conn = OkxConnector(http=router.client(), environ=OKX_ENV)
        await conn.fetch()

        request = router.requests[0]
        ts = request.headers["OK-ACCESS-TIMESTAMP"]
        assert ts.endswith("Z")
        message = f"{ts}GET{request.url.path}".encode()
        expected = base64.b64encode(hmac.new(b"osecret", message, hashlib.sha256).digest()).decode()
        assert request.headers["OK-ACCESS-SIGN"] == expected
        assert request.headers["OK-ACCESS-KEY"] == "okey"
        assert request.headers["OK-ACCESS-PASSPHRASE"] == "opass"

    @pytest.mark.asyncio
    async def test_business_error_code_is_parse_error(self):
        error = {"code": "50111", "msg": "Invalid OK-ACCESS-KEY", "data": []}
        router = Router({
            "/api/v5/finance/savings/lending-rate-summary": error,
            "/api/v5/finance/staking-defi/offers": error,
        })
        conn = OkxConnector(http=router.client(), environ=OKX_ENV)
        with pytest.raises(ParseError, match="50111"):
            await conn.fetch()


# ---------------------------------------------------------------------------
# KuCoin
# ---------------------------------------------------------------------------


class TestKucoin:
    @pytest.mark.asyncio
    async def test_products_parsed(self):
        router = Router({
            "/api/v1/earn/saving/products": {
                "code": "200000",
                "data": {"items": [
                    {"currency": "USDT", "returnRate": "0.085", "status": "ONGOING", "duration": 0, "userLowerLimit": "10"},
                    {"currency": "XRP", "returnRate": "0.02", "status": "FINISHED"},
                ]},
            },
            "/api/v1/earn/staking/products": {
                "code": "200000",
                "data": [
                    {"currency": "ATOM", "returnRate": "8.5", "status": "ONGOING", "duration": "60"},
                ],
            },
        })
        conn = KucoinConnector(http=router.client(), environ=KUCOIN_ENV)
        result = await conn.fetch()
        by_asset = {o.asset: o for o in result}

        assert set(by_asset) == {"USDT", "ATOM"}
        assert by_asset["USDT"].apr == pytest.approx(8.5)
        assert by_asset["USDT"].lock_period == "Flexible"
        assert by_asset["USDT"].source == "kucoin_earn_savings"
        # Already a percentage: not scaled again.
        assert by_asset["ATOM"].apr == pytest.approx(8.5)
        assert by_asset["ATOM"].lock_period == "60 days"
        assert by_asset["ATOM"].chain == "cosmos"
        assert by_asset["ATOM"].source == "kucoin_earn_staking"

    @pytest.mark.asyncio
    async def test_passphrase_is_signed(self):
        router = Router({
            "/api/v1/earn/saving/products": {"code": "200000", "data": []},
            "/api/v1/earn/staking/products": {"code": "200000", "data": []},
        })
        conn = KucoinConnector(http=router.client(), environ=KUCOIN_ENV)
        await conn.fetch()

        request = router.requests[0]
        expected_pass = base64.b64encode(hmac.new(b"ksecret", b"kpass", hashlib.sha256).digest()).decode()
        assert request.headers["KC-API-PASSPHRASE"] == expected_pass
        assert request.headers["KC-API-KEY-VERSION"] == "2"
        ts = request.headers["KC-API-TIMESTAMP"]
        message = f"{ts}GET{request.url.path}".encode()
        expected_sign = base64.b64encode(hmac.new(b"ksecret", message, hashlib.sha256).digest()).decode()
        assert request.headers["KC-API-SIGN"] == expected_sign

    @pytest.mark.asyncio
    async def test_error_code(self):
        error = {"code": "400003", "msg": "KC-API-KEY not exists"}
        router = Router({"/api/v1/earn/saving/products": error, "/api/v1/earn/staking/products": error})
        conn = KucoinConnector(http=router.client(), environ=KUCOIN_ENV)
        with pytest.raises(ParseError):
            await conn.fetch()


# ---------------------------------------------------------------------------
# Gate
# ---------------------------------------------------------------------------


class TestGate:
    @pytest.mark.asyncio
    async def test_staking_products(self):
        router = Router({
            "/api/v4/earn/staking/find": [
                {"currency": "SOL", "estimateApr": "0.065", "redeemPeriod": 0, "minStakeAmount": "1"},
                {"currency": "BNB", "estimateApr": "0", "redeemPeriod": 7},
                {"currency": "TRX", "estimateApr": "4.2", "redeemPeriod": 1},
            ],
        })
        conn = GateConnector(http=router.client(), environ=GATE_ENV)
        result = await conn.fetch()

        assert [(o.asset, o.lock_period) for o in result] == [("SOL", "Flexible"), ("TRX", "1 day")]
        assert result[0].apr == pytest.approx(6.5)
        assert result[0].chain == "solana"
        assert result[0].min_stake == 1
        assert result[1].apr == pytest.approx(4.2)

    @pytest.mark.asyncio
    async def test_request_is_signed(self):
        router = Router({"/api/v4/earn/staking/find": []})
        conn = GateConnector(http=router.client(), environ=GATE_ENV)
        await conn.fetch()

        request = router.requests[0]
        ts = request.headers["Timestamp"]
        body_hash = hashlib.sha512(b"").hexdigest()
        message = f"GET\n/api/v4/earn/staking/find\n\n{body_hash}\n{ts}".encode()
        assert request.headers["SIGN"] == hmac.new(b"gsecret", message, hashlib.sha512).hexdigest()
        assert request.headers["KEY"] == "gkey"

    @pytest.mark.asyncio
    async def test_object_body_is_parse_error(self):
        router = Router({"/api/v4/earn/staking/find": {"label": "INVALID_KEY"}})
        conn = GateConnector(http=router.client(), environ=GATE_ENV)
        with pytest.raises(ParseError):
            await conn.fetch()


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def test_build_connectors_applies_settings():
    config = CollectionConfig(request_timeout_s=5, lockout_cooldown_s=120)
    connectors = build_connectors(config, environ={})
    assert [c.name for c in connectors] == ["Binance", "OKX", "KuCoin", "Gate"]
    assert all(c.timeout_s == 5 for c in connectors)
    assert all(c.lockout_cooldown_s == 120 for c in connectors)


@pytest.mark.parametrize("days,expected", [(None, "low"), (0, "low"), (30, "low"), ("31", "medium"), ("x", "low")])
def test_risk_for_lock(days, expected):
    assert risk_for_lock(days) == expected
