# -*- coding: utf-8 -*-
"""
Tests for HttpClient request execution and APIMethods endpoint mapping.
"""

import json
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import aiohttp
import pytest

from conftest import ADDRESS, PRIVATE_KEY, TOKEN_ID
from polymarket_client.api_methods import END_CURSOR, APIMethods, parse_order_ack
from polymarket_client.auth import POLY_API_KEY, POLY_SIGNATURE, POLY_TIMESTAMP, RequestAuthenticator, build_hmac_signature
from polymarket_client.constants import POLYGON
from polymarket_client.http_client import (
    L1,
    L2,
    HttpClient,
    HttpClientClientError,
    HttpClientError,
    HttpServerError,
)
from polymarket_client.models import AssetType, MarketMetadata
from polymarket_client.signing import OrderSigner


class FakeResponse:
    def __init__(self, status, body):
        self.status = status
        self._body = body if isinstance(body, str) else json.dumps(body)

    async def text(self):
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeSession:
    """Replays scripted responses and records request kwargs."""

    def __init__(self, *responses):
        self._responses = list(responses)
        self.requests = []

    def request(self, **kwargs):
        self.requests.append(kwargs)
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def authenticator(credentials):
    return RequestAuthenticator(OrderSigner(PRIVATE_KEY, POLYGON), credentials, clock=lambda: 1_700_000_000)


@pytest.fixture
def http_client(connection_config, retry_config, authenticator):
    return HttpClient(connection_config, retry_config, authenticator)


class TestHttpClient:
    """Test request execution, auth headers and retries."""

    @pytest.mark.asyncio
    async def test_public_get(self, http_client):
        session = FakeSession(FakeResponse(200, {"minimum_tick_size": 0.01}))
        result = await http_client.request(session, "get", "/tick-size", params={"token_id": "1", "x": None})

        assert result == {"minimum_tick_size": 0.01}
        sent = session.requests[0]
        assert sent["method"] == "GET"
        assert sent["url"] == "https://clob.example.com/tick-size"
        assert sent["params"] == {"token_id": "1"}
        assert sent["headers"] == {}

    @pytest.mark.asyncio
    async def test_l2_signature_covers_sent_body(self, http_client, credentials):
        session = FakeSession(FakeResponse(200, {"success": True}))
        await http_client.request(session, "POST", "/order", data={"order": {"salt": 1}}, auth=L2)

        sent = session.requests[0]
        expected = build_hmac_signature(credentials.secret, 1_700_000_000, "POST", "/order", sent["data"])
        assert sent["headers"][POLY_SIGNATURE] == expected
        assert sent["headers"][POLY_API_KEY] == credentials.api_key
        assert json.loads(sent["data"]) == {"order": {"salt": 1}}

    @pytest.mark.asyncio
    async def test_l1_headers(self, http_client):
        session = FakeSession(FakeResponse(200, {"apiKey": "k", "secret": "s", "passphrase": "p"}))
        await http_client.request(session, "POST", "/auth/api-key", auth=L1, nonce=5, timestamp=123)

        headers = session.requests[0]["headers"]
        assert headers["POLY_NONCE"] == "5"
        assert headers[POLY_TIMESTAMP] == "123"
        assert headers["POLY_ADDRESS"] == ADDRESS

    @pytest.mark.asyncio
    async def test_plain_text_response(self, http_client):
        session = FakeSession(FakeResponse(200, '"OK"'))
        assert await http_client.request(session, "GET", "/") == "OK"

    @pytest.mark.asyncio
    async def test_retries_server_errors(self, http_client):
        session = FakeSession(
            FakeResponse(503, {"error": "busy"}),
            FakeResponse(200, 1_700_000_000),
        )
        assert await http_client.request(session, "GET", "/time") == 1_700_000_000
        assert len(session.requests) == 2

    @pytest.mark.asyncio
    async def test_retries_connection_errors(self, http_client):
        session = FakeSession(aiohttp.ClientConnectionError("reset"), FakeResponse(200, "OK"))
        assert await http_client.request(session, "GET", "/") == "OK"

    @pytest.mark.asyncio
    async def test_server_errors_exhaust_retries(self, http_client):
        session = FakeSession(*[FakeResponse(500, {"error": "down"}) for _ in range(3)])
        with pytest.raises(HttpServerError) as exc_info:
            await http_client.request(session, "GET", "/time")
        assert exc_info.value.status_code == 500
        assert len(session.requests) == 3

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self, http_client):
        session = FakeSession(FakeResponse(400, {"error": "invalid order"}))
        with pytest.raises(HttpClientClientError, match="invalid order") as exc_info:
            await http_client.request(session, "POST", "/order", data={}, auth=L2)
        assert exc_info.value.status_code == 400
        assert len(session.requests) == 1

    @pytest.mark.asyncio
    async def test_unauthorized(self, http_client):
        session = FakeSession(FakeResponse(401, {"error": "Unauthorized"}))
        with pytest.raises(HttpClientClientError, match="Authentication failed"):
            await http_client.request(session, "GET", "/data/orders", auth=L2)

    @pytest.mark.asyncio
    async def test_auth_without_key(self, connection_config):
        client = HttpClient(connection_config)
        with pytest.raises(HttpClientError, match="private key"):
            await client.request(FakeSession(), "GET", "/data/orders", auth=L2)

    @pytest.mark.asyncio
    async def test_l2_without_credentials(self, connection_config):
        client = HttpClient(connection_config, authenticator=RequestAuthenticator(OrderSigner(PRIVATE_KEY, POLYGON)))
        with pytest.raises(HttpClientError, match="credentials"):
            await client.request(FakeSession(), "GET", "/data/orders", auth=L2)


class TestAPIMethods:
    """Test endpoint mapping with a mocked HttpClient."""

    @pytest.fixture
    def http(self):
        client = MagicMock()
        client.request = AsyncMock()
        return client

    @pytest.mark.asyncio
    async def test_get_market(self, http):
        responses = {
            "/book": {"bids": [{"price": "0.48", "size": "10"}], "asks": [{"price": "0.52", "size": "5"}],
                      "min_order_size": "5"},
            "/tick-size": {"minimum_tick_size": 0.01},
            "/neg-risk": {"neg_risk": True},
            "/fee-rate": {"base_fee": 0},
        }
        http.request.side_effect = lambda session, method, endpoint, **kwargs: responses[endpoint]

        market = await APIMethods(http).get_market(None, TOKEN_ID)

        assert isinstance(market, MarketMetadata)
        assert market.tick_size == Decimal("0.01")
        assert market.min_order_size == Decimal("5")
        assert market.neg_risk is True
        assert market.fee_rate_bps == 0
        assert market.best_bid == Decimal("0.48")
        assert market.best_ask == Decimal("0.52")

    @pytest.mark.asyncio
    async def test_get_market_with_known_params(self, http):
        http.request.side_effect = [{"bids": [], "asks": []}, {"base_fee": 10}]

        market = await APIMethods(http).get_market(None, TOKEN_ID, Decimal("0.001"), False)

        endpoints = [call.args[2] for call in http.request.call_args_list]
        assert endpoints == ["/book", "/fee-rate"]
        assert market.tick_size == Decimal("0.001")
        assert market.fee_rate_bps == 10

    @pytest.mark.asyncio
    async def test_cancel_order(self, http):
        http.request.return_value = {"canceled": ["0xabc"], "not_canceled": {}}
        await APIMethods(http).cancel_order(None, "0xabc")

        call = http.request.call_args
        assert call.args[1:3] == ("DELETE", "/order")
        assert call.kwargs["data"] == {"orderID": "0xabc"}
        assert call.kwargs["auth"] == L2

    @pytest.mark.asyncio
    async def test_cancel_order_requires_id(self, http):
        with pytest.raises(ValueError):
            await APIMethods(http).cancel_order(None, "")

    @pytest.mark.asyncio
    async def test_create_api_key_uses_l1(self, http):
        http.request.return_value = {"apiKey": "k", "secret": "s", "passphrase": "p"}
        credentials = await APIMethods(http).create_api_key(None, nonce=1)

        assert credentials.api_key == "k"
        assert http.request.call_args.kwargs["auth"] == L1
        assert http.request.call_args.kwargs["nonce"] == 1

    @pytest.mark.asyncio
    async def test_server_time_used_for_auth(self, http):
        http.request.side_effect = [1_700_000_123, {"apiKey": "k", "secret": "s", "passphrase": "p"}]
        await APIMethods(http, use_server_time=True).derive_api_key(None)

        assert http.request.call_args_list[0].args[2] == "/time"
        assert http.request.call_args.kwargs["timestamp"] == 1_700_000_123

    @pytest.mark.asyncio
    async def test_open_orders_follow_cursor(self, http):
        http.request.side_effect = [
            {"data": [{"id": "1"}], "next_cursor": "MTAw"},
            {"data": [{"id": "2"}], "next_cursor": END_CURSOR},
        ]
        orders = await APIMethods(http).get_open_orders(None, market="0xm")

        assert [o["id"] for o in orders] == ["1", "2"]
        assert http.request.call_args_list[1].kwargs["params"] == {"market": "0xm", "next_cursor": "MTAw"}


class TestOrderAck:
    """Test order submission response parsing."""

    def test_accepted(self):
        ack = parse_order_ack({
            "success": True, "errorMsg": "", "orderID": "0xabc", "status": "matched",
            "makingAmount": "100", "takingAmount": "175.4385", "transactionsHashes": ["0xtx"],
        })
        assert ack.success
        assert ack.order_id == "0xabc"
        assert ack.taking_amount == Decimal("175.4385")
        assert ack.transaction_hashes == ("0xtx",)
        assert ack.rejection_reason is None

    def test_rejected(self):
        ack = parse_order_ack({"success": False, "errorMsg": "not enough balance"})
        assert not ack.success
        assert ack.rejection_reason == "not enough balance"

    def test_unexpected_payload(self):
        assert not parse_order_ack("nonsense").success


class TestAccountEndpoints:
    """Test trades, balances, notifications and account status endpoints."""

    @pytest.fixture
    def http(self):
        client = MagicMock()
        client.request = AsyncMock()
        return client

    @pytest.mark.asyncio
    async def test_trades_follow_cursor(self, http):
        trade = {"id": "t-1", "market": "0xm", "asset_id": TOKEN_ID, "side": "BUY", "price": "0.57",
                 "size": "10", "status": "CONFIRMED", "match_time": "1700000000"}
        http.request.side_effect = [
            {"data": [trade], "next_cursor": "MQ=="},
            {"data": [dict(trade, id="t-2")], "next_cursor": END_CURSOR},
        ]
        trades = await APIMethods(http).get_trades(None, market="0xm", after=1_600_000_000)

        assert [t.trade_id for t in trades] == ["t-1", "t-2"]
        assert trades[0].price == Decimal("0.57")
        assert trades[0].match_time == 1_700_000_000
        first, second = http.request.call_args_list
        assert first.args[2] == "/data/trades"
        assert first.kwargs["params"] == {"market": "0xm", "after": 1_600_000_000}
        assert second.kwargs["params"]["next_cursor"] == "MQ=="
        assert first.kwargs["auth"] == L2

    @pytest.mark.asyncio
    async def test_balance_allowance(self, http):
        http.request.return_value = {"balance": "12500000", "allowances": {"0xexchange": "1000000000"}}
        result = await APIMethods(http).get_balance_allowance(None, AssetType.COLLATERAL, signature_type=1)

        assert result.balance == Decimal("12.5")
        assert result.allowances == {"0xexchange": Decimal("1000")}
        call = http.request.call_args
        assert call.args[2] == "/balance-allowance"
        assert call.kwargs["params"] == {"asset_type": "COLLATERAL", "signature_type": 1}

    @pytest.mark.asyncio
    async def test_conditional_balance_needs_token(self, http):
        with pytest.raises(ValueError):
            await APIMethods(http).get_balance_allowance(None, AssetType.CONDITIONAL)

    @pytest.mark.asyncio
    async def test_update_balance_allowance(self, http):
        http.request.return_value = ""
        await APIMethods(http).update_balance_allowance(None, AssetType.CONDITIONAL, TOKEN_ID)

        call = http.request.call_args
        assert call.args[2] == "/balance-allowance/update"
        assert call.kwargs["params"]["token_id"] == TOKEN_ID

    @pytest.mark.asyncio
    async def test_notifications(self, http):
        http.request.return_value = [{"id": 1, "type": 2}]
        api = APIMethods(http)

        assert await api.get_notifications(None) == [{"id": 1, "type": 2}]
        await api.drop_notifications(None, ["1", "2"])

        call = http.request.call_args
        assert call.args[1:3] == ("DELETE", "/notifications")
        assert call.kwargs["params"] == {"ids": "1,2"}

    @pytest.mark.asyncio
    async def test_closed_only_mode(self, http):
        http.request.return_value = {"closed_only": True}
        assert await APIMethods(http).get_closed_only_mode(None) is True
        assert http.request.call_args.args[2] == "/auth/ban-status/closed-only"
