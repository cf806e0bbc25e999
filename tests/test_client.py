# -*- coding: utf-8 -*-
"""
Tests for ClobClient orchestration.
"""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from conftest import ADDRESS, PRIVATE_KEY, TOKEN_ID, FakeTransportFactory, wait_until
from polymarket_client import client as client_module
from polymarket_client.client import ClobClient, create_clob_client
from polymarket_client.constants import POLYGON
from polymarket_client.errors import SigningError, StreamUnavailable
from polymarket_client.http_client import HttpClientClientError
from polymarket_client.models import (
    ApiCredentials,
    AssetType,
    BalanceAllowance,
    ConnectionConfig,
    ConnectionState,
    OrderAck,
    OrderKind,
    OrderRequest,
    OrderType,
    Side,
)
from polymarket_client.signing import verify_order_signature


@pytest.fixture
def clob_client(connection_config, retry_config, stream_config):
    client = ClobClient(connection_config, retry_config, stream_config)
    client._session_manager.create_session = AsyncMock(return_value=MagicMock())
    client._session_manager.close_session = AsyncMock()
    return client


def limit_buy(price="0.55", size="10"):
    return OrderRequest(token_id=TOKEN_ID, side=Side.BUY, size=Decimal(size), price=Decimal(price))


class TestClobClientInit:
    """Test initialization of ClobClient."""

    def test_init_with_key(self, connection_config, retry_config):
        client = ClobClient(connection_config, retry_config)
        assert client.address == ADDRESS
        assert client.credentials == connection_config.credentials
        assert client._http_client.authenticator is not None
        assert not client._closed

    def test_read_only_init(self):
        client = ClobClient(ConnectionConfig())
        assert client.address is None
        assert client.credentials is None
        assert client._http_client.authenticator is None

    def test_from_env(self):
        with patch.dict("os.environ", {
            "POLYMARKET_HOST": "https://clob.test.com",
            "POLYMARKET_PRIVATE_KEY": PRIVATE_KEY,
            "POLYMARKET_API_KEY": "key",
            "POLYMARKET_API_SECRET": "secret",
            "POLYMARKET_API_PASSPHRASE": "pass",
            "POLYMARKET_USE_SERVER_TIME": "true",
            "POLYMARKET_WS_URL": "wss://ws.test.com/ws/",
        }, clear=True):
            client = ClobClient.from_env()

        assert client._config.host == "https://clob.test.com"
        assert client._config.chain_id == POLYGON
        assert client._config.use_server_time is True
        assert client.address == ADDRESS
        assert client.credentials.api_key == "key"
        assert client._stream_config.url == "wss://ws.test.com/ws/"

    def test_from_env_without_variables(self):
        with patch.dict("os.environ", {}, clear=True):
            client = ClobClient.from_env()
        assert client.address is None
        assert client.credentials is None

    def test_from_config_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "client:\n"
            "  host: https://clob.yaml.com\n"
            f"  private_key: \"{PRIVATE_KEY}\"\n"
            "credentials:\n"
            "  api_key: k\n"
            "  secret: s\n"
            "  passphrase: p\n"
            "retry:\n"
            "  max_retries: 7\n"
            "stream:\n"
            "  heartbeat_timeout: 12\n"
            "  backoff:\n"
            "    max_retries: 4\n"
        )
        client = ClobClient.from_config_file(path)

        assert client._config.host == "https://clob.yaml.com"
        assert client.credentials == ApiCredentials("k", "s", "p")
        assert client._http_client._retry_config.max_retries == 7
        assert client._stream_config.heartbeat_timeout == 12
        assert client._stream_config.backoff.max_retries == 4

    def test_create_clob_client_function(self):
        client = create_clob_client(
            private_key=PRIVATE_KEY,
            host="https://clob.test.com",
            max_retries=5,
            retry_delay=2.0,
        )
        assert client.address == ADDRESS
        assert client._config.host == "https://clob.test.com"
        assert client._http_client._retry_config.max_retries == 5
        assert client._http_client._retry_config.retry_delay == 2.0


class TestMarketData:
    """Test market metadata retrieval."""

    @pytest.mark.asyncio
    async def test_market_params_cached(self, clob_client, market):
        with patch.object(clob_client._api_methods, "get_market", AsyncMock(return_value=market)) as get_market:
            await clob_client.get_market(TOKEN_ID)
            await clob_client.get_market(TOKEN_ID)

        first, second = get_market.call_args_list
        assert first.args[1:] == (TOKEN_ID, None, None)
        assert second.args[1:] == (TOKEN_ID, Decimal("0.01"), False)

    @pytest.mark.asyncio
    async def test_update_tick_size(self, clob_client, market):
        clob_client.update_tick_size(TOKEN_ID, Decimal("0.001"))
        with patch.object(clob_client._api_methods, "get_market", AsyncMock(return_value=market)) as get_market:
            await clob_client.get_market(TOKEN_ID)
        assert get_market.call_args.args[2] == Decimal("0.001")

    @pytest.mark.asyncio
    async def test_statistics_recorded(self, clob_client):
        with patch.object(clob_client._api_methods, "get_server_time", AsyncMock(return_value=1)):
            await clob_client.get_server_time()
        with patch.object(clob_client._api_methods, "get_ok", AsyncMock(side_effect=RuntimeError("down"))):
            with pytest.raises(RuntimeError):
                await clob_client.get_ok()

        stats = clob_client.get_statistics()
        assert stats.total_requests == 2
        assert stats.successful_requests == 1
        assert stats.failed_requests == 1

    @pytest.mark.asyncio
    async def test_endpoint_stats_and_error_rate(self, clob_client):
        with patch.object(clob_client._api_methods, "get_ok", AsyncMock(return_value=True)):
            await clob_client.get_ok()
            await clob_client.get_ok()
        with patch.object(clob_client._api_methods, "get_server_time", AsyncMock(side_effect=RuntimeError("down"))):
            with pytest.raises(RuntimeError):
                await clob_client.get_server_time()

        ok_stats = clob_client.get_endpoint_stats("/", "get")
        assert ok_stats["count"] == 2
        assert ok_stats["success_rate"] == 1.0
        assert clob_client.get_endpoint_stats("/time")["success_rate"] == 0.0
        assert clob_client.get_endpoint_stats("/book")["count"] == 0
        assert clob_client.get_error_rate() == pytest.approx(1 / 3)


class TestOrders:
    """Test order building, signing and submission."""

    @pytest.mark.asyncio
    async def test_build_and_sign_with_market(self, clob_client, market):
        signed = await clob_client.build_and_sign_order(limit_buy(), market)

        assert signed.order.maker_amount == 5_500_000
        assert signed.order.taker_amount == 10_000_000
        assert verify_order_signature(signed, POLYGON)

    @pytest.mark.asyncio
    async def test_build_fetches_market(self, clob_client, market):
        with patch.object(clob_client._api_methods, "get_market", AsyncMock(return_value=market)) as get_market:
            order = await clob_client.build_order(limit_buy())
        get_market.assert_awaited_once()
        assert order.token_id == int(TOKEN_ID)

    @pytest.mark.asyncio
    async def test_read_only_client_cannot_sign(self, market):
        client = ClobClient(ConnectionConfig())
        with pytest.raises(SigningError):
            await client.build_and_sign_order(limit_buy(), market)

    @pytest.mark.asyncio
    async def test_post_order_uses_api_key_as_owner(self, clob_client, market, credentials):
        ack = OrderAck(success=True, order_id="0xabc", status="live")
        signed = await clob_client.build_and_sign_order(limit_buy(), market)

        with patch.object(clob_client._api_methods, "post_order", AsyncMock(return_value=ack)) as post_order:
            result = await clob_client.post_order(signed, OrderType.GTC)

        assert result is ack
        assert post_order.call_args.args[1:] == (signed, credentials.api_key, OrderType.GTC)

    @pytest.mark.asyncio
    async def test_create_and_post_market_order(self, clob_client, market):
        ack = OrderAck(success=True, order_id="0xabc", status="matched")
        request = OrderRequest(token_id=TOKEN_ID, side=Side.BUY, size=Decimal("100"), kind=OrderKind.MARKET)

        with patch.object(clob_client._api_methods, "post_order", AsyncMock(return_value=ack)) as post_order:
            await clob_client.create_and_post_order(request, market)

        assert post_order.call_args.args[3] is OrderType.FOK

    @pytest.mark.asyncio
    async def test_post_order_requires_credentials(self, market):
        client = ClobClient(ConnectionConfig(private_key=PRIVATE_KEY))
        signed = await client.build_and_sign_order(limit_buy(), market)
        with pytest.raises(SigningError, match="authenticate"):
            await client.post_order(signed)


class TestCredentials:
    """Test API key management."""

    @pytest.mark.asyncio
    async def test_create_or_derive_falls_back(self, clob_client):
        derived = ApiCredentials("derived", "s", "p")
        create = AsyncMock(side_effect=HttpClientClientError("exists", status_code=400))

        with patch.object(clob_client._api_methods, "create_api_key", create), \
                patch.object(clob_client._api_methods, "derive_api_key", AsyncMock(return_value=derived)):
            result = await clob_client.authenticate()

        assert result == derived
        assert clob_client.credentials == derived
        assert clob_client.user_subscription(["0xm"]).auth == derived

    @pytest.mark.asyncio
    async def test_read_only_cannot_create_key(self):
        client = ClobClient(ConnectionConfig())
        with pytest.raises(SigningError):
            await client.create_api_key()


class TestStreaming:
    """Test stream session management through the client."""

    @pytest.mark.asyncio
    async def test_open_stream_and_close(self, clob_client, market_subscription):
        factory = FakeTransportFactory()
        handle = await client_module.open_stream(clob_client, [market_subscription], factory)
        await wait_until(lambda: handle.state is ConnectionState.SUBSCRIBED)

        assert factory.latest.control_messages[0]["assets_ids"] == [TOKEN_ID]

        await clob_client.close()
        assert handle.state is ConnectionState.CLOSED
        assert factory.latest.closed
        clob_client._session_manager.close_session.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stream_helpers(self, clob_client, market_subscription):
        factory = FakeTransportFactory()
        handle = await clob_client.open_stream(transport_factory=factory)
        received = []
        client_module.on_event(handle, received.append)

        client_module.subscribe(handle, market_subscription)
        await wait_until(lambda: factory.latest is not None and len(factory.latest.control_messages) == 1)
        client_module.unsubscribe(handle, market_subscription)
        await wait_until(lambda: len(factory.latest.control_messages) == 2)

        await client_module.close_stream(handle)
        assert handle.state is ConnectionState.CLOSED
        assert received

    @pytest.mark.asyncio
    async def test_closed_client_rejects_calls(self, clob_client):
        await clob_client.close()
        with pytest.raises(RuntimeError):
            await clob_client.get_ok()
        with pytest.raises(RuntimeError):
            await clob_client.open_stream(transport_factory=FakeTransportFactory())

    @pytest.mark.asyncio
    async def test_closed_stream_released(self, clob_client, market_subscription):
        handle = await clob_client.open_stream([market_subscription], FakeTransportFactory())
        assert clob_client._streams == [handle]

        await client_module.close_stream(handle)
        await wait_until(lambda: not clob_client._streams)

    @pytest.mark.asyncio
    async def test_failed_stream_released(self, clob_client, market_subscription):
        handle = await clob_client.open_stream(
            [market_subscription], FakeTransportFactory(always_fail=True)
        )
        with pytest.raises(StreamUnavailable):
            await handle.wait_closed()

        await wait_until(lambda: not clob_client._streams)
        await clob_client.close()


class TestAccount:
    """Test trades, balances, notifications and account status."""

    @pytest.mark.asyncio
    async def test_balance_uses_configured_signature_type(self, clob_client):
        balance = BalanceAllowance(AssetType.COLLATERAL, None, Decimal("12.5"))
        with patch.object(
            clob_client._api_methods, "get_balance_allowance", AsyncMock(return_value=balance)
        ) as get_balance:
            result = await clob_client.get_balance_allowance()

        assert result is balance
        assert get_balance.call_args.args[1:] == (AssetType.COLLATERAL, None, 0)

    @pytest.mark.asyncio
    async def test_update_conditional_balance(self, clob_client):
        with patch.object(clob_client._api_methods, "update_balance_allowance", AsyncMock()) as update:
            await clob_client.update_balance_allowance(AssetType.CONDITIONAL, TOKEN_ID)
        assert update.call_args.args[1:] == (AssetType.CONDITIONAL, TOKEN_ID, 0)

    @pytest.mark.asyncio
    async def test_trades(self, clob_client):
        with patch.object(clob_client._api_methods, "get_trades", AsyncMock(return_value=[])) as get_trades:
            assert await clob_client.get_trades(market="0xm") == []
        assert get_trades.call_args.args[1:] == (None, "0xm", None, None, None, None)

    @pytest.mark.asyncio
    async def test_notifications(self, clob_client):
        notifications = [{"id": 7}]
        with patch.object(clob_client._api_methods, "get_notifications", AsyncMock(return_value=notifications)), \
                patch.object(clob_client._api_methods, "drop_notifications", AsyncMock()) as drop:
            assert await clob_client.get_notifications() == notifications
            await clob_client.drop_notifications(["7"])
        drop.assert_awaited_once()
        assert drop.call_args.args[1] == ["7"]

    @pytest.mark.asyncio
    async def test_closed_only_mode(self, clob_client):
        with patch.object(clob_client._api_methods, "get_closed_only_mode", AsyncMock(return_value=False)):
            assert await clob_client.get_closed_only_mode() is False
        assert clob_client.get_endpoint_stats("/auth/ban-status/closed-only")["count"] == 1
