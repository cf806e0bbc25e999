"""
Polymarket Client - Main orchestration module.

This module provides the ClobClient class that coordinates all client
functionality:
- Data models are immutable structures in models/
- Order construction is handled by order_builder.py, signing by signing.py
- HTTP operations are handled by http_client.py
- Session management is handled by session_manager.py
- API methods are implemented in api_methods.py
- Market and user streams are handled by stream_session.py
"""

import asyncio
import logging
import os
from decimal import Decimal
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from dotenv import load_dotenv

from .api_methods import APIMethods
from .auth import RequestAuthenticator
from .constants import (
    DEFAULT_HOST, DEFAULT_MAX_RETRIES, DEFAULT_RETRY_DELAY,
    ERROR_STATUS_CODE, POLYGON, SUCCESS_STATUS_CODE
)
from .dispatcher import EventCallback
from .errors import SigningError
from .http_client import HttpClient, HttpClientError
from .models import (
    ApiCredentials,
    AssetType,
    BalanceAllowance,
    ConnectionConfig,
    MarketMetadata,
    OrderAck,
    OrderRequest,
    OrderType,
    RetryConfig,
    SignedOrder,
    StreamConfig,
    Subscription,
    Trade,
    UnsignedOrder,
    load_config,
)
from .monitoring import PerformanceMonitor
from .order_builder import OrderBuilder
from .session_manager import SessionManager
from .signing import OrderSigner
from .stream_session import StreamingSession
from .transport import TransportFactory, aiohttp_transport_factory
from .utils import env_flag

load_dotenv()
logger = logging.getLogger(__name__)


class ClobClient:
    """
    Main Polymarket CLOB client orchestrator.

    Builds and signs orders locally, talks to the REST API for metadata,
    credentials and order submission, and opens streaming sessions.
    """

    def __init__(
        self,
        config: ConnectionConfig,
        retry_config: Optional[RetryConfig] = None,
        stream_config: Optional[StreamConfig] = None,
    ):
        """Initialize client with configuration."""
        self._config = config
        self._stream_config = stream_config or StreamConfig()

        self._signer: Optional[OrderSigner] = None
        self._builder: Optional[OrderBuilder] = None
        self._authenticator: Optional[RequestAuthenticator] = None
        if config.private_key:
            self._signer = OrderSigner(config.private_key, config.chain_id)
            self._builder = OrderBuilder(
                self._signer.address,
                funder=config.funder,
                signature_type=config.signature_type,
            )
            self._authenticator = RequestAuthenticator(self._signer, config.credentials)

        self._session_manager = SessionManager(config)
        self._http_client = HttpClient(config, retry_config, self._authenticator)
        self._api_methods = APIMethods(self._http_client, config.use_server_time)
        self._monitor = PerformanceMonitor()
        self._market_params: Dict[str, Tuple[Decimal, bool]] = {}
        self._streams: List[StreamingSession] = []
        self._closed = False

    @classmethod
    def from_env(cls) -> "ClobClient":
        """Create client from POLYMARKET_* environment variables."""
        credentials = None
        api_key = os.getenv("POLYMARKET_API_KEY", "")
        if api_key:
            credentials = ApiCredentials(
                api_key=api_key,
                secret=os.getenv("POLYMARKET_API_SECRET", ""),
                passphrase=os.getenv("POLYMARKET_API_PASSPHRASE", ""),
            )

        config = ConnectionConfig(
            host=os.getenv("POLYMARKET_HOST", DEFAULT_HOST),
            chain_id=int(os.getenv("POLYMARKET_CHAIN_ID", str(POLYGON))),
            private_key=os.getenv("POLYMARKET_PRIVATE_KEY") or None,
            funder=os.getenv("POLYMARKET_FUNDER") or None,
            signature_type=int(os.getenv("POLYMARKET_SIGNATURE_TYPE", "0")),
            credentials=credentials,
            use_server_time=env_flag(os.getenv("POLYMARKET_USE_SERVER_TIME")),
        )

        stream_config = StreamConfig(url=os.getenv("POLYMARKET_WS_URL", StreamConfig().url))
        return cls(config, stream_config=stream_config)

    @classmethod
    def from_config_file(cls, path: Union[str, Path]) -> "ClobClient":
        """Create client from a YAML configuration file."""
        configs = load_config(path)
        return cls(configs["connection"], configs["retry"], configs["stream"])

    @property
    def address(self) -> Optional[str]:
        """Address of the signing key, None in read-only mode."""
        return self._signer.address if self._signer else None

    @property
    def credentials(self) -> Optional[ApiCredentials]:
        return self._authenticator.credentials if self._authenticator else None

    # Market data
    async def get_ok(self) -> bool:
        return await self._execute_with_monitoring(self._api_methods.get_ok, "GET", "/")

    async def get_server_time(self) -> int:
        return await self._execute_with_monitoring(
            self._api_methods.get_server_time, "GET", "/time"
        )

    async def get_market(self, token_id: str) -> MarketMetadata:
        """
        Fetch the metadata the order builder needs for a token.

        Tick size and neg risk flag are cached per token; the book and fee
        rate are fetched on every call.
        """
        tick_size, neg_risk = self._market_params.get(token_id, (None, None))
        market = await self._execute_with_monitoring(
            self._api_methods.get_market, "GET", "/book", token_id, tick_size, neg_risk
        )
        self._market_params[token_id] = (market.tick_size, market.neg_risk)
        return market

    def update_tick_size(self, token_id: str, tick_size: Decimal) -> None:
        """Refresh the cached tick size, e.g. after a tick_size_change event."""
        _, neg_risk = self._market_params.get(token_id, (None, False))
        self._market_params[token_id] = (Decimal(str(tick_size)), neg_risk)

    # API credentials
    async def create_api_key(self, nonce: int = 0) -> ApiCredentials:
        self._require_signer()
        return await self._execute_with_monitoring(
            self._api_methods.create_api_key, "POST", "/auth/api-key", nonce
        )

    async def derive_api_key(self, nonce: int = 0) -> ApiCredentials:
        self._require_signer()
        return await self._execute_with_monitoring(
            self._api_methods.derive_api_key, "GET", "/auth/derive-api-key", nonce
        )

    async def create_or_derive_api_key(self, nonce: int = 0) -> ApiCredentials:
        """Create API credentials, deriving the existing ones if the key already exists."""
        try:
            return await self.create_api_key(nonce)
        except (HttpClientError, KeyError) as e:
            logger.info(f"Could not create API key ({e}), deriving existing key")
            return await self.derive_api_key(nonce)

    async def authenticate(self, nonce: int = 0) -> ApiCredentials:
        """Obtain API credentials and use them for subsequent L2 requests."""
        credentials = await self.create_or_derive_api_key(nonce)
        self.set_credentials(credentials)
        return credentials

    def set_credentials(self, credentials: ApiCredentials) -> None:
        self._require_signer()
        self._authenticator.credentials = credentials
        logger.info(f"Using API key {credentials.api_key}")

    async def get_api_keys(self) -> List[str]:
        return await self._execute_with_monitoring(
            self._api_methods.get_api_keys, "GET", "/auth/api-keys"
        )

    # Orders
    async def build_order(
        self,
        request: OrderRequest,
        market: Optional[MarketMetadata] = None,
    ) -> UnsignedOrder:
        """Build an unsigned order, fetching market metadata if not given."""
        self._require_signer()
        if market is None:
            market = await self.get_market(request.token_id)
        return self._builder.build(request, market)

    def sign_order(self, order: UnsignedOrder) -> SignedOrder:
        self._require_signer()
        return self._signer.sign_order(order)

    async def build_and_sign_order(
        self,
        request: OrderRequest,
        market: Optional[MarketMetadata] = None,
    ) -> SignedOrder:
        """
        Build and sign an order.

        Raises:
            InvalidOrderError: If the request violates market constraints
            PrecisionError: If an amount cannot be represented exactly
            SigningError: If no key is configured or signing fails
        """
        order = await self.build_order(request, market)
        return self.sign_order(order)

    async def post_order(
        self,
        order: SignedOrder,
        order_type: Optional[OrderType] = None,
    ) -> OrderAck:
        """Submit a signed order."""
        owner = self._require_credentials().api_key
        return await self._execute_with_monitoring(
            self._api_methods.post_order, "POST", "/order", order, owner, order_type
        )

    async def create_and_post_order(
        self,
        request: OrderRequest,
        market: Optional[MarketMetadata] = None,
    ) -> OrderAck:
        """Build, sign and submit an order in one call."""
        signed = await self.build_and_sign_order(request, market)
        return await self.post_order(signed, request.effective_order_type)

    async def cancel_order(self, order_id: str) -> Dict:
        return await self._execute_with_monitoring(
            self._api_methods.cancel_order, "DELETE", "/order", order_id
        )

    async def cancel_orders(self, order_ids: Sequence[str]) -> Dict:
        return await self._execute_with_monitoring(
            self._api_methods.cancel_orders, "DELETE", "/orders", order_ids
        )

    async def cancel_all(self) -> Dict:
        return await self._execute_with_monitoring(
            self._api_methods.cancel_all, "DELETE", "/cancel-all"
        )

    async def get_order(self, order_id: str) -> Optional[Dict]:
        return await self._execute_with_monitoring(
            self._api_methods.get_order, "GET", "/data/order", order_id
        )

    async def get_open_orders(
        self,
        market: Optional[str] = None,
        asset_id: Optional[str] = None,
    ) -> List[Dict]:
        return await self._execute_with_monitoring(
            self._api_methods.get_open_orders, "GET", "/data/orders", market, asset_id
        )

    async def get_trades(
        self,
        trade_id: Optional[str] = None,
        market: Optional[str] = None,
        asset_id: Optional[str] = None,
        maker_address: Optional[str] = None,
        before: Optional[int] = None,
        after: Optional[int] = None,
    ) -> List[Trade]:
        return await self._execute_with_monitoring(
            self._api_methods.get_trades, "GET", "/data/trades",
            trade_id, market, asset_id, maker_address, before, after,
        )

    # Account
    async def get_balance_allowance(
        self,
        asset_type: AssetType = AssetType.COLLATERAL,
        token_id: Optional[str] = None,
    ) -> BalanceAllowance:
        """Balance and allowances of the funding wallet for collateral or one outcome token."""
        return await self._execute_with_monitoring(
            self._api_methods.get_balance_allowance, "GET", "/balance-allowance",
            asset_type, token_id, self._config.signature_type,
        )

    async def update_balance_allowance(
        self,
        asset_type: AssetType = AssetType.COLLATERAL,
        token_id: Optional[str] = None,
    ) -> None:
        await self._execute_with_monitoring(
            self._api_methods.update_balance_allowance, "GET", "/balance-allowance/update",
            asset_type, token_id, self._config.signature_type,
        )

    async def get_notifications(self) -> List[Dict]:
        return await self._execute_with_monitoring(
            self._api_methods.get_notifications, "GET", "/notifications",
            self._config.signature_type,
        )

    async def drop_notifications(self, notification_ids: Sequence[str]) -> None:
        await self._execute_with_monitoring(
            self._api_methods.drop_notifications, "DELETE", "/notifications", notification_ids
        )

    async def get_closed_only_mode(self) -> bool:
        return await self._execute_with_monitoring(
            self._api_methods.get_closed_only_mode, "GET", "/auth/ban-status/closed-only"
        )

    # Streaming
    def user_subscription(self, markets: Iterable[str]) -> Subscription:
        """User channel subscription authenticated with this client's credentials."""
        return Subscription.user(markets, self._require_credentials())

    async def open_stream(
        self,
        subscriptions: Iterable[Subscription] = (),
        transport_factory: Optional[TransportFactory] = None,
        stream_config: Optional[StreamConfig] = None,
    ) -> StreamingSession:
        """
        Open a streaming session and start connecting.

        Args:
            subscriptions: Initial subscriptions, replayed in order after every reconnect
            transport_factory: Transport opener, aiohttp WebSocket by default
            stream_config: Overrides the client's stream configuration
        """
        if self._closed:
            raise RuntimeError("Client is closed")

        config = stream_config or self._stream_config
        session = StreamingSession(
            transport_factory or aiohttp_transport_factory(config.url),
            config=config,
            subscriptions=subscriptions,
        )
        await session.connect()
        self._track_stream(session)
        return session

    def _track_stream(self, session: StreamingSession) -> None:
        """Keep a reference to the session until it closes, by any path."""
        self._streams.append(session)

        def forget(watcher: asyncio.Future) -> None:
            if not watcher.cancelled():
                # Fatal errors are reported through on_error and wait_closed
                watcher.exception()
            if session in self._streams:
                self._streams.remove(session)

        asyncio.ensure_future(session.wait_closed()).add_done_callback(forget)

    # Monitoring and health
    async def health_check(self) -> bool:
        """Check client health."""
        try:
            await self._session_manager.create_session()
            return await self._session_manager.health_check()
        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return False

    def get_statistics(self):
        """Get REST performance statistics."""
        return self._monitor.statistics

    def get_endpoint_stats(self, endpoint: str, method: str = "GET") -> Dict[str, float]:
        """Request count, latency and success rate of one endpoint."""
        return self._monitor.get_endpoint_stats(endpoint, method.upper())

    def get_error_rate(self, window_seconds: float = 60.0) -> float:
        return self._monitor.get_error_rate(window_seconds)

    async def close(self) -> None:
        """Close streams, the HTTP session and cleanup resources."""
        if self._closed:
            return
        self._closed = True

        if self._streams:
            await asyncio.gather(*(stream.close() for stream in list(self._streams)))
            self._streams.clear()
        await self._session_manager.close_session()
        logger.info("Polymarket client closed")

    # Internals
    def _require_signer(self) -> None:
        if self._signer is None:
            raise SigningError("A private key is required for this operation")

    def _require_credentials(self) -> ApiCredentials:
        self._require_signer()
        if not self._authenticator.validate_credentials():
            raise SigningError("API credentials are required, call authenticate() first")
        return self._authenticator.credentials

    async def _execute_with_monitoring(
        self, api_method, method: str, endpoint: str, *args, **kwargs
    ):
        """Execute API method with performance monitoring."""
        if self._closed:
            raise RuntimeError("Client is closed")

        loop = asyncio.get_running_loop()
        start_time = loop.time()
        session = await self._session_manager.create_session()

        try:
            result = await api_method(session, *args, **kwargs)
        except Exception as e:
            duration_ms = (loop.time() - start_time) * 1000
            status_code = getattr(e, "status_code", None) or ERROR_STATUS_CODE
            self._monitor.record_request(endpoint, method, status_code, duration_ms)
            raise

        duration_ms = (loop.time() - start_time) * 1000
        self._monitor.record_request(endpoint, method, SUCCESS_STATUS_CODE, duration_ms)
        return result

    # Context manager support
    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()


def create_clob_client(
    private_key: Optional[str] = None,
    host: str = DEFAULT_HOST,
    chain_id: int = POLYGON,
    funder: Optional[str] = None,
    signature_type: int = 0,
    credentials: Optional[ApiCredentials] = None,
    max_retries: int = DEFAULT_MAX_RETRIES,
    retry_delay: float = DEFAULT_RETRY_DELAY,
) -> ClobClient:
    """
    Factory function to create a client with common configuration.

    Args:
        private_key: Wallet key, None for a read-only client
        host: CLOB REST host
        chain_id: Chain id (137 Polygon, 80002 Amoy)
        funder: Proxy wallet holding the funds
        signature_type: 0 EOA, 1 Poly proxy, 2 Gnosis safe
        credentials: Existing L2 API credentials
        max_retries: Maximum number of REST retry attempts
        retry_delay: Initial delay between REST retries in seconds

    Returns:
        Configured ClobClient instance
    """
    config = ConnectionConfig(
        host=host,
        chain_id=chain_id,
        private_key=private_key,
        funder=funder,
        signature_type=signature_type,
        credentials=credentials,
    )
    retry_config = RetryConfig(max_retries=max_retries, retry_delay=retry_delay)
    return ClobClient(config, retry_config)


# Stream handle helpers
async def open_stream(
    client: ClobClient,
    subscriptions: Iterable[Subscription] = (),
    transport_factory: Optional[TransportFactory] = None,
) -> StreamingSession:
    return await client.open_stream(subscriptions, transport_factory)


def subscribe(handle: StreamingSession, subscription: Subscription) -> None:
    handle.subscribe(subscription)


def unsubscribe(handle: StreamingSession, subscription: Subscription) -> None:
    handle.unsubscribe(subscription)


def on_event(handle: StreamingSession, callback: EventCallback) -> Callable[[], None]:
    return handle.on_event(callback)


async def close_stream(handle: StreamingSession) -> None:
    await handle.close()
