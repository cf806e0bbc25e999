"""
Polymarket Client - Python client for the Polymarket CLOB.

This package builds and signs exchange orders locally, talks to the CLOB
REST API and streams market and user events over a self-healing WebSocket
session.
"""

from .constants import VERSION as __version__
from .client import (
    ClobClient,
    close_stream,
    create_clob_client,
    on_event,
    open_stream,
    subscribe,
    unsubscribe,
)
from .codec import from_exchange_units, to_exchange_units
from .errors import (
    ClobError,
    DecodeWarning,
    InvalidOrderError,
    PrecisionError,
    SigningError,
    StreamUnavailable,
    TransportError,
)
from .http_client import HttpClientClientError, HttpClientError, HttpServerError
from .models import (
    # Configuration
    ApiCredentials,
    BackoffConfig,
    ConnectionConfig,
    RetryConfig,
    StreamConfig,
    load_config,
    # Orders
    Denomination,
    OrderAck,
    OrderKind,
    OrderRequest,
    OrderType,
    Side,
    SignatureType,
    SignedOrder,
    UnsignedOrder,
    # Market
    BookLevel,
    MarketMetadata,
    # Account
    AssetType,
    BalanceAllowance,
    Trade,
    # Stream
    BookUpdate,
    Channel,
    ConnectionState,
    ConnectionStateChange,
    Heartbeat,
    OrderStatusUpdate,
    PriceChange,
    StreamEvent,
    Subscription,
    TickSizeChange,
    TradeUpdate,
)
from .order_builder import OrderBuilder
from .salt import SaltGenerator
from .signing import OrderSigner, verify_order_signature
from .stream_session import StreamingSession

__all__ = [
    "__version__",
    # Main Client
    "ClobClient",
    "create_clob_client",
    "open_stream",
    "subscribe",
    "unsubscribe",
    "on_event",
    "close_stream",
    # Building blocks
    "OrderBuilder",
    "OrderSigner",
    "SaltGenerator",
    "StreamingSession",
    "to_exchange_units",
    "from_exchange_units",
    "verify_order_signature",
    # Errors
    "ClobError",
    "DecodeWarning",
    "InvalidOrderError",
    "PrecisionError",
    "SigningError",
    "StreamUnavailable",
    "TransportError",
    "HttpClientError",
    "HttpClientClientError",
    "HttpServerError",
    # Configuration
    "ApiCredentials",
    "BackoffConfig",
    "ConnectionConfig",
    "RetryConfig",
    "StreamConfig",
    "load_config",
    # Orders
    "Denomination",
    "OrderAck",
    "OrderKind",
    "OrderRequest",
    "OrderType",
    "Side",
    "SignatureType",
    "SignedOrder",
    "UnsignedOrder",
    # Market
    "BookLevel",
    "MarketMetadata",
    # Account
    "AssetType",
    "BalanceAllowance",
    "Trade",
    # Stream
    "BookUpdate",
    "Channel",
    "ConnectionState",
    "ConnectionStateChange",
    "Heartbeat",
    "OrderStatusUpdate",
    "PriceChange",
    "StreamEvent",
    "Subscription",
    "TickSizeChange",
    "TradeUpdate",
]
