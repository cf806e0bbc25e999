"""
Data models for Polymarket client.

This package contains all data structures used throughout the client,
following the state-first principle with immutable data structures.
"""

from .config import (
    ApiCredentials,
    BackoffConfig,
    ConnectionConfig,
    RetryConfig,
    StreamConfig,
    load_config,
)
from .orders import (
    Denomination,
    OrderAck,
    OrderKind,
    OrderRequest,
    OrderType,
    Side,
    SignatureType,
    SignedOrder,
    UnsignedOrder,
)
from .market import BookLevel, MarketMetadata
from .account import AssetType, BalanceAllowance, Trade
from .stream import Channel, ConnectionState, Subscription
from .events import (
    BookUpdate,
    ConnectionStateChange,
    Heartbeat,
    OrderStatusUpdate,
    PriceChange,
    PriceLevelChange,
    StreamEvent,
    TickSizeChange,
    TradeUpdate,
)

__all__ = [
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
    "Channel",
    "ConnectionState",
    "Subscription",
    "BookUpdate",
    "ConnectionStateChange",
    "Heartbeat",
    "OrderStatusUpdate",
    "PriceChange",
    "PriceLevelChange",
    "StreamEvent",
    "TickSizeChange",
    "TradeUpdate",
]
