"""
Stream event models for Polymarket client.

Every event carries the channel it arrived on, a per-channel arrival
sequence assigned by the streaming session and the exchange timestamp
(milliseconds) when the frame provides one.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Tuple

from .market import BookLevel
from .stream import Channel, ConnectionState


@dataclass(frozen=True)
class StreamEvent:
    """Base class of all stream events."""
    channel: Optional[Channel]
    sequence: int
    timestamp: Optional[int]


@dataclass(frozen=True)
class BookUpdate(StreamEvent):
    """Full book snapshot for one asset."""
    asset_id: str
    market: str
    bids: Tuple[BookLevel, ...] = field(default_factory=tuple)
    asks: Tuple[BookLevel, ...] = field(default_factory=tuple)
    hash: Optional[str] = None


@dataclass(frozen=True)
class PriceLevelChange:
    """One level change inside a price_change message."""
    asset_id: str
    price: Decimal
    size: Decimal
    side: str
    best_bid: Optional[Decimal] = None
    best_ask: Optional[Decimal] = None


@dataclass(frozen=True)
class PriceChange(StreamEvent):
    """Incremental book update."""
    market: str
    changes: Tuple[PriceLevelChange, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class TradeUpdate(StreamEvent):
    """Trade print (market channel) or own trade lifecycle (user channel)."""
    asset_id: str
    market: str
    price: Decimal
    size: Decimal
    side: str
    trade_id: Optional[str] = None
    status: Optional[str] = None
    fee_rate_bps: Optional[int] = None
    taker_order_id: Optional[str] = None


@dataclass(frozen=True)
class OrderStatusUpdate(StreamEvent):
    """Own order placement, update or cancellation."""
    order_id: str
    asset_id: str
    market: str
    side: str
    price: Decimal
    original_size: Decimal
    size_matched: Decimal
    update_type: str
    status: Optional[str] = None


@dataclass(frozen=True)
class TickSizeChange(StreamEvent):
    """Tick size of an asset changed."""
    asset_id: str
    market: str
    old_tick_size: Decimal
    new_tick_size: Decimal


@dataclass(frozen=True)
class Heartbeat(StreamEvent):
    """Ping/pong frame from the transport."""
    pass


@dataclass(frozen=True)
class ConnectionStateChange(StreamEvent):
    """Session state transition."""
    previous: ConnectionState
    current: ConnectionState
    reason: Optional[str] = None
    attempt: int = 0
