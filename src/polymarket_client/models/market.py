"""
Market-related models for Polymarket client.

Immutable data structures for market metadata consumed by the order builder.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Optional, Tuple


@dataclass(frozen=True)
class BookLevel:
    """Single price level of an order book."""
    price: Decimal
    size: Decimal


@dataclass(frozen=True)
class MarketMetadata:
    """
    Trading constraints and current book for one outcome token.

    Attributes:
        token_id: Outcome token identifier
        tick_size: Minimum price increment
        min_order_size: Minimum order size in shares
        neg_risk: Whether the market settles through the neg risk exchange
        fee_rate_bps: Fee rate the exchange expects on orders, if known
        bids: Bid levels (any order)
        asks: Ask levels (any order)
    """
    token_id: str
    tick_size: Decimal
    min_order_size: Decimal = Decimal("0")
    neg_risk: bool = False
    fee_rate_bps: Optional[int] = None
    bids: Tuple[BookLevel, ...] = field(default_factory=tuple)
    asks: Tuple[BookLevel, ...] = field(default_factory=tuple)

    @property
    def best_bid(self) -> Optional[Decimal]:
        return max((level.price for level in self.bids), default=None)

    @property
    def best_ask(self) -> Optional[Decimal]:
        return min((level.price for level in self.asks), default=None)
