"""
Order-related models for Polymarket client.

Immutable data structures for the order pipeline:
OrderRequest -> UnsignedOrder -> SignedOrder -> OrderAck.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum, IntEnum
from typing import Any, Dict, Optional, Tuple, Union

from ..constants import ZERO_ADDRESS


class Side(IntEnum):
    """Order side as encoded in the signed struct."""
    BUY = 0
    SELL = 1


class OrderKind(Enum):
    """High level order kind."""
    LIMIT = "limit"
    MARKET = "market"


class Denomination(Enum):
    """Unit the request size is expressed in."""
    BASE = "base"  # collateral (USDC)
    SHARES = "shares"  # outcome tokens


class OrderType(Enum):
    """Time in force accepted by the exchange."""
    GTC = "GTC"
    GTD = "GTD"
    FOK = "FOK"
    FAK = "FAK"


class SignatureType(IntEnum):
    """Signature scheme variants. The value is part of the signed struct."""
    EOA = 0
    POLY_PROXY = 1
    POLY_GNOSIS_SAFE = 2


@dataclass(frozen=True)
class OrderRequest:
    """High level order request data structure."""
    token_id: str
    side: Side
    size: Decimal
    kind: OrderKind = OrderKind.LIMIT
    price: Optional[Decimal] = None
    denomination: Optional[Denomination] = None
    expiration: Optional[Union[int, datetime]] = None
    fee_rate_bps: Optional[int] = None
    nonce: int = 0
    order_type: Optional[OrderType] = None
    taker: str = ZERO_ADDRESS

    @property
    def effective_denomination(self) -> Denomination:
        """Market buys spend collateral by default, everything else counts shares."""
        if self.denomination is not None:
            return self.denomination
        if self.kind is OrderKind.MARKET and self.side is Side.BUY:
            return Denomination.BASE
        return Denomination.SHARES

    @property
    def effective_order_type(self) -> OrderType:
        if self.order_type is not None:
            return self.order_type
        return OrderType.FOK if self.kind is OrderKind.MARKET else OrderType.GTC


@dataclass(frozen=True)
class UnsignedOrder:
    """Exchange-native order struct, ready to be signed."""
    salt: int
    maker: str
    signer: str
    taker: str
    token_id: int
    maker_amount: int
    taker_amount: int
    expiration: int
    nonce: int
    fee_rate_bps: int
    side: Side
    signature_type: SignatureType
    neg_risk: bool = False
    order_type: OrderType = OrderType.GTC

    def to_message(self) -> Dict[str, Any]:
        """EIP-712 message values for the Order struct."""
        return {
            "salt": self.salt,
            "maker": self.maker,
            "signer": self.signer,
            "taker": self.taker,
            "tokenId": self.token_id,
            "makerAmount": self.maker_amount,
            "takerAmount": self.taker_amount,
            "expiration": self.expiration,
            "nonce": self.nonce,
            "feeRateBps": self.fee_rate_bps,
            "side": int(self.side),
            "signatureType": int(self.signature_type),
        }


@dataclass(frozen=True)
class SignedOrder:
    """Unsigned order plus its signature."""
    order: UnsignedOrder
    signature: str
    signature_type: SignatureType

    @property
    def signer(self) -> str:
        return self.order.signer

    def to_payload(self, owner: str, order_type: Optional[OrderType] = None) -> Dict[str, Any]:
        """
        Build the JSON body for order submission.

        Args:
            owner: API key of the order owner
            order_type: Time in force, defaults to the order's own type

        Returns:
            Dictionary ready to be serialized
        """
        order = self.order
        return {
            "order": {
                "salt": order.salt,
                "maker": order.maker,
                "signer": order.signer,
                "taker": order.taker,
                "tokenId": str(order.token_id),
                "makerAmount": str(order.maker_amount),
                "takerAmount": str(order.taker_amount),
                "expiration": str(order.expiration),
                "nonce": str(order.nonce),
                "feeRateBps": str(order.fee_rate_bps),
                "side": order.side.name,
                "signatureType": int(self.signature_type),
                "signature": self.signature,
            },
            "owner": owner,
            "orderType": (order_type or order.order_type).value,
        }


@dataclass(frozen=True)
class OrderAck:
    """Order submission response. A rejection has success=False."""
    success: bool
    order_id: Optional[str]
    status: Optional[str]
    error_msg: Optional[str] = None
    making_amount: Optional[Decimal] = None
    taking_amount: Optional[Decimal] = None
    transaction_hashes: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def rejection_reason(self) -> Optional[str]:
        if self.success:
            return None
        return self.error_msg or "rejected"
