"""
Order Builder - turns high level order requests into exchange order structs.

Amounts are computed with the exchange's rounding rules for the market's
tick size so that maker/taker amounts match the on-chain settlement
computation exactly:

- BUY:  taker (shares) = round_down(size), maker (USDC) = taker * price
- SELL: maker (shares) = round_down(size), taker (USDC) = maker * price

A derived amount carrying more decimals than the market allows is first
rounded up at (amount + 4) places and then truncated to the allowed places.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Dict, Iterable, Optional, Tuple

from eth_utils import is_address, to_checksum_address

from .codec import (
    decimal_places,
    round_down,
    round_normal,
    round_up,
    to_decimal,
    to_exchange_units,
)
from .errors import InvalidOrderError
from .models.market import BookLevel, MarketMetadata
from .models.orders import (
    Denomination,
    OrderKind,
    OrderRequest,
    OrderType,
    Side,
    SignatureType,
    UnsignedOrder,
)
from .salt import SaltGenerator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoundConfig:
    """Decimal places allowed for price, size and derived amount."""
    price: int
    size: int
    amount: int


ROUNDING_CONFIG: Dict[Decimal, RoundConfig] = {
    Decimal("0.1"): RoundConfig(price=1, size=2, amount=3),
    Decimal("0.01"): RoundConfig(price=2, size=2, amount=4),
    Decimal("0.001"): RoundConfig(price=3, size=2, amount=5),
    Decimal("0.0001"): RoundConfig(price=4, size=2, amount=6),
}

_MARKET_ORDER_TYPES = (OrderType.FOK, OrderType.FAK)
_LIMIT_ORDER_TYPES = (OrderType.GTC, OrderType.GTD)


def get_round_config(tick_size: Decimal) -> RoundConfig:
    """Rounding configuration for a tick size."""
    config = ROUNDING_CONFIG.get(to_decimal(tick_size).normalize())
    if config is None:
        raise InvalidOrderError(f"Unsupported tick size: {tick_size}")
    return config


def _fix_amount(amount: Decimal, places: int) -> Decimal:
    if decimal_places(amount) > places:
        amount = round_up(amount, places + 4)
        if decimal_places(amount) > places:
            amount = round_down(amount, places)
    return amount


def limit_order_amounts(
    side: Side, size: Decimal, price: Decimal, round_config: RoundConfig
) -> Tuple[int, int]:
    """
    Maker and taker amounts for a limit order.

    Returns:
        Tuple of (maker_amount, taker_amount) in exchange units
    """
    raw_price = round_normal(price, round_config.price)

    if side is Side.BUY:
        raw_taker = round_down(size, round_config.size)
        raw_maker = _fix_amount(raw_taker * raw_price, round_config.amount)
    else:
        raw_maker = round_down(size, round_config.size)
        raw_taker = _fix_amount(raw_maker * raw_price, round_config.amount)

    return to_exchange_units(raw_maker), to_exchange_units(raw_taker)


def market_order_amounts(
    side: Side, amount: Decimal, price: Decimal, round_config: RoundConfig
) -> Tuple[int, int]:
    """
    Maker and taker amounts for a market order.

    Args:
        amount: USDC to spend for BUY, shares to sell for SELL

    Returns:
        Tuple of (maker_amount, taker_amount) in exchange units
    """
    raw_price = round_normal(price, round_config.price)
    raw_maker = round_down(amount, round_config.size)

    if side is Side.BUY:
        raw_taker = _fix_amount(raw_maker / raw_price, round_config.amount)
    else:
        raw_taker = _fix_amount(raw_maker * raw_price, round_config.amount)

    return to_exchange_units(raw_maker), to_exchange_units(raw_taker)


def match_price(
    levels: Iterable[BookLevel],
    amount: Decimal,
    side: Side,
    by_notional: bool,
    order_type: OrderType,
) -> Decimal:
    """
    Walk the book until the cumulative size (or notional) covers the amount.

    Asks are walked from the lowest price for BUY, bids from the highest
    price for SELL. The price of the level that completes the amount is
    returned.

    Raises:
        InvalidOrderError: If the book is empty, or cannot cover a FOK order
    """
    ordered = sorted(levels, key=lambda level: level.price, reverse=side is Side.SELL)
    if not ordered:
        raise InvalidOrderError("No liquidity available to price market order")

    total = Decimal("0")
    for level in ordered:
        total += level.size * level.price if by_notional else level.size
        if total >= amount:
            return level.price

    if order_type is OrderType.FOK:
        raise InvalidOrderError(
            f"Insufficient liquidity for FOK order: {amount} requested, {total} available"
        )
    return ordered[-1].price


class OrderBuilder:
    """
    Builds UnsignedOrder structs for one signer.

    The builder is stateless across calls apart from its salt source, so
    orders can be built concurrently.
    """

    def __init__(
        self,
        signer_address: str,
        funder: Optional[str] = None,
        signature_type: SignatureType = SignatureType.EOA,
        salt_generator: Optional[SaltGenerator] = None,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the builder.

        Args:
            signer_address: Address of the signing key
            funder: Wallet holding the funds for proxy signature types
            signature_type: Signature scheme the orders will be signed with
            salt_generator: Salt source (defaults to a system random source)
            clock: Time source in seconds, used to validate expirations
        """
        if not is_address(signer_address):
            raise ValueError(f"Invalid signer address: {signer_address}")
        self.signer_address = to_checksum_address(signer_address)
        self.signature_type = SignatureType(signature_type)

        if self.signature_type is SignatureType.EOA:
            if funder is not None and to_checksum_address(funder) != self.signer_address:
                raise ValueError("EOA orders must be funded by the signer address")
            self.maker_address = self.signer_address
        else:
            if funder is None or not is_address(funder):
                raise ValueError(f"{self.signature_type.name} orders require a funder address")
            self.maker_address = to_checksum_address(funder)

        self._salt_generator = salt_generator or SaltGenerator()
        self._clock = clock

    def build(self, request: OrderRequest, market: MarketMetadata) -> UnsignedOrder:
        """
        Build an unsigned order from a request and current market metadata.

        Raises:
            InvalidOrderError: If the request violates market constraints
        """
        round_config = get_round_config(market.tick_size)
        order_type = request.effective_order_type
        size = to_decimal(request.size)

        if size <= 0:
            raise InvalidOrderError(f"Order size must be positive, got {size}")

        if request.kind is OrderKind.LIMIT:
            if order_type not in _LIMIT_ORDER_TYPES:
                raise InvalidOrderError(f"{order_type.value} is not valid for limit orders")
            if request.price is None:
                raise InvalidOrderError("Limit orders require a price")
            price = self._validate_price(to_decimal(request.price), market.tick_size)
            self._validate_min_size(size, market)
            maker_amount, taker_amount = limit_order_amounts(
                request.side, size, price, round_config
            )
        else:
            if order_type not in _MARKET_ORDER_TYPES:
                raise InvalidOrderError(f"{order_type.value} is not valid for market orders")
            maker_amount, taker_amount = self._market_amounts(
                request, size, market, order_type, round_config
            )

        if maker_amount <= 0 or taker_amount <= 0:
            raise InvalidOrderError(
                f"Order amounts round to zero (maker={maker_amount}, taker={taker_amount})"
            )

        order = UnsignedOrder(
            salt=self._salt_generator.generate(),
            maker=self.maker_address,
            signer=self.signer_address,
            taker=self._resolve_taker(request.taker),
            token_id=self._resolve_token_id(request.token_id),
            maker_amount=maker_amount,
            taker_amount=taker_amount,
            expiration=self._resolve_expiration(request.expiration, order_type),
            nonce=request.nonce,
            fee_rate_bps=self._resolve_fee_rate(request.fee_rate_bps, market),
            side=request.side,
            signature_type=self.signature_type,
            neg_risk=market.neg_risk,
            order_type=order_type,
        )

        logger.debug(
            f"Built {request.kind.value} {request.side.name} order for token {request.token_id}: "
            f"maker={maker_amount} taker={taker_amount}"
        )
        return order

    def _market_amounts(
        self,
        request: OrderRequest,
        size: Decimal,
        market: MarketMetadata,
        order_type: OrderType,
        round_config: RoundConfig,
    ) -> Tuple[int, int]:
        denomination = request.effective_denomination
        if denomination is Denomination.SHARES:
            self._validate_min_size(size, market)

        if request.price is not None:
            price = self._validate_price(to_decimal(request.price), market.tick_size)
        else:
            levels = market.asks if request.side is Side.BUY else market.bids
            price = match_price(
                levels,
                size,
                request.side,
                by_notional=denomination is Denomination.BASE,
                order_type=order_type,
            )

        # BUY spends collateral, SELL gives up shares
        if request.side is Side.BUY and denomination is Denomination.SHARES:
            amount = size * price
        elif request.side is Side.SELL and denomination is Denomination.BASE:
            amount = size / price
        else:
            amount = size

        return market_order_amounts(request.side, amount, price, round_config)

    def _validate_price(self, price: Decimal, tick_size: Decimal) -> Decimal:
        tick = to_decimal(tick_size)
        if price < tick or price > 1 - tick:
            raise InvalidOrderError(
                f"Price {price} outside valid range [{tick}, {1 - tick}]"
            )
        if price % tick != 0:
            raise InvalidOrderError(f"Price {price} is not a multiple of tick size {tick}")
        return price

    def _validate_min_size(self, size: Decimal, market: MarketMetadata) -> None:
        if size < market.min_order_size:
            raise InvalidOrderError(
                f"Size {size} below market minimum {market.min_order_size}"
            )

    def _resolve_expiration(self, expiration, order_type: OrderType) -> int:
        if isinstance(expiration, datetime):
            expiration = int(expiration.timestamp())

        if order_type is OrderType.GTD:
            if not expiration:
                raise InvalidOrderError("GTD orders require an expiration")
            if expiration <= self._clock():
                raise InvalidOrderError(f"Expiration {expiration} is in the past")
            return int(expiration)

        if expiration:
            raise InvalidOrderError(f"Only GTD orders may set an expiration ({order_type.value})")
        return 0

    def _resolve_fee_rate(self, fee_rate_bps: Optional[int], market: MarketMetadata) -> int:
        if fee_rate_bps is not None and fee_rate_bps < 0:
            raise InvalidOrderError(f"Fee rate cannot be negative: {fee_rate_bps}")
        if market.fee_rate_bps:
            if fee_rate_bps is not None and fee_rate_bps != market.fee_rate_bps:
                raise InvalidOrderError(
                    f"Invalid fee rate {fee_rate_bps}, market requires {market.fee_rate_bps}"
                )
            return market.fee_rate_bps
        return fee_rate_bps or 0

    @staticmethod
    def _resolve_token_id(token_id: str) -> int:
        try:
            value = int(str(token_id))
        except ValueError:
            raise InvalidOrderError(f"Token id must be a decimal integer: {token_id!r}") from None
        if value < 0:
            raise InvalidOrderError(f"Token id cannot be negative: {token_id!r}")
        return value

    @staticmethod
    def _resolve_taker(taker: str) -> str:
        if not is_address(taker):
            raise InvalidOrderError(f"Invalid taker address: {taker}")
        return to_checksum_address(taker)
