"""
API method implementations for Polymarket client.

Contains the CLOB REST endpoints used by the client, organized by
functional area: public market data, API key management and trading.
"""

import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Sequence

from aiohttp import ClientSession

from .http_client import L1, L2, HttpClient
from .codec import from_exchange_units
from .models.account import AssetType, BalanceAllowance, Trade
from .models.config import ApiCredentials
from .models.market import BookLevel, MarketMetadata
from .models.orders import OrderAck, OrderType, SignedOrder
from .utils import safe_get, sanitize_dict

logger = logging.getLogger(__name__)

# Cursor value marking the last page of a paginated listing
END_CURSOR = "LTE="


def _decimal_or_none(value: Any) -> Optional[Decimal]:
    if value in (None, ""):
        return None
    try:
        return Decimal(str(value))
    except InvalidOperation:
        return None


def parse_book_levels(raw: Any) -> tuple:
    return tuple(
        BookLevel(price=Decimal(str(level["price"])), size=Decimal(str(level["size"])))
        for level in raw or []
    )


def parse_order_ack(data: Any) -> OrderAck:
    """Create OrderAck from the order submission payload."""
    if not isinstance(data, dict):
        return OrderAck(success=False, order_id=None, status=None, error_msg=str(data))

    error_msg = safe_get(data, "errorMsg") or safe_get(data, "error") or None
    return OrderAck(
        success=bool(safe_get(data, "success", not error_msg)),
        order_id=safe_get(data, "orderID") or safe_get(data, "orderId") or None,
        status=safe_get(data, "status"),
        error_msg=error_msg,
        making_amount=_decimal_or_none(safe_get(data, "makingAmount")),
        taking_amount=_decimal_or_none(safe_get(data, "takingAmount")),
        transaction_hashes=tuple(
            safe_get(data, "transactionsHashes") or safe_get(data, "transactionHashes") or ()
        ),
    )


def _units(value: Any) -> Decimal:
    return from_exchange_units(int(Decimal(str(value or 0))))


def parse_balance_allowance(
    data: Any, asset_type: AssetType, token_id: Optional[str] = None
) -> BalanceAllowance:
    """Create BalanceAllowance from the balance-allowance payload (amounts in exchange units)."""
    allowances = safe_get(data, "allowances") or {}
    if not allowances and safe_get(data, "allowance") is not None:
        allowances = {"exchange": safe_get(data, "allowance")}
    return BalanceAllowance(
        asset_type=asset_type,
        token_id=token_id,
        balance=_units(safe_get(data, "balance")),
        allowances={spender: _units(amount) for spender, amount in allowances.items()},
    )


def parse_trade(data: Dict[str, Any]) -> Trade:
    match_time = safe_get(data, "match_time") or safe_get(data, "matchtime")
    return Trade(
        trade_id=str(data["id"]),
        market=str(safe_get(data, "market", "")),
        asset_id=str(safe_get(data, "asset_id", "")),
        side=str(safe_get(data, "side", "")),
        price=Decimal(str(data["price"])),
        size=Decimal(str(data["size"])),
        status=str(safe_get(data, "status", "")),
        match_time=int(match_time) if match_time else None,
        taker_order_id=safe_get(data, "taker_order_id"),
        raw=data,
    )


class APIMethods:
    """Container for all API method implementations."""

    def __init__(self, http_client: HttpClient, use_server_time: bool = False):
        """
        Initialize API methods.

        Args:
            http_client: Client executing the requests
            use_server_time: Sign auth headers with the exchange clock instead of the local one
        """
        self._http_client = http_client
        self._use_server_time = use_server_time

    async def _auth_timestamp(self, session: ClientSession) -> Optional[int]:
        if not self._use_server_time:
            return None
        return await self.get_server_time(session)

    async def _request_l1(self, session: ClientSession, method: str, endpoint: str, nonce: int) -> Any:
        return await self._http_client.request(
            session, method, endpoint, auth=L1, nonce=nonce,
            timestamp=await self._auth_timestamp(session),
        )

    async def _request_l2(
        self,
        session: ClientSession,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Any] = None,
    ) -> Any:
        return await self._http_client.request(
            session, method, endpoint, params=params, data=data, auth=L2,
            timestamp=await self._auth_timestamp(session),
        )

    # Public endpoints
    async def get_ok(self, session: ClientSession) -> bool:
        """Health check of the CLOB."""
        response = await self._http_client.request(session, "GET", "/")
        return response == "OK"

    async def get_server_time(self, session: ClientSession) -> int:
        """Exchange time in unix seconds."""
        response = await self._http_client.request(session, "GET", "/time")
        return int(response)

    async def get_tick_size(self, session: ClientSession, token_id: str) -> Decimal:
        response = await self._http_client.request(
            session, "GET", "/tick-size", params={"token_id": token_id}
        )
        return Decimal(str(safe_get(response, "minimum_tick_size")))

    async def get_neg_risk(self, session: ClientSession, token_id: str) -> bool:
        response = await self._http_client.request(
            session, "GET", "/neg-risk", params={"token_id": token_id}
        )
        return bool(safe_get(response, "neg_risk", False))

    async def get_fee_rate(self, session: ClientSession, token_id: str) -> int:
        response = await self._http_client.request(
            session, "GET", "/fee-rate", params={"token_id": token_id}
        )
        return int(safe_get(response, "base_fee", 0))

    async def get_order_book(self, session: ClientSession, token_id: str) -> Dict[str, Any]:
        """
        Order book summary for a token.

        Returns:
            Raw book with "bids" and "asks" parsed into BookLevel tuples
        """
        response = await self._http_client.request(
            session, "GET", "/book", params={"token_id": token_id}
        )
        book = dict(response or {})
        book["bids"] = parse_book_levels(book.get("bids"))
        book["asks"] = parse_book_levels(book.get("asks"))
        return book

    async def get_market(
        self,
        session: ClientSession,
        token_id: str,
        tick_size: Optional[Decimal] = None,
        neg_risk: Optional[bool] = None,
    ) -> MarketMetadata:
        """
        Assemble MarketMetadata from the book and market parameter endpoints.

        Args:
            session: aiohttp session
            token_id: Outcome token id
            tick_size: Known tick size, fetched if None
            neg_risk: Known neg risk flag, fetched if None
        """
        book = await self.get_order_book(session, token_id)
        if tick_size is None:
            tick_size = await self.get_tick_size(session, token_id)
        if neg_risk is None:
            neg_risk = await self.get_neg_risk(session, token_id)
        fee_rate_bps = await self.get_fee_rate(session, token_id)

        return MarketMetadata(
            token_id=token_id,
            tick_size=tick_size,
            min_order_size=_decimal_or_none(book.get("min_order_size")) or Decimal("0"),
            neg_risk=neg_risk,
            fee_rate_bps=fee_rate_bps,
            bids=book["bids"],
            asks=book["asks"],
        )

    # API key management (L1)
    async def create_api_key(self, session: ClientSession, nonce: int = 0) -> ApiCredentials:
        response = await self._request_l1(session, "POST", "/auth/api-key", nonce)
        return ApiCredentials.from_response(response)

    async def derive_api_key(self, session: ClientSession, nonce: int = 0) -> ApiCredentials:
        response = await self._request_l1(session, "GET", "/auth/derive-api-key", nonce)
        return ApiCredentials.from_response(response)

    async def get_api_keys(self, session: ClientSession) -> List[str]:
        response = await self._request_l2(session, "GET", "/auth/api-keys")
        return list(safe_get(response, "apiKeys", []) or [])

    # Trading (L2)
    async def post_order(
        self,
        session: ClientSession,
        order: SignedOrder,
        owner: str,
        order_type: Optional[OrderType] = None,
    ) -> OrderAck:
        """Submit a signed order. Exchange-side rejections come back as OrderAck(success=False)."""
        payload = order.to_payload(owner, order_type)
        response = await self._request_l2(session, "POST", "/order", data=payload)
        ack = parse_order_ack(response)

        if ack.success:
            logger.info(f"Order accepted: {ack.order_id} ({ack.status})")
        else:
            logger.warning(f"Order rejected: {ack.rejection_reason}")
        return ack

    async def cancel_order(self, session: ClientSession, order_id: str) -> Dict[str, Any]:
        if not order_id:
            raise ValueError("order_id is required")
        return await self._request_l2(session, "DELETE", "/order", data={"orderID": order_id})

    async def cancel_orders(self, session: ClientSession, order_ids: Sequence[str]) -> Dict[str, Any]:
        if not order_ids:
            raise ValueError("At least one order id is required")
        return await self._request_l2(session, "DELETE", "/orders", data=list(order_ids))

    async def cancel_all(self, session: ClientSession) -> Dict[str, Any]:
        return await self._request_l2(session, "DELETE", "/cancel-all")

    async def get_order(self, session: ClientSession, order_id: str) -> Optional[Dict[str, Any]]:
        """Get order by id, None if the exchange does not know it."""
        if not order_id:
            raise ValueError("order_id is required")
        response = await self._request_l2(session, "GET", f"/data/order/{order_id}")
        return response or None

    async def get_open_orders(
        self,
        session: ClientSession,
        market: Optional[str] = None,
        asset_id: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """All open orders, following pagination cursors to the end."""
        return await self._paginate(
            session, "/data/orders", {"market": market, "asset_id": asset_id}
        )

    async def get_trades(
        self,
        session: ClientSession,
        trade_id: Optional[str] = None,
        market: Optional[str] = None,
        asset_id: Optional[str] = None,
        maker_address: Optional[str] = None,
        before: Optional[int] = None,
        after: Optional[int] = None,
    ) -> List[Trade]:
        """
        Trade history of the account.

        Args:
            session: aiohttp session
            trade_id: Single trade to fetch
            market: Condition id filter
            asset_id: Token id filter
            maker_address: Maker address filter
            before: Only trades before this unix time
            after: Only trades after this unix time
        """
        params = {
            "id": trade_id,
            "market": market,
            "asset_id": asset_id,
            "maker_address": maker_address,
            "before": before,
            "after": after,
        }
        return [parse_trade(item) for item in await self._paginate(session, "/data/trades", params)]

    # Account (L2)
    async def get_balance_allowance(
        self,
        session: ClientSession,
        asset_type: AssetType,
        token_id: Optional[str] = None,
        signature_type: int = 0,
    ) -> BalanceAllowance:
        response = await self._request_l2(
            session, "GET", "/balance-allowance",
            params=self._balance_params(asset_type, token_id, signature_type),
        )
        return parse_balance_allowance(response, asset_type, token_id)

    async def update_balance_allowance(
        self,
        session: ClientSession,
        asset_type: AssetType,
        token_id: Optional[str] = None,
        signature_type: int = 0,
    ) -> None:
        """Ask the exchange to re-read the on-chain balance and allowances."""
        await self._request_l2(
            session, "GET", "/balance-allowance/update",
            params=self._balance_params(asset_type, token_id, signature_type),
        )

    async def get_notifications(self, session: ClientSession, signature_type: int = 0) -> List[Dict[str, Any]]:
        response = await self._request_l2(
            session, "GET", "/notifications", params={"signature_type": signature_type}
        )
        if isinstance(response, list):
            return response
        return list(safe_get(response, "data", []) or [])

    async def drop_notifications(self, session: ClientSession, notification_ids: Sequence[str]) -> None:
        if not notification_ids:
            raise ValueError("At least one notification id is required")
        await self._request_l2(
            session, "DELETE", "/notifications", params={"ids": ",".join(notification_ids)}
        )

    async def get_closed_only_mode(self, session: ClientSession) -> bool:
        """True if the account may only close positions."""
        response = await self._request_l2(session, "GET", "/auth/ban-status/closed-only")
        return bool(safe_get(response, "closed_only", False))

    @staticmethod
    def _balance_params(
        asset_type: AssetType, token_id: Optional[str], signature_type: int
    ) -> Dict[str, Any]:
        if asset_type is AssetType.CONDITIONAL and not token_id:
            raise ValueError("token_id is required for conditional balances")
        return sanitize_dict({
            "asset_type": asset_type.value,
            "token_id": token_id,
            "signature_type": signature_type,
        })

    async def _paginate(
        self,
        session: ClientSession,
        endpoint: str,
        params: Dict[str, Any],
    ) -> List[Dict[str, Any]]:
        """Collect every page of a cursor paginated listing."""
        items: List[Dict[str, Any]] = []
        cursor = None

        while cursor != END_CURSOR:
            page_params = sanitize_dict(dict(params, next_cursor=cursor))
            response = await self._request_l2(session, "GET", endpoint, params=page_params)
            if isinstance(response, list):
                items.extend(response)
                break
            items.extend(safe_get(response, "data", []) or [])
            cursor = safe_get(response, "next_cursor") or END_CURSOR

        return items
