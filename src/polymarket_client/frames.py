"""
Inbound frame decoding for the streaming session.

Frames are demultiplexed by their event type (or an explicit "channel"
field) and decoded into typed StreamEvent variants. Supported frames:

Market channel:
    book, price_change, last_trade_price, tick_size_change
User channel:
    trade, order
Heartbeats:
    "PING" / "PONG" text frames, empty frames, {"event_type": "pong"}

A frame may hold a single JSON object or a list of them. Decoded events
carry sequence 0; the session assigns the per-channel arrival sequence.
"""

import json
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .constants import PING_FRAME, PONG_FRAME
from .errors import DecodeWarning
from .models.events import (
    BookUpdate,
    Heartbeat,
    OrderStatusUpdate,
    PriceChange,
    PriceLevelChange,
    StreamEvent,
    TickSizeChange,
    TradeUpdate,
)
from .models.market import BookLevel
from .models.stream import Channel

logger = logging.getLogger(__name__)

Frame = Union[str, bytes, None]

HEARTBEAT_FRAMES = {"", PING_FRAME, PONG_FRAME}


def _number(value: Any, name: str, data: Any = None) -> Decimal:
    if value is None:
        raise DecodeWarning(f"Missing field {name!r}", data)
    try:
        number = Decimal(str(value))
    except InvalidOperation:
        raise DecodeWarning(f"Field {name!r} is not a number: {value!r}", data) from None
    if not number.is_finite():
        raise DecodeWarning(f"Field {name!r} is not finite: {value!r}", data)
    return number


def _decimal(data: Dict[str, Any], key: str, default: Optional[str] = None) -> Decimal:
    return _number(data.get(key, default), key, data)


def _optional_decimal(data: Dict[str, Any], key: str) -> Optional[Decimal]:
    if data.get(key) in (None, ""):
        return None
    return _decimal(data, key)


def _timestamp(data: Dict[str, Any]) -> Optional[int]:
    for key in ("timestamp", "matchtime", "last_update"):
        value = data.get(key)
        if value not in (None, ""):
            try:
                return int(value)
            except (TypeError, ValueError, OverflowError):
                raise DecodeWarning(f"Invalid {key}: {value!r}", data) from None
    return None


def _levels(raw: Any) -> Tuple[BookLevel, ...]:
    levels = []
    for entry in raw or []:
        if isinstance(entry, dict):
            levels.append(BookLevel(_decimal(entry, "price"), _decimal(entry, "size")))
        elif isinstance(entry, (list, tuple)) and len(entry) >= 2:
            levels.append(BookLevel(_number(entry[0], "price", entry), _number(entry[1], "size", entry)))
        else:
            raise DecodeWarning(f"Malformed book level: {entry!r}")
    return tuple(levels)


def _book(data: Dict[str, Any], channel: Channel) -> StreamEvent:
    return BookUpdate(
        channel=channel,
        sequence=0,
        timestamp=_timestamp(data),
        asset_id=str(data.get("asset_id", "")),
        market=str(data.get("market", "")),
        bids=_levels(data.get("bids", data.get("buys"))),
        asks=_levels(data.get("asks", data.get("sells"))),
        hash=data.get("hash"),
    )


def _price_change(data: Dict[str, Any], channel: Channel) -> StreamEvent:
    if "price_changes" in data:
        changes = tuple(
            PriceLevelChange(
                asset_id=str(change.get("asset_id", "")),
                price=_decimal(change, "price"),
                size=_decimal(change, "size"),
                side=str(change.get("side", "")),
                best_bid=_optional_decimal(change, "best_bid"),
                best_ask=_optional_decimal(change, "best_ask"),
            )
            for change in data["price_changes"]
        )
    else:
        asset_id = str(data.get("asset_id", ""))
        changes = tuple(
            PriceLevelChange(
                asset_id=asset_id,
                price=_decimal(change, "price"),
                size=_decimal(change, "size"),
                side=str(change.get("side", "")),
            )
            for change in data.get("changes", [])
        )
    return PriceChange(
        channel=channel,
        sequence=0,
        timestamp=_timestamp(data),
        market=str(data.get("market", "")),
        changes=changes,
    )


def _trade(data: Dict[str, Any], channel: Channel) -> StreamEvent:
    fee = data.get("fee_rate_bps")
    return TradeUpdate(
        channel=channel,
        sequence=0,
        timestamp=_timestamp(data),
        asset_id=str(data.get("asset_id", "")),
        market=str(data.get("market", "")),
        price=_decimal(data, "price"),
        size=_decimal(data, "size"),
        side=str(data.get("side", "")),
        trade_id=data.get("id"),
        status=data.get("status"),
        fee_rate_bps=int(fee) if fee not in (None, "") else None,
        taker_order_id=data.get("taker_order_id"),
    )


def _order(data: Dict[str, Any], channel: Channel) -> StreamEvent:
    if "id" not in data:
        raise DecodeWarning("Order update without id", data)
    return OrderStatusUpdate(
        channel=channel,
        sequence=0,
        timestamp=_timestamp(data),
        order_id=str(data["id"]),
        asset_id=str(data.get("asset_id", "")),
        market=str(data.get("market", "")),
        side=str(data.get("side", "")),
        price=_decimal(data, "price"),
        original_size=_decimal(data, "original_size"),
        size_matched=_decimal(data, "size_matched", "0"),
        update_type=str(data.get("type", "")),
        status=data.get("status"),
    )


def _tick_size_change(data: Dict[str, Any], channel: Channel) -> StreamEvent:
    return TickSizeChange(
        channel=channel,
        sequence=0,
        timestamp=_timestamp(data),
        asset_id=str(data.get("asset_id", "")),
        market=str(data.get("market", "")),
        old_tick_size=_decimal(data, "old_tick_size"),
        new_tick_size=_decimal(data, "new_tick_size"),
    )


_DECODERS: Dict[str, Tuple[Channel, Callable[[Dict[str, Any], Channel], StreamEvent]]] = {
    "book": (Channel.MARKET, _book),
    "price_change": (Channel.MARKET, _price_change),
    "last_trade_price": (Channel.MARKET, _trade),
    "tick_size_change": (Channel.MARKET, _tick_size_change),
    "trade": (Channel.USER, _trade),
    "order": (Channel.USER, _order),
}


def is_heartbeat(frame: Frame) -> bool:
    if frame is None:
        return True
    if isinstance(frame, bytes):
        frame = frame.decode("utf-8", errors="ignore")
    return frame.strip().upper() in HEARTBEAT_FRAMES


def decode_message(data: Dict[str, Any]) -> StreamEvent:
    """
    Decode one JSON object into a StreamEvent.

    Raises:
        DecodeWarning: If the message type is unknown or fields are malformed
    """
    event_type = str(data.get("event_type") or data.get("type") or "").lower()
    if event_type in ("pong", "ping", "heartbeat"):
        return Heartbeat(channel=None, sequence=0, timestamp=_timestamp(data))

    entry = _DECODERS.get(event_type)
    if entry is None:
        raise DecodeWarning(f"Unknown event type: {event_type!r}", data)
    default_channel, decoder = entry

    channel = default_channel
    if "channel" in data:
        try:
            channel = Channel(str(data["channel"]).lower())
        except ValueError:
            raise DecodeWarning(f"Unknown channel: {data['channel']!r}", data) from None

    try:
        return decoder(data, channel)
    except DecodeWarning:
        raise
    except (AttributeError, TypeError, ValueError, ArithmeticError) as e:
        raise DecodeWarning(f"Malformed {event_type} message: {e}", data) from e


def decode_frame(frame: Frame) -> List[StreamEvent]:
    """
    Decode a raw transport frame into zero or more events.

    Raises:
        DecodeWarning: If nothing in the frame can be decoded
    """
    if is_heartbeat(frame):
        return [Heartbeat(channel=None, sequence=0, timestamp=None)]

    if isinstance(frame, bytes):
        frame = frame.decode("utf-8", errors="replace")

    try:
        payload = json.loads(frame)
    except json.JSONDecodeError:
        raise DecodeWarning(f"Frame is not JSON: {frame[:200]!r}", frame) from None

    if isinstance(payload, dict):
        return [decode_message(payload)]

    if isinstance(payload, list):
        events = []
        for item in payload:
            if not isinstance(item, dict):
                logger.debug(f"Skipping non-object item in frame: {item!r}")
                continue
            try:
                events.append(decode_message(item))
            except DecodeWarning as e:
                logger.debug(f"Skipping undecodable item in frame: {e}")
        if not events and payload:
            raise DecodeWarning("No decodable messages in frame", frame)
        return events

    raise DecodeWarning(f"Unexpected frame payload: {type(payload).__name__}", frame)
