#!/usr/bin/env python3
"""
Example: Stream order book and trade events for a set of tokens.

The session reconnects on its own and replays subscriptions; connection
state changes are printed alongside market data. Stop with Ctrl+C.

Usage:
    python examples/stream_market_data.py <token_id> [<token_id> ...]

Environment Variables:
    POLYMARKET_WS_URL=wss://ws-subscriptions-clob.polymarket.com/ws/  (optional)
"""

import asyncio
import logging
import sys

from polymarket_client import (
    BookUpdate,
    ClobClient,
    ConnectionStateChange,
    PriceChange,
    StreamUnavailable,
    Subscription,
    TickSizeChange,
    TradeUpdate,
)

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def print_event(event) -> None:
    if isinstance(event, BookUpdate):
        best_bid = max((level.price for level in event.bids), default=None)
        best_ask = min((level.price for level in event.asks), default=None)
        print(f"[{event.sequence}] book {event.asset_id[:10]}... bid {best_bid} ask {best_ask}")
    elif isinstance(event, PriceChange):
        for change in event.changes:
            print(f"[{event.sequence}] {change.side} {change.size} @ {change.price}")
    elif isinstance(event, TradeUpdate):
        print(f"[{event.sequence}] trade {event.side} {event.size} @ {event.price}")
    elif isinstance(event, TickSizeChange):
        print(f"tick size {event.old_tick_size} -> {event.new_tick_size}")
    elif isinstance(event, ConnectionStateChange):
        logger.info(f"Stream {event.previous.value} -> {event.current.value} ({event.reason})")


async def main(token_ids) -> None:
    async with ClobClient.from_env() as client:
        stream = await client.open_stream([Subscription.market(token_ids)])
        stream.on_event(print_event)

        try:
            await stream.wait_closed()
        except StreamUnavailable as e:
            logger.error(f"Stream gave up: {e}")
        finally:
            logger.info(f"Stream statistics: {stream.statistics}")


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    try:
        asyncio.run(main(sys.argv[1:]))
    except KeyboardInterrupt:
        pass
