#!/usr/bin/env python3
"""
Example: Build, sign and submit a limit order.

This example demonstrates how to:
1. Create a client from POLYMARKET_* environment variables
2. Obtain API credentials (created or derived from the wallet key)
3. Fetch market metadata for a token
4. Place a GTC limit buy below the best ask and cancel it again

Prerequisites:
- Set POLYMARKET_PRIVATE_KEY (and POLYMARKET_FUNDER for proxy wallets)
- Install the package in development mode: pip install -e .

Usage:
    python examples/place_limit_order.py <token_id> [price] [size]
"""

import asyncio
import logging
import sys
from decimal import Decimal

from polymarket_client import ClobClient, InvalidOrderError, OrderRequest, Side

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


async def main(token_id: str, price: Decimal, size: Decimal) -> None:
    async with ClobClient.from_env() as client:
        if not await client.get_ok():
            logger.error("CLOB is not reachable")
            return

        await client.authenticate()
        market = await client.get_market(token_id)
        logger.info(
            f"Tick size {market.tick_size}, min size {market.min_order_size}, "
            f"best bid {market.best_bid}, best ask {market.best_ask}"
        )

        request = OrderRequest(token_id=token_id, side=Side.BUY, size=size, price=price)
        try:
            ack = await client.create_and_post_order(request, market)
        except InvalidOrderError as e:
            logger.error(f"Order rejected locally: {e}")
            return

        if not ack.success:
            logger.error(f"Order rejected by exchange: {ack.rejection_reason}")
            return

        logger.info(f"Order {ack.order_id} is {ack.status}")
        open_orders = await client.get_open_orders(asset_id=token_id)
        logger.info(f"{len(open_orders)} open order(s) on this token")

        result = await client.cancel_order(ack.order_id)
        logger.info(f"Cancel result: {result}")

        stats = client.get_statistics()
        logger.info(f"{stats.total_requests} requests, avg {stats.avg_duration_ms:.1f}ms")


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    price_arg = Decimal(sys.argv[2]) if len(sys.argv) > 2 else Decimal("0.01")
    size_arg = Decimal(sys.argv[3]) if len(sys.argv) > 3 else Decimal("5")
    asyncio.run(main(sys.argv[1], price_arg, size_arg))
