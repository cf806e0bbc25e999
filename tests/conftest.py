# -*- coding: utf-8 -*-
"""
Shared fixtures and utilities for testing Polymarket client.
"""

import asyncio
import json
import time
from decimal import Decimal
from typing import Any, Callable, List, Optional

import pytest

from polymarket_client.errors import TransportError
from polymarket_client.models import (
    ApiCredentials,
    BackoffConfig,
    BookLevel,
    ConnectionConfig,
    MarketMetadata,
    RetryConfig,
    StreamConfig,
    Subscription,
)
from polymarket_client.transport import Transport

# Well known development key, never holds funds
PRIVATE_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
FUNDER = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
TOKEN_ID = "71321045679252212594626385532706912750332728571942532289631379312455583992563"


class FakeTransport(Transport):
    """In-memory transport: frames are fed by the test, sent messages are recorded."""

    def __init__(self):
        self.sent: List[Any] = []
        self.closed = False
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send(self, message: str) -> None:
        if self.closed:
            raise TransportError("transport closed")
        try:
            self.sent.append(json.loads(message))
        except json.JSONDecodeError:
            self.sent.append(message)

    async def recv(self):
        item = await self._inbox.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self) -> None:
        self.closed = True

    def feed(self, frame) -> None:
        if isinstance(frame, (dict, list)):
            frame = json.dumps(frame)
        self._inbox.put_nowait(frame)

    def drop(self, reason: str = "connection reset by peer") -> None:
        self._inbox.put_nowait(TransportError(reason))

    @property
    def control_messages(self) -> List[dict]:
        return [m for m in self.sent if isinstance(m, dict)]


class FakeTransportFactory:
    """Transport factory that can be told to refuse the next connections."""

    def __init__(self, failures: int = 0, always_fail: bool = False):
        self.failures = failures
        self.always_fail = always_fail
        self.calls = 0
        self.transports: List[FakeTransport] = []

    async def __call__(self) -> FakeTransport:
        self.calls += 1
        if self.always_fail or self.failures > 0:
            self.failures -= 1
            raise TransportError("connection refused")
        transport = FakeTransport()
        self.transports.append(transport)
        return transport

    @property
    def latest(self) -> Optional[FakeTransport]:
        return self.transports[-1] if self.transports else None


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll until predicate() is true, failing the test on timeout."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("Condition not met before timeout")
        await asyncio.sleep(0.005)


@pytest.fixture
def credentials() -> ApiCredentials:
    return ApiCredentials(
        api_key="00000000-1111-2222-3333-444444444444",
        secret="c2VjcmV0LXNlY3JldC1zZWNyZXQtc2VjcmV0LXNlY3JldA==",
        passphrase="passphrase",
    )


@pytest.fixture
def connection_config(credentials) -> ConnectionConfig:
    return ConnectionConfig(
        host="https://clob.example.com",
        private_key=PRIVATE_KEY,
        credentials=credentials,
        timeout=10.0,
    )


@pytest.fixture
def retry_config() -> RetryConfig:
    return RetryConfig(max_retries=2, retry_delay=0.0)


@pytest.fixture
def market() -> MarketMetadata:
    """Tick 0.01 market with minimum size 5 and a small book."""
    return MarketMetadata(
        token_id=TOKEN_ID,
        tick_size=Decimal("0.01"),
        min_order_size=Decimal("5"),
        bids=(
            BookLevel(Decimal("0.54"), Decimal("50")),
            BookLevel(Decimal("0.55"), Decimal("100")),
        ),
        asks=(
            BookLevel(Decimal("0.57"), Decimal("500")),
            BookLevel(Decimal("0.56"), Decimal("100")),
        ),
    )


@pytest.fixture
def stream_config() -> StreamConfig:
    """Fast timings so reconnection tests finish quickly."""
    return StreamConfig(
        url="wss://stream.example.com/ws/",
        connect_timeout=1.0,
        handshake_timeout=1.0,
        heartbeat_timeout=5.0,
        ping_interval=5.0,
        max_malformed_frames=3,
        queue_size=100,
        backoff=BackoffConfig(initial_delay=0.01, max_delay=0.05, jitter=0.0, max_retries=5),
    )


@pytest.fixture
def transport_factory() -> FakeTransportFactory:
    return FakeTransportFactory()


@pytest.fixture
def market_subscription() -> Subscription:
    return Subscription.market([TOKEN_ID])


@pytest.fixture
def user_subscription(credentials) -> Subscription:
    return Subscription.user(["0xcondition"], credentials)
