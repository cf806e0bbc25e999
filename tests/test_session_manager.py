# -*- coding: utf-8 -*-
"""
Tests for the shared HTTP session.
"""

from unittest.mock import MagicMock

import aiohttp
import pytest

from polymarket_client.constants import VERSION
from polymarket_client.session_manager import SessionManager, default_headers


class FakeResponse:
    def __init__(self, status, body):
        self.status = status
        self._body = body

    async def text(self):
        return self._body

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        return False


def fake_session(response=None, error=None):
    session = MagicMock()
    session.closed = False
    if error is not None:
        session.get.side_effect = error
    else:
        session.get.return_value = response
    return session


def test_default_headers():
    headers = default_headers()
    assert headers["User-Agent"] == f"polymarket-client/{VERSION}"
    assert headers["Content-Type"] == "application/json"


class TestSessionLifecycle:
    """Test lazy opening and closing of the session."""

    @pytest.mark.asyncio
    async def test_session_reused_until_closed(self, connection_config):
        manager = SessionManager(connection_config)
        assert not manager.is_open

        first = await manager.create_session()
        assert await manager.create_session() is first
        assert isinstance(first.cookie_jar, aiohttp.DummyCookieJar)

        await manager.close_session()
        assert not manager.is_open
        assert first.closed

        second = await manager.create_session()
        assert second is not first
        await manager.close_session()

    @pytest.mark.asyncio
    async def test_close_without_session(self, connection_config):
        manager = SessionManager(connection_config)
        await manager.close_session()
        assert not manager.is_open


class TestHealthCheck:
    """Test the root endpoint health check."""

    @pytest.mark.asyncio
    async def test_not_open(self, connection_config):
        assert await SessionManager(connection_config).health_check() is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status, body, healthy", [
        (200, '"OK"', True),
        (200, "OK\n", True),
        (200, "maintenance", False),
        (503, "OK", False),
    ])
    async def test_root_answer(self, connection_config, status, body, healthy):
        manager = SessionManager(connection_config)
        manager._session = fake_session(FakeResponse(status, body))

        assert await manager.health_check() is healthy
        assert manager._session.get.call_args.args[0] == "https://clob.example.com/"

    @pytest.mark.asyncio
    async def test_connection_error(self, connection_config):
        manager = SessionManager(connection_config)
        manager._session = fake_session(error=aiohttp.ClientConnectionError("refused"))
        assert await manager.health_check() is False
