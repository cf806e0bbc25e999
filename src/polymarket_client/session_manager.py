"""
Session management for Polymarket client.

One aiohttp session is shared by every REST call of a client. It is opened
lazily on the first request and closed with the client.
"""

import asyncio
import logging
from typing import Dict, Optional

import aiohttp

from .constants import HEALTH_CHECK_TIMEOUT, MAX_CONNECTIONS, VERSION
from .models.config import ConnectionConfig

logger = logging.getLogger(__name__)


def default_headers() -> Dict[str, str]:
    return {
        "User-Agent": f"polymarket-client/{VERSION}",
        "Accept": "*/*",
        "Connection": "keep-alive",
        "Content-Type": "application/json",
    }


class SessionManager:
    """Owns the shared HTTP session of one client."""

    def __init__(self, config: ConnectionConfig):
        self._config = config
        self._session: Optional[aiohttp.ClientSession] = None

    @property
    def is_open(self) -> bool:
        return self._session is not None and not self._session.closed

    async def create_session(self) -> aiohttp.ClientSession:
        """Return the shared session, opening it on first use."""
        if self.is_open:
            return self._session

        # Cookies are never stored
        self._session = aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(limit=MAX_CONNECTIONS, ttl_dns_cache=300),
            timeout=aiohttp.ClientTimeout(total=self._config.timeout),
            headers=default_headers(),
            cookie_jar=aiohttp.DummyCookieJar(),
        )
        logger.debug(f"Opened HTTP session for {self._config.host}")
        return self._session

    async def close_session(self) -> None:
        if self.is_open:
            await self._session.close()
            logger.debug("Closed HTTP session")
        self._session = None

    async def health_check(self) -> bool:
        """True if the CLOB root endpoint answers "OK"."""
        if not self.is_open:
            return False

        try:
            async with self._session.get(
                f"{self._config.host}/",
                timeout=aiohttp.ClientTimeout(total=HEALTH_CHECK_TIMEOUT),
            ) as response:
                body = (await response.text()).strip().strip('"')
                return response.status == 200 and body == "OK"
        except (aiohttp.ClientError, asyncio.TimeoutError, ConnectionError) as e:
            logger.warning(f"Health check request failed: {e}")
            return False
