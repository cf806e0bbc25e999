"""
HTTP client for Polymarket CLOB API.

Handles request execution, retry logic, authentication headers, and
response processing.
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import aiohttp
from aiohttp import ClientResponse, ClientSession

from .auth import RequestAuthenticator
from .errors import ClobError
from .models.config import ConnectionConfig, RetryConfig

logger = logging.getLogger(__name__)

L1 = "l1"
L2 = "l2"


class HttpClient:
    """HTTP client specialized for Polymarket CLOB interactions."""

    def __init__(
        self,
        config: ConnectionConfig,
        retry_config: Optional[RetryConfig] = None,
        authenticator: Optional[RequestAuthenticator] = None,
    ):
        self._config = config
        self._retry_config = retry_config or RetryConfig()
        self.authenticator = authenticator

    async def request(
        self,
        session: ClientSession,
        method: str,
        endpoint: str,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Any] = None,
        auth: Optional[str] = None,
        nonce: int = 0,
        timestamp: Optional[int] = None,
    ) -> Any:
        """
        Execute HTTP request with retry logic and authentication.

        Args:
            session: aiohttp session
            method: HTTP method
            endpoint: Path without host, e.g. "/order"
            params: Query parameters
            data: JSON body
            auth: None, "l1" (wallet signature) or "l2" (API key HMAC)
            nonce: Nonce for L1 authentication
            timestamp: Timestamp for auth headers, local clock if None

        Returns:
            Decoded JSON response
        """
        url = f"{self._config.host}{endpoint}"
        # The L2 signature covers the body, so it is serialized once and sent verbatim
        body = json.dumps(data, separators=(",", ":")) if data is not None else None
        request_params = {k: v for k, v in (params or {}).items() if v is not None}

        return await self._execute_with_retry(
            session, method.upper(), url, endpoint, request_params, body, auth, nonce, timestamp
        )

    def _auth_headers(
        self,
        method: str,
        endpoint: str,
        body: Optional[str],
        auth: Optional[str],
        nonce: int,
        timestamp: Optional[int],
    ) -> Dict[str, str]:
        if auth is None:
            return {}
        if self.authenticator is None:
            raise HttpClientError(f"{method} {endpoint} requires a private key")
        if auth == L1:
            return self.authenticator.l1_headers(nonce=nonce, timestamp=timestamp)
        if auth == L2:
            if not self.authenticator.validate_credentials():
                raise HttpClientError(f"{method} {endpoint} requires API credentials")
            return self.authenticator.l2_headers(method, endpoint, body, timestamp=timestamp)
        raise ValueError(f"Unknown auth level: {auth}")

    async def _execute_with_retry(
        self,
        session: ClientSession,
        method: str,
        url: str,
        endpoint: str,
        params: Dict[str, Any],
        body: Optional[str],
        auth: Optional[str],
        nonce: int,
        timestamp: Optional[int],
    ) -> Any:
        """Execute request with retry logic."""
        last_exception = None

        for attempt in range(self._retry_config.max_retries + 1):
            try:
                headers = self._auth_headers(method, endpoint, body, auth, nonce, timestamp)
                request_kwargs: Dict[str, Any] = {
                    "method": method,
                    "url": url,
                    "headers": headers,
                }
                if params:
                    request_kwargs["params"] = params
                if body is not None:
                    request_kwargs["data"] = body

                async with session.request(**request_kwargs) as response:
                    response_data = await self._process_response(response)

                    if response.status < 400:
                        return response_data

                    message = self._error_message(response_data)

                    # Don't retry on client errors (4xx)
                    if 400 <= response.status < 500:
                        if response.status == 401:
                            raise HttpClientClientError(
                                f"Authentication failed: please check your API credentials "
                                f"or private key. Server error: {message}",
                                status_code=response.status,
                                response_data=response_data,
                            )
                        raise HttpClientClientError(
                            f"Client error {response.status}: {message}",
                            status_code=response.status,
                            response_data=response_data,
                        )

                    if response.status in self._retry_config.retry_on_status:
                        raise HttpServerError(
                            f"Server error {response.status}: {message}",
                            status_code=response.status,
                            response_data=response_data,
                        )

                    raise HttpClientClientError(
                        f"HTTP {response.status}: {message}",
                        status_code=response.status,
                        response_data=response_data,
                    )

            except (HttpServerError, aiohttp.ClientError, asyncio.TimeoutError) as e:
                last_exception = e

                if attempt == self._retry_config.max_retries:
                    break

                delay = self._retry_config.retry_delay * (
                    self._retry_config.backoff_factor ** attempt
                )
                logger.warning(f"{method} {endpoint} failed ({e}), retrying in {delay:.1f}s")
                await asyncio.sleep(delay)

        if isinstance(last_exception, HttpClientError):
            raise last_exception
        raise HttpClientError(f"{method} {endpoint} failed after all retries: {last_exception}") from last_exception

    async def _process_response(self, response: ClientResponse) -> Any:
        """Process HTTP response and return data."""
        response_text = await response.text()

        if not response_text:
            return None

        try:
            return json.loads(response_text)
        except json.JSONDecodeError:
            # Some endpoints answer with a bare string such as "OK"
            if response.status < 400:
                return response_text.strip().strip('"')
            return {"error": response_text[:200]}

    @staticmethod
    def _error_message(response_data: Any) -> str:
        if isinstance(response_data, dict):
            return str(response_data.get("error") or response_data.get("errorMsg") or response_data)
        return str(response_data)


class HttpClientError(ClobError):
    """Base exception for HTTP client errors."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_data: Optional[Any] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data


class HttpServerError(HttpClientError):
    """Exception for server errors (5xx)."""
    pass


class HttpClientClientError(HttpClientError):
    """Exception for client errors (4xx)."""
    pass
