"""
Configuration models for Polymarket client.

Immutable configuration structures following state-first design.
"""

import re
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from ..constants import (
    DEFAULT_HOST,
    DEFAULT_TIMEOUT,
    DEFAULT_WS_URL,
    EXCHANGE_CONTRACTS,
    POLYGON,
)

_PRIVATE_KEY_RE = re.compile(r"^(0x)?[0-9a-fA-F]{64}$")
_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


@dataclass(frozen=True)
class ApiCredentials:
    """L2 API credentials issued by the exchange."""
    api_key: str
    secret: str = field(repr=False)
    passphrase: str = field(repr=False)

    @classmethod
    def from_response(cls, data: Mapping[str, Any]) -> "ApiCredentials":
        """Create credentials from the api-key endpoint payload."""
        return cls(
            api_key=data["apiKey"],
            secret=data["secret"],
            passphrase=data["passphrase"],
        )

    def to_ws_auth(self) -> Dict[str, str]:
        return {
            "apiKey": self.api_key,
            "secret": self.secret,
            "passphrase": self.passphrase,
        }


@dataclass(frozen=True)
class ConnectionConfig:
    """Configuration for the REST connection and order signing."""
    host: str = DEFAULT_HOST
    chain_id: int = POLYGON
    private_key: Optional[str] = field(default=None, repr=False)
    funder: Optional[str] = None
    signature_type: int = 0
    credentials: Optional[ApiCredentials] = None
    timeout: float = DEFAULT_TIMEOUT
    use_server_time: bool = False

    def __post_init__(self):
        """Validate configuration after initialization."""
        self._validate_host()
        self._validate_chain()
        self._validate_private_key()
        self._validate_funder()

    def _validate_host(self):
        if not self.host or not self.host.startswith(("http://", "https://")):
            raise ValueError(f"Host must be an HTTP/HTTPS URL, got {self.host!r}")

    def _validate_chain(self):
        if self.chain_id not in EXCHANGE_CONTRACTS:
            raise ValueError(
                f"Unsupported chain id {self.chain_id} "
                f"(expected one of {sorted(EXCHANGE_CONTRACTS)})"
            )

    def _validate_private_key(self):
        if self.private_key is None:
            return
        if not _PRIVATE_KEY_RE.match(self.private_key):
            raise ValueError("Private key must be 32 bytes of hex, optionally 0x-prefixed")

    def _validate_funder(self):
        if self.signature_type not in (0, 1, 2):
            raise ValueError(f"Invalid signature type: {self.signature_type}")
        if self.funder is not None and not _ADDRESS_RE.match(self.funder):
            raise ValueError(f"Funder must be a 0x-prefixed address, got {self.funder!r}")
        if self.signature_type != 0 and self.funder is None:
            raise ValueError("Proxy wallet signature types require a funder address")


@dataclass(frozen=True)
class RetryConfig:
    """Configuration for request retry behavior."""
    max_retries: int = 3
    retry_delay: float = 1.0
    backoff_factor: float = 2.0
    retry_on_status: tuple[int, ...] = (500, 502, 503, 504)


@dataclass(frozen=True)
class BackoffConfig:
    """
    Reconnection backoff for the streaming session.

    Attributes:
        initial_delay: Delay before the first retry in seconds
        max_delay: Upper bound of any single delay
        multiplier: Exponential growth factor
        jitter: Relative jitter, delays are scaled by [1 - jitter, 1 + jitter]
        max_retries: Retries allowed before giving up (None = unlimited)
        max_elapsed: Seconds of continuous failure before giving up (None = unlimited)
    """
    initial_delay: float = 0.5
    max_delay: float = 30.0
    multiplier: float = 2.0
    jitter: float = 0.2
    max_retries: Optional[int] = 10
    max_elapsed: Optional[float] = None

    def __post_init__(self):
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("Backoff delays cannot be negative")
        if self.multiplier < 1:
            raise ValueError("Backoff multiplier must be at least 1")
        if not 0 <= self.jitter <= 1:
            raise ValueError("Jitter must be between 0 and 1")
        if self.max_retries is not None and self.max_retries < 0:
            raise ValueError("max_retries cannot be negative")


@dataclass(frozen=True)
class StreamConfig:
    """Configuration for the WebSocket streaming session."""
    url: str = DEFAULT_WS_URL
    connect_timeout: float = 10.0
    handshake_timeout: float = 10.0
    heartbeat_timeout: float = 30.0
    ping_interval: float = 10.0
    max_malformed_frames: int = 10
    queue_size: int = 1000
    backoff: BackoffConfig = field(default_factory=BackoffConfig)

    def __post_init__(self):
        if not self.url.startswith(("ws://", "wss://")):
            raise ValueError(f"Stream URL must be a ws:// or wss:// URL, got {self.url!r}")
        for name in ("connect_timeout", "handshake_timeout", "heartbeat_timeout", "ping_interval"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.queue_size < 1:
            raise ValueError("queue_size must be at least 1")


def _build(cls, data: Optional[Mapping[str, Any]]):
    """Instantiate a config dataclass from a mapping, ignoring unknown keys."""
    if not data:
        return cls()
    names = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in data.items() if k in names})


def load_config(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Load client, retry and stream configuration from a YAML file.

    Expected layout:
        client: {host, chain_id, private_key, funder, signature_type, ...}
        credentials: {api_key, secret, passphrase}
        retry: {max_retries, retry_delay, ...}
        stream: {url, heartbeat_timeout, ..., backoff: {...}}

    Returns:
        Dictionary with "connection", "retry" and "stream" config objects
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, "r") as f:
        raw = yaml.safe_load(f) or {}

    client_section = dict(raw.get("client") or {})
    if raw.get("credentials"):
        client_section["credentials"] = ApiCredentials(**raw["credentials"])

    stream_section = dict(raw.get("stream") or {})
    stream_section["backoff"] = _build(BackoffConfig, stream_section.get("backoff"))

    retry_section = dict(raw.get("retry") or {})
    if "retry_on_status" in retry_section:
        retry_section["retry_on_status"] = tuple(retry_section["retry_on_status"])

    return {
        "connection": _build(ConnectionConfig, client_section),
        "retry": _build(RetryConfig, retry_section),
        "stream": _build(StreamConfig, stream_section),
    }
