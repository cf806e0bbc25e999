"""
Streaming models for Polymarket client.

Channels, connection states and subscriptions for the WebSocket feed.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Optional, Tuple

from .config import ApiCredentials


class Channel(Enum):
    """Logical stream multiplexed over the connection."""
    MARKET = "market"
    USER = "user"


class ConnectionState(Enum):
    """Streaming session state."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SUBSCRIBED = "subscribed"
    DEGRADED = "degraded"
    CLOSED = "closed"


@dataclass(frozen=True)
class Subscription:
    """
    Desired subscription to one channel.

    Market subscriptions list asset (token) ids, user subscriptions list
    market (condition) ids and carry the API credentials used to
    authenticate the channel.
    """
    channel: Channel
    ids: Tuple[str, ...]
    auth: Optional[ApiCredentials] = field(default=None, repr=False, compare=False)

    def __post_init__(self):
        if isinstance(self.ids, str):
            raise ValueError("ids must be a collection of identifiers, not a string")
        object.__setattr__(self, "ids", tuple(str(i) for i in self.ids))
        if not self.ids:
            raise ValueError("Subscription requires at least one id")
        if self.channel is Channel.USER and self.auth is None:
            raise ValueError("User channel subscriptions require API credentials")

    @classmethod
    def market(cls, asset_ids: Iterable[str]) -> "Subscription":
        return cls(Channel.MARKET, tuple(asset_ids))

    @classmethod
    def user(cls, market_ids: Iterable[str], auth: ApiCredentials) -> "Subscription":
        return cls(Channel.USER, tuple(market_ids), auth)

    @property
    def key(self) -> Tuple[Channel, FrozenSet[str]]:
        """Identity of the subscription, independent of id order."""
        return self.channel, frozenset(self.ids)

    def to_message(self, operation: str) -> Dict[str, Any]:
        """Control message tagged with channel and identifier set."""
        message: Dict[str, Any] = {
            "type": self.channel.value,
            "operation": operation,
        }
        if self.channel is Channel.MARKET:
            message["assets_ids"] = list(self.ids)
        else:
            message["markets"] = list(self.ids)
            message["auth"] = self.auth.to_ws_auth()
        return message
