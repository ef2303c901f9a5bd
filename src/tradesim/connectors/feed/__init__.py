"""Order-book WebSocket feed connector."""

from tradesim.connectors.feed.client import OrderBookFeed
from tradesim.connectors.feed.types import (
    DEFAULT_FEED_URL,
    Closed,
    Connected,
    ConnectionState,
    FeedConfig,
    FeedConnectionError,
    FeedError,
    FeedEvent,
    FeedMetrics,
    SnapshotReceived,
    describe_close,
)

__all__ = [
    "DEFAULT_FEED_URL",
    "Closed",
    "Connected",
    "ConnectionState",
    "FeedConfig",
    "FeedConnectionError",
    "FeedError",
    "FeedEvent",
    "FeedMetrics",
    "OrderBookFeed",
    "SnapshotReceived",
    "describe_close",
]
