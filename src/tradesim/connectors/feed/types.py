"""
Types and configuration for the order-book feed connector.

The feed delivers a closed set of events through one FIFO channel:
Connected, SnapshotReceived, FeedError and Closed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Union

from tradesim.connectors.backoff import BackoffConfig

if TYPE_CHECKING:
    from tradesim.contracts.events import OrderBookSnapshot

DEFAULT_FEED_URL = "wss://ws.gomarket-cpp.goquant.io/ws/l2-orderbook/okx/BTC-USDT-SWAP"

# RFC 6455 close codes with a readable meaning.
CLOSE_CODE_REASONS: dict[int, str] = {
    1000: "Normal closure",
    1001: "Going away",
    1002: "Protocol error",
    1003: "Unsupported data",
    1005: "No status received",
    1006: "Abnormal closure",
    1007: "Invalid frame payload data",
    1008: "Policy violation",
    1009: "Message too big",
    1010: "Mandatory extension",
    1011: "Internal server error",
    1015: "TLS handshake",
}

NORMAL_CLOSURE = 1000
ABNORMAL_CLOSURE = 1006


def describe_close(code: int | None, reason: str = "") -> str:
    """Human-readable close description, e.g. 'Code: 1006, Reason: Abnormal closure'."""
    if code is None:
        code = ABNORMAL_CLOSURE
    text = reason or CLOSE_CODE_REASONS.get(code, "Unknown reason")
    return f"Code: {code}, Reason: {text}"


class FeedConnectionError(Exception):
    """Transport failure or abnormal close of the feed connection."""

    def __init__(self, message: str, close_code: int | None = None) -> None:
        super().__init__(message)
        self.close_code = close_code


class ConnectionState(str, Enum):
    """Feed connection state."""

    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"
    RECONNECTING = "RECONNECTING"
    FAILED = "FAILED"


@dataclass
class FeedConfig:
    """
    Configuration for the order-book feed.

    Attributes:
        url: WebSocket endpoint delivering one snapshot per text frame.
        backoff: Reconnect backoff policy.
        heartbeat_s: aiohttp ping interval; None disables heartbeats.
        connect_timeout_s: Handshake timeout.
        max_msg_size: Largest accepted frame in bytes (0 = unlimited).
        max_pending_events: Capacity of the event queue. When the consumer
            falls behind, the oldest pending event is dropped.
    """

    url: str = DEFAULT_FEED_URL
    backoff: BackoffConfig = field(default_factory=BackoffConfig)
    heartbeat_s: float | None = 20.0
    connect_timeout_s: float = 10.0
    max_msg_size: int = 4 * 1024 * 1024
    max_pending_events: int = 10_000

    def __post_init__(self) -> None:
        if not self.url.startswith(("ws://", "wss://")):
            raise ValueError(f"url must be a ws:// or wss:// URL, got {self.url!r}")
        if self.connect_timeout_s <= 0:
            raise ValueError(f"connect_timeout_s must be > 0, got {self.connect_timeout_s}")
        if self.heartbeat_s is not None and self.heartbeat_s <= 0:
            raise ValueError(f"heartbeat_s must be > 0 or None, got {self.heartbeat_s}")
        if self.max_pending_events < 1:
            raise ValueError(f"max_pending_events must be >= 1, got {self.max_pending_events}")


@dataclass(frozen=True)
class Connected:
    """The transport is open."""

    url: str


@dataclass(frozen=True)
class SnapshotReceived:
    """A frame was decoded into a snapshot."""

    snapshot: OrderBookSnapshot
    recv_ts: int  # local receive time (ms)


@dataclass(frozen=True)
class FeedError:
    """
    A failure reported through the channel.

    error is a ParseError (non-fatal), FeedConnectionError (reconnect
    follows unless intentional) or ExhaustedReconnectError (terminal).
    """

    error: Exception

    @property
    def reason(self) -> str:
        """Readable failure reason."""
        return str(self.error)


@dataclass(frozen=True)
class Closed:
    """The transport closed without disconnect() being called."""

    code: int | None
    reason: str


FeedEvent = Union[Connected, SnapshotReceived, FeedError, Closed]


@dataclass
class FeedMetrics:
    """
    Counters for one feed instance.

    Attributes:
        state: Current connection state.
        connects: Successful handshakes.
        disconnects: Unintentional closures (including failed handshakes).
        reconnect_attempts: Scheduled reconnect attempts.
        snapshots_received: Frames decoded into snapshots.
        parse_errors: Frames that failed to decode.
        events_dropped: Events discarded because the queue was full.
        last_message_ts: Receive time of the last frame (ms).
    """

    state: ConnectionState = ConnectionState.DISCONNECTED
    connects: int = 0
    disconnects: int = 0
    reconnect_attempts: int = 0
    snapshots_received: int = 0
    parse_errors: int = 0
    events_dropped: int = 0
    last_message_ts: int = 0
