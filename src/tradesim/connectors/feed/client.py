"""
Order-book feed: one logical WebSocket connection with bounded reconnects.

State machine:

    DISCONNECTED --connect()--> CONNECTING --ok--> CONNECTED
    CONNECTING/CONNECTED --error/close--> RECONNECTING --delay--> CONNECTING
    RECONNECTING --budget exhausted--> FAILED
    any --disconnect()--> DISCONNECTED (no further reconnects)

Events are delivered in transport order through a single asyncio.Queue and
consumed with `async for event in feed.events()`. The queue holds at most
FeedConfig.max_pending_events; past that the oldest pending event is dropped
(logged and counted in FeedMetrics.events_dropped), so a stalled consumer
sees the most recent book rather than an ever-growing backlog.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import random
import time
from collections.abc import AsyncIterator

import aiohttp

from tradesim.connectors.backoff import (
    BackoffState,
    ExhaustedReconnectError,
    compute_backoff_delay,
)
from tradesim.connectors.feed.types import (
    NORMAL_CLOSURE,
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
from tradesim.contracts.events import ParseError, parse_snapshot

logger = logging.getLogger(__name__)

# Ends the events() iteration after disconnect().
_STOP = object()

_CONNECT_ERRORS = (aiohttp.ClientError, OSError, TimeoutError)


class OrderBookFeed:
    """
    Streaming order-book client for a single instrument.

    Responsible for:
    - Connection lifecycle and state tracking
    - Decoding frames into OrderBookSnapshot
    - Reconnection with exponential backoff and a bounded retry budget
    - Ordered event delivery (Connected, SnapshotReceived, FeedError, Closed)

    Transport failures are never raised to the caller; they are reported as
    FeedError events.
    """

    def __init__(
        self,
        config: FeedConfig | None = None,
        *,
        rng: random.Random | None = None,
    ) -> None:
        """
        Initialize the feed.

        Args:
            config: Feed configuration.
            rng: Optional seeded Random for backoff jitter.
        """
        self._config = config or FeedConfig()
        self._rng = rng

        self._state = ConnectionState.DISCONNECTED
        self._intentional_close = False
        self._backoff_state = BackoffState()

        self._session: aiohttp.ClientSession | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._receive_task: asyncio.Task[None] | None = None
        self._reconnect_task: asyncio.Task[None] | None = None

        self._events: asyncio.Queue[FeedEvent | object] = asyncio.Queue(
            maxsize=self._config.max_pending_events
        )
        self._metrics = FeedMetrics()

    @property
    def url(self) -> str:
        """Get the feed endpoint."""
        return self._config.url

    @property
    def state(self) -> ConnectionState:
        """Get current connection state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """Check if the transport is open."""
        return self._state == ConnectionState.CONNECTED

    @property
    def reconnect_attempt(self) -> int:
        """Current reconnect attempt number (0 after a successful connect)."""
        return self._backoff_state.attempt

    def get_metrics(self) -> FeedMetrics:
        """Get current feed metrics."""
        self._metrics.state = self._state
        return self._metrics

    def _set_state(self, state: ConnectionState) -> None:
        if self._state != state:
            logger.debug(
                "Feed state changed",
                extra={"old_state": self._state.value, "new_state": state.value},
            )
            self._state = state
            self._metrics.state = state

    def _emit(self, event: FeedEvent | object) -> None:
        if self._events.full():
            dropped = self._events.get_nowait()
            self._metrics.events_dropped += 1
            logger.warning(
                "Event queue full, dropping oldest event",
                extra={
                    "dropped": type(dropped).__name__,
                    "capacity": self._config.max_pending_events,
                    "events_dropped": self._metrics.events_dropped,
                },
            )
        self._events.put_nowait(event)

    async def connect(self) -> None:
        """
        Open the connection.

        Starts a fresh retry budget, so it also resumes a FAILED feed. A
        failed handshake is reported as a FeedError event and followed by a
        scheduled reconnect.
        """
        if self._state in (ConnectionState.CONNECTING, ConnectionState.CONNECTED):
            return

        if self._intentional_close:
            self._drop_stop_markers()
        self._intentional_close = False
        await self._cancel_reconnect()
        self._backoff_state.reset()

        await self._open()

    async def disconnect(self) -> None:
        """
        Close the connection intentionally.

        Cancels any pending reconnect. Close or error notifications that
        arrive afterwards are ignored, so no reconnect can follow.
        """
        self._intentional_close = True
        await self._cancel_reconnect()

        task = self._receive_task
        self._receive_task = None
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        if self._ws and not self._ws.closed:
            await self._ws.close()
        self._ws = None

        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

        self._set_state(ConnectionState.DISCONNECTED)
        self._emit(_STOP)
        logger.info("Feed disconnected", extra={"url": self._config.url})

    async def events(self) -> AsyncIterator[FeedEvent]:
        """
        Iterate over feed events in delivery order.

        Ends after disconnect() once earlier events have been yielded.
        """
        while True:
            event = await self._events.get()
            if event is _STOP:
                return
            yield event  # type: ignore[misc]

    async def _open(self) -> None:
        """Perform one connection attempt."""
        self._set_state(ConnectionState.CONNECTING)
        logger.info("Connecting to feed", extra={"url": self._config.url})

        try:
            if self._session is None or self._session.closed:
                self._session = aiohttp.ClientSession()
            ws = await asyncio.wait_for(
                self._session.ws_connect(
                    self._config.url,
                    heartbeat=self._config.heartbeat_s,
                    max_msg_size=self._config.max_msg_size,
                ),
                timeout=self._config.connect_timeout_s,
            )
        except _CONNECT_ERRORS as e:
            if self._intentional_close:
                return
            logger.error(
                "Failed to connect",
                extra={"url": self._config.url, "error": str(e) or type(e).__name__},
            )
            self._metrics.disconnects += 1
            self._emit(
                FeedError(
                    FeedConnectionError(
                        f"Failed to establish connection: {str(e) or type(e).__name__}"
                    )
                )
            )
            self._schedule_reconnect()
            return

        if self._intentional_close:
            await ws.close()
            return

        self._ws = ws
        self._backoff_state.reset()
        self._metrics.connects += 1
        self._set_state(ConnectionState.CONNECTED)
        self._emit(Connected(url=self._config.url))
        self._receive_task = asyncio.create_task(self._receive_loop(ws))
        logger.info("Feed connected", extra={"url": self._config.url})

    async def _receive_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        """Read frames until the transport closes or errors."""
        error: BaseException | None = None
        try:
            async for msg in ws:
                if msg.type in (aiohttp.WSMsgType.TEXT, aiohttp.WSMsgType.BINARY):
                    self._handle_frame(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    error = ws.exception()
                    logger.error("WebSocket error", extra={"error": str(error)})
                    break
        except asyncio.CancelledError:
            raise
        except (aiohttp.ClientError, OSError) as e:
            error = e
            logger.error("Error in receive loop", extra={"error": str(e)})

        if error is not None and not ws.closed:
            await ws.close()

        self._on_transport_closed(ws.close_code, error)

    def _handle_frame(self, data: str | bytes) -> None:
        """Decode one frame; parse failures are reported, not fatal."""
        recv_ts = int(time.time() * 1000)
        self._metrics.last_message_ts = recv_ts
        try:
            snapshot = parse_snapshot(data)
        except ParseError as e:
            self._metrics.parse_errors += 1
            logger.warning(
                "Failed to parse message",
                extra={"error": str(e), "excerpt": e.excerpt},
            )
            self._emit(FeedError(e))
            return

        self._metrics.snapshots_received += 1
        self._emit(SnapshotReceived(snapshot=snapshot, recv_ts=recv_ts))

    def _on_transport_closed(
        self,
        code: int | None,
        error: BaseException | None = None,
    ) -> None:
        """
        Handle a close or error notification from the transport.

        Ignored entirely after disconnect(), whatever its timing.
        """
        if self._intentional_close:
            logger.debug("Ignoring close after intentional disconnect", extra={"code": code})
            return

        self._ws = None
        self._receive_task = None
        self._metrics.disconnects += 1

        description = describe_close(code, str(error) if error else "")
        logger.warning("Feed closed", extra={"code": code, "reason": description})

        self._emit(Closed(code=code, reason=description))
        if code != NORMAL_CLOSURE or error is not None:
            self._emit(FeedError(FeedConnectionError(description, close_code=code)))

        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        """Schedule the next attempt, or fail once the budget is spent."""
        if self._intentional_close:
            return

        backoff = self._config.backoff
        if self._backoff_state.exhausted(backoff):
            self._set_state(ConnectionState.FAILED)
            logger.error(
                "Max reconnect attempts reached",
                extra={"attempts": self._backoff_state.attempt},
            )
            self._emit(
                FeedError(
                    ExhaustedReconnectError(
                        f"Max reconnection attempts ({backoff.max_retries}) reached",
                        attempts=self._backoff_state.attempt,
                    )
                )
            )
            return

        self._backoff_state.record_error()
        delay_ms = compute_backoff_delay(backoff, self._backoff_state, rng=self._rng)
        self._metrics.reconnect_attempts += 1
        self._set_state(ConnectionState.RECONNECTING)

        logger.info(
            "Reconnecting with backoff",
            extra={
                "delay_ms": delay_ms,
                "attempt": self._backoff_state.attempt,
                "max_retries": backoff.max_retries,
            },
        )
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay_ms))

    async def _reconnect_after(self, delay_ms: int) -> None:
        await asyncio.sleep(delay_ms / 1000)
        if self._intentional_close:
            return
        await self._open()

    async def _cancel_reconnect(self) -> None:
        task = self._reconnect_task
        self._reconnect_task = None
        if task and not task.done() and task is not asyncio.current_task():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

    def _drop_stop_markers(self) -> None:
        """Remove end-of-stream markers left by an earlier disconnect()."""
        pending: list[FeedEvent | object] = []
        while not self._events.empty():
            item = self._events.get_nowait()
            if item is not _STOP:
                pending.append(item)
        for item in pending:
            self._events.put_nowait(item)
