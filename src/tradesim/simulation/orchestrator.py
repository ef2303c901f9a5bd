"""
Simulation orchestrator: the single owner of mutable simulation state.

Data flow:
    OrderBookFeed
        ↓ (Connected / SnapshotReceived / FeedError / Closed)
    SimulationOrchestrator.handle_event()
        ↓ (snapshot + parameters)
    CostModelEngine.evaluate()
        ↓ (MarketMetrics, SimulationResult)
    SimulationState (swapped atomically) → UI collaborators

Policies:
- New snapshot: recompute, replace result, append one history point.
- Parameter change: recompute against the stored snapshot, replace result,
  no history point (history stays one point per market update).
- Snapshot without a best ask or best bid, or one whose numbers overflow the
  model: skipped, last good state kept.
- Disconnection never clears the last result.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from tradesim.connectors.backoff import ExhaustedReconnectError
from tradesim.connectors.feed.types import (
    Closed,
    Connected,
    ConnectionState,
    FeedConnectionError,
    FeedError,
    SnapshotReceived,
)
from tradesim.contracts.events import ParseError
from tradesim.contracts.simulation import (
    SimulationParameters,
    SimulationResult,
    TimeSeriesPoint,
)
from tradesim.cost_model.engine import CostModelEngine
from tradesim.market_metrics.calculator import (
    NEUTRAL_METRICS,
    ComputationInputError,
    MarketMetrics,
    best_levels,
    compute_realized_volatility,
)
from tradesim.simulation.history import DEFAULT_HISTORY_CAPACITY, RingBuffer

if TYPE_CHECKING:
    from collections.abc import Callable

    from tradesim.connectors.feed.client import OrderBookFeed
    from tradesim.connectors.feed.types import FeedEvent
    from tradesim.contracts.events import OrderBookSnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrchestratorConfig:
    """Configuration for the orchestrator.

    Attributes:
        history_capacity: Maximum number of TimeSeriesPoints kept.
        volatility_window: Returns used by realized_volatility().
    """

    history_capacity: int = DEFAULT_HISTORY_CAPACITY
    volatility_window: int = 20

    def __post_init__(self) -> None:
        if self.history_capacity < 1:
            raise ValueError(f"history_capacity must be >= 1, got {self.history_capacity}")
        if self.volatility_window < 2:
            raise ValueError(f"volatility_window must be >= 2, got {self.volatility_window}")


@dataclass(frozen=True)
class SimulationState:
    """
    Everything UI collaborators read, replaced as a whole on every event.

    Attributes:
        parameters: Parameters the current result was computed with.
        snapshot: Last snapshot that produced a result (None before the first).
        metrics: Metrics of that snapshot.
        result: Current cost estimate.
        history: Recent history points, oldest first.
        is_connected: Feed connection status.
        last_updated: ISO-8601 time of the last result update.
        last_error: Human-readable description of the last failure.
    """

    parameters: SimulationParameters = field(default_factory=SimulationParameters)
    snapshot: OrderBookSnapshot | None = None
    metrics: MarketMetrics = NEUTRAL_METRICS
    result: SimulationResult = field(default_factory=SimulationResult)
    history: tuple[TimeSeriesPoint, ...] = ()
    is_connected: bool = False
    last_updated: str | None = None
    last_error: str | None = None


@dataclass
class OrchestratorMetrics:
    """Counters for orchestrator activity."""

    snapshots_processed: int = 0
    snapshots_skipped: int = 0
    parameter_recomputes: int = 0
    feed_errors: int = 0
    last_compute_latency_ms: float = 0.0


class SimulationOrchestrator:
    """
    Wires feed events and parameter changes to the cost model.

    Single writer: only this class mutates the snapshot, the history buffer
    and the published state. Each event is handled to completion before the
    next one.
    """

    def __init__(
        self,
        parameters: SimulationParameters | None = None,
        engine: CostModelEngine | None = None,
        config: OrchestratorConfig | None = None,
        *,
        time_fn: Callable[[], int] | None = None,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            parameters: Initial simulation parameters (defaults if omitted).
            engine: Cost model engine.
            config: Orchestrator configuration.
            time_fn: Millisecond clock, injectable for deterministic tests.
        """
        self._config = config or OrchestratorConfig()
        self._engine = engine or CostModelEngine()
        self._time_fn = time_fn
        self._history: RingBuffer[TimeSeriesPoint] = RingBuffer(
            capacity=self._config.history_capacity
        )
        self._state = SimulationState(parameters=parameters or SimulationParameters())
        self._metrics = OrchestratorMetrics()

    def _now_ms(self) -> int:
        if self._time_fn is not None:
            return self._time_fn()
        return int(time.time() * 1000)

    def _iso(self, ts_ms: int) -> str:
        return datetime.fromtimestamp(ts_ms / 1000, tz=UTC).isoformat(timespec="milliseconds")

    @property
    def state(self) -> SimulationState:
        """Current published state (immutable)."""
        return self._state

    @property
    def parameters(self) -> SimulationParameters:
        """Current simulation parameters."""
        return self._state.parameters

    @property
    def current_result(self) -> SimulationResult:
        """Current cost estimate."""
        return self._state.result

    @property
    def current_metrics(self) -> MarketMetrics:
        """Metrics of the last good snapshot."""
        return self._state.metrics

    @property
    def history(self) -> tuple[TimeSeriesPoint, ...]:
        """Recent history, oldest first."""
        return self._state.history

    @property
    def is_connected(self) -> bool:
        """Feed connection status."""
        return self._state.is_connected

    @property
    def metrics(self) -> OrchestratorMetrics:
        """Orchestrator counters."""
        return self._metrics

    def apply_snapshot(self, snapshot: OrderBookSnapshot) -> SimulationResult | None:
        """
        Recompute for a new snapshot and append a history point.

        Returns:
            The new result, or None if the snapshot was skipped because it
            has no best ask or best bid or its arithmetic overflowed.
        """
        try:
            best_ask, best_bid = best_levels(snapshot)
        except ComputationInputError as e:
            self._metrics.snapshots_skipped += 1
            logger.debug("Skipping degenerate snapshot", extra={"reason": str(e)})
            return None

        try:
            estimate = self._engine.evaluate(snapshot, self._state.parameters)
        except ArithmeticError as e:
            # Covers decimal.Overflow as well as float OverflowError.
            self._metrics.snapshots_skipped += 1
            logger.warning(
                "Skipping snapshot: cost model arithmetic failed",
                extra={"error": repr(e), "snapshot_ts": snapshot.timestamp},
            )
            return None

        now_ms = self._now_ms()
        point = TimeSeriesPoint.from_result(
            estimate.result,
            timestamp=snapshot.timestamp,
            recorded_at_ms=now_ms,
            best_ask=best_ask.price,
            best_bid=best_bid.price,
        )
        self._history.push(point)

        self._state = replace(
            self._state,
            snapshot=snapshot,
            metrics=estimate.metrics,
            result=estimate.result,
            history=self._history.items(),
            last_updated=self._iso(now_ms),
        )
        self._metrics.snapshots_processed += 1
        self._metrics.last_compute_latency_ms = estimate.result.compute_latency_ms
        return estimate.result

    def set_parameters(self, parameters: SimulationParameters) -> SimulationResult | None:
        """
        Replace parameters and recompute against the stored snapshot.

        Does not append a history point.

        Returns:
            The new result, or None if no snapshot has been processed yet.
        """
        snapshot = self._state.snapshot
        if snapshot is None:
            self._state = replace(self._state, parameters=parameters)
            return None

        estimate = self._engine.evaluate(snapshot, parameters)
        self._state = replace(
            self._state,
            parameters=parameters,
            metrics=estimate.metrics,
            result=estimate.result,
            last_updated=self._iso(self._now_ms()),
        )
        self._metrics.parameter_recomputes += 1
        self._metrics.last_compute_latency_ms = estimate.result.compute_latency_ms
        return estimate.result

    def update_parameters(self, **changes: Any) -> SimulationResult | None:
        """
        Change individual parameters (validated) and recompute.

        Example:
            orchestrator.update_parameters(quantity=250, fee_tier="VIP 2")

        Raises:
            pydantic.ValidationError: If the resulting parameters are invalid.
        """
        merged = {**self._state.parameters.model_dump(), **changes}
        return self.set_parameters(SimulationParameters.model_validate(merged))

    def handle_event(self, event: FeedEvent) -> None:
        """Apply one feed event to the state."""
        if isinstance(event, SnapshotReceived):
            self.apply_snapshot(event.snapshot)
        elif isinstance(event, Connected):
            self._state = replace(self._state, is_connected=True, last_error=None)
            logger.info("Feed connected", extra={"url": event.url})
        elif isinstance(event, Closed):
            self._state = replace(self._state, is_connected=False)
        elif isinstance(event, FeedError):
            self._handle_feed_error(event.error)

    def _handle_feed_error(self, error: Exception) -> None:
        self._metrics.feed_errors += 1

        if isinstance(error, ParseError):
            # Connection is still up; keep the last good snapshot.
            self._state = replace(
                self._state, last_error=f"Received malformed order book data: {error}"
            )
            return

        if isinstance(error, ExhaustedReconnectError):
            message = f"{error}. Reconnect required."
        elif isinstance(error, FeedConnectionError):
            message = f"Connection lost: {error}"
        else:
            message = f"Feed error: {error}"

        self._state = replace(self._state, is_connected=False, last_error=message)
        logger.warning("Feed error", extra={"error": message})

    async def run(self, feed: OrderBookFeed) -> None:
        """Dispatch loop: consume feed events until the feed disconnects."""
        async for event in feed.events():
            self.handle_event(event)

    def realized_volatility(self) -> float:
        """Annualized volatility (%) of mid prices over the history."""
        mids = [point.mid_price for point in self._state.history]
        return compute_realized_volatility(mids, window=self._config.volatility_window)

    def health_status(self, feed_state: ConnectionState | None = None) -> str:
        """
        Summarize health as "ok", "degraded" or "failed".

        "failed" means the feed exhausted its reconnect budget and needs a new
        connect(); "degraded" means the feed is down but may recover. The last
        result stays readable in both.
        """
        if feed_state == ConnectionState.FAILED:
            return "failed"
        if not self._state.is_connected:
            return "degraded"
        return "ok"

    def health_info(self, feed_state: ConnectionState | None = None) -> dict[str, Any]:
        """Return state summary for the /healthz endpoint."""
        state = self._state
        info: dict[str, Any] = {
            "status": self.health_status(feed_state),
            "connected": state.is_connected,
            "last_updated": state.last_updated,
            "last_error": state.last_error,
            "history_size": len(state.history),
            "snapshots_processed": self._metrics.snapshots_processed,
            "snapshots_skipped": self._metrics.snapshots_skipped,
        }
        if feed_state is not None:
            info["feed_state"] = feed_state.value
        return info
