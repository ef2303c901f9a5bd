"""
Prometheus metrics exporter for the trade simulator.

Exports low-cardinality metrics for the order-book feed and the simulation
orchestrator. No per-instrument or per-endpoint labels.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from prometheus_client import Counter, Gauge
from prometheus_client.registry import CollectorRegistry

from tradesim.connectors.feed.types import ConnectionState

if TYPE_CHECKING:
    from tradesim.connectors.feed.types import FeedMetrics
    from tradesim.simulation.orchestrator import OrchestratorMetrics


# Labels that would cause cardinality explosion
FORBIDDEN_LABELS = frozenset(
    {
        "symbol",
        "asset",
        "exchange",
        "endpoint",
        "url",
        "path",
        "ip",
    }
)

# Numeric encoding of ConnectionState for the state gauge.
STATE_VALUES: dict[ConnectionState, int] = {
    ConnectionState.DISCONNECTED: 0,
    ConnectionState.CONNECTING: 1,
    ConnectionState.CONNECTED: 2,
    ConnectionState.RECONNECTING: 3,
    ConnectionState.FAILED: 4,
}


class MetricsExporter:
    """
    Prometheus metrics exporter for feed and orchestrator counters.

    Metric names:
    - tradesim_feed_* : OrderBookFeed metrics
    - tradesim_sim_*  : SimulationOrchestrator metrics

    Usage:
        registry = CollectorRegistry()
        exporter = MetricsExporter(registry=registry)
        exporter.update(feed_metrics=feed.get_metrics(), orchestrator_metrics=orch.metrics)
        # generate_latest(registry) -> bytes for /metrics endpoint
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """
        Initialize metrics exporter.

        Args:
            registry: Prometheus CollectorRegistry. If None, a fresh one is created.
        """
        self._registry = registry or CollectorRegistry()

        # === Feed metrics (tradesim_feed_*) ===
        self._feed_state = Gauge(
            "tradesim_feed_state",
            "Feed connection state (0=DISCONNECTED 1=CONNECTING 2=CONNECTED "
            "3=RECONNECTING 4=FAILED)",
            registry=self._registry,
        )
        self._feed_connects = Counter(
            "tradesim_feed_connects",
            "Total successful WebSocket handshakes",
            registry=self._registry,
        )
        self._feed_disconnects = Counter(
            "tradesim_feed_disconnects",
            "Total unintentional disconnections (including failed handshakes)",
            registry=self._registry,
        )
        self._feed_reconnect_attempts = Counter(
            "tradesim_feed_reconnect_attempts",
            "Total scheduled reconnect attempts",
            registry=self._registry,
        )
        self._feed_parse_errors = Counter(
            "tradesim_feed_parse_errors",
            "Total frames that failed to decode",
            registry=self._registry,
        )
        self._feed_snapshots = Counter(
            "tradesim_feed_snapshots",
            "Total order-book snapshots decoded",
            registry=self._registry,
        )
        self._feed_events_dropped = Counter(
            "tradesim_feed_events_dropped",
            "Total feed events discarded because the consumer fell behind",
            registry=self._registry,
        )

        # === Orchestrator metrics (tradesim_sim_*) ===
        self._sim_snapshots_processed = Counter(
            "tradesim_sim_snapshots_processed",
            "Total snapshots that produced a new simulation result",
            registry=self._registry,
        )
        self._sim_snapshots_skipped = Counter(
            "tradesim_sim_snapshots_skipped",
            "Total snapshots skipped for lacking a best ask or best bid",
            registry=self._registry,
        )
        self._sim_parameter_recomputes = Counter(
            "tradesim_sim_parameter_recomputes",
            "Total recomputations triggered by parameter changes",
            registry=self._registry,
        )
        self._sim_last_compute_latency_ms = Gauge(
            "tradesim_sim_last_compute_latency_ms",
            "Latency of the most recent cost computation in milliseconds",
            registry=self._registry,
        )
        self._sim_history_size = Gauge(
            "tradesim_sim_history_size",
            "Number of points held in the result history",
            registry=self._registry,
        )

        # Last seen values for counter increments (counters are monotonic)
        self._last_seen: dict[str, int] = {}

    @property
    def registry(self) -> CollectorRegistry:
        """Get the Prometheus CollectorRegistry."""
        return self._registry

    def update(
        self,
        feed_metrics: FeedMetrics | None = None,
        orchestrator_metrics: OrchestratorMetrics | None = None,
        *,
        history_size: int | None = None,
    ) -> None:
        """
        Sync component metrics to Prometheus.

        Call periodically (e.g. on a timer) with the latest component counters.

        Args:
            feed_metrics: Counters from OrderBookFeed.get_metrics().
            orchestrator_metrics: Counters from SimulationOrchestrator.metrics.
            history_size: Current number of history points.
        """
        if feed_metrics is not None:
            self._update_feed_metrics(feed_metrics)

        if orchestrator_metrics is not None:
            self._update_orchestrator_metrics(orchestrator_metrics)

        if history_size is not None:
            self._sim_history_size.set(history_size)

    def _inc_delta(self, name: str, counter: Counter, current: int) -> None:
        """Increment counter by the delta since the last update."""
        delta = current - self._last_seen.get(name, 0)
        if delta > 0:
            counter.inc(delta)
        self._last_seen[name] = current

    def _update_feed_metrics(self, fm: FeedMetrics) -> None:
        self._feed_state.set(STATE_VALUES[fm.state])
        self._inc_delta("feed_connects", self._feed_connects, fm.connects)
        self._inc_delta("feed_disconnects", self._feed_disconnects, fm.disconnects)
        self._inc_delta(
            "feed_reconnect_attempts", self._feed_reconnect_attempts, fm.reconnect_attempts
        )
        self._inc_delta("feed_parse_errors", self._feed_parse_errors, fm.parse_errors)
        self._inc_delta("feed_snapshots", self._feed_snapshots, fm.snapshots_received)
        self._inc_delta("feed_events_dropped", self._feed_events_dropped, fm.events_dropped)

    def _update_orchestrator_metrics(self, om: OrchestratorMetrics) -> None:
        self._inc_delta(
            "sim_snapshots_processed", self._sim_snapshots_processed, om.snapshots_processed
        )
        self._inc_delta("sim_snapshots_skipped", self._sim_snapshots_skipped, om.snapshots_skipped)
        self._inc_delta(
            "sim_parameter_recomputes", self._sim_parameter_recomputes, om.parameter_recomputes
        )
        self._sim_last_compute_latency_ms.set(om.last_compute_latency_ms)

    def reset_counter_tracking(self) -> None:
        """
        Reset internal counter tracking.

        Use when components are recreated. Does NOT reset the Prometheus
        counters themselves.
        """
        self._last_seen.clear()


# Counters are exported with the _total suffix by prometheus_client
REQUIRED_METRIC_NAMES: frozenset[str] = frozenset(
    {
        "tradesim_feed_state",
        "tradesim_feed_connects_total",
        "tradesim_feed_disconnects_total",
        "tradesim_feed_reconnect_attempts_total",
        "tradesim_feed_parse_errors_total",
        "tradesim_feed_snapshots_total",
        "tradesim_feed_events_dropped_total",
        "tradesim_sim_snapshots_processed_total",
        "tradesim_sim_snapshots_skipped_total",
        "tradesim_sim_parameter_recomputes_total",
        "tradesim_sim_last_compute_latency_ms",
        "tradesim_sim_history_size",
    }
)
