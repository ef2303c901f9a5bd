"""
Tests for the Prometheus metrics exporter.

Validates:
- No forbidden high-cardinality labels
- All required metric names are exported
- Counters follow component counters by delta
"""

from __future__ import annotations

import re

from prometheus_client import generate_latest
from prometheus_client.registry import CollectorRegistry

from tradesim.connectors.exporter import (
    FORBIDDEN_LABELS,
    REQUIRED_METRIC_NAMES,
    STATE_VALUES,
    MetricsExporter,
)
from tradesim.connectors.feed.types import ConnectionState, FeedMetrics
from tradesim.simulation.orchestrator import OrchestratorMetrics


def _sample(registry: CollectorRegistry, name: str) -> float | None:
    return registry.get_sample_value(name)


class TestNoForbiddenLabels:
    def test_exporter_has_no_labels(self) -> None:
        registry = CollectorRegistry()
        exporter = MetricsExporter(registry=registry)
        exporter.update(
            feed_metrics=FeedMetrics(),
            orchestrator_metrics=OrchestratorMetrics(),
            history_size=0,
        )

        output = generate_latest(registry).decode("utf-8")
        found_labels: set[str] = set()
        for match in re.finditer(r"\{([^}]+)\}", output):
            for pair in match.group(1).split(","):
                if "=" in pair:
                    found_labels.add(pair.split("=")[0].strip())

        assert not found_labels & FORBIDDEN_LABELS, output


class TestRequiredMetrics:
    def test_all_required_names_exported(self) -> None:
        registry = CollectorRegistry()
        MetricsExporter(registry=registry)
        output = generate_latest(registry).decode("utf-8")
        exported = {
            line.split()[2] for line in output.splitlines() if line.startswith("# TYPE ")
        }
        assert REQUIRED_METRIC_NAMES <= exported

    def test_every_state_has_gauge_value(self) -> None:
        assert set(STATE_VALUES) == set(ConnectionState)


class TestCounterDeltas:
    def test_feed_counters_follow_deltas(self) -> None:
        registry = CollectorRegistry()
        exporter = MetricsExporter(registry=registry)

        exporter.update(feed_metrics=FeedMetrics(connects=1, snapshots_received=5))
        exporter.update(feed_metrics=FeedMetrics(connects=2, snapshots_received=12, parse_errors=1))

        assert _sample(registry, "tradesim_feed_connects_total") == 2.0
        assert _sample(registry, "tradesim_feed_snapshots_total") == 12.0
        assert _sample(registry, "tradesim_feed_parse_errors_total") == 1.0

    def test_counter_never_decreases(self) -> None:
        registry = CollectorRegistry()
        exporter = MetricsExporter(registry=registry)

        exporter.update(feed_metrics=FeedMetrics(disconnects=4))
        exporter.update(feed_metrics=FeedMetrics(disconnects=1))  # new feed instance

        assert _sample(registry, "tradesim_feed_disconnects_total") == 4.0

    def test_dropped_events_counter(self) -> None:
        registry = CollectorRegistry()
        exporter = MetricsExporter(registry=registry)

        exporter.update(feed_metrics=FeedMetrics(events_dropped=7))
        exporter.update(feed_metrics=FeedMetrics(events_dropped=9))

        assert _sample(registry, "tradesim_feed_events_dropped_total") == 9.0

    def test_reset_counter_tracking(self) -> None:
        registry = CollectorRegistry()
        exporter = MetricsExporter(registry=registry)

        exporter.update(feed_metrics=FeedMetrics(disconnects=4))
        exporter.reset_counter_tracking()
        exporter.update(feed_metrics=FeedMetrics(disconnects=1))

        assert _sample(registry, "tradesim_feed_disconnects_total") == 5.0

    def test_state_gauge(self) -> None:
        registry = CollectorRegistry()
        exporter = MetricsExporter(registry=registry)
        exporter.update(feed_metrics=FeedMetrics(state=ConnectionState.FAILED))
        assert _sample(registry, "tradesim_feed_state") == 4.0

    def test_orchestrator_metrics(self) -> None:
        registry = CollectorRegistry()
        exporter = MetricsExporter(registry=registry)
        exporter.update(
            orchestrator_metrics=OrchestratorMetrics(
                snapshots_processed=10,
                snapshots_skipped=2,
                parameter_recomputes=3,
                last_compute_latency_ms=0.25,
            ),
            history_size=10,
        )

        assert _sample(registry, "tradesim_sim_snapshots_processed_total") == 10.0
        assert _sample(registry, "tradesim_sim_snapshots_skipped_total") == 2.0
        assert _sample(registry, "tradesim_sim_parameter_recomputes_total") == 3.0
        assert _sample(registry, "tradesim_sim_last_compute_latency_ms") == 0.25
        assert _sample(registry, "tradesim_sim_history_size") == 10.0
