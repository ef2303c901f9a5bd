#!/usr/bin/env python3
"""
Live trade-cost simulator.

Connects to the L2 order-book WebSocket feed and recomputes expected
execution costs on every snapshot:
OrderBookFeed → SimulationOrchestrator → CostModelEngine → JSON lines.

Usage:
    python -m scripts.run_simulator --quantity 250 --fee-tier "VIP 2"
    python -m scripts.run_simulator --duration-s 60 --output costs.jsonl
    TRADESIM_WS_URL=ws://127.0.0.1:8765/ws python -m scripts.run_simulator

Each processed snapshot writes one TimeSeriesPoint as a JSON line. Shutdown
is graceful on SIGINT/SIGTERM or when --duration-s elapses.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys
import time
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import TYPE_CHECKING, Any, TextIO

from prometheus_client.registry import CollectorRegistry

from tradesim.connectors.backoff import BackoffConfig
from tradesim.connectors.exporter import MetricsExporter
from tradesim.connectors.feed.client import OrderBookFeed
from tradesim.connectors.feed.types import (
    DEFAULT_FEED_URL,
    ConnectionState,
    FeedConfig,
    SnapshotReceived,
)
from tradesim.connectors.metrics_server import start_metrics_server, stop_metrics_server
from tradesim.contracts.simulation import (
    MAX_QUANTITY,
    FeeTier,
    OrderType,
    SimulationParameters,
)
from tradesim.logging_config import setup_logging
from tradesim.simulation.orchestrator import SimulationOrchestrator

if TYPE_CHECKING:
    from tradesim.contracts.simulation import TimeSeriesPoint

logger = logging.getLogger(__name__)

WS_URL_ENV = "TRADESIM_WS_URL"


@dataclass
class SimulatorRunConfig:
    """Configuration for a simulator run."""

    ws_url: str = DEFAULT_FEED_URL

    # Simulation parameters
    asset: str = "BTC-USDT-SWAP"
    order_type: OrderType = OrderType.MARKET
    quantity: Decimal = Decimal("100")
    volatility: float = 2.0
    fee_tier: FeeTier = FeeTier.VIP_0

    # Output file for TimeSeriesPoints (None = stdout)
    output_file: Path | None = None

    # Duration in seconds (None = run until SIGINT/SIGTERM)
    duration_s: int | None = None

    # Metrics server port (0 = disabled)
    metrics_port: int = 0

    # Reconnect budget
    max_retries: int = 10

    verbose: bool = False
    json_logs: bool = True

    def __post_init__(self) -> None:
        """Validate config values at construction time."""
        if not 0 <= self.metrics_port <= 65535:
            msg = f"metrics_port must be 0..65535, got {self.metrics_port}"
            raise ValueError(msg)
        if not 0 < self.quantity <= MAX_QUANTITY:
            msg = f"quantity must be in (0, {MAX_QUANTITY}], got {self.quantity}"
            raise ValueError(msg)
        if not 0.1 <= self.volatility <= 10.0:
            msg = f"volatility must be 0.1..10, got {self.volatility}"
            raise ValueError(msg)
        if self.duration_s is not None and self.duration_s <= 0:
            msg = f"duration_s must be > 0, got {self.duration_s}"
            raise ValueError(msg)
        if self.max_retries < 0:
            msg = f"max_retries must be >= 0, got {self.max_retries}"
            raise ValueError(msg)
        if not self.ws_url.startswith(("ws://", "wss://")):
            msg = f"ws_url must start with ws:// or wss://, got {self.ws_url!r}"
            raise ValueError(msg)

    def parameters(self) -> SimulationParameters:
        """Build the initial simulation parameters."""
        return SimulationParameters(
            asset=self.asset,
            order_type=self.order_type,
            quantity=self.quantity,
            volatility=self.volatility,
            fee_tier=self.fee_tier,
        )


@dataclass
class RunMetrics:
    """Aggregated metrics for one simulator run."""

    start_ts: int = 0
    stop_ts: int = 0
    points_written: int = 0
    max_latency_ms: float = 0.0
    total_latency_ms: float = 0.0

    def avg_latency_ms(self) -> float:
        """Get average compute latency."""
        if self.points_written == 0:
            return 0.0
        return self.total_latency_ms / self.points_written


class LiveSimulator:
    """
    Runs the feed and the orchestrator together.

    Data flow:
        OrderBookFeed
            ↓ (FeedEvent)
        SimulationOrchestrator.handle_event()
            ↓ (TimeSeriesPoint per snapshot)
        Output (JSON lines)
    """

    def __init__(
        self,
        config: SimulatorRunConfig,
        metrics_exporter: MetricsExporter | None = None,
    ) -> None:
        self._config = config
        self._metrics = RunMetrics()
        self._running = False
        self._metrics_exporter = metrics_exporter

        self._feed = OrderBookFeed(
            FeedConfig(url=config.ws_url, backoff=BackoffConfig(max_retries=config.max_retries))
        )
        self._orchestrator = SimulationOrchestrator(parameters=config.parameters())

        self._output_handle: TextIO | None = None

    @property
    def feed(self) -> OrderBookFeed:
        """Get the order-book feed."""
        return self._feed

    @property
    def orchestrator(self) -> SimulationOrchestrator:
        """Get the simulation orchestrator."""
        return self._orchestrator

    @property
    def metrics(self) -> RunMetrics:
        """Get run metrics."""
        return self._metrics

    def get_health_info(self) -> dict[str, Any]:
        """Return simulator health info for the /healthz endpoint."""
        info = self._orchestrator.health_info(feed_state=self._feed.state)
        info["points_written"] = self._metrics.points_written
        return info

    def _write_point(self, point: TimeSeriesPoint) -> None:
        """Write one TimeSeriesPoint as a JSON line."""
        line = point.to_json().decode() + "\n"
        out = self._output_handle or sys.stdout
        out.write(line)
        out.flush()

        self._metrics.points_written += 1
        self._metrics.total_latency_ms += point.compute_latency_ms
        self._metrics.max_latency_ms = max(self._metrics.max_latency_ms, point.compute_latency_ms)

    def _sync_exporter(self) -> None:
        if self._metrics_exporter is None:
            return
        self._metrics_exporter.update(
            feed_metrics=self._feed.get_metrics(),
            orchestrator_metrics=self._orchestrator.metrics,
            history_size=len(self._orchestrator.history),
        )

    async def _main_loop(self) -> None:
        """Consume feed events until shutdown."""
        async for event in self._feed.events():
            if not self._running:
                break

            processed_before = self._orchestrator.metrics.snapshots_processed
            self._orchestrator.handle_event(event)

            if (
                isinstance(event, SnapshotReceived)
                and self._orchestrator.metrics.snapshots_processed > processed_before
            ):
                point = self._orchestrator.history[-1]
                self._write_point(point)

            self._sync_exporter()

            if self._feed.state == ConnectionState.FAILED:
                logger.error("Feed gave up reconnecting, stopping")
                self.request_shutdown()

    async def _watchdog(self) -> None:
        """Stop the run once the duration elapses or shutdown is requested."""
        deadline: float | None = None
        if self._config.duration_s is not None:
            deadline = time.monotonic() + self._config.duration_s
            logger.info("Simulator will stop after %d seconds", self._config.duration_s)

        while self._running:
            if deadline is not None and time.monotonic() >= deadline:
                logger.info("Duration elapsed")
                break
            await asyncio.sleep(0.1)

        self._running = False
        # Ends the events() iteration in _main_loop.
        await self._feed.disconnect()

    async def start(self) -> None:
        """Start the simulator and run until stopped."""
        if self._running:
            return

        logger.info("Starting simulator", extra={"url": self._config.ws_url})
        self._running = True
        self._metrics.start_ts = int(time.time() * 1000)

        if self._config.output_file:
            self._output_handle = self._config.output_file.open("w")

        await self._feed.connect()

        watchdog = asyncio.create_task(self._watchdog())
        try:
            await self._main_loop()
        except asyncio.CancelledError:
            logger.info("Main loop cancelled")
        finally:
            self._running = False
            await watchdog

    async def stop(self) -> None:
        """Release resources and log the run summary."""
        self._running = False
        await self._feed.disconnect()
        self._sync_exporter()

        if self._output_handle:
            self._output_handle.close()
            self._output_handle = None

        self._metrics.stop_ts = int(time.time() * 1000)
        self._log_metrics()

    def _log_metrics(self) -> None:
        """Log run summary."""
        m = self._metrics
        feed_m = self._feed.get_metrics()
        orch_m = self._orchestrator.metrics
        state = self._orchestrator.state

        logger.info(
            "Simulator summary",
            extra={
                "runtime_s": round((m.stop_ts - m.start_ts) / 1000, 1) if m.start_ts else 0.0,
                "points_written": m.points_written,
                "avg_latency_ms": round(m.avg_latency_ms(), 3),
                "max_latency_ms": round(m.max_latency_ms, 3),
                "snapshots_skipped": orch_m.snapshots_skipped,
                "feed_connects": feed_m.connects,
                "feed_disconnects": feed_m.disconnects,
                "feed_parse_errors": feed_m.parse_errors,
                "feed_state": feed_m.state.value,
                "realized_volatility_pct": round(self._orchestrator.realized_volatility(), 4),
                "last_error": state.last_error,
            },
        )

    def request_shutdown(self) -> None:
        """Request graceful shutdown by clearing the running flag."""
        logger.info("Shutdown requested")
        self._running = False


def setup_signal_handlers(simulator: LiveSimulator) -> None:
    """
    Install SIGINT/SIGTERM handlers.

    Handlers only clear the running flag; the watchdog then disconnects the
    feed and the main loop exits on its own.
    """

    def signal_handler(sig: int, frame: object) -> None:
        logger.info("Received signal %s, initiating shutdown", signal.Signals(sig).name)
        simulator.request_shutdown()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)


async def run_simulator(config: SimulatorRunConfig) -> int:
    """
    Run the simulator.

    Returns:
        Exit code (0 = success).
    """
    exporter: MetricsExporter | None = None
    registry: CollectorRegistry | None = None
    if config.metrics_port > 0:
        registry = CollectorRegistry()
        exporter = MetricsExporter(registry=registry)

    simulator = LiveSimulator(config=config, metrics_exporter=exporter)

    metrics_runner = None
    if registry is not None:
        metrics_runner = await start_metrics_server(
            registry,
            port=config.metrics_port,
            health_fn=simulator.get_health_info,
        )

    setup_signal_handlers(simulator)

    try:
        await simulator.start()
        return 0
    except Exception:
        logger.exception("Simulator failed")
        return 1
    finally:
        await simulator.stop()
        if metrics_runner is not None:
            await stop_metrics_server(metrics_runner)


def build_parser() -> argparse.ArgumentParser:
    """Build the command-line parser."""
    parser = argparse.ArgumentParser(
        description="Run the live trade-cost simulator.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--ws-url",
        type=str,
        default=None,
        help=f"Order-book WebSocket URL (default: ${WS_URL_ENV} or the OKX BTC-USDT-SWAP feed)",
    )
    parser.add_argument("--asset", type=str, default="BTC-USDT-SWAP", help="Instrument label")
    parser.add_argument(
        "--order-type",
        choices=[t.value for t in OrderType],
        default=OrderType.MARKET.value,
        help="Order type (default: market)",
    )
    parser.add_argument(
        "--quantity",
        type=Decimal,
        default=Decimal("100"),
        help="Order size in quote currency, e.g. USD (default: 100)",
    )
    parser.add_argument(
        "--volatility",
        type=float,
        default=2.0,
        help="Volatility in percent, 0.1..10 (default: 2.0)",
    )
    parser.add_argument(
        "--fee-tier",
        type=str,
        default=FeeTier.VIP_0.value,
        help='Fee tier label, "VIP 0".."VIP 5" (default: "VIP 0")',
    )
    parser.add_argument(
        "--output",
        "-o",
        type=Path,
        help="Output file for JSON lines (default: stdout)",
    )
    parser.add_argument(
        "--duration-s",
        type=int,
        default=None,
        help="Run for N seconds then stop (default: run until SIGINT/SIGTERM)",
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=0,
        help="Prometheus /metrics port (0 to disable, default: 0)",
    )
    parser.add_argument(
        "--max-retries",
        type=int,
        default=10,
        help="Reconnect attempts before giving up (default: 10)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument(
        "--plain-logs",
        action="store_true",
        help="Human-readable logs instead of JSON",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> SimulatorRunConfig:
    """Build a validated run config from parsed arguments."""
    ws_url = args.ws_url or os.environ.get(WS_URL_ENV) or DEFAULT_FEED_URL
    return SimulatorRunConfig(
        ws_url=ws_url,
        asset=args.asset,
        order_type=OrderType(args.order_type),
        quantity=args.quantity,
        volatility=args.volatility,
        fee_tier=FeeTier.from_label(args.fee_tier),
        output_file=args.output,
        duration_s=args.duration_s,
        metrics_port=args.metrics_port,
        max_retries=args.max_retries,
        verbose=args.verbose,
        json_logs=not args.plain_logs,
    )


def main() -> int:
    """Main entry point."""
    args = build_parser().parse_args()
    config = config_from_args(args)

    setup_logging(
        level=logging.DEBUG if config.verbose else logging.INFO,
        json_format=config.json_logs,
    )

    logger.info(
        "Starting trade-cost simulator",
        extra={
            "asset": config.asset,
            "quantity": str(config.quantity),
            "volatility": config.volatility,
            "fee_tier": config.fee_tier.value,
            "duration_s": config.duration_s,
        },
    )

    return asyncio.run(run_simulator(config))


if __name__ == "__main__":
    sys.exit(main())
