"""
HTTP monitoring endpoints for a running simulator.

    GET /metrics  Prometheus exposition of the simulator registry
    GET /healthz  simulation health as JSON

/healthz answers 200 only while the status is "ok" (feed connected). A
disconnected or reconnecting feed ("degraded") and a feed that gave up
reconnecting ("failed") answer 503, so a load balancer or supervisor can
act on the status code alone. The body is always the full health summary;
the last result stays valid while degraded.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import orjson
from aiohttp import web
from prometheus_client import generate_latest
from prometheus_client.registry import CollectorRegistry

logger = logging.getLogger(__name__)

# Returns the /healthz body; must carry a "status" key.
HealthFn = Callable[[], dict[str, Any]]

HEALTHY_STATUS = "ok"

METRICS_CONTENT_TYPE = "text/plain; version=0.0.4; charset=utf-8"

REGISTRY_KEY = web.AppKey("registry", CollectorRegistry)
HEALTH_FN_KEY: web.AppKey[HealthFn] = web.AppKey("health_fn")


def _default_health() -> dict[str, Any]:
    return {"status": HEALTHY_STATUS}


async def _metrics(request: web.Request) -> web.Response:
    body = generate_latest(request.app[REGISTRY_KEY])
    return web.Response(body=body, headers={"Content-Type": METRICS_CONTENT_TYPE})


async def _healthz(request: web.Request) -> web.Response:
    info = request.app[HEALTH_FN_KEY]()
    status = info.get("status")
    http_status = 200 if status == HEALTHY_STATUS else 503
    if http_status != 200:
        logger.debug("Health check unhealthy", extra={"status": status})
    return web.Response(
        status=http_status,
        body=orjson.dumps(info, default=str),
        content_type="application/json",
    )


def create_metrics_app(
    registry: CollectorRegistry,
    *,
    health_fn: HealthFn | None = None,
) -> web.Application:
    """
    Build the monitoring application.

    Args:
        registry: Registry populated by MetricsExporter.
        health_fn: Health summary callback, typically
            LiveSimulator.get_health_info. Without one, /healthz always
            reports "ok".
    """
    app = web.Application()
    app[REGISTRY_KEY] = registry
    app[HEALTH_FN_KEY] = health_fn or _default_health
    app.router.add_get("/metrics", _metrics)
    app.router.add_get("/healthz", _healthz)
    return app


async def start_metrics_server(
    registry: CollectorRegistry,
    host: str = "127.0.0.1",
    port: int = 9090,
    *,
    health_fn: HealthFn | None = None,
) -> web.AppRunner:
    """Serve the monitoring app; pass the runner to stop_metrics_server."""
    runner = web.AppRunner(create_metrics_app(registry, health_fn=health_fn), access_log=None)
    await runner.setup()
    await web.TCPSite(runner, host, port).start()
    logger.info("Monitoring endpoints up", extra={"host": host, "port": port})
    return runner


async def stop_metrics_server(runner: web.AppRunner) -> None:
    await runner.cleanup()
    logger.info("Monitoring endpoints stopped")
