# Power Logger
# Created by Matthew Valancy, Valpatel Software LLC
# Copyright 2026 GPL-3.0 License

"""HTTP exporter: Prometheus scrape endpoint and health check."""

import logging
import time

from aiohttp import web
from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, generate_latest

from .poller import MeterPoller

logger = logging.getLogger(__name__)

# Data older than this many poll intervals counts as stale
STALE_INTERVALS = 3

INDEX_TEXT = """\
Power Logger

  /metrics      Prometheus metrics
  /api/health   Poller and transport health (JSON)
"""


class WebServer:
    def __init__(self, registry: CollectorRegistry, poller: MeterPoller,
                 host: str = "0.0.0.0", port: int = 8080):
        self._registry = registry
        self._poller = poller
        self._host = host
        self._port = port
        self._started = time.time()

        self._app = web.Application()
        self._runner: web.AppRunner | None = None
        self._setup_routes()

    def _setup_routes(self):
        self._app.router.add_get("/", self._handle_index)
        self._app.router.add_get("/metrics", self._handle_metrics)
        self._app.router.add_get("/api/health", self._handle_health)

    async def _handle_index(self, request):
        return web.Response(text=INDEX_TEXT)

    async def _handle_metrics(self, request):
        body = generate_latest(self._registry)
        # CONTENT_TYPE_LATEST carries a charset parameter, which aiohttp
        # refuses in content_type=, so it goes in as a raw header.
        return web.Response(body=body, headers={"Content-Type": CONTENT_TYPE_LATEST})

    async def _handle_health(self, request):
        """Health check endpoint for Docker HEALTHCHECK and monitoring."""
        now = time.time()
        status = self._poller.get_status_detail()
        issues = []

        last_ok = status.get("last_successful_poll")
        if last_ok is None:
            issues.append("No data received yet")
        else:
            data_age = now - last_ok
            if data_age > STALE_INTERVALS * self._poller.interval:
                issues.append(f"Data is {data_age:.0f}s stale")
        if status["consecutive_errors"]:
            issues.append(f"{status['consecutive_errors']} consecutive poll errors")

        healthy = not issues
        result = {
            "status": "healthy" if healthy else "degraded",
            "issues": issues,
            "uptime_seconds": round(now - self._started, 1),
            "poller": status,
            "values": self._poller.metrics.values(),
        }
        return web.json_response(result, status=200 if healthy else 503)

    async def start(self):
        self._runner = web.AppRunner(self._app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self._host, self._port)
        await site.start()
        logger.info("Metrics server started on http://%s:%d/metrics",
                    self._host, self._port)

    async def stop(self):
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
