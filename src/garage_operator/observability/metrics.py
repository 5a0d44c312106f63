"""
Prometheus metrics for the Garage operator.

The metrics live in a registry created once per controller and are served,
together with the diagnostics snapshot, by a small aiohttp application.
"""

import logging
import time
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

from aiohttp.web import (
    Application,
    AppRunner,
    Request,
    Response,
    TCPSite,
    json_response,
)
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

if TYPE_CHECKING:
    from ..context import Diagnostics

logger = logging.getLogger(__name__)


class Metrics:
    """Reconciliation metrics bound to one registry."""

    def __init__(self, registry: CollectorRegistry | None = None):
        self.registry = registry if registry is not None else CollectorRegistry()

        self.reconciliations = Counter(
            "garage_operator_reconciliations_total",
            "Total number of reconciliation passes",
            ["instance"],
            registry=self.registry,
        )
        self.failures = Counter(
            "garage_operator_reconciliation_errors_total",
            "Total number of failed reconciliation passes",
            ["instance", "error"],
            registry=self.registry,
        )
        self.reconcile_duration = Histogram(
            "garage_operator_reconcile_duration_seconds",
            "Time spent reconciling a Garage instance",
            ["instance"],
            buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
            registry=self.registry,
        )

    @contextmanager
    def track_reconciliation(self, instance: str) -> Iterator[None]:
        """Count one reconciliation pass and measure its wall time."""
        self.reconciliations.labels(instance=instance).inc()
        start_time = time.monotonic()
        try:
            yield
        finally:
            self.reconcile_duration.labels(instance=instance).observe(
                time.monotonic() - start_time
            )

    def reconcile_failure(self, instance: str, error: str) -> None:
        """Count a failed pass under the lowercase label of its error kind."""
        self.failures.labels(instance=instance, error=error).inc()


class MetricsServer:
    """HTTP server exposing metrics, health and diagnostics."""

    def __init__(
        self,
        metrics: Metrics,
        diagnostics: "Diagnostics",
        port: int = 8080,
        host: str = "0.0.0.0",
    ):
        self.metrics = metrics
        self.diagnostics = diagnostics
        self.port = port
        self.host = host
        self.app = Application()
        self.runner: AppRunner | None = None
        self.site: TCPSite | None = None
        self._setup_routes()

    def _setup_routes(self) -> None:
        self.app.router.add_get("/metrics", self._metrics_handler)
        self.app.router.add_get("/health", self._health_handler)
        self.app.router.add_get("/", self._diagnostics_handler)

    async def _metrics_handler(self, request: Request) -> Response:
        """Handle /metrics endpoint for Prometheus scraping."""
        try:
            metrics_data = generate_latest(self.metrics.registry)
            return Response(body=metrics_data, content_type=CONTENT_TYPE_LATEST)
        except Exception as e:
            logger.error(f"Failed to generate metrics: {e}")
            return Response(
                text=f"Error generating metrics: {type(e).__name__}. Check logs for details.",
                status=500,
            )

    async def _health_handler(self, request: Request) -> Response:
        return json_response("healthy")

    async def _diagnostics_handler(self, request: Request) -> Response:
        """Handle / with the last event seen by the controller."""
        snapshot = await self.diagnostics.snapshot()
        return json_response(snapshot)

    async def start(self) -> None:
        """Start the metrics server."""
        self.runner = AppRunner(self.app)
        await self.runner.setup()

        self.site = TCPSite(self.runner, self.host, self.port)
        await self.site.start()

        logger.info(f"Metrics server started on {self.host}:{self.port}")

    async def stop(self) -> None:
        """Stop the metrics server."""
        if self.site:
            await self.site.stop()
            self.site = None

        if self.runner:
            await self.runner.cleanup()
            self.runner = None

        logger.info("Metrics server stopped")
