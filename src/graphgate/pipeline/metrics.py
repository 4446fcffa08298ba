"""
Metrics stage.

Records every HTTP request before any business logic runs and serves the
Prometheus exposition on the metrics path.
"""

from __future__ import annotations

import time
from typing import Iterable, Optional

from prometheus_client import CONTENT_TYPE_LATEST, CollectorRegistry, Counter, Gauge, Histogram, generate_latest
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

OTHER_PATH = "other"


class GatewayMetrics:
    """
    HTTP metrics for one gateway app.

    Each instance owns its registry, so several apps (tests) can coexist in
    one process.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None, known_paths: Iterable[str] = ()):
        self.registry = registry or CollectorRegistry()
        self.known_paths = frozenset(known_paths)

        self.requests = Counter(
            "graphgate_http_requests_total",
            "Total HTTP requests",
            labelnames=["method", "path", "status"],
            registry=self.registry,
        )
        self.latency = Histogram(
            "graphgate_http_request_duration_seconds",
            "HTTP request latency",
            labelnames=["method", "path"],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
            registry=self.registry,
        )
        self.in_progress = Gauge(
            "graphgate_http_requests_in_progress",
            "HTTP requests currently being handled",
            registry=self.registry,
        )

    def path_label(self, path: str) -> str:
        # Static fallback paths are unbounded
        return path if path in self.known_paths else OTHER_PATH

    def observe(self, method: str, path: str, status: int, duration: float) -> None:
        label = self.path_label(path)
        self.requests.labels(method=method, path=label, status=str(status)).inc()
        self.latency.labels(method=method, path=label).observe(duration)

    def render(self) -> bytes:
        return generate_latest(self.registry)


class MetricsStage:
    """ASGI middleware recording request count and latency."""

    def __init__(self, app: ASGIApp, *, metrics: GatewayMetrics, path: str = "/metrics"):
        self.app = app
        self.metrics = metrics
        self.path = path

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        if scope["path"] == self.path and scope["method"] in ("GET", "HEAD"):
            response = Response(self.metrics.render(), media_type=CONTENT_TYPE_LATEST)
            await response(scope, receive, send)
            return

        status_code = 500

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        start = time.perf_counter()
        self.metrics.in_progress.inc()
        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            self.metrics.in_progress.dec()
            self.metrics.observe(scope["method"], scope["path"], status_code, time.perf_counter() - start)
