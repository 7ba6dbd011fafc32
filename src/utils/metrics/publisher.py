"""
Prometheus HTTP exposition.

MetricsPublisher serves /metrics on its own port; ApplicationInfo exposes
the service name, version and uptime.
"""

import logging
import time

from prometheus_client import REGISTRY, CollectorRegistry, Gauge, Info, start_http_server

from .registry import get_or_create_metric

logger = logging.getLogger(__name__)


class MetricsPublisher:
    """Starts the Prometheus HTTP server once per process."""

    def __init__(self, port: int = 9108, registry: CollectorRegistry | None = None):
        self.port = port
        self.registry = registry or REGISTRY
        self._server_started = False

    def start(self) -> None:
        """Start the metrics HTTP server"""
        if self._server_started:
            logger.warning(f"Metrics server already running on port {self.port}")
            return

        try:
            start_http_server(self.port, registry=self.registry)
        except OSError as e:
            raise RuntimeError(
                f"Metrics server could not bind port {self.port}: {e}"
            ) from e

        self._server_started = True
        logger.info(f"Metrics server started on port {self.port}")

    def is_started(self) -> bool:
        return self._server_started


class ApplicationInfo:
    """Service metadata and uptime."""

    def __init__(
        self,
        app_name: str = "sheetsync",
        version: str = "1.0.0",
        registry: CollectorRegistry | None = None,
    ):
        self.registry = registry or REGISTRY

        self.info = get_or_create_metric(
            lambda: Info("sheetsync_application", "Application metadata", registry=self.registry),
            "sheetsync_application",
            self.registry,
        )
        self.info.info({"name": app_name, "version": version})

        self._start_time = time.time()
        self.uptime_seconds = get_or_create_metric(
            lambda: Gauge(
                "sheetsync_uptime_seconds",
                "Application uptime in seconds",
                registry=self.registry,
            ),
            "sheetsync_uptime_seconds",
            self.registry,
        )
        self.uptime_seconds.set_function(self.get_uptime)

    def get_uptime(self) -> float:
        return time.time() - self._start_time
