"""
Prometheus metrics for the sheetsync service

Usage:
    from utils.metrics import SyncMetrics, initialize_metrics

    metrics = initialize_metrics(port=9108)
    metrics["sync"].record_pass("tasks", "scheduled", success=True, duration=0.8)
"""

import logging
from typing import Any

from prometheus_client import CollectorRegistry

from .publisher import ApplicationInfo, MetricsPublisher
from .registry import get_or_create_metric
from .sync import SyncMetrics

logger = logging.getLogger(__name__)


def initialize_metrics(
    port: int = 9108,
    registry: CollectorRegistry | None = None,
    version: str = "1.0.0",
) -> dict[str, Any]:
    """
    Build the metric holders and start the /metrics server

    Args:
        port: Port to expose metrics on; 0 builds the holders without a server
        registry: Custom Prometheus registry (default: global REGISTRY)
        version: Version reported by ApplicationInfo

    Returns:
        Dictionary with "publisher" (or None), "sync" and "app_info"
    """
    publisher = None
    if port:
        publisher = MetricsPublisher(port=port, registry=registry)
        publisher.start()
    else:
        logger.info("Metrics server disabled")

    return {
        "publisher": publisher,
        "sync": SyncMetrics(registry=registry),
        "app_info": ApplicationInfo(version=version, registry=registry),
    }


__all__ = [
    "MetricsPublisher",
    "ApplicationInfo",
    "SyncMetrics",
    "initialize_metrics",
    "get_or_create_metric",
]
