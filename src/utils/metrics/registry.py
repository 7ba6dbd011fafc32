"""
Safe metric registration.
"""

from collections.abc import Callable
from typing import TypeVar

from prometheus_client import REGISTRY, CollectorRegistry

T = TypeVar("T")


def get_or_create_metric(
    metric_factory: Callable[[], T],
    metric_name: str,
    registry: CollectorRegistry = REGISTRY,
) -> T:
    """
    Create a metric, or return the one already registered under that name.

    prometheus_client refuses to register the same name twice in a registry,
    which happens whenever a metrics holder is built more than once per
    process (tests, an engine rebuilt by the HTTP app).

    Args:
        metric_factory: Callable that creates and registers the metric
        metric_name: Registered name to look up on collision (counters are
            registered without their _total suffix)
        registry: Registry the factory registers into

    Returns:
        The new or existing metric
    """
    try:
        return metric_factory()
    except ValueError:
        existing = registry._names_to_collectors.get(metric_name)
        if existing is not None:
            return existing
        raise
