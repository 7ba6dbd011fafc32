"""
Base classes for database connection pooling.

A pool hands out connections through acquire(), checks their health before
handing them out, and recycles connections that are too old or idle too long.
The engine's scheduler thread and the HTTP worker threads share one pool.
"""

import logging
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from queue import Empty, Queue
from typing import Any

from opentelemetry import trace
from prometheus_client import Counter, Gauge, Histogram

from utils.metrics.registry import get_or_create_metric
from utils.tracing import trace_operation

logger = logging.getLogger(__name__)


CONNECTION_POOL_SIZE = get_or_create_metric(
    lambda: Gauge(
        "sheetsync_db_pool_size",
        "Connections held by the pool",
        ["pool_name"],
    ),
    "sheetsync_db_pool_size",
)

CONNECTION_POOL_IDLE = get_or_create_metric(
    lambda: Gauge(
        "sheetsync_db_pool_idle",
        "Idle connections in the pool",
        ["pool_name"],
    ),
    "sheetsync_db_pool_idle",
)

CONNECTION_POOL_ERRORS = get_or_create_metric(
    lambda: Counter(
        "sheetsync_db_pool_errors_total",
        "Connection pool errors",
        ["pool_name", "error_type"],
    ),
    "sheetsync_db_pool_errors",
)

CONNECTION_ACQUIRE_TIME = get_or_create_metric(
    lambda: Histogram(
        "sheetsync_db_pool_acquire_seconds",
        "Time to acquire a connection from the pool",
        ["pool_name"],
        buckets=[0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0],
    ),
    "sheetsync_db_pool_acquire_seconds",
)


@dataclass
class PooledConnection:
    """A pooled connection with its bookkeeping."""

    connection: Any
    created_at: float = field(default_factory=time.monotonic)
    last_used: float = field(default_factory=time.monotonic)
    use_count: int = 0

    def mark_used(self) -> None:
        self.last_used = time.monotonic()
        self.use_count += 1


class ConnectionPoolError(Exception):
    """Base exception for connection pool errors."""

    pass


class PoolExhaustedError(ConnectionPoolError):
    """Raised when no connection becomes available within the acquire timeout."""

    pass


class PoolClosedError(ConnectionPoolError):
    """Raised when acquiring from a closed pool."""

    pass


class BaseConnectionPool:
    """
    Thread-safe connection pool.

    Subclasses implement _create_connection, _is_connection_healthy and
    _close_connection.
    """

    def __init__(
        self,
        min_size: int = 1,
        max_size: int = 5,
        max_idle_time: int = 300,
        max_lifetime: int = 3600,
        acquire_timeout: float = 10.0,
        pool_name: str = "default",
    ):
        """
        Initialize the pool and open min_size connections.

        Args:
            min_size: Connections opened up front
            max_size: Upper bound on open connections
            max_idle_time: Seconds an idle connection may sit before recycling
            max_lifetime: Seconds a connection may live before recycling
            acquire_timeout: Seconds acquire() waits for a free connection
            pool_name: Label used in metrics and logs
        """
        if min_size > max_size:
            raise ValueError(f"min_size ({min_size}) cannot exceed max_size ({max_size})")

        self.min_size = min_size
        self.max_size = max_size
        self.max_idle_time = max_idle_time
        self.max_lifetime = max_lifetime
        self.acquire_timeout = acquire_timeout
        self.pool_name = pool_name

        self._idle: Queue[PooledConnection] = Queue(maxsize=max_size)
        self._all_connections: list[PooledConnection] = []
        self._lock = threading.RLock()
        self._closed = False

        with self._lock:
            for _ in range(min_size):
                try:
                    self._idle.put_nowait(self._open())
                except Exception as e:
                    logger.error(f"Failed to open initial connection for '{pool_name}': {e}")
                    self._count_error("initialization")
            self._update_metrics()

        logger.info(
            f"Initialized {self.__class__.__name__} '{pool_name}' "
            f"(min={min_size}, max={max_size})"
        )

    def _create_connection(self) -> Any:
        raise NotImplementedError

    def _is_connection_healthy(self, conn: Any) -> bool:
        raise NotImplementedError

    def _close_connection(self, conn: Any) -> None:
        raise NotImplementedError

    def _open(self) -> PooledConnection:
        pooled = PooledConnection(connection=self._create_connection())
        self._all_connections.append(pooled)
        return pooled

    def _count_error(self, error_type: str) -> None:
        CONNECTION_POOL_ERRORS.labels(pool_name=self.pool_name, error_type=error_type).inc()

    def _is_usable(self, pooled: PooledConnection) -> bool:
        now = time.monotonic()
        if now - pooled.created_at > self.max_lifetime:
            logger.debug("Connection exceeded max lifetime, recycling")
            return False
        if now - pooled.last_used > self.max_idle_time:
            logger.debug("Connection exceeded max idle time, recycling")
            return False
        try:
            return self._is_connection_healthy(pooled.connection)
        except Exception as e:
            logger.warning(f"Health check failed: {e}")
            self._count_error("health_check")
            return False

    def _recycle(self, pooled: PooledConnection) -> None:
        try:
            self._close_connection(pooled.connection)
        except Exception as e:
            logger.warning(f"Error closing connection: {e}")
        finally:
            with self._lock:
                if pooled in self._all_connections:
                    self._all_connections.remove(pooled)

    def _update_metrics(self) -> None:
        CONNECTION_POOL_SIZE.labels(pool_name=self.pool_name).set(len(self._all_connections))
        CONNECTION_POOL_IDLE.labels(pool_name=self.pool_name).set(self._idle.qsize())

    def _checkout(self) -> PooledConnection:
        deadline = time.monotonic() + self.acquire_timeout

        while True:
            try:
                pooled = self._idle.get_nowait()
            except Empty:
                pooled = None
                with self._lock:
                    if len(self._all_connections) < self.max_size:
                        try:
                            pooled = self._open()
                        except Exception:
                            self._count_error("creation")
                            raise

                if pooled is None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        self._count_error("timeout")
                        raise PoolExhaustedError(
                            f"No connection available within {self.acquire_timeout}s"
                        )
                    try:
                        pooled = self._idle.get(timeout=remaining)
                    except Empty:
                        self._count_error("timeout")
                        raise PoolExhaustedError(
                            f"No connection available within {self.acquire_timeout}s"
                        )

            if self._is_usable(pooled):
                return pooled

            logger.info("Connection unhealthy, recycling and retrying")
            self._recycle(pooled)
            if time.monotonic() >= deadline:
                self._count_error("timeout")
                raise PoolExhaustedError(
                    f"No healthy connection available within {self.acquire_timeout}s"
                )

    @contextmanager
    def acquire(self) -> Iterator[Any]:
        """
        Borrow a connection for the duration of the with-block.

        Raises:
            PoolClosedError: If the pool is closed
            PoolExhaustedError: If no connection frees up within acquire_timeout
        """
        if self._closed:
            raise PoolClosedError(f"Connection pool '{self.pool_name}' is closed")

        start = time.monotonic()
        with trace_operation("db_pool_acquire", kind=trace.SpanKind.CLIENT, pool_name=self.pool_name):
            pooled = self._checkout()

        pooled.mark_used()
        CONNECTION_ACQUIRE_TIME.labels(pool_name=self.pool_name).observe(time.monotonic() - start)
        self._update_metrics()

        try:
            yield pooled.connection
        finally:
            if self._closed:
                self._recycle(pooled)
            else:
                self._idle.put_nowait(pooled)
            self._update_metrics()

    def close(self) -> None:
        """Close every connection and refuse further acquires."""
        if self._closed:
            return

        self._closed = True
        with self._lock:
            for pooled in list(self._all_connections):
                self._recycle(pooled)
            while True:
                try:
                    self._idle.get_nowait()
                except Empty:
                    break
            self._update_metrics()

        logger.info(f"Connection pool '{self.pool_name}' closed")

    def get_stats(self) -> dict[str, Any]:
        with self._lock:
            total = len(self._all_connections)
            idle = self._idle.qsize()
            return {
                "pool_name": self.pool_name,
                "total_connections": total,
                "idle_connections": idle,
                "active_connections": total - idle,
                "min_size": self.min_size,
                "max_size": self.max_size,
                "closed": self._closed,
            }
