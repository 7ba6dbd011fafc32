"""
Database connection pooling for the PostgreSQL store.

Provides a thread-safe pool with health checks, metrics and recycling of
stale connections.
"""

import logging
from typing import Any

from .base import (
    BaseConnectionPool,
    ConnectionPoolError,
    PoolClosedError,
    PooledConnection,
    PoolExhaustedError,
)
from .postgres import PostgresConnectionPool

logger = logging.getLogger(__name__)


_postgres_pool: PostgresConnectionPool | None = None


def initialize_pool(
    postgres_config: dict[str, Any],
    min_size: int | None = None,
    max_size: int | None = None,
    **pool_kwargs: Any,
) -> PostgresConnectionPool:
    """
    Initialize the process-wide PostgreSQL pool.

    Args:
        postgres_config: host, port, database, user and password
        min_size: Connections opened up front
        max_size: Upper bound on open connections
        **pool_kwargs: Additional pool configuration (max_idle_time, max_lifetime, ...)
    """
    global _postgres_pool

    if _postgres_pool is not None:
        _postgres_pool.close()

    if min_size is not None:
        pool_kwargs["min_size"] = min_size
    if max_size is not None:
        pool_kwargs["max_size"] = max_size

    logger.info("Initializing PostgreSQL connection pool")
    _postgres_pool = PostgresConnectionPool(
        **postgres_config, pool_name="postgres", **pool_kwargs
    )
    return _postgres_pool


def get_postgres_pool() -> PostgresConnectionPool:
    """Get the process-wide PostgreSQL pool."""
    if _postgres_pool is None:
        raise RuntimeError("PostgreSQL pool not initialized. Call initialize_pool() first.")
    return _postgres_pool


def close_pool() -> None:
    global _postgres_pool

    if _postgres_pool:
        _postgres_pool.close()
        _postgres_pool = None
        logger.info("Connection pool closed")


__all__ = [
    "BaseConnectionPool",
    "PostgresConnectionPool",
    "PooledConnection",
    "ConnectionPoolError",
    "PoolExhaustedError",
    "PoolClosedError",
    "initialize_pool",
    "get_postgres_pool",
    "close_pool",
]
