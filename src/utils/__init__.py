"""
Shared infrastructure for the sheetsync service

Provides:
- logging: Console/JSON logging setup and a context-carrying logger
- retry: Exponential backoff for transient upstream failures
- db_pool: Health-checked PostgreSQL connection pool
- metrics: Prometheus metrics for sync passes
- tracing: OpenTelemetry spans
- vault_client: HashiCorp Vault lookups for database credentials
"""

__version__ = "1.0.0"
__all__ = ["logging", "retry", "db_pool", "metrics", "tracing", "vault_client"]
