"""
PostgreSQL table store.

Each synced table holds one TEXT column per storage key plus bookkeeping
columns prefixed with an underscore:

    _id          SERIAL PRIMARY KEY
    _position    INTEGER, the spreadsheet row the record mirrors
    _updated_at  TIMESTAMPTZ, last write time
    _deleted     BOOLEAN, soft-delete flag

Identifiers are composed with psycopg2.sql so table and column names are
always quoted; values are always bound parameters.
"""

import logging
import re
from collections.abc import Sequence
from functools import wraps

import psycopg2
from opentelemetry import trace
from psycopg2 import sql

from sheetsync.errors import InvalidTableName, StoreUnavailable
from sheetsync.stores.base import TableStore
from utils.db_pool import ConnectionPoolError
from utils.retry import retry_upstream_read
from utils.tracing import trace_operation

logger = logging.getLogger(__name__)

# optional schema prefix, ASCII only
VALID_TABLE_NAME = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*(\.[a-zA-Z_][a-zA-Z0-9_]*)?$")
MAX_IDENTIFIER_LENGTH = 63


def validate_table_name(table: str) -> None:
    """
    Raise InvalidTableName unless table is [schema.]name made of ASCII
    letters, digits and underscores, each part at most 63 characters.
    """
    if not isinstance(table, str) or not VALID_TABLE_NAME.match(table):
        raise InvalidTableName(f"Invalid table name: {table!r}")
    if any(len(part) > MAX_IDENTIFIER_LENGTH for part in table.split(".")):
        raise InvalidTableName(f"Table name part exceeds {MAX_IDENTIFIER_LENGTH} characters: {table!r}")


def _table_identifier(table: str) -> sql.Identifier:
    return sql.Identifier(*table.split("."))


def _unique_assignments(
    keys: Sequence[str], values: Sequence[str | None]
) -> dict[str, str | None]:
    """Pair keys with values; when two labels share a key the later one wins."""
    return dict(zip(keys, values))


def _store_call(operation: str):
    """Validate the table name, trace the call and translate driver errors."""

    def decorator(func):
        @wraps(func)
        def wrapper(self, table, *args, **kwargs):
            validate_table_name(table)
            try:
                with trace_operation(
                    f"postgres.{operation}",
                    kind=trace.SpanKind.CLIENT,
                    db_system="postgresql",
                    db_table=table,
                ):
                    return func(self, table, *args, **kwargs)
            except (psycopg2.Error, ConnectionPoolError) as e:
                logger.error(f"PostgreSQL {operation} on {table} failed: {e}")
                raise StoreUnavailable(f"PostgreSQL {operation} on {table} failed: {e}") from e

        return wrapper

    return decorator


class PostgresTableStore(TableStore):
    """TableStore backed by a connection pool in autocommit mode."""

    def __init__(self, pool):
        """
        Args:
            pool: Object whose acquire() context manager yields a psycopg2 connection
        """
        self.pool = pool

    @_store_call("ensure_table")
    def ensure_table(self, table: str, keys: Sequence[str]) -> None:
        table_id = _table_identifier(table)
        unique_keys = list(dict.fromkeys(keys))

        key_columns = [
            sql.SQL("{} TEXT").format(sql.Identifier(key)) for key in unique_keys
        ]
        create = sql.SQL(
            "CREATE TABLE IF NOT EXISTS {table} ("
            "_id SERIAL PRIMARY KEY, "
            "_position INTEGER NOT NULL, "
            "_updated_at TIMESTAMPTZ NOT NULL DEFAULT now(), "
            "_deleted BOOLEAN NOT NULL DEFAULT FALSE"
            "{columns})"
        ).format(
            table=table_id,
            columns=sql.SQL("").join(sql.SQL(", ") + column for column in key_columns),
        )
        index = sql.SQL("CREATE INDEX IF NOT EXISTS {name} ON {table} (_position)").format(
            name=sql.Identifier(f"{table.split('.')[-1]}__position_idx"[:MAX_IDENTIFIER_LENGTH]),
            table=table_id,
        )

        with self.pool.acquire() as conn:
            with conn.cursor() as cursor:
                cursor.execute(create)
                # headers added since the table was created
                for key in unique_keys:
                    cursor.execute(
                        sql.SQL("ALTER TABLE {table} ADD COLUMN IF NOT EXISTS {column} TEXT").format(
                            table=table_id, column=sql.Identifier(key)
                        )
                    )
                cursor.execute(index)

        logger.info(f"Ensured table {table} with {len(unique_keys)} data columns")

    @_store_call("list_rows")
    @retry_upstream_read()
    def list_rows(self, table: str, keys: Sequence[str]) -> list[tuple[int, list[str | None]]]:
        unique_keys = list(dict.fromkeys(keys))
        query = sql.SQL(
            "SELECT _position{columns} FROM {table} "
            "WHERE NOT _deleted ORDER BY _position ASC"
        ).format(
            columns=sql.SQL("").join(sql.SQL(", ") + sql.Identifier(key) for key in unique_keys),
            table=_table_identifier(table),
        )

        with self.pool.acquire() as conn:
            with conn.cursor() as cursor:
                cursor.execute(query)
                fetched = cursor.fetchall()

        rows = []
        for record in fetched:
            by_key = dict(zip(unique_keys, record[1:]))
            rows.append((record[0], [by_key[key] for key in keys]))
        return rows

    @_store_call("insert_row")
    def insert_row(
        self, table: str, position: int, keys: Sequence[str], values: Sequence[str | None]
    ) -> None:
        assignments = _unique_assignments(keys, values)
        query = sql.SQL(
            "INSERT INTO {table} (_position, _updated_at, _deleted{columns}) "
            "VALUES (%s, now(), FALSE{placeholders})"
        ).format(
            table=_table_identifier(table),
            columns=sql.SQL("").join(sql.SQL(", ") + sql.Identifier(key) for key in assignments),
            placeholders=sql.SQL("").join(sql.SQL(", %s") for _ in assignments),
        )

        with self.pool.acquire() as conn:
            with conn.cursor() as cursor:
                cursor.execute(query, [position, *assignments.values()])

    @_store_call("update_row_at")
    def update_row_at(
        self, table: str, position: int, keys: Sequence[str], values: Sequence[str | None]
    ) -> None:
        assignments = _unique_assignments(keys, values)
        query = sql.SQL(
            "UPDATE {table} SET {assignments}, _updated_at = now() "
            "WHERE _position = %s AND NOT _deleted"
        ).format(
            table=_table_identifier(table),
            assignments=sql.SQL(", ").join(
                sql.SQL("{} = %s").format(sql.Identifier(key)) for key in assignments
            ),
        )

        with self.pool.acquire() as conn:
            with conn.cursor() as cursor:
                cursor.execute(query, [*assignments.values(), position])

    @_store_call("soft_delete_row_at")
    def soft_delete_row_at(self, table: str, position: int) -> int:
        query = sql.SQL(
            "UPDATE {table} SET _deleted = TRUE, _updated_at = now() "
            "WHERE _position = %s AND NOT _deleted"
        ).format(table=_table_identifier(table))

        with self.pool.acquire() as conn:
            with conn.cursor() as cursor:
                cursor.execute(query, [position])
                return cursor.rowcount

    @_store_call("max_position")
    @retry_upstream_read()
    def max_position(self, table: str) -> int:
        query = sql.SQL("SELECT COALESCE(MAX(_position), 1) FROM {table}").format(
            table=_table_identifier(table)
        )

        with self.pool.acquire() as conn:
            with conn.cursor() as cursor:
                cursor.execute(query)
                return int(cursor.fetchone()[0])
