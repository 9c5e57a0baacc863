"""Per-technology adapters behind the dispatch layer."""

from __future__ import annotations

from .base import BackendAdapter, ConnectionBackendError
from .cassandra import CassandraAdapter
from .clickhouse import ClickHouseAdapter
from .mysql import MySQLAdapter
from .postgres import PostgresAdapter
from .sqlite import SQLiteAdapter

__all__ = [
    "BackendAdapter",
    "CassandraAdapter",
    "ClickHouseAdapter",
    "ConnectionBackendError",
    "MySQLAdapter",
    "PostgresAdapter",
    "SQLiteAdapter",
]
