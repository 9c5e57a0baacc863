"""PostgreSQL adapter built on asyncpg."""

from __future__ import annotations

import logging

import asyncpg

from ..models import BackendKind, ConnectionProfile
from ..query import QueryExecutionError, QueryResult
from .base import ConnectionBackendError, quote_identifier, quote_literal, split_qualified

LOG = logging.getLogger(__name__)

CONNECT_TIMEOUT = 10.0

_DATABASES_QUERY = "SELECT datname FROM pg_catalog.pg_database ORDER BY datname"

_TABLES_QUERY = """
    SELECT schemaname, tablename
    FROM pg_catalog.pg_tables
    WHERE schemaname NOT IN ('pg_catalog', 'information_schema')
    ORDER BY schemaname, tablename
"""

_COLUMNS_QUERY = """
    SELECT column_name
    FROM information_schema.columns
    WHERE table_schema = $1 AND table_name = $2
    ORDER BY ordinal_position
"""

_COUNTED_COMMANDS = frozenset({"INSERT", "UPDATE", "DELETE", "MERGE", "SELECT", "COPY", "MOVE", "FETCH"})


class PostgresAdapter:
    """Single asyncpg connection bound to one database."""

    kind = BackendKind.POSTGRES
    system_databases = frozenset({"template0", "template1"})

    def __init__(self, conn: asyncpg.Connection, profile: ConnectionProfile) -> None:
        self._conn = conn
        self._profile = profile

    @classmethod
    async def open(
        cls,
        profile: ConnectionProfile,
        database: str | None,
        password: str | None,
    ) -> "PostgresAdapter":
        kwargs: dict[str, object] = {
            "host": profile.host or "localhost",
            "port": profile.port or cls.kind.default_port,
            "user": profile.user or cls.kind.default_user,
            "database": database or cls.kind.default_database,
            "timeout": CONNECT_TIMEOUT,
        }
        if password:
            kwargs["password"] = password
        if profile.tls:
            kwargs["ssl"] = "require"
        try:
            conn = await asyncpg.connect(**kwargs)
        except Exception as exc:
            raise ConnectionBackendError(f"Failed to connect to profile '{profile.name}': {exc}") from exc
        LOG.debug("Opened PostgreSQL connection", extra={"profile": profile.name, "database": kwargs["database"]})
        return cls(conn, profile)

    async def list_databases(self) -> list[str]:
        rows = await self._fetch(_DATABASES_QUERY)
        return [str(row["datname"]) for row in rows]

    async def list_tables(self) -> list[str]:
        rows = await self._fetch(_TABLES_QUERY)
        tables = []
        for row in rows:
            schema = str(row["schemaname"])
            table = str(row["tablename"])
            tables.append(table if schema == "public" else f"{schema}.{table}")
        return tables

    async def list_columns(self, table: str) -> list[str]:
        schema, name = split_qualified(table)
        rows = await self._fetch(_COLUMNS_QUERY, schema or "public", name)
        return [str(row["column_name"]) for row in rows]

    async def execute(self, statement: str) -> QueryResult:
        try:
            prepared = await self._conn.prepare(statement)
            records = await prepared.fetch()
            status = prepared.get_statusmsg()
        except (OSError, asyncpg.ConnectionDoesNotExistError) as exc:
            raise ConnectionBackendError(f"Connection to '{self._profile.name}' lost: {exc}") from exc
        except Exception as exc:
            raise QueryExecutionError(str(exc)) from exc
        # RETURNING clauses describe rows just like SELECT does.
        columns = tuple(attribute.name for attribute in prepared.get_attributes())
        if columns:
            return QueryResult.from_rows(columns, (tuple(record.values()) for record in records))
        return QueryResult.affected(_affected_from_status(status))

    async def close(self) -> None:
        await self._conn.close()

    async def _fetch(self, query: str, *args: object) -> list[asyncpg.Record]:
        try:
            return await self._conn.fetch(query, *args)
        except (OSError, asyncpg.ConnectionDoesNotExistError) as exc:
            raise ConnectionBackendError(f"Connection to '{self._profile.name}' lost: {exc}") from exc
        except Exception as exc:
            raise QueryExecutionError(str(exc)) from exc


def _affected_from_status(status: str) -> int | None:
    """Row count from a command tag such as ``INSERT 0 3``."""

    parts = status.split()
    if len(parts) >= 2 and parts[0] in _COUNTED_COMMANDS and parts[-1].isdigit():
        return int(parts[-1])
    return None


def sample_query(table: str, limit: int) -> str:
    schema, name = split_qualified(table)
    target = quote_identifier(name) if schema is None else f"{quote_identifier(schema)}.{quote_identifier(name)}"
    return f"SELECT * FROM {target} LIMIT {limit};"


def describe_query(table: str, schema: str | None = None) -> str:
    schema, name = split_qualified(table, schema)
    return (
        "SELECT column_name, data_type, is_nullable, column_default\n"
        "FROM information_schema.columns\n"
        f"WHERE table_schema = {quote_literal(schema or 'public')} AND table_name = {quote_literal(name)}\n"
        "ORDER BY ordinal_position;"
    )


__all__ = ["PostgresAdapter", "describe_query", "sample_query"]
