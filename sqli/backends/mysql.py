"""MySQL/MariaDB adapter built on PyMySQL."""

from __future__ import annotations

import asyncio
import logging
import ssl

import pymysql

from ..models import BackendKind, ConnectionProfile
from ..query import QueryExecutionError, QueryResult
from .base import ConnectionBackendError, quote_identifier, split_qualified

LOG = logging.getLogger(__name__)

CONNECT_TIMEOUT = 10

# Client-side codes meaning the server is gone rather than the statement failed.
_CONNECTION_LOST = frozenset({2003, 2006, 2013})


class MySQLAdapter:
    """Blocking PyMySQL connection driven through worker threads."""

    kind = BackendKind.MYSQL
    system_databases = frozenset({"information_schema", "mysql", "performance_schema", "sys"})

    def __init__(self, conn: pymysql.connections.Connection, profile: ConnectionProfile, database: str | None) -> None:
        self._conn = conn
        self._profile = profile
        self._database = database

    @classmethod
    async def open(
        cls,
        profile: ConnectionProfile,
        database: str | None,
        password: str | None,
    ) -> "MySQLAdapter":
        def _connect() -> pymysql.connections.Connection:
            return pymysql.connect(
                host=profile.host or "localhost",
                port=profile.port or cls.kind.default_port,
                user=profile.user or cls.kind.default_user,
                password=password or "",
                database=database,
                ssl=ssl.create_default_context() if profile.tls else None,
                connect_timeout=CONNECT_TIMEOUT,
                autocommit=True,
            )

        try:
            conn = await asyncio.to_thread(_connect)
        except Exception as exc:
            raise ConnectionBackendError(f"Failed to connect to profile '{profile.name}': {exc}") from exc
        LOG.debug("Opened MySQL connection", extra={"profile": profile.name, "database": database})
        return cls(conn, profile, database)

    async def list_databases(self) -> list[str]:
        return await self._column("SHOW DATABASES")

    async def list_tables(self) -> list[str]:
        if not self._database:
            return []
        return await self._column("SHOW TABLES")

    async def list_columns(self, table: str) -> list[str]:
        return await self._column(f"SHOW COLUMNS FROM {_target(table)}")

    async def execute(self, statement: str) -> QueryResult:
        def _run() -> QueryResult:
            with self._conn.cursor() as cursor:
                affected = cursor.execute(statement)
                if cursor.description:
                    columns = [description[0] for description in cursor.description]
                    return QueryResult.from_rows(columns, cursor.fetchall())
                return QueryResult.affected(affected)

        return await self._call(_run)

    async def close(self) -> None:
        await asyncio.to_thread(self._conn.close)

    async def _column(self, query: str) -> list[str]:
        result = await self.execute(query)
        return [str(row[0]) for row in result.rows]

    async def _call(self, func):
        try:
            return await asyncio.to_thread(func)
        except pymysql.err.OperationalError as exc:
            if exc.args and exc.args[0] in _CONNECTION_LOST:
                raise ConnectionBackendError(f"Connection to '{self._profile.name}' lost: {_message(exc)}") from exc
            raise QueryExecutionError(_message(exc)) from exc
        except pymysql.MySQLError as exc:
            raise QueryExecutionError(_message(exc)) from exc


def _message(exc: pymysql.MySQLError) -> str:
    if len(exc.args) >= 2:
        return f"ERROR {exc.args[0]}: {exc.args[1]}"
    return str(exc)


def _target(table: str, schema: str | None = None) -> str:
    database, name = split_qualified(table, schema)
    target = quote_identifier(name, "`")
    return f"{quote_identifier(database, '`')}.{target}" if database else target


def sample_query(table: str, limit: int) -> str:
    return f"SELECT * FROM {_target(table)} LIMIT {limit};"


def describe_query(table: str, schema: str | None = None) -> str:
    return f"DESCRIBE {_target(table, schema)};"


__all__ = ["MySQLAdapter", "describe_query", "sample_query"]
