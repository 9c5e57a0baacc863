"""SQLite adapter over the standard library driver."""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from pathlib import Path

from ..models import BackendKind, ConnectionProfile
from ..query import QueryExecutionError, QueryResult
from .base import ConnectionBackendError, quote_identifier

LOG = logging.getLogger(__name__)


class SQLiteAdapter:
    """File-backed connection; the file name stands in for the database list."""

    kind = BackendKind.SQLITE
    system_databases: frozenset[str] = frozenset()

    def __init__(self, conn: sqlite3.Connection, path: Path) -> None:
        self._conn = conn
        self._path = path

    @classmethod
    async def open(
        cls,
        profile: ConnectionProfile,
        database: str | None,
        password: str | None,
    ) -> "SQLiteAdapter":
        if not profile.path:
            raise ConnectionBackendError(f"Profile '{profile.name}' has no SQLite path.")
        path = Path(profile.path).expanduser().resolve()
        if not path.is_file():
            raise ConnectionBackendError(f"SQLite database file not found: {path}")
        mode = "ro" if profile.readonly else "rw"

        def _connect() -> sqlite3.Connection:
            conn = sqlite3.connect(
                f"{path.as_uri()}?mode={mode}",
                uri=True,
                check_same_thread=False,
                isolation_level=None,
            )
            try:
                conn.execute("PRAGMA schema_version").fetchone()
            except sqlite3.Error:
                conn.close()
                raise
            return conn

        try:
            conn = await asyncio.to_thread(_connect)
        except sqlite3.Error as exc:
            raise ConnectionBackendError(f"Failed to open SQLite database '{path}': {exc}") from exc
        LOG.debug("Opened SQLite database", extra={"profile": profile.name, "path": str(path)})
        return cls(conn, path)

    async def list_databases(self) -> list[str]:
        return [self._path.name]

    async def list_tables(self) -> list[str]:
        result = await self.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
        )
        return [str(row[0]) for row in result.rows]

    async def list_columns(self, table: str) -> list[str]:
        result = await self.execute(f"PRAGMA table_info({quote_identifier(table)})")
        return [str(row[1]) for row in result.rows]

    async def execute(self, statement: str) -> QueryResult:
        def _run() -> QueryResult:
            cursor = self._conn.execute(statement)
            try:
                if cursor.description is not None:
                    columns = [description[0] for description in cursor.description]
                    return QueryResult.from_rows(columns, cursor.fetchall())
                return QueryResult.affected(cursor.rowcount if cursor.rowcount >= 0 else None)
            finally:
                cursor.close()

        try:
            return await asyncio.to_thread(_run)
        except sqlite3.Error as exc:
            raise QueryExecutionError(str(exc)) from exc

    async def close(self) -> None:
        await asyncio.to_thread(self._conn.close)


def sample_query(table: str, limit: int) -> str:
    return f"SELECT * FROM {quote_identifier(table)} LIMIT {limit};"


def describe_query(table: str, schema: str | None = None) -> str:
    return f"PRAGMA table_info({quote_identifier(table)});"


__all__ = ["SQLiteAdapter", "describe_query", "sample_query"]
