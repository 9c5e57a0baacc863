"""ClickHouse adapter speaking the HTTP interface through httpx."""

from __future__ import annotations

import json
import logging

import httpx

from ..models import BackendKind, ConnectionProfile
from ..query import QueryExecutionError, QueryResult, returns_rows
from .base import ConnectionBackendError, quote_literal, split_qualified

LOG = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30.0


class ClickHouseAdapter:
    """Stateless HTTP client; every statement is one POST."""

    kind = BackendKind.CLICKHOUSE
    system_databases = frozenset({"system", "INFORMATION_SCHEMA", "information_schema"})

    def __init__(self, client: httpx.AsyncClient, profile: ConnectionProfile, database: str | None) -> None:
        self._client = client
        self._profile = profile
        self._database = database

    @classmethod
    async def open(
        cls,
        profile: ConnectionProfile,
        database: str | None,
        password: str | None,
    ) -> "ClickHouseAdapter":
        scheme = "https" if profile.tls else "http"
        host = profile.host or "localhost"
        port = profile.port or cls.kind.default_port
        headers = {"X-ClickHouse-User": profile.user or cls.kind.default_user or "default"}
        if password:
            headers["X-ClickHouse-Key"] = password
        client = httpx.AsyncClient(base_url=f"{scheme}://{host}:{port}", headers=headers, timeout=REQUEST_TIMEOUT)
        # The first request performs the handshake.
        LOG.debug("Prepared ClickHouse HTTP client", extra={"profile": profile.name, "database": database})
        return cls(client, profile, database or cls.kind.default_database)

    async def list_databases(self) -> list[str]:
        result = await self.execute("SELECT name FROM system.databases ORDER BY name")
        return [str(row[0]) for row in result.rows]

    async def list_tables(self) -> list[str]:
        result = await self.execute("SELECT name FROM system.tables WHERE database = currentDatabase() ORDER BY name")
        return [str(row[0]) for row in result.rows]

    async def list_columns(self, table: str) -> list[str]:
        database, name = split_qualified(table)
        scope = quote_literal(database) if database else "currentDatabase()"
        result = await self.execute(
            f"SELECT name FROM system.columns WHERE database = {scope} AND table = {quote_literal(name)} "
            "ORDER BY position"
        )
        return [str(row[0]) for row in result.rows]

    async def execute(self, statement: str) -> QueryResult:
        if returns_rows(statement):
            # On its own line so a trailing "--" comment cannot swallow it.
            response = await self._post(f"{statement.rstrip().rstrip(';')}\nFORMAT JSON")
            return _result_from_json(response)
        response = await self._post(statement)
        return QueryResult.affected(_written_rows(response))

    async def close(self) -> None:
        await self._client.aclose()

    async def _post(self, sql: str) -> httpx.Response:
        params = {"database": self._database} if self._database else None
        try:
            response = await self._client.post("/", content=sql.encode("utf-8"), params=params)
        except httpx.TransportError as exc:
            raise ConnectionBackendError(f"ClickHouse request for '{self._profile.name}' failed: {exc}") from exc
        if not response.is_success:
            raise QueryExecutionError(response.text.strip() or f"HTTP {response.status_code}")
        return response


def _result_from_json(response: httpx.Response) -> QueryResult:
    try:
        payload = response.json()
    except ValueError as exc:
        raise QueryExecutionError(f"Unexpected ClickHouse response: {exc}") from exc
    if not isinstance(payload, dict) or "meta" not in payload or "data" not in payload:
        raise QueryExecutionError(f"Unexpected ClickHouse response: {response.text.strip()[:200]}")
    columns = [str(entry["name"]) for entry in payload["meta"]]
    rows = [tuple(record.get(column) for column in columns) for record in payload["data"]]
    return QueryResult.from_rows(columns, rows)


def _written_rows(response: httpx.Response) -> int | None:
    summary = response.headers.get("X-ClickHouse-Summary")
    if not summary:
        return None
    try:
        return int(json.loads(summary).get("written_rows", 0))
    except (ValueError, TypeError):
        return None


def sample_query(table: str, limit: int) -> str:
    return f"SELECT * FROM {table} LIMIT {limit}"


def describe_query(table: str, schema: str | None = None) -> str:
    database, name = split_qualified(table, schema)
    target = f"{database}.{name}" if database else name
    return f"DESCRIBE TABLE {target}"


__all__ = ["ClickHouseAdapter", "describe_query", "sample_query"]
