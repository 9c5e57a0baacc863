"""Adapter-level tests that need no running database server."""

from __future__ import annotations

import json
import sqlite3
from pathlib import Path

import httpx
import pymysql
import pytest

from sqli.backends import ClickHouseAdapter, ConnectionBackendError, SQLiteAdapter
from sqli.backends.base import quote_identifier, quote_literal, split_qualified
from sqli.backends.mysql import _message
from sqli.backends.postgres import PostgresAdapter, _affected_from_status
from sqli.models import BackendKind, ConnectionProfile
from sqli.query import QueryExecutionError


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


def _clickhouse(handler) -> ClickHouseAdapter:  # type: ignore[no-untyped-def]
    profile = ConnectionProfile(name="ch", kind=BackendKind.CLICKHOUSE, host="ch", port=8123)
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://ch:8123")
    return ClickHouseAdapter(client, profile, "analytics")


@pytest.mark.anyio
async def test_clickhouse_reads_use_json_format() -> None:
    seen: list[tuple[str | None, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.url.params.get("database"), request.content.decode()))
        return httpx.Response(
            200,
            json={
                "meta": [{"name": "id", "type": "UInt32"}, {"name": "name", "type": "String"}],
                "data": [{"id": 1, "name": "alpha"}, {"id": 2, "name": "beta"}],
            },
        )

    adapter = _clickhouse(handler)
    result = await adapter.execute("SELECT id, name FROM events;")
    await adapter.close()

    assert seen == [("analytics", "SELECT id, name FROM events\nFORMAT JSON")]
    assert result.columns == ("id", "name")
    assert result.rows == ((1, "alpha"), (2, "beta"))


@pytest.mark.anyio
async def test_clickhouse_format_clause_survives_trailing_comment() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        # The server ignores everything after "--" up to the end of the line.
        sql = "\n".join(line.split("--", 1)[0] for line in request.content.decode().splitlines())
        if "FORMAT JSON" not in sql:
            return httpx.Response(200, text="1\n")
        return httpx.Response(200, json={"meta": [{"name": "x", "type": "UInt8"}], "data": [{"x": 1}]})

    adapter = _clickhouse(handler)
    result = await adapter.execute("SELECT 1 AS x -- newest first")

    assert result.columns == ("x",)
    assert result.rows == ((1,),)


@pytest.mark.anyio
async def test_clickhouse_non_json_body_is_a_query_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="1\n")

    adapter = _clickhouse(handler)

    with pytest.raises(QueryExecutionError, match="Unexpected ClickHouse response"):
        await adapter.execute("SELECT 1")


@pytest.mark.anyio
async def test_clickhouse_writes_report_summary_rows() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, headers={"X-ClickHouse-Summary": json.dumps({"written_rows": "3"})})

    adapter = _clickhouse(handler)
    result = await adapter.execute("INSERT INTO events VALUES (1), (2), (3)")

    assert result.rows_affected == 3
    assert not result.returns_rows


@pytest.mark.anyio
async def test_clickhouse_errors_carry_server_text() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, text="Code: 62. DB::Exception: Syntax error\n")

    adapter = _clickhouse(handler)

    with pytest.raises(QueryExecutionError, match="Code: 62"):
        await adapter.execute("SELEC 1")


@pytest.mark.anyio
async def test_clickhouse_transport_failures_are_connection_errors() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    adapter = _clickhouse(handler)

    with pytest.raises(ConnectionBackendError, match="connection refused"):
        await adapter.list_databases()


@pytest.mark.anyio
async def test_sqlite_adapter_lists_and_executes(tmp_path: Path) -> None:
    path = tmp_path / "inventory.db"
    conn = sqlite3.connect(path)
    conn.execute("CREATE TABLE items (sku TEXT, qty INTEGER)")
    conn.commit()
    conn.close()
    profile = ConnectionProfile(name="inv", kind=BackendKind.SQLITE, path=str(path))

    adapter = await SQLiteAdapter.open(profile, None, None)
    try:
        assert await adapter.list_databases() == ["inventory.db"]
        assert await adapter.list_tables() == ["items"]
        assert await adapter.list_columns("items") == ["sku", "qty"]
        written = await adapter.execute("INSERT INTO items VALUES ('a-1', 4)")
        assert written.rows_affected == 1
        with pytest.raises(QueryExecutionError):
            await adapter.execute("SELECT nope FROM items")
    finally:
        await adapter.close()


@pytest.mark.parametrize(
    ("status", "expected"),
    [("INSERT 0 3", 3), ("UPDATE 5", 5), ("DELETE 0", 0), ("CREATE TABLE", None), ("BEGIN", None)],
)
def test_postgres_command_tags(status: str, expected: int | None) -> None:
    assert _affected_from_status(status) == expected


class _Attribute:
    def __init__(self, name: str) -> None:
        self.name = name


class _Record(dict):
    pass


class _PreparedStatement:
    def __init__(self, columns: list[str], records: list[_Record], status: str) -> None:
        self._columns = columns
        self._records = records
        self._status = status

    def get_attributes(self) -> tuple[_Attribute, ...]:
        return tuple(_Attribute(name) for name in self._columns)

    async def fetch(self) -> list[_Record]:
        return self._records

    def get_statusmsg(self) -> str:
        return self._status


class _PostgresConnection:
    def __init__(self, prepared: _PreparedStatement) -> None:
        self.prepared = prepared
        self.statements: list[str] = []

    async def prepare(self, statement: str) -> _PreparedStatement:
        self.statements.append(statement)
        return self.prepared


@pytest.mark.anyio
async def test_postgres_returning_clause_yields_rows() -> None:
    prepared = _PreparedStatement(["id"], [_Record(id=7), _Record(id=8)], "INSERT 0 2")
    conn = _PostgresConnection(prepared)
    adapter = PostgresAdapter(conn, ConnectionProfile(name="pg", kind=BackendKind.POSTGRES))  # type: ignore[arg-type]

    result = await adapter.execute("INSERT INTO t (a) VALUES (1), (2) RETURNING id")

    assert conn.statements == ["INSERT INTO t (a) VALUES (1), (2) RETURNING id"]
    assert result.columns == ("id",)
    assert result.rows == ((7,), (8,))


@pytest.mark.anyio
async def test_postgres_plain_writes_report_the_command_tag() -> None:
    conn = _PostgresConnection(_PreparedStatement([], [], "UPDATE 3"))
    adapter = PostgresAdapter(conn, ConnectionProfile(name="pg", kind=BackendKind.POSTGRES))  # type: ignore[arg-type]

    result = await adapter.execute("UPDATE t SET a = 1")

    assert not result.returns_rows
    assert result.rows_affected == 3


def test_mysql_error_messages_include_the_code() -> None:
    error = pymysql.err.ProgrammingError(1064, "You have an error in your SQL syntax")

    assert _message(error) == "ERROR 1064: You have an error in your SQL syntax"


def test_quoting_helpers() -> None:
    assert quote_literal("O'Brien") == "'O''Brien'"
    assert quote_identifier('we"ird') == '"we""ird"'
    assert quote_identifier("or`der", "`") == "`or``der`"
    assert split_qualified("public.users") == ("public", "users")
    assert split_qualified("users", "sales") == ("sales", "users")
    assert split_qualified("users") == (None, "users")
