"""Backend dispatch layer: one blocking client facade per live connection."""

from __future__ import annotations

import asyncio
import logging
import subprocess
import threading
import time
from typing import Any, Awaitable, Callable, Coroutine, TypeVar, assert_never

from .backends import (
    BackendAdapter,
    CassandraAdapter,
    ClickHouseAdapter,
    ConnectionBackendError,
    MySQLAdapter,
    PostgresAdapter,
    SQLiteAdapter,
)
from .backends import cassandra, clickhouse, mysql, postgres, sqlite
from .models import BackendKind, ConnectionProfile
from .query import QueryExecutionError, QueryResult, check_read_only, split_statements

LOG = logging.getLogger(__name__)

T = TypeVar("T")

AdapterOpener = Callable[[ConnectionProfile, "str | None", "str | None"], Awaitable[BackendAdapter]]

PASSWORD_CMD_TIMEOUT = 30


class AsyncBridge:
    """Event loop on a daemon thread that synchronous callers block on."""

    def __init__(self, *, name: str = "sqli-backend") -> None:
        self._loop = asyncio.new_event_loop()
        self._closed = False
        self._loop_thread = threading.Thread(
            target=self._loop.run_forever,
            name=name,
            daemon=True,
        )
        self._loop_thread.start()

    @property
    def closed(self) -> bool:
        return self._closed

    def run(self, coro: Coroutine[Any, Any, T]) -> T:
        """Run ``coro`` on the bridge loop and wait for its result."""

        if self._closed:
            coro.close()
            raise ConnectionBackendError("The backend bridge has been shut down.")
        future = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result()

    def shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._loop_thread.join(timeout=1)
        if not self._loop.is_running():
            self._loop.close()


def adapter_type(kind: BackendKind) -> type[BackendAdapter]:
    match kind:
        case BackendKind.POSTGRES:
            return PostgresAdapter
        case BackendKind.MYSQL:
            return MySQLAdapter
        case BackendKind.CASSANDRA:
            return CassandraAdapter
        case BackendKind.CLICKHOUSE:
            return ClickHouseAdapter
        case BackendKind.SQLITE:
            return SQLiteAdapter
        case _:
            assert_never(kind)


def resolve_password(profile: ConnectionProfile) -> tuple[str | None, str | None]:
    """Return ``(password, warning)`` for a profile.

    ``password_cmd`` wins when it succeeds; otherwise the plain password is
    used and the warning explains why.
    """

    if not profile.password_cmd:
        return profile.password, None
    try:
        completed = subprocess.run(
            ["sh", "-c", profile.password_cmd],
            capture_output=True,
            text=True,
            check=True,
            timeout=PASSWORD_CMD_TIMEOUT,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        LOG.warning("password_cmd failed", extra={"profile": profile.name, "error": str(exc)})
        return profile.password, f"password_cmd failed for '{profile.name}': {exc}"
    secret = completed.stdout.strip()
    if not secret:
        return profile.password, f"password_cmd for '{profile.name}' printed nothing"
    return secret, None


def connect(
    profile: ConnectionProfile,
    database: str | None = None,
    *,
    bridge: AsyncBridge,
) -> "DatabaseClient":
    """Open a client for ``profile``, bound to ``database`` or the profile default."""

    password, warning = resolve_password(profile)
    target = database or profile.database or profile.kind.default_database
    opener = adapter_type(profile.kind).open
    LOG.debug("Connecting", extra={"profile": profile.name, "kind": profile.kind.value, "database": target})
    adapter = bridge.run(opener(profile, target, password))
    return DatabaseClient(
        profile,
        adapter,
        bridge=bridge,
        database=target,
        password=password,
        opener=opener,
        warning=warning,
    )


class DatabaseClient:
    """Uniform synchronous operations over one adapter."""

    def __init__(
        self,
        profile: ConnectionProfile,
        adapter: BackendAdapter,
        *,
        bridge: AsyncBridge,
        database: str | None = None,
        password: str | None = None,
        opener: AdapterOpener | None = None,
        warning: str | None = None,
    ) -> None:
        self.profile = profile
        self.database = database
        self.warning = warning
        self._adapter = adapter
        self._bridge = bridge
        self._password = password
        self._opener = opener or adapter_type(profile.kind).open
        self._closed = False

    @property
    def kind(self) -> BackendKind:
        return self.profile.kind

    @property
    def closed(self) -> bool:
        return self._closed

    def list_databases(self, include_system: bool = False) -> list[str]:
        names = self._bridge.run(self._adapter.list_databases())
        if include_system:
            return names
        hidden = self._adapter.system_databases
        return [name for name in names if name not in hidden]

    def list_tables(self, database: str | None = None) -> list[str]:
        """List tables, switching to ``database`` first when it differs.

        The switch only commits once the new database's tables are listed.
        """

        if database is None or database == self.database:
            return self._bridge.run(self._adapter.list_tables())
        adapter = self._bridge.run(self._opener(self.profile, database, self._password))
        try:
            tables = self._bridge.run(adapter.list_tables())
        except Exception:
            self._close_adapter(adapter)
            raise
        self._swap_adapter(adapter, database)
        return tables

    def list_columns(self, table: str) -> list[str]:
        return self._bridge.run(self._adapter.list_columns(table))

    def describe_table(self, table: str, schema: str | None = None) -> QueryResult:
        return self.execute_query(self.describe_query(table, schema))

    def execute_query(self, text: str) -> QueryResult:
        """Run every statement in ``text`` in order.

        The last row-returning result wins; otherwise affected counts are
        summed. Read-only profiles are checked before anything is sent.
        """

        statements = split_statements(text)
        if not statements:
            raise QueryExecutionError("Provide SQL to execute.")
        if self.profile.readonly:
            check_read_only(statements)
        started = time.perf_counter()
        rows_result: QueryResult | None = None
        affected: int | None = None
        for statement in statements:
            LOG.debug("Executing statement", extra={"profile": self.profile.name, "statement": statement})
            result = self._bridge.run(self._adapter.execute(statement))
            if result.returns_rows:
                rows_result = result
            elif result.rows_affected is not None:
                affected = (affected or 0) + result.rows_affected
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        if rows_result is not None:
            return rows_result.with_elapsed(elapsed_ms)
        return QueryResult.affected(affected, elapsed_ms=elapsed_ms)

    def use_database(self, name: str) -> None:
        """Rebind the client to ``name`` by opening a fresh adapter."""

        adapter = self._bridge.run(self._opener(self.profile, name, self._password))
        self._swap_adapter(adapter, name)

    def select_sample_query(self, table: str, limit: int = 100) -> str:
        match self.kind:
            case BackendKind.POSTGRES:
                return postgres.sample_query(table, limit)
            case BackendKind.MYSQL:
                return mysql.sample_query(table, limit)
            case BackendKind.CASSANDRA:
                return cassandra.sample_query(table, limit)
            case BackendKind.CLICKHOUSE:
                return clickhouse.sample_query(table, limit)
            case BackendKind.SQLITE:
                return sqlite.sample_query(table, limit)
            case _:
                assert_never(self.kind)

    def describe_query(self, table: str, schema: str | None = None) -> str:
        match self.kind:
            case BackendKind.POSTGRES:
                return postgres.describe_query(table, schema)
            case BackendKind.MYSQL:
                return mysql.describe_query(table, schema)
            case BackendKind.CASSANDRA:
                return cassandra.describe_query(table, schema or self.database)
            case BackendKind.CLICKHOUSE:
                return clickhouse.describe_query(table, schema or self.database)
            case BackendKind.SQLITE:
                return sqlite.describe_query(table, schema)
            case _:
                assert_never(self.kind)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._close_adapter(self._adapter)

    def _swap_adapter(self, adapter: BackendAdapter, database: str) -> None:
        previous, self._adapter = self._adapter, adapter
        self.database = database
        self._close_adapter(previous)
        LOG.debug("Switched database", extra={"profile": self.profile.name, "database": database})

    def _close_adapter(self, adapter: BackendAdapter) -> None:
        try:
            self._bridge.run(adapter.close())
        except Exception:
            LOG.exception("Failed to close connection", extra={"profile": self.profile.name})


__all__ = [
    "AsyncBridge",
    "ConnectionBackendError",
    "DatabaseClient",
    "adapter_type",
    "connect",
    "resolve_password",
]
