"""Cassandra/ScyllaDB adapter built on the DataStax driver."""

from __future__ import annotations

import asyncio
import logging
import ssl

from cassandra.auth import PlainTextAuthProvider
from cassandra.cluster import EXEC_PROFILE_DEFAULT, Cluster, ExecutionProfile, NoHostAvailable, Session
from cassandra.query import tuple_factory

from ..models import BackendKind, ConnectionProfile
from ..query import QueryExecutionError, QueryResult
from .base import ConnectionBackendError, quote_literal, split_qualified

LOG = logging.getLogger(__name__)

CONNECT_TIMEOUT = 10


class CassandraAdapter:
    """Driver session bound to one keyspace."""

    kind = BackendKind.CASSANDRA
    system_databases = frozenset(
        {
            "system",
            "system_schema",
            "system_traces",
            "system_auth",
            "system_distributed",
            "system_distributed_everywhere",
            "system_virtual_schema",
            "system_replicated_keys",
        }
    )

    def __init__(self, cluster: Cluster, session: Session, profile: ConnectionProfile, keyspace: str | None) -> None:
        self._cluster = cluster
        self._session = session
        self._profile = profile
        self._keyspace = keyspace

    @classmethod
    async def open(
        cls,
        profile: ConnectionProfile,
        database: str | None,
        password: str | None,
    ) -> "CassandraAdapter":
        def _connect() -> tuple[Cluster, Session]:
            auth = None
            if profile.user:
                auth = PlainTextAuthProvider(username=profile.user, password=password or "")
            cluster = Cluster(
                [profile.host or "localhost"],
                port=profile.port or cls.kind.default_port,
                auth_provider=auth,
                ssl_context=ssl.create_default_context() if profile.tls else None,
                execution_profiles={EXEC_PROFILE_DEFAULT: ExecutionProfile(row_factory=tuple_factory)},
                connect_timeout=CONNECT_TIMEOUT,
            )
            try:
                return cluster, cluster.connect(database)
            except Exception:
                cluster.shutdown()
                raise

        try:
            cluster, session = await asyncio.to_thread(_connect)
        except Exception as exc:
            raise ConnectionBackendError(f"Failed to connect to profile '{profile.name}': {exc}") from exc
        LOG.debug("Opened Cassandra session", extra={"profile": profile.name, "keyspace": database})
        return cls(cluster, session, profile, database)

    async def list_databases(self) -> list[str]:
        result = await self.execute("SELECT keyspace_name FROM system_schema.keyspaces")
        return sorted(str(row[0]) for row in result.rows)

    async def list_tables(self) -> list[str]:
        if not self._keyspace:
            return []
        result = await self.execute(
            f"SELECT table_name FROM system_schema.tables WHERE keyspace_name = {quote_literal(self._keyspace)}"
        )
        return sorted(str(row[0]) for row in result.rows)

    async def list_columns(self, table: str) -> list[str]:
        keyspace, name = split_qualified(table)
        keyspace = keyspace or self._keyspace
        if not keyspace:
            return []
        result = await self.execute(
            "SELECT column_name FROM system_schema.columns "
            f"WHERE keyspace_name = {quote_literal(keyspace)} AND table_name = {quote_literal(name)}"
        )
        return [str(row[0]) for row in result.rows]

    async def execute(self, statement: str) -> QueryResult:
        def _run() -> QueryResult:
            result_set = self._session.execute(statement)
            columns = result_set.column_names
            if columns:
                return QueryResult.from_rows(columns, list(result_set))
            return QueryResult.affected(None)

        try:
            return await asyncio.to_thread(_run)
        except NoHostAvailable as exc:
            raise ConnectionBackendError(f"Connection to '{self._profile.name}' lost: {exc}") from exc
        except Exception as exc:
            raise QueryExecutionError(str(exc)) from exc

    async def close(self) -> None:
        await asyncio.to_thread(self._cluster.shutdown)


def sample_query(table: str, limit: int) -> str:
    return f"SELECT * FROM {table} LIMIT {limit};"


def describe_query(table: str, schema: str | None = None) -> str:
    keyspace, name = split_qualified(table, schema)
    where = f"table_name = {quote_literal(name)}"
    if keyspace:
        where = f"keyspace_name = {quote_literal(keyspace)} AND {where}"
    else:
        where = f"{where} ALLOW FILTERING"
    return f"SELECT column_name, type, kind FROM system_schema.columns WHERE {where};"


__all__ = ["CassandraAdapter", "describe_query", "sample_query"]
