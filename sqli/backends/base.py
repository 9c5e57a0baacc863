"""Adapter protocol shared by the backend modules."""

from __future__ import annotations

from typing import ClassVar, Protocol, runtime_checkable

from ..models import BackendKind, ConnectionProfile
from ..query import QueryResult


class ConnectionBackendError(RuntimeError):
    """Raised when a backend cannot connect or loses its connection."""


@runtime_checkable
class BackendAdapter(Protocol):
    """One live connection to a database server or file.

    Every method is a coroutine executed on the bridge event loop. Adapters
    wrapping blocking drivers hand the actual work to ``asyncio.to_thread``.
    """

    kind: ClassVar[BackendKind]
    system_databases: ClassVar[frozenset[str]]

    @classmethod
    async def open(
        cls,
        profile: ConnectionProfile,
        database: str | None,
        password: str | None,
    ) -> "BackendAdapter":
        """Open a connection bound to ``database``."""

    async def list_databases(self) -> list[str]:
        """Every database (or keyspace) visible to the connection."""

    async def list_tables(self) -> list[str]:
        """Tables of the database the connection is bound to."""

    async def list_columns(self, table: str) -> list[str]:
        """Column names of ``table`` in declaration order."""

    async def execute(self, statement: str) -> QueryResult:
        """Run exactly one statement."""

    async def close(self) -> None:
        """Release the connection."""


def quote_literal(value: str) -> str:
    """Single-quoted SQL string literal."""

    return "'" + value.replace("'", "''") + "'"


def quote_identifier(name: str, quote: str = '"') -> str:
    return quote + name.replace(quote, quote * 2) + quote


def split_qualified(table: str, schema: str | None = None) -> tuple[str | None, str]:
    """Split ``schema.table``; ``schema`` only applies to unqualified names."""

    if "." in table:
        qualifier, name = table.split(".", 1)
        return qualifier, name
    return schema, table


__all__ = [
    "BackendAdapter",
    "ConnectionBackendError",
    "quote_identifier",
    "quote_literal",
    "split_qualified",
]
