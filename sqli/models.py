"""Shared dataclasses and enums used across connection/session modules."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping

SchemaSnapshot = Mapping[str, tuple[str, ...]]


class BackendKind(str, Enum):
    """The closed set of database technologies sqli can talk to."""

    POSTGRES = "postgres"
    MYSQL = "mysql"
    CASSANDRA = "cassandra"
    CLICKHOUSE = "clickhouse"
    SQLITE = "sqlite"

    @classmethod
    def parse(cls, value: str) -> "BackendKind":
        """Resolve a config/CLI spelling (``pg``, ``mariadb``...) to a kind."""

        try:
            return _KIND_ALIASES[value.strip().lower()]
        except KeyError:
            raise ValueError(f"Unknown database type: '{value}'") from None

    @property
    def label(self) -> str:
        return _KIND_LABELS[self]

    @property
    def short_label(self) -> str:
        return _KIND_SHORT[self]

    @property
    def default_port(self) -> int | None:
        return _DEFAULT_PORTS[self]

    @property
    def default_user(self) -> str | None:
        return _DEFAULT_USERS[self]

    @property
    def default_database(self) -> str | None:
        """Database opened when a profile does not name one."""

        return _DEFAULT_DATABASES[self]


_KIND_ALIASES: dict[str, BackendKind] = {
    "postgres": BackendKind.POSTGRES,
    "postgresql": BackendKind.POSTGRES,
    "pg": BackendKind.POSTGRES,
    "mysql": BackendKind.MYSQL,
    "mariadb": BackendKind.MYSQL,
    "my": BackendKind.MYSQL,
    "cassandra": BackendKind.CASSANDRA,
    "scylla": BackendKind.CASSANDRA,
    "cs": BackendKind.CASSANDRA,
    "clickhouse": BackendKind.CLICKHOUSE,
    "ch": BackendKind.CLICKHOUSE,
    "sqlite": BackendKind.SQLITE,
    "sqlite3": BackendKind.SQLITE,
    "sq": BackendKind.SQLITE,
}

_KIND_LABELS = {
    BackendKind.POSTGRES: "PostgreSQL",
    BackendKind.MYSQL: "MySQL",
    BackendKind.CASSANDRA: "Cassandra",
    BackendKind.CLICKHOUSE: "ClickHouse",
    BackendKind.SQLITE: "SQLite",
}

_KIND_SHORT = {
    BackendKind.POSTGRES: "pg",
    BackendKind.MYSQL: "my",
    BackendKind.CASSANDRA: "cs",
    BackendKind.CLICKHOUSE: "ch",
    BackendKind.SQLITE: "sq",
}

_DEFAULT_PORTS: dict[BackendKind, int | None] = {
    BackendKind.POSTGRES: 5432,
    BackendKind.MYSQL: 3306,
    BackendKind.CASSANDRA: 9042,
    BackendKind.CLICKHOUSE: 8123,
    BackendKind.SQLITE: None,
}

_DEFAULT_USERS: dict[BackendKind, str | None] = {
    BackendKind.POSTGRES: "postgres",
    BackendKind.MYSQL: "root",
    BackendKind.CASSANDRA: None,
    BackendKind.CLICKHOUSE: "default",
    BackendKind.SQLITE: None,
}

_DEFAULT_DATABASES: dict[BackendKind, str | None] = {
    BackendKind.POSTGRES: "postgres",
    BackendKind.MYSQL: None,
    BackendKind.CASSANDRA: None,
    BackendKind.CLICKHOUSE: "default",
    BackendKind.SQLITE: None,
}


class Focus(str, Enum):
    """Pane that currently receives keyboard input."""

    CONNECTION_LIST = "connections"
    SIDEBAR = "sidebar"
    QUERY = "query"
    OUTPUT = "output"


class Mode(str, Enum):
    """Editing mode governing how keys are interpreted."""

    NORMAL = "normal"
    INSERT = "insert"
    COMMAND = "command"
    VISUAL_CELL = "visual"
    VISUAL_LINE = "visual-line"

    @property
    def is_visual(self) -> bool:
        return self in (Mode.VISUAL_CELL, Mode.VISUAL_LINE)


@dataclass(frozen=True, slots=True)
class ConnectionProfile:
    """Runtime representation of a connection profile."""

    name: str
    kind: BackendKind
    host: str | None = None
    port: int | None = None
    user: str | None = None
    password: str | None = None
    password_cmd: str | None = None
    database: str | None = None
    path: str | None = None
    tls: bool = False
    readonly: bool = False
    group: str | None = None

    @property
    def target(self) -> str:
        """Human readable address used in status lines."""

        if self.kind is BackendKind.SQLITE:
            return self.path or self.name
        host = self.host or "localhost"
        return f"{host}:{self.port}" if self.port else host


__all__ = [
    "BackendKind",
    "ConnectionProfile",
    "Focus",
    "Mode",
    "SchemaSnapshot",
]
