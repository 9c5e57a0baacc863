"""Connection profile configuration: TOML files and connection strings."""

from __future__ import annotations

import logging
import tomllib
from pathlib import Path, PurePosixPath
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .models import BackendKind, ConnectionProfile

LOG = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".config" / "sqli"
CONFIG_FILE = CONFIG_DIR / "config.toml"
LOCAL_CONFIG_FILE = Path("sqli.toml")
CLICKHOUSE_TLS_PORT = 8443

_SCHEMES: dict[str, tuple[BackendKind, bool]] = {
    "pg": (BackendKind.POSTGRES, False),
    "postgres": (BackendKind.POSTGRES, False),
    "postgresql": (BackendKind.POSTGRES, False),
    "pgs": (BackendKind.POSTGRES, True),
    "postgress": (BackendKind.POSTGRES, True),
    "postgresqls": (BackendKind.POSTGRES, True),
    "my": (BackendKind.MYSQL, False),
    "mysql": (BackendKind.MYSQL, False),
    "mariadb": (BackendKind.MYSQL, False),
    "mys": (BackendKind.MYSQL, True),
    "mysqls": (BackendKind.MYSQL, True),
    "mariadbs": (BackendKind.MYSQL, True),
    "cs": (BackendKind.CASSANDRA, False),
    "cassandra": (BackendKind.CASSANDRA, False),
    "scylla": (BackendKind.CASSANDRA, False),
    "css": (BackendKind.CASSANDRA, True),
    "cassandras": (BackendKind.CASSANDRA, True),
    "scyllas": (BackendKind.CASSANDRA, True),
    "ch": (BackendKind.CLICKHOUSE, False),
    "clickhouse": (BackendKind.CLICKHOUSE, False),
    "chh": (BackendKind.CLICKHOUSE, False),
    "clickhouse-http": (BackendKind.CLICKHOUSE, False),
    "chs": (BackendKind.CLICKHOUSE, True),
    "clickhouses": (BackendKind.CLICKHOUSE, True),
    "chhs": (BackendKind.CLICKHOUSE, True),
    "clickhouse-https": (BackendKind.CLICKHOUSE, True),
    "sq": (BackendKind.SQLITE, False),
    "sqlite": (BackendKind.SQLITE, False),
    "sqlite3": (BackendKind.SQLITE, False),
}

_SERVER_FIELDS = ("host", "port", "user", "password", "password_cmd", "database", "protocol")


class ConfigError(ValueError):
    """Raised for malformed profiles, connection strings or template entries."""


class ConnectionProfileConfig(BaseModel):
    """One ``[name]`` table of the config file."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    kind: BackendKind = Field(alias="type")
    host: str | None = None
    port: int | None = Field(default=None, ge=1, le=65535)
    user: str | None = None
    password: str | None = None
    password_cmd: str | None = None
    database: str | None = None
    path: str | None = None
    tls: bool = False
    readonly: bool = False
    group: str | None = None
    protocol: str | None = None

    @field_validator("kind", mode="before")
    @classmethod
    def _parse_kind(cls, value: Any) -> BackendKind:
        if isinstance(value, BackendKind):
            return value
        return BackendKind.parse(str(value))

    @field_validator("protocol")
    @classmethod
    def _http_only(cls, value: str | None) -> str | None:
        if value is not None and value.lower() not in {"http", "https"}:
            raise ValueError(f"unsupported protocol '{value}', only the ClickHouse HTTP interface is available")
        return value

    def to_profile(self, name: str) -> ConnectionProfile:
        """Apply per-backend defaults and build the runtime profile."""

        if self.kind is BackendKind.SQLITE:
            stray = [key for key in _SERVER_FIELDS if getattr(self, key) is not None]
            if self.tls:
                stray.append("tls")
            if stray:
                fields = ", ".join(f"'{key}'" for key in stray)
                raise ConfigError(f"Profile '{name}': {fields} do not apply to SQLite profiles.")
            if not self.path:
                raise ConfigError(f"Profile '{name}': SQLite profiles need a 'path'.")
            return ConnectionProfile(
                name=name,
                kind=self.kind,
                path=self.path,
                readonly=self.readonly,
                group=self.group,
            )
        if self.path is not None:
            raise ConfigError(f"Profile '{name}': 'path' only applies to SQLite profiles.")
        return ConnectionProfile(
            name=name,
            kind=self.kind,
            host=self.host or "localhost",
            port=self.port or default_port(self.kind, self.tls),
            user=self.user or self.kind.default_user,
            password=self.password,
            password_cmd=self.password_cmd,
            database=self.database,
            tls=self.tls,
            readonly=self.readonly,
            group=self.group,
        )


class AppConfig(BaseModel):
    """Profiles loaded at startup plus the problems found while loading them."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    profiles: list[ConnectionProfile] = Field(default_factory=lambda: list(_default_profiles()))
    errors: list[str] = Field(default_factory=list)
    source: Path | None = None

    @property
    def groups(self) -> list[str]:
        seen: dict[str, None] = {}
        for profile in self.profiles:
            if profile.group:
                seen.setdefault(profile.group, None)
        return list(seen)

    def profile(self, name: str) -> ConnectionProfile | None:
        return next((profile for profile in self.profiles if profile.name == name), None)

    def with_profile(self, profile: ConnectionProfile) -> AppConfig:
        """Return a copy with ``profile`` added (or replacing one with the same name)."""

        profiles = [entry for entry in self.profiles if entry.name != profile.name]
        profiles.insert(0, profile)
        return self.model_copy(update={"profiles": profiles})


def default_port(kind: BackendKind, tls: bool = False) -> int | None:
    if kind is BackendKind.CLICKHOUSE and tls:
        return CLICKHOUSE_TLS_PORT
    return kind.default_port


def resolve_config_path(path: Path | None = None) -> Path | None:
    """Explicit path, else ``./sqli.toml``, else the per-user file."""

    if path is not None:
        return path
    for candidate in (LOCAL_CONFIG_FILE, CONFIG_FILE):
        if candidate.exists():
            return candidate
    return None


def load_config(path: Path | None = None) -> AppConfig:
    """Load profiles from disk; fall back to the default profile when none are usable."""

    source = resolve_config_path(path)
    if source is None:
        LOG.debug("No config file found, using defaults")
        return AppConfig()
    try:
        text = source.read_text(encoding="utf-8")
    except OSError as exc:
        LOG.warning("Failed to read config file", extra={"path": str(source)})
        return AppConfig(errors=[f"Failed to read {source}: {exc}"], source=source)
    profiles, errors = parse_profiles(text)
    for error in errors:
        LOG.warning("Skipping profile", extra={"path": str(source), "error": error})
    if not profiles:
        return AppConfig(errors=errors, source=source)
    return AppConfig(profiles=profiles, errors=errors, source=source)


def parse_profiles(text: str) -> tuple[list[ConnectionProfile], list[str]]:
    """Parse every ``[name]`` table; invalid entries become error messages."""

    try:
        raw = tomllib.loads(text)
    except tomllib.TOMLDecodeError as exc:
        return [], [f"Invalid TOML: {exc}"]
    profiles: list[ConnectionProfile] = []
    errors: list[str] = []
    for name, entry in raw.items():
        if not isinstance(entry, dict):
            errors.append(f"Profile '{name}': expected a table, got {type(entry).__name__}.")
            continue
        try:
            profiles.append(ConnectionProfileConfig.model_validate(entry).to_profile(name))
        except ValidationError as exc:
            problems = "; ".join(_describe_error(error) for error in exc.errors())
            errors.append(f"Profile '{name}': {problems}")
        except ConfigError as exc:
            errors.append(str(exc))
    return profiles, errors


def _describe_error(error: dict[str, Any]) -> str:
    location = ".".join(str(part) for part in error.get("loc", ()))
    message = str(error.get("msg", "invalid value"))
    return f"{location}: {message}" if location else message


def dump_profile(profile: ConnectionProfile) -> str:
    """Render one profile as a TOML table that parses back to the same profile."""

    lines = [f"[{_toml_key(profile.name)}]", f"type = {_toml_string(profile.kind.value)}"]
    for key in ("host", "port", "user", "password", "password_cmd", "database", "path", "group"):
        value = getattr(profile, key)
        if value is None:
            continue
        lines.append(f"{key} = {value}" if isinstance(value, int) else f"{key} = {_toml_string(value)}")
    if profile.tls:
        lines.append("tls = true")
    if profile.readonly:
        lines.append("readonly = true")
    return "\n".join(lines) + "\n"


def _toml_string(value: str) -> str:
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n").replace("\t", "\\t")
    return f'"{escaped}"'


def _toml_key(name: str) -> str:
    if name and all(char.isalnum() or char in "-_" for char in name):
        return name
    return _toml_string(name)


def parse_connection_string(url: str) -> ConnectionProfile:
    """Build an ad-hoc profile from ``<scheme>://[user[:pass]@]host[:port][/db]``."""

    scheme, separator, rest = url.partition("://")
    if not separator:
        raise ConfigError("Invalid URL: missing '://' separator")
    try:
        kind, tls = _SCHEMES[scheme.lower()]
    except KeyError:
        raise ConfigError(
            f"Unknown database type: '{scheme}'. Use pg, my, cs, ch, chh, or sq (add 's' for TLS)"
        ) from None

    if kind is BackendKind.SQLITE:
        if not rest:
            raise ConfigError("SQLite requires a file path")
        if not rest.startswith(("/", ".")):
            raise ConfigError("Remote SQLite over SSH is not supported; use sq:///absolute/path or sq://./relative")
        return ConnectionProfile(name=PurePosixPath(rest).name or rest, kind=kind, path=rest)

    auth_host, _, database = rest.rpartition("/") if "/" in rest else (rest, "", "")
    user: str | None = kind.default_user
    password: str | None = None
    host_port = auth_host
    if "@" in auth_host:
        auth, _, host_port = auth_host.rpartition("@")
        user, colon, secret = auth.partition(":")
        password = secret if colon else None
    host, colon, port_text = host_port.rpartition(":") if ":" in host_port else (host_port, "", "")
    if colon:
        try:
            port = int(port_text)
        except ValueError:
            raise ConfigError(f"Invalid port: '{port_text}'") from None
        if not 0 < port < 65536:
            raise ConfigError(f"Invalid port: '{port_text}'")
    else:
        port = default_port(kind, tls)
    host = host or "localhost"
    prefix = f"{user}@{host}" if user else host
    name = f"{prefix}/{database}" if database else prefix
    return ConnectionProfile(
        name=name,
        kind=kind,
        host=host,
        port=port,
        user=user or None,
        password=password,
        database=database or None,
        tls=tls,
    )


def _default_profiles() -> tuple[ConnectionProfile, ...]:
    """Profile offered when no configuration exists yet."""

    return (
        ConnectionProfile(
            name="localhost",
            kind=BackendKind.POSTGRES,
            host="localhost",
            port=5432,
            user="postgres",
        ),
    )


__all__ = [
    "AppConfig",
    "CONFIG_FILE",
    "ConfigError",
    "ConnectionProfileConfig",
    "LOCAL_CONFIG_FILE",
    "default_port",
    "dump_profile",
    "load_config",
    "parse_connection_string",
    "parse_profiles",
    "resolve_config_path",
]
