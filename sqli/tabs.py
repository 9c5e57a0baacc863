"""Per-tab state owned by the session controller."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .connections import DatabaseClient
from .editor import QueryBuffer
from .models import ConnectionProfile, SchemaSnapshot
from .query import QueryResult


class SidebarListing(str, Enum):
    DATABASES = "databases"
    TABLES = "tables"


@dataclass(slots=True)
class ViewState:
    """Cursor, scroll and selection state of the panes inside one tab."""

    cursor_row: int = 0
    cursor_col: int = 0
    scroll_row: int = 0
    scroll_col: int = 0
    visual_anchor: tuple[int, int] | None = None
    detail_field: int | None = None
    sidebar_index: int = 0

    def reset_result(self) -> None:
        self.cursor_row = 0
        self.cursor_col = 0
        self.scroll_row = 0
        self.scroll_col = 0
        self.visual_anchor = None
        self.detail_field = None


@dataclass(slots=True)
class Tab:
    """One independent workspace: buffer, connection, caches and result."""

    id: int
    buffer: QueryBuffer = field(default_factory=QueryBuffer)
    client: DatabaseClient | None = None
    profile: ConnectionProfile | None = None
    database: str | None = None
    databases: list[str] = field(default_factory=list)
    tables: list[str] | None = None
    columns: dict[str, tuple[str, ...]] = field(default_factory=dict)
    result: QueryResult | None = None
    view: ViewState = field(default_factory=ViewState)
    listing: SidebarListing = SidebarListing.TABLES
    status: str = ""
    include_system: bool = False
    placeholder_mode: bool = False

    @property
    def connected(self) -> bool:
        return self.client is not None

    @property
    def title(self) -> str:
        if self.profile is None:
            return f"{self.id}: [new]"
        if self.database:
            return f"{self.id}: {self.profile.name}/{self.database}"
        return f"{self.id}: {self.profile.name}"

    @property
    def sidebar_items(self) -> list[str]:
        if self.listing is SidebarListing.DATABASES:
            return self.databases
        return self.tables or []

    def schema_snapshot(self) -> SchemaSnapshot:
        """Known tables with whatever columns have been fetched so far."""

        return {table: self.columns.get(table, ()) for table in self.tables or ()}

    def invalidate_schema(self, tables: list[str] | None = None) -> None:
        self.tables = tables
        self.columns.clear()
        self.view.sidebar_index = 0

    def disconnect(self) -> None:
        if self.client is not None:
            self.client.close()
        self.client = None
        self.database = None
        self.databases = []
        self.invalidate_schema()


__all__ = ["SidebarListing", "Tab", "ViewState"]
