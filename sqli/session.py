"""Session controller: tabs, focus, modes and key dispatch."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Protocol, TypeVar

from .config import AppConfig
from .connections import AsyncBridge, ConnectionBackendError, DatabaseClient, connect
from .models import BackendKind, ConnectionProfile, Focus, Mode
from .query import PolicyError, QueryExecutionError, QueryResult, format_cell
from .sqlintel import Suggestion, complete, detect_context, referenced_tables
from .tabs import SidebarListing, Tab
from .templates import GLOBAL_SCOPE, Template, TemplateStore, extract_placeholders, save_templates

LOG = logging.getLogger(__name__)

T = TypeVar("T")

SAMPLE_LIMIT = 100
COLUMN_WIDTH = 16
PAGE_SIZE = 10

ControllerListener = Callable[["SessionController"], None]

_FOCUS_CYCLE = (Focus.SIDEBAR, Focus.QUERY, Focus.OUTPUT)
_FOCUS_NEIGHBOURS: dict[tuple[Focus, str], Focus] = {
    (Focus.QUERY, "ctrl+h"): Focus.SIDEBAR,
    (Focus.OUTPUT, "ctrl+h"): Focus.SIDEBAR,
    (Focus.SIDEBAR, "ctrl+l"): Focus.QUERY,
    (Focus.QUERY, "ctrl+j"): Focus.OUTPUT,
    (Focus.OUTPUT, "ctrl+k"): Focus.QUERY,
}
_EXECUTE_KEYS = frozenset({"f5", "ctrl+e"})
_BACKEND_ERRORS = (ConnectionBackendError, QueryExecutionError)

_HELP: dict[Focus, str] = {
    Focus.CONNECTION_LIST: "j/k move  [ ] group  enter connect  :new :next :prev :q",
    Focus.SIDEBAR: "j/k/g/G move  enter open  d describe  r refresh  :db :system",
    Focus.QUERY: "i/a/o insert  ctrl+e run  tab complete  ctrl+o templates  :save <name>",
    Focus.OUTPUT: "h/j/k/l move  v/V select  y/Y yank  enter record",
}
_HELP_SUFFIX = "tab/shift+tab cycle panes  :conn connections  :qa quit"


class Connector(Protocol):
    def __call__(
        self,
        profile: ConnectionProfile,
        database: str | None = None,
        *,
        bridge: AsyncBridge,
    ) -> DatabaseClient: ...


@dataclass(slots=True)
class CompletionPopup:
    """Open completion menu replacing ``text[start:end]`` on accept."""

    candidates: list[Suggestion]
    start: int
    end: int
    index: int = 0

    @property
    def selected(self) -> Suggestion:
        return self.candidates[self.index]


@dataclass(slots=True)
class TemplatePicker:
    items: list[Template]
    index: int = 0


class SessionController:
    """Single owner of every tab plus the process-wide focus and mode."""

    def __init__(
        self,
        config: AppConfig,
        templates: TemplateStore | None = None,
        *,
        connector: Connector = connect,
        bridge: AsyncBridge | None = None,
        template_path: Path | None = None,
    ) -> None:
        self._config = config
        self._templates = templates if templates is not None else TemplateStore()
        self._connector = connector
        self._owns_bridge = bridge is None
        self._bridge = bridge or AsyncBridge()
        self._template_path = template_path
        self._listeners: set[ControllerListener] = set()
        self._next_tab_id = 1
        self._message = "; ".join(config.errors)
        self.tabs: list[Tab] = []
        self.active = 0
        self.focus = Focus.CONNECTION_LIST
        self.mode = Mode.NORMAL
        self.command_buffer = ""
        self.connection_index = 0
        self.group_index = 0
        self.completion: CompletionPopup | None = None
        self.template_picker: TemplatePicker | None = None
        self.clipboard: str | None = None
        self.quit = False
        self.viewport_rows = 20
        self.viewport_columns = 5

    # Read-only views ---------------------------------------------------------

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def templates(self) -> TemplateStore:
        return self._templates

    @property
    def active_tab(self) -> Tab | None:
        if not self.tabs:
            return None
        return self.tabs[self.active]

    @property
    def status(self) -> str:
        tab = self.active_tab
        if tab is not None and tab.status:
            return tab.status
        return self._message

    @property
    def groups(self) -> list[str | None]:
        """Group filters in cycle order; None shows every profile."""

        return [None, *self._config.groups]

    @property
    def group_filter(self) -> str | None:
        return self.groups[self.group_index % len(self.groups)]

    @property
    def visible_profiles(self) -> list[ConnectionProfile]:
        wanted = self.group_filter
        return [profile for profile in self._config.profiles if wanted is None or profile.group == wanted]

    def subscribe(self, listener: ControllerListener) -> Callable[[], None]:
        """Subscribe to state changes; returns an unsubscribe handle."""

        self._listeners.add(listener)

        def _unsubscribe() -> None:
            self._listeners.discard(listener)

        return _unsubscribe

    # Event entry points ----------------------------------------------------

    def handle_key(self, key: str) -> None:
        """Dispatch one key (a printable character or a Textual key name)."""

        LOG.debug("Key", extra={"key": key, "focus": self.focus.value, "mode": self.mode.value})
        if self.mode is Mode.COMMAND:
            self._command_key(key)
        elif self.template_picker is not None:
            self._picker_key(key)
        elif self.completion is not None:
            self._completion_key(key)
        else:
            self._dispatch(key)
        self._notify()

    def handle_click(self, pane: Focus | None = None, tab_index: int | None = None) -> None:
        if tab_index is not None and 0 <= tab_index < len(self.tabs):
            self._activate(tab_index)
        if pane is not None:
            tab = self.active_tab
            if pane is Focus.CONNECTION_LIST or (tab is not None and tab.connected):
                self._set_focus(pane)
        self._notify()

    def handle_resize(self, width: int, height: int) -> None:
        self.viewport_rows = max(1, height - 10)
        self.viewport_columns = max(1, width // COLUMN_WIDTH)
        tab = self.active_tab
        if tab is not None:
            self._clamp_scroll(tab)
        self._notify()

    # Tab lifecycle ---------------------------------------------------------

    def new_tab(self) -> Tab:
        tab = Tab(id=self._next_tab_id)
        self._next_tab_id += 1
        self.tabs.append(tab)
        self._activate(len(self.tabs) - 1)
        self.focus = Focus.CONNECTION_LIST
        return tab

    def close_tab(self) -> None:
        tab = self.active_tab
        if tab is None:
            self.quit = True
            return
        tab.disconnect()
        del self.tabs[self.active]
        if not self.tabs:
            self.quit = True
            return
        self._activate(max(self.active - 1, 0))

    def next_tab(self) -> None:
        if self.tabs:
            self._activate((self.active + 1) % len(self.tabs))

    def prev_tab(self) -> None:
        if self.tabs:
            self._activate((self.active - 1) % len(self.tabs))

    def shutdown(self) -> None:
        """Close every connection and, when owned, the bridge."""

        for tab in self.tabs:
            tab.disconnect()
        if self._owns_bridge:
            self._bridge.shutdown()

    # Connections -------------------------------------------------------------

    def connect_selected(self) -> bool:
        profiles = self.visible_profiles
        if not profiles:
            self._set_status("No connection profiles configured.")
            return False
        self.connection_index = min(self.connection_index, len(profiles) - 1)
        return self.open_profile(profiles[self.connection_index])

    def open_profile(self, profile: ConnectionProfile) -> bool:
        """Connect the active tab (creating one if needed) to ``profile``."""

        tab = self.active_tab or self.new_tab()
        tab.disconnect()
        tab.profile = None
        tab.status = f"Connecting to {profile.name}..."
        try:
            client = self._connector(profile, bridge=self._bridge)
        except _BACKEND_ERRORS as exc:
            LOG.exception("Connection failed", extra={"profile": profile.name})
            tab.status = f"Connection failed: {exc}"
            self.focus = Focus.CONNECTION_LIST
            return False
        tab.client = client
        tab.profile = profile
        tab.database = client.database
        tab.status = ""
        databases = self._attempt(tab, "Listing databases", lambda: client.list_databases(tab.include_system))
        tab.databases = databases or []
        tab.invalidate_schema(self._attempt(tab, "Listing tables", client.list_tables))
        if profile.database or profile.kind is BackendKind.SQLITE:
            tab.listing = SidebarListing.TABLES
            self.focus = Focus.QUERY
        else:
            tab.listing = SidebarListing.DATABASES
            self.focus = Focus.SIDEBAR
        self.mode = Mode.NORMAL
        if not tab.status:
            tab.status = client.warning or f"Connected to {profile.name} ({profile.kind.label})"
        LOG.debug("Connected tab", extra={"tab": tab.id, "profile": profile.name})
        return True

    def select_database(self, name: str) -> bool:
        tab = self.active_tab
        if tab is None or tab.client is None:
            return False
        client = tab.client
        tables = self._attempt(tab, f"Switching to {name}", lambda: client.list_tables(name))
        if tables is None:
            if tab.database != client.database:
                tab.database = client.database
                tab.invalidate_schema()
            return False
        tab.database = client.database
        tab.invalidate_schema(tables)
        tab.listing = SidebarListing.TABLES
        tab.status = f"Using database {name}"
        return True

    def show_databases(self) -> None:
        tab = self.active_tab
        if tab is None or tab.client is None:
            self._set_status("Not connected.")
            return
        client = tab.client
        databases = self._attempt(tab, "Listing databases", lambda: client.list_databases(tab.include_system))
        if databases is None:
            return
        tab.databases = databases
        tab.listing = SidebarListing.DATABASES
        tab.view.sidebar_index = _index_of(databases, tab.database)
        self._set_focus(Focus.SIDEBAR)

    def toggle_system_databases(self) -> None:
        tab = self.active_tab
        if tab is None:
            return
        tab.include_system = not tab.include_system
        if tab.client is not None:
            self.show_databases()
        tab.status = "Showing system databases" if tab.include_system else "Hiding system databases"

    def refresh_tables(self) -> None:
        tab = self.active_tab
        if tab is None or tab.client is None:
            self._set_status("Not connected.")
            return
        tables = self._attempt(tab, "Refreshing tables", tab.client.list_tables)
        if tables is None:
            return
        tab.invalidate_schema(tables)
        tab.listing = SidebarListing.TABLES
        tab.status = f"{len(tables)} table(s)"

    def preview_table(self, table: str) -> None:
        tab = self.active_tab
        if tab is None or tab.client is None:
            return
        tab.buffer.set_text(tab.client.select_sample_query(table, SAMPLE_LIMIT))
        self.execute_buffer()
        self._set_focus(Focus.OUTPUT)

    def describe_table(self, table: str) -> None:
        tab = self.active_tab
        if tab is None or tab.client is None:
            return
        client = tab.client
        self._apply_result(tab, lambda: client.describe_table(table))
        self._set_focus(Focus.OUTPUT)

    def execute_buffer(self) -> None:
        tab = self.active_tab
        if tab is None or tab.client is None:
            self._set_status("Not connected.")
            return
        client = tab.client
        self._apply_result(tab, lambda: client.execute_query(tab.buffer.text))

    # Completion and templates ------------------------------------------------

    def trigger_completion(self) -> None:
        tab = self.active_tab
        if tab is None:
            return
        text, cursor = tab.buffer.text, tab.buffer.cursor
        context = detect_context(text, cursor)
        if context is None:
            return
        self._ensure_columns(tab, referenced_tables(text, cursor, tab.tables or ()))
        candidates = complete(text, cursor, tab.schema_snapshot())
        if not candidates:
            tab.status = "No completions"
            return
        if len(candidates) == 1:
            tab.buffer.replace_range(context.start, cursor, candidates[0].text)
            return
        self.completion = CompletionPopup(candidates=candidates, start=context.start, end=cursor)

    def accept_completion(self) -> None:
        popup = self.completion
        tab = self.active_tab
        self.completion = None
        if popup is None or tab is None:
            return
        tab.buffer.replace_range(popup.start, popup.end, popup.selected.text)

    def open_template_picker(self) -> None:
        tab = self.active_tab
        scope = tab.profile.name if tab is not None and tab.profile is not None else ""
        items = self._templates.list(scope)
        if not items:
            self._set_status("No templates for this connection.")
            return
        self.template_picker = TemplatePicker(items=items)

    def insert_template(self, template: Template) -> None:
        tab = self.active_tab or self.new_tab()
        tab.buffer.set_text(template.body, cursor=0)
        tab.placeholder_mode = True
        self.template_picker = None
        self.focus = Focus.QUERY
        self.mode = Mode.INSERT
        self._next_placeholder(tab)

    def save_template(self, name: str, *, global_scope: bool = False) -> bool:
        tab = self.active_tab
        if tab is None or not tab.buffer.text.strip():
            self._set_status("Nothing to save.")
            return False
        if not name:
            self._set_status("Usage: :save <name>")
            return False
        if global_scope:
            scope = GLOBAL_SCOPE
        elif tab.profile is not None:
            scope = tab.profile.name
        else:
            self._set_status("Connect first or use :save! for a global template.")
            return False
        self._templates.insert_or_replace(Template(name=name, scope=scope, body=tab.buffer.text.strip()))
        self._persist_templates()
        tab.status = f"Saved template '{name}' [{scope}]"
        return True

    def delete_template(self, template: Template) -> None:
        self._templates.delete(template.name, template.scope)
        self._persist_templates()
        self._set_status(f"Deleted template '{template.name}'")

    # Commands ----------------------------------------------------------------

    def run_command(self, command: str) -> None:
        name, _, argument = command.strip().partition(" ")
        argument = argument.strip()
        match name:
            case "q" | "quit":
                self.close_tab()
            case "qa" | "q!" | "quitall":
                self.quit = True
            case "new":
                self.new_tab()
            case "next":
                self.next_tab()
            case "prev":
                self.prev_tab()
            case "db":
                self.show_databases()
            case "system":
                self.toggle_system_databases()
            case "refresh":
                self.refresh_tables()
            case "conn":
                self._set_focus(Focus.CONNECTION_LIST)
            case "h" | "help":
                self.show_help()
            case "save":
                self.save_template(argument)
            case "save!":
                self.save_template(argument, global_scope=True)
            case "":
                pass
            case _:
                self._set_status(f"Unknown command: {name}")

    def show_help(self) -> None:
        """Put the key summary for the focused pane in the status line."""

        self._set_status(f"{_HELP[self.focus]} | {_HELP_SUFFIX}")

    # Key handling ------------------------------------------------------------

    def _dispatch(self, key: str) -> None:
        tab = self.active_tab
        connected = tab is not None and tab.connected
        if key in _EXECUTE_KEYS and self.mode in (Mode.NORMAL, Mode.INSERT):
            if connected:
                self.execute_buffer()
            return
        if connected and self.mode in (Mode.NORMAL, Mode.INSERT):
            target = _FOCUS_NEIGHBOURS.get((self.focus, key))
            if target is not None:
                self._set_focus(target)
                return
            if key in ("ctrl+h", "ctrl+j", "ctrl+k", "ctrl+l"):
                return
        if key == ":" and self.mode is not Mode.INSERT:
            self._enter_command_mode()
            return
        if connected and self.mode is Mode.NORMAL and key in ("tab", "shift+tab"):
            self._cycle_focus(1 if key == "tab" else -1)
            return
        match self.focus:
            case Focus.CONNECTION_LIST:
                self._connection_list_key(key)
            case Focus.SIDEBAR:
                self._sidebar_key(key)
            case Focus.QUERY:
                self._query_key(key)
            case Focus.OUTPUT:
                self._output_key(key)

    def _enter_command_mode(self) -> None:
        self.mode = Mode.COMMAND
        self.command_buffer = ""
        tab = self.active_tab
        if tab is not None:
            tab.view.visual_anchor = None

    def _command_key(self, key: str) -> None:
        if key == "escape":
            self.mode = Mode.NORMAL
            self.command_buffer = ""
        elif key == "enter":
            command = self.command_buffer
            self.mode = Mode.NORMAL
            self.command_buffer = ""
            self.run_command(command)
        elif key == "backspace":
            self.command_buffer = self.command_buffer[:-1]
        elif len(key) == 1:
            self.command_buffer += key

    def _connection_list_key(self, key: str) -> None:
        count = len(self.visible_profiles)
        if key in ("j", "down") and count:
            self.connection_index = min(self.connection_index + 1, count - 1)
        elif key in ("k", "up"):
            self.connection_index = max(self.connection_index - 1, 0)
        elif key in ("]", "["):
            step = 1 if key == "]" else -1
            self.group_index = (self.group_index + step) % len(self.groups)
            self.connection_index = 0
        elif key == "t":
            self.new_tab()
        elif key == "enter":
            self.connect_selected()
        elif key == "escape":
            tab = self.active_tab
            if tab is not None and tab.connected:
                self._set_focus(Focus.QUERY)

    def _sidebar_key(self, key: str) -> None:
        tab = self.active_tab
        if tab is None:
            return
        items = tab.sidebar_items
        view = tab.view
        if key in ("j", "down") and items:
            view.sidebar_index = min(view.sidebar_index + 1, len(items) - 1)
        elif key in ("k", "up"):
            view.sidebar_index = max(view.sidebar_index - 1, 0)
        elif key == "g":
            view.sidebar_index = 0
        elif key == "G" and items:
            view.sidebar_index = len(items) - 1
        elif key == "escape" and tab.listing is SidebarListing.DATABASES:
            tab.listing = SidebarListing.TABLES
            view.sidebar_index = 0
        elif key == "r":
            self.refresh_tables()
        elif not items or view.sidebar_index >= len(items):
            return
        elif key == "enter" and tab.listing is SidebarListing.DATABASES:
            self.select_database(items[view.sidebar_index])
        elif key == "enter":
            self.preview_table(items[view.sidebar_index])
        elif key == "d" and tab.listing is SidebarListing.TABLES:
            self.describe_table(items[view.sidebar_index])

    def _query_key(self, key: str) -> None:
        tab = self.active_tab
        if tab is None:
            return
        if key == "ctrl+o":
            self.open_template_picker()
        elif self.mode is Mode.INSERT:
            self._insert_key(tab, key)
        else:
            self._normal_query_key(tab, key)

    def _normal_query_key(self, tab: Tab, key: str) -> None:
        buffer = tab.buffer
        if key in ("i", "a", "A", "I", "o", "O"):
            if key == "a":
                buffer.move_right()
            elif key == "A":
                buffer.move_line_end()
            elif key == "I":
                buffer.move_line_start()
            elif key == "o":
                buffer.move_line_end()
                buffer.insert("\n")
            elif key == "O":
                buffer.move_line_start()
                buffer.insert("\n")
                buffer.move_left()
            self.mode = Mode.INSERT
        elif key in ("h", "left"):
            buffer.move_left()
        elif key in ("l", "right"):
            buffer.move_right()
        elif key in ("j", "down"):
            buffer.move_down()
        elif key in ("k", "up"):
            buffer.move_up()
        elif key in ("0", "home"):
            buffer.move_line_start()
        elif key in ("$", "end"):
            buffer.move_line_end()
        elif key == "x":
            buffer.delete()
        elif key == "u":
            buffer.undo()
        elif key == "ctrl+r":
            buffer.redo()

    def _insert_key(self, tab: Tab, key: str) -> None:
        buffer = tab.buffer
        if key == "escape":
            self.mode = Mode.NORMAL
            tab.placeholder_mode = False
        elif key == "tab":
            if not (tab.placeholder_mode and self._next_placeholder(tab)):
                self.trigger_completion()
        elif key == "enter":
            buffer.insert("\n")
        elif key == "backspace":
            buffer.backspace()
        elif key == "delete":
            buffer.delete()
        elif key == "left":
            buffer.move_left()
        elif key == "right":
            buffer.move_right()
        elif key == "up":
            buffer.move_up()
        elif key == "down":
            buffer.move_down()
        elif key == "home":
            buffer.move_line_start()
        elif key == "end":
            buffer.move_line_end()
        elif len(key) == 1 and key.isprintable():
            buffer.insert(key)

    def _output_key(self, key: str) -> None:
        tab = self.active_tab
        if tab is None:
            return
        view = tab.view
        result = tab.result
        if view.detail_field is not None:
            self._detail_key(tab, key)
            return
        if key == "escape":
            view.visual_anchor = None
            self.mode = Mode.NORMAL
            return
        if result is None or not result.rows:
            return
        last_row = len(result.rows) - 1
        last_col = max(len(result.columns) - 1, 0)
        if key in ("j", "down"):
            view.cursor_row = min(view.cursor_row + 1, last_row)
        elif key in ("k", "up"):
            view.cursor_row = max(view.cursor_row - 1, 0)
        elif key in ("h", "left"):
            view.cursor_col = max(view.cursor_col - 1, 0)
        elif key in ("l", "right"):
            view.cursor_col = min(view.cursor_col + 1, last_col)
        elif key == "pagedown":
            view.cursor_row = min(view.cursor_row + PAGE_SIZE, last_row)
        elif key == "pageup":
            view.cursor_row = max(view.cursor_row - PAGE_SIZE, 0)
        elif key in ("g", "home"):
            view.cursor_row = 0
        elif key in ("G", "end"):
            view.cursor_row = last_row
        elif key == "^":
            view.cursor_col = 0
        elif key == "$":
            view.cursor_col = last_col
        elif key == "v" and self.mode is Mode.NORMAL:
            view.visual_anchor = (view.cursor_row, view.cursor_col)
            self.mode = Mode.VISUAL_CELL
        elif key == "V" and self.mode is Mode.NORMAL:
            view.visual_anchor = (view.cursor_row, view.cursor_col)
            self.mode = Mode.VISUAL_LINE
        elif key == "y" and self.mode.is_visual:
            self._yank(tab, self._selection_text(tab))
            view.visual_anchor = None
            self.mode = Mode.NORMAL
        elif key == "y":
            self._yank(tab, format_cell(result.rows[view.cursor_row][view.cursor_col]))
        elif key == "Y":
            self._yank(tab, "\t".join(format_cell(value) for value in result.rows[view.cursor_row]))
        elif key == "enter" and self.mode is Mode.NORMAL:
            view.detail_field = 0
        self._clamp_scroll(tab)

    def _detail_key(self, tab: Tab, key: str) -> None:
        view = tab.view
        result = tab.result
        if key == "escape" or result is None or not result.rows:
            view.detail_field = None
            return
        field_index = view.detail_field or 0
        last_field = max(len(result.columns) - 1, 0)
        if key in ("j", "down"):
            view.detail_field = min(field_index + 1, last_field)
        elif key in ("k", "up"):
            view.detail_field = max(field_index - 1, 0)
        elif key == "g":
            view.detail_field = 0
        elif key == "G":
            view.detail_field = last_field
        elif key == "y":
            self._yank(tab, format_cell(result.rows[view.cursor_row][field_index]))

    def _completion_key(self, key: str) -> None:
        popup = self.completion
        if popup is None:
            return
        count = len(popup.candidates)
        if key in ("down", "ctrl+n"):
            popup.index = (popup.index + 1) % count
        elif key in ("up", "ctrl+p"):
            popup.index = (popup.index - 1) % count
        elif key in ("enter", "tab"):
            self.accept_completion()
        elif key == "escape":
            self.completion = None
        else:
            self.completion = None
            self._dispatch(key)

    def _picker_key(self, key: str) -> None:
        picker = self.template_picker
        if picker is None:
            return
        if key in ("j", "down"):
            picker.index = min(picker.index + 1, len(picker.items) - 1)
        elif key in ("k", "up"):
            picker.index = max(picker.index - 1, 0)
        elif key == "enter":
            self.insert_template(picker.items[picker.index])
        elif key == "d":
            self.delete_template(picker.items.pop(picker.index))
            if not picker.items:
                self.template_picker = None
            else:
                picker.index = min(picker.index, len(picker.items) - 1)
        elif key == "escape":
            self.template_picker = None

    # Helpers -----------------------------------------------------------------

    def _activate(self, index: int) -> None:
        self.active = index
        self.mode = Mode.NORMAL
        self.command_buffer = ""
        self.completion = None
        self.template_picker = None
        tab = self.tabs[index]
        tab.view.visual_anchor = None
        self.focus = Focus.QUERY if tab.connected else Focus.CONNECTION_LIST

    def _set_focus(self, focus: Focus) -> None:
        if focus is self.focus:
            return
        self.focus = focus
        self.completion = None
        if self.mode is not Mode.COMMAND:
            self.mode = Mode.NORMAL
        tab = self.active_tab
        if tab is not None:
            tab.view.visual_anchor = None
            tab.view.detail_field = None

    def _cycle_focus(self, step: int) -> None:
        if self.focus not in _FOCUS_CYCLE:
            self._set_focus(Focus.QUERY)
            return
        position = _FOCUS_CYCLE.index(self.focus)
        self._set_focus(_FOCUS_CYCLE[(position + step) % len(_FOCUS_CYCLE)])

    def _set_status(self, message: str) -> None:
        tab = self.active_tab
        if tab is not None:
            tab.status = message
        else:
            self._message = message

    def _attempt(self, tab: Tab, label: str, operation: Callable[[], T]) -> T | None:
        try:
            return operation()
        except _BACKEND_ERRORS as exc:
            LOG.exception("Backend operation failed", extra={"tab": tab.id, "operation": label})
            tab.status = f"{label} failed: {exc}"
            return None

    def _apply_result(self, tab: Tab, operation: Callable[[], QueryResult]) -> None:
        try:
            result = operation()
        except PolicyError as exc:
            LOG.warning("Statement rejected", extra={"tab": tab.id, "error": str(exc)})
            result = QueryResult.failure(str(exc))
        except _BACKEND_ERRORS as exc:
            LOG.exception("Query failed", extra={"tab": tab.id})
            result = QueryResult.failure(str(exc))
        tab.result = result
        tab.view.reset_result()
        if self.mode.is_visual:
            self.mode = Mode.NORMAL
        tab.status = f"Error: {result.error}" if result.is_error else f"{result.status} in {result.elapsed_ms} ms"

    def _ensure_columns(self, tab: Tab, tables: list[str]) -> None:
        client = tab.client
        if client is None:
            return
        for table in tables:
            if table in tab.columns:
                continue
            columns = self._attempt(tab, f"Loading columns of {table}", lambda: client.list_columns(table))
            if columns is not None:
                tab.columns[table] = tuple(columns)

    def _next_placeholder(self, tab: Tab) -> bool:
        """Move to the next ``<marker>`` at or after the cursor and remove it."""

        ranges = extract_placeholders(tab.buffer.text)
        if not ranges:
            tab.placeholder_mode = False
            return False
        start, end = next((span for span in ranges if span[0] >= tab.buffer.cursor), ranges[0])
        tab.buffer.replace_range(start, end, "")
        return True

    def _selection_text(self, tab: Tab) -> str:
        view = tab.view
        result = tab.result
        if result is None or view.visual_anchor is None:
            return ""
        anchor_row, anchor_col = view.visual_anchor
        rows = range(min(anchor_row, view.cursor_row), max(anchor_row, view.cursor_row) + 1)
        if self.mode is Mode.VISUAL_LINE:
            columns = range(len(result.columns))
        else:
            columns = range(min(anchor_col, view.cursor_col), max(anchor_col, view.cursor_col) + 1)
        return "\n".join("\t".join(format_cell(result.rows[row][col]) for col in columns) for row in rows)

    def _yank(self, tab: Tab, text: str) -> None:
        self.clipboard = text
        lines = text.count("\n") + 1
        tab.status = f"Yanked {lines} line(s)" if lines > 1 else f"Yanked {len(text)} character(s)"

    def _clamp_scroll(self, tab: Tab) -> None:
        view = tab.view
        if view.cursor_row < view.scroll_row:
            view.scroll_row = view.cursor_row
        elif view.cursor_row >= view.scroll_row + self.viewport_rows:
            view.scroll_row = view.cursor_row - self.viewport_rows + 1
        if view.cursor_col < view.scroll_col:
            view.scroll_col = view.cursor_col
        elif view.cursor_col >= view.scroll_col + self.viewport_columns:
            view.scroll_col = view.cursor_col - self.viewport_columns + 1

    def _persist_templates(self) -> None:
        if self._template_path is None:
            return
        try:
            save_templates(self._template_path, self._templates)
        except OSError:
            LOG.exception("Failed to save templates", extra={"path": str(self._template_path)})
            self._set_status(f"Could not write {self._template_path}")

    def _notify(self) -> None:
        for listener in tuple(self._listeners):
            listener(self)


def _index_of(items: list[str], value: str | None) -> int:
    try:
        return items.index(value) if value is not None else 0
    except ValueError:
        return 0


__all__ = ["CompletionPopup", "ControllerListener", "SessionController", "TemplatePicker"]
