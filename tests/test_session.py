"""Tests for the session controller state machine."""

from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest

from sqli.config import AppConfig
from sqli.connections import AsyncBridge, ConnectionBackendError, DatabaseClient
from sqli.models import BackendKind, ConnectionProfile, Focus, Mode
from sqli.query import QueryExecutionError, QueryResult
from sqli.session import SessionController
from sqli.tabs import SidebarListing
from sqli.templates import Template, TemplateStore, load_templates

TABLES = {"app": ["orders", "users"], "analytics": ["events"]}
COLUMNS = {"orders": ["id", "user_id", "total"], "users": ["id", "email"], "events": ["at", "kind"]}

APP = ConnectionProfile(name="app", kind=BackendKind.POSTGRES, host="db", database="app", group="dev")
SERVER = ConnectionProfile(name="server", kind=BackendKind.POSTGRES, host="db", group="ops")
READONLY = ConnectionProfile(name="replica", kind=BackendKind.POSTGRES, host="db", database="app", readonly=True)
DOWN = ConnectionProfile(name="down", kind=BackendKind.POSTGRES, host="down")


class _FakeAdapter:
    kind = BackendKind.POSTGRES
    system_databases = frozenset({"postgres"})

    def __init__(self, database: str | None) -> None:
        self.database = database
        self.statements: list[str] = []
        self.column_lookups: list[str] = []
        self.closed = False

    @classmethod
    async def open(cls, profile: ConnectionProfile, database: str | None, password: str | None) -> "_FakeAdapter":
        return cls(database)

    async def list_databases(self) -> list[str]:
        return ["analytics", "app", "postgres"]

    async def list_tables(self) -> list[str]:
        if self.database == "broken":
            raise QueryExecutionError("permission denied for database broken")
        return list(TABLES.get(self.database or "", []))

    async def list_columns(self, table: str) -> list[str]:
        self.column_lookups.append(table)
        return COLUMNS[table]

    async def execute(self, statement: str) -> QueryResult:
        self.statements.append(statement)
        if statement.startswith("FAIL"):
            raise QueryExecutionError("relation does not exist")
        if statement.upper().startswith("SELECT"):
            return QueryResult.from_rows(["id", "name"], [(1, "x"), (2, "y"), (3, "z")])
        return QueryResult.affected(1)

    async def close(self) -> None:
        self.closed = True


def _connector(profile: ConnectionProfile, database: str | None = None, *, bridge: AsyncBridge) -> DatabaseClient:
    if profile.host == "down":
        raise ConnectionBackendError("connection refused")
    target = database or profile.database
    adapter = bridge.run(_FakeAdapter.open(profile, target, None))
    return DatabaseClient(profile, adapter, bridge=bridge, database=target, opener=_FakeAdapter.open)


@pytest.fixture
def bridge() -> Iterator[AsyncBridge]:
    bridge = AsyncBridge(name="test-bridge")
    yield bridge
    bridge.shutdown()


@pytest.fixture
def controller(bridge: AsyncBridge, tmp_path: Path) -> SessionController:
    config = AppConfig(profiles=[APP, SERVER, READONLY, DOWN])
    return SessionController(
        config,
        TemplateStore(),
        connector=_connector,
        bridge=bridge,
        template_path=tmp_path / "templates.sql",
    )


def _press(controller: SessionController, *keys: str) -> None:
    for key in keys:
        controller.handle_key(key)


def _type(controller: SessionController, text: str) -> None:
    _press(controller, *text)


def test_initial_state(controller: SessionController) -> None:
    assert controller.tabs == []
    assert controller.active_tab is None
    assert controller.focus is Focus.CONNECTION_LIST
    assert controller.mode is Mode.NORMAL


def test_enter_connects_a_new_tab_to_the_selected_profile(controller: SessionController) -> None:
    _press(controller, "enter")

    tab = controller.active_tab
    assert tab is not None and tab.connected
    assert tab.database == "app"
    assert tab.tables == ["orders", "users"]
    assert tab.databases == ["analytics", "app"]
    assert controller.focus is Focus.QUERY
    assert "Connected to app" in controller.status


def test_profile_without_database_opens_the_database_list(controller: SessionController) -> None:
    _press(controller, "j", "enter")

    tab = controller.active_tab
    assert tab is not None
    assert controller.focus is Focus.SIDEBAR
    assert tab.listing is SidebarListing.DATABASES

    _press(controller, "j", "enter")

    assert tab.database == "app"
    assert tab.listing is SidebarListing.TABLES
    assert tab.sidebar_items == ["orders", "users"]


def test_connection_failure_leaves_the_tab_unconnected(controller: SessionController) -> None:
    assert controller.open_profile(DOWN) is False

    tab = controller.active_tab
    assert tab is not None and not tab.connected
    assert "connection refused" in controller.status
    assert controller.focus is Focus.CONNECTION_LIST


def test_group_filter_cycles_through_groups(controller: SessionController) -> None:
    assert len(controller.visible_profiles) == 4

    _press(controller, "]")
    assert [profile.name for profile in controller.visible_profiles] == ["app"]

    _press(controller, "]")
    assert [profile.name for profile in controller.visible_profiles] == ["server"]

    _press(controller, "[", "[")
    assert controller.group_filter is None


def test_close_selects_previous_then_next_and_last_close_quits(controller: SessionController) -> None:
    for _ in range(3):
        controller.new_tab()
    controller.handle_click(tab_index=1)

    controller.close_tab()
    assert [tab.id for tab in controller.tabs] == [1, 3]
    assert controller.active_tab.id == 1

    controller.close_tab()
    assert controller.active_tab.id == 3
    assert not controller.quit

    controller.close_tab()
    assert controller.tabs == []
    assert controller.quit


def test_quit_command_closes_the_connection(controller: SessionController) -> None:
    controller.open_profile(APP)
    client = controller.active_tab.client

    _press(controller, ":", "q", "enter")

    assert client is not None and client.closed
    assert controller.quit


def test_command_mode_tokens(controller: SessionController) -> None:
    _press(controller, ":")
    assert controller.mode is Mode.COMMAND
    _type(controller, "new")
    _press(controller, "enter")
    _press(controller, ":", "n", "e", "w", "enter")
    assert len(controller.tabs) == 2
    assert controller.active == 1
    assert controller.mode is Mode.NORMAL

    _press(controller, ":", "p", "r", "e", "v", "enter")
    assert controller.active == 0

    _press(controller, ":", "b", "o", "g", "u", "s", "enter")
    assert "Unknown command: bogus" in controller.status

    _press(controller, ":", "x", "escape")
    assert controller.mode is Mode.NORMAL
    assert controller.command_buffer == ""

    _press(controller, ":", "q", "a", "enter")
    assert controller.quit


def test_help_command_summarises_keys_for_the_focused_pane(controller: SessionController) -> None:
    _press(controller, ":", "h", "e", "l", "p", "enter")

    assert "enter connect" in controller.status
    assert controller.mode is Mode.NORMAL

    controller.open_profile(APP)
    _press(controller, ":", "h", "enter")

    assert "ctrl+e run" in controller.status
    assert ":qa quit" in controller.status


def test_focus_cycle_and_directional_moves(controller: SessionController) -> None:
    controller.open_profile(APP)

    _press(controller, "tab")
    assert controller.focus is Focus.OUTPUT
    _press(controller, "tab")
    assert controller.focus is Focus.SIDEBAR
    _press(controller, "shift+tab")
    assert controller.focus is Focus.OUTPUT

    _press(controller, "ctrl+k")
    assert controller.focus is Focus.QUERY
    _press(controller, "ctrl+h")
    assert controller.focus is Focus.SIDEBAR
    _press(controller, "ctrl+h")
    assert controller.focus is Focus.SIDEBAR


def test_insert_execute_and_error_replaces_result(controller: SessionController) -> None:
    controller.open_profile(APP)
    tab = controller.active_tab

    _press(controller, "i")
    assert controller.mode is Mode.INSERT
    _type(controller, "SELECT 1")
    _press(controller, "ctrl+e")

    assert tab.buffer.text == "SELECT 1"
    assert tab.result is not None and tab.result.rows[0] == (1, "x")

    tab.view.cursor_row = 2
    tab.buffer.set_text("FAIL now")
    _press(controller, "f5")

    assert tab.result.is_error
    assert tab.result.rows == ()
    assert tab.view.cursor_row == 0
    assert controller.status.startswith("Error: relation does not exist")
    assert tab.tables == ["orders", "users"]


def test_readonly_violation_never_reaches_the_backend(controller: SessionController) -> None:
    controller.open_profile(READONLY)
    tab = controller.active_tab
    adapter = tab.client._adapter

    tab.buffer.set_text("DELETE FROM orders")
    controller.execute_buffer()

    assert tab.result is not None and tab.result.is_error
    assert "read-only" in tab.result.error
    assert adapter.statements == []


def test_escape_leaves_insert_mode(controller: SessionController) -> None:
    controller.open_profile(APP)

    _press(controller, "i", "x", "escape")

    assert controller.mode is Mode.NORMAL
    assert controller.active_tab.buffer.text == "x"


def test_reselecting_a_database_only_invalidates_that_tab(controller: SessionController) -> None:
    controller.open_profile(APP)
    first = controller.active_tab
    first.columns["orders"] = ("id",)
    controller.new_tab()
    controller.open_profile(APP)
    second = controller.active_tab
    second.columns["orders"] = ("id",)

    assert controller.select_database("analytics")

    assert second.tables == ["events"]
    assert second.columns == {}
    assert first.tables == ["orders", "users"]
    assert first.columns == {"orders": ("id",)}
    assert first.database == "app"


def test_failed_database_switch_keeps_tab_and_client_in_step(controller: SessionController) -> None:
    controller.open_profile(APP)
    tab = controller.active_tab

    assert controller.select_database("broken") is False

    assert "permission denied" in controller.status
    assert tab.client is not None
    assert tab.database == tab.client.database == "app"
    assert tab.tables == ["orders", "users"]


def test_system_toggle_reloads_databases(controller: SessionController) -> None:
    controller.open_profile(APP)

    _press(controller, ":", "s", "y", "s", "t", "e", "m", "enter")

    tab = controller.active_tab
    assert tab.include_system
    assert tab.databases == ["analytics", "app", "postgres"]
    assert tab.listing is SidebarListing.DATABASES
    assert controller.focus is Focus.SIDEBAR


def test_preview_and_describe_from_the_sidebar(controller: SessionController) -> None:
    controller.open_profile(APP)
    tab = controller.active_tab
    adapter = tab.client._adapter

    _press(controller, "ctrl+h", "enter")

    assert tab.buffer.text == 'SELECT * FROM "orders" LIMIT 100;'
    assert tab.result is not None and tab.result.row_count == 3
    assert controller.focus is Focus.OUTPUT

    _press(controller, "ctrl+h", "j", "d")

    assert "table_name = 'users'" in adapter.statements[-1]
    assert controller.focus is Focus.OUTPUT


def test_tab_completes_a_single_table_inline(controller: SessionController) -> None:
    controller.open_profile(APP)

    _press(controller, "i")
    _type(controller, "SELECT * FROM ord")
    _press(controller, "tab")

    assert controller.active_tab.buffer.text == "SELECT * FROM orders"
    assert controller.completion is None


def test_column_completion_loads_columns_and_opens_a_popup(controller: SessionController) -> None:
    controller.open_profile(APP)
    tab = controller.active_tab
    adapter = tab.client._adapter

    _press(controller, "i")
    _type(controller, "SELECT * FROM orders o WHERE o.")
    _press(controller, "tab")

    assert adapter.column_lookups == ["orders"]
    assert tab.columns["orders"] == ("id", "user_id", "total")
    assert controller.completion is not None
    assert [item.text for item in controller.completion.candidates] == ["id", "total", "user_id"]

    _press(controller, "down", "enter")

    assert controller.completion is None
    assert tab.buffer.text == "SELECT * FROM orders o WHERE o.total"

    _press(controller, "tab", "escape")
    assert controller.completion is None
    assert adapter.column_lookups == ["orders"]


def test_visual_selection_yanks_tab_separated_cells(controller: SessionController) -> None:
    controller.open_profile(APP)
    tab = controller.active_tab
    tab.buffer.set_text("SELECT id, name FROM things")
    controller.execute_buffer()

    _press(controller, "ctrl+j", "v", "j", "l", "y")

    assert controller.clipboard == "1\tx\n2\ty"
    assert controller.mode is Mode.NORMAL
    assert tab.view.visual_anchor is None

    _press(controller, "V", "j", "y")
    assert controller.clipboard == "2\ty\n3\tz"

    _press(controller, "v", "escape")
    assert controller.mode is Mode.NORMAL
    assert tab.view.visual_anchor is None


def test_record_detail_view(controller: SessionController) -> None:
    controller.open_profile(APP)
    tab = controller.active_tab
    tab.buffer.set_text("SELECT id, name FROM things")
    controller.execute_buffer()

    _press(controller, "ctrl+j", "j", "enter", "j", "y")

    assert tab.view.detail_field == 1
    assert controller.clipboard == "y"

    _press(controller, "escape")
    assert tab.view.detail_field is None


def test_tabs_keep_independent_buffers(controller: SessionController) -> None:
    controller.open_profile(APP)
    controller.active_tab.buffer.set_text("SELECT 1")
    controller.new_tab()
    controller.open_profile(SERVER)
    controller.active_tab.buffer.set_text("SELECT 2")

    controller.prev_tab()

    assert controller.active_tab.buffer.text == "SELECT 1"
    assert controller.focus is Focus.QUERY


def test_save_template_persists_with_connection_scope(controller: SessionController, tmp_path: Path) -> None:
    controller.open_profile(APP)
    controller.active_tab.buffer.set_text("SELECT * FROM orders WHERE total > <amount>")

    _press(controller, ":")
    _type(controller, "save big orders")
    _press(controller, "enter")

    saved = controller.templates.get("big orders", "app")
    assert saved is not None
    stored, errors = load_templates(tmp_path / "templates.sql")
    assert errors == []
    assert list(stored) == [saved]

    _press(controller, ":")
    _type(controller, "save! anywhere")
    _press(controller, "enter")
    assert controller.templates.get("anywhere", "global") is not None


def test_template_insert_walks_placeholders(controller: SessionController) -> None:
    controller.templates.insert_or_replace(
        Template(name="by id", scope="global", body="SELECT * FROM <table> WHERE id = <id>")
    )
    controller.templates.insert_or_replace(Template(name="other", scope="elsewhere", body="SELECT 1"))
    controller.open_profile(APP)
    tab = controller.active_tab

    _press(controller, "ctrl+o")
    assert controller.template_picker is not None
    assert [template.name for template in controller.template_picker.items] == ["by id"]

    _press(controller, "enter")

    assert controller.mode is Mode.INSERT
    assert tab.buffer.text == "SELECT * FROM  WHERE id = <id>"
    assert tab.buffer.cursor == 14

    _type(controller, "orders")
    _press(controller, "tab")

    assert tab.buffer.text == "SELECT * FROM orders WHERE id = "
    assert tab.buffer.cursor == len(tab.buffer.text)


def test_template_picker_delete(controller: SessionController) -> None:
    controller.templates.insert_or_replace(Template(name="gone", scope="global", body="SELECT 1"))
    controller.open_profile(APP)

    _press(controller, "ctrl+o", "d")

    assert controller.template_picker is None
    assert len(controller.templates) == 0


def test_listeners_are_notified_and_can_unsubscribe(controller: SessionController) -> None:
    seen: list[Focus] = []
    unsubscribe = controller.subscribe(lambda state: seen.append(state.focus))

    _press(controller, "j")
    unsubscribe()
    _press(controller, "k")

    assert seen == [Focus.CONNECTION_LIST]


def test_clicks_only_focus_panes_of_connected_tabs(controller: SessionController) -> None:
    controller.new_tab()
    controller.handle_click(pane=Focus.OUTPUT)
    assert controller.focus is Focus.CONNECTION_LIST

    controller.open_profile(APP)
    controller.handle_click(pane=Focus.OUTPUT)
    assert controller.focus is Focus.OUTPUT


def test_shutdown_closes_every_connection(controller: SessionController) -> None:
    controller.open_profile(APP)
    controller.new_tab()
    controller.open_profile(SERVER)
    clients = [tab.client for tab in controller.tabs]

    controller.shutdown()

    assert all(client is not None and client.closed for client in clients)
