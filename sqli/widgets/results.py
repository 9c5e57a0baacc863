"""Output pane: result grid, error text and single-record detail view."""

from __future__ import annotations

from typing import Callable

from rich.text import Text
from textual import events
from textual.app import ComposeResult
from textual.containers import Container
from textual.widgets import DataTable, Static

from sqli.models import Focus
from sqli.query import QueryResult, format_cell
from sqli.session import SessionController
from sqli.tabs import Tab


class ResultsPane(Container):
    DEFAULT_CSS = """
    ResultsPane {
        layout: vertical;
        height: 3fr;
        border: round $surface-lighten-1;
        background: $surface;
    }

    ResultsPane.-focused {
        border: round $primary;
    }

    ResultsPane #result-grid {
        height: 1fr;
    }

    ResultsPane #result-message {
        height: auto;
        padding: 0 1;
    }

    ResultsPane #result-detail {
        display: none;
        height: 1fr;
        padding: 0 1;
        overflow-y: auto;
    }

    ResultsPane.-detail #result-detail {
        display: block;
    }

    ResultsPane.-detail #result-grid {
        display: none;
    }
    """

    def __init__(self, controller: SessionController) -> None:
        super().__init__(id="results")
        self._controller = controller
        self._unsubscribe: Callable[[], None] | None = None
        self._shown_tab: int | None = None
        self._shown_result: QueryResult | None = None

    def compose(self) -> ComposeResult:
        table = DataTable(id="result-grid", zebra_stripes=True, cursor_type="cell")
        table.can_focus = False
        yield table
        yield Static("", id="result-message")
        yield Static("", id="result-detail")

    async def on_mount(self) -> None:
        self._unsubscribe = self._controller.subscribe(self._handle_update)
        self._handle_update(self._controller)

    def on_unmount(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def on_click(self, event: events.Click) -> None:
        self._controller.handle_click(pane=Focus.OUTPUT)

    def _handle_update(self, controller: SessionController) -> None:
        self.set_class(controller.focus is Focus.OUTPUT, "-focused")
        self.border_title = "Results"
        tab = controller.active_tab
        table = self.query_one("#result-grid", DataTable)
        message = self.query_one("#result-message", Static)
        result = tab.result if tab is not None else None
        tab_id = tab.id if tab is not None else None
        if tab_id != self._shown_tab or result is not self._shown_result:
            self._shown_tab = tab_id
            self._shown_result = result
            self._load_table(table, result)
        if result is None:
            message.update("")
            self.border_subtitle = ""
        elif result.is_error:
            message.update(Text(result.error or "", style="bold red"))
            self.border_subtitle = "error"
        else:
            message.update(Text(result.status, style="dim") if not result.columns else "")
            self.border_subtitle = _selection_label(controller, tab) if tab is not None else ""
        self._sync_detail(tab)
        if tab is not None and result is not None and result.rows:
            table.move_cursor(row=tab.view.cursor_row, column=tab.view.cursor_col, animate=False)

    @staticmethod
    def _load_table(table: DataTable, result: QueryResult | None) -> None:
        table.clear(columns=True)
        if result is None or result.is_error or not result.columns:
            return
        table.add_columns(*result.columns)
        table.add_rows([format_cell(value) for value in row] for row in result.rows)

    def _sync_detail(self, tab: Tab | None) -> None:
        detail = self.query_one("#result-detail", Static)
        view = tab.view if tab is not None else None
        result = tab.result if tab is not None else None
        if view is None or view.detail_field is None or result is None or not result.rows:
            self.set_class(False, "-detail")
            return
        self.set_class(True, "-detail")
        record = result.rows[view.cursor_row]
        width = max(len(column) for column in result.columns)
        text = Text(f"Row {view.cursor_row + 1} of {len(result.rows)}\n\n", style="bold")
        for index, (column, value) in enumerate(zip(result.columns, record)):
            style = "reverse" if index == view.detail_field else ""
            text.append(f"{column:>{width}}", style=f"bold {style}".strip())
            text.append(f"  {format_cell(value)}\n", style=style)
        detail.update(text)


def _selection_label(controller: SessionController, tab: Tab) -> str:
    result = tab.result
    view = tab.view
    if result is None or result.row_count is None:
        return ""
    position = f"{view.cursor_row + 1}/{result.row_count}" if result.rows else "0 rows"
    if view.visual_anchor is None or not controller.mode.is_visual:
        return position
    first, last = sorted((view.visual_anchor[0], view.cursor_row))
    return f"{controller.mode.value.upper()} rows {first + 1}-{last + 1} | {position}"


__all__ = ["ResultsPane"]
