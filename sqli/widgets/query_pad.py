"""Query editor pane with its completion popup and template picker."""

from __future__ import annotations

from typing import Callable

from rich.text import Text
from textual import events
from textual.app import ComposeResult
from textual.containers import Container
from textual.widgets import Static

from sqli.editor import QueryBuffer
from sqli.models import Focus, Mode
from sqli.session import CompletionPopup, SessionController, TemplatePicker

POPUP_ROWS = 8


class QueryPad(Container):
    """Renders the active tab's buffer; all editing happens in the controller."""

    DEFAULT_CSS = """
    QueryPad {
        layout: vertical;
        height: 2fr;
        border: round $surface-lighten-1;
        background: $surface;
        padding: 0 1;
    }

    QueryPad.-focused {
        border: round $primary;
    }

    QueryPad #query-text {
        height: 1fr;
    }

    QueryPad #query-popup {
        display: none;
        height: auto;
        max-height: 10;
        border-top: solid $surface-darken-2;
        color: $text;
    }

    QueryPad #query-popup.-visible {
        display: block;
    }
    """

    def __init__(self, controller: SessionController) -> None:
        super().__init__(id="query-pad")
        self._controller = controller
        self._unsubscribe: Callable[[], None] | None = None

    def compose(self) -> ComposeResult:
        yield Static("", id="query-text")
        yield Static("", id="query-popup")

    async def on_mount(self) -> None:
        self._unsubscribe = self._controller.subscribe(self._handle_update)
        self._handle_update(self._controller)

    def on_unmount(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def on_click(self, event: events.Click) -> None:
        self._controller.handle_click(pane=Focus.QUERY)

    def _handle_update(self, controller: SessionController) -> None:
        focused = controller.focus is Focus.QUERY
        self.set_class(focused, "-focused")
        mode = controller.mode.value.upper() if focused else ""
        self.border_title = f"Query {mode}".strip()
        tab = controller.active_tab
        text = self.query_one("#query-text", Static)
        popup = self.query_one("#query-popup", Static)
        if tab is None:
            text.update(Text("Press Enter on a connection to open a tab.", style="dim"))
        else:
            row, column = tab.buffer.position
            self.border_subtitle = f"{row + 1}:{column + 1}"
            text.update(render_buffer(tab.buffer, show_cursor=focused))
        if controller.template_picker is not None:
            popup.update(render_picker(controller.template_picker))
            popup.set_class(True, "-visible")
        elif controller.completion is not None:
            popup.update(render_completion(controller.completion))
            popup.set_class(True, "-visible")
        else:
            popup.set_class(False, "-visible")


def render_buffer(buffer: QueryBuffer, *, show_cursor: bool) -> Text:
    text = Text(buffer.text)
    if not show_cursor:
        return text
    cursor = buffer.cursor
    if cursor >= len(buffer.text) or buffer.text[cursor] == "\n":
        text = Text(buffer.text[:cursor])
        text.append(" ", style="reverse")
        text.append(buffer.text[cursor:])
    else:
        text.stylize("reverse", cursor, cursor + 1)
    return text


def _window(index: int, count: int) -> range:
    start = max(0, min(index - POPUP_ROWS // 2, count - POPUP_ROWS))
    return range(start, min(start + POPUP_ROWS, count))


def render_completion(popup: CompletionPopup) -> Text:
    text = Text()
    for position in _window(popup.index, len(popup.candidates)):
        suggestion = popup.candidates[position]
        selected = position == popup.index
        text.append(f"{suggestion.text:<32}", style="bold reverse" if selected else "")
        text.append(f" {suggestion.detail or suggestion.kind.value}\n", style="dim")
    return text


def render_picker(picker: TemplatePicker) -> Text:
    text = Text("Templates (enter insert, d delete, esc close)\n", style="bold")
    for position in _window(picker.index, len(picker.items)):
        template = picker.items[position]
        selected = position == picker.index
        first_line = template.body.splitlines()[0] if template.body else ""
        text.append(f"{template.name} [{template.scope}]", style="bold reverse" if selected else "bold")
        text.append(f"  {first_line[:48]}\n", style="dim")
    return text


__all__ = ["QueryPad", "render_buffer", "render_completion", "render_picker"]
