"""One-line strip listing the open tabs."""

from __future__ import annotations

from typing import Callable

from rich.text import Text
from textual import events
from textual.widgets import Static

from sqli.session import SessionController


class TabBar(Static):
    DEFAULT_CSS = """
    TabBar {
        height: 1;
        padding: 0 1;
        background: $surface-darken-2;
    }
    """

    def __init__(self, controller: SessionController) -> None:
        super().__init__("", id="tab-bar")
        self._controller = controller
        self._spans: list[tuple[int, int]] = []
        self._unsubscribe: Callable[[], None] | None = None

    async def on_mount(self) -> None:
        self._unsubscribe = self._controller.subscribe(self._handle_update)
        self._handle_update(self._controller)

    def on_unmount(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def on_click(self, event: events.Click) -> None:
        offset = event.x - 1
        for index, (start, end) in enumerate(self._spans):
            if start <= offset < end:
                self._controller.handle_click(tab_index=index)
                return

    def _handle_update(self, controller: SessionController) -> None:
        text = Text()
        self._spans = []
        if not controller.tabs:
            text.append(" sqli ", style="bold")
        for index, tab in enumerate(controller.tabs):
            label = f" {tab.title} "
            start = text.cell_len
            text.append(label, style="bold reverse" if index == controller.active else "dim")
            self._spans.append((start, text.cell_len))
            text.append(" ")
        self.update(text)


__all__ = ["TabBar"]
