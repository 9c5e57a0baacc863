"""Status bar widget that mirrors controller state."""

from __future__ import annotations

from typing import Callable

from rich.text import Text
from textual.widgets import Static

from sqli.models import Mode
from sqli.session import SessionController


class StatusBar(Static):
    """Mode, command line and last message in one row."""

    DEFAULT_CSS = """
    StatusBar {
        height: 1;
        padding: 0 1;
        background: $surface-darken-3;
        color: $text;
    }
    """

    def __init__(self, controller: SessionController) -> None:
        super().__init__("", id="status-bar")
        self._controller = controller
        self._unsubscribe: Callable[[], None] | None = None

    async def on_mount(self) -> None:
        self._unsubscribe = self._controller.subscribe(self._handle_update)
        self._handle_update(self._controller)

    def on_unmount(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def _handle_update(self, controller: SessionController) -> None:
        if controller.mode is Mode.COMMAND:
            self.update(f":{controller.command_buffer}")
            return
        text = Text()
        text.append(f" {controller.mode.value.upper()} ", style="bold reverse")
        text.append(f" {controller.focus.value} ", style="dim")
        tab = controller.active_tab
        if tab is not None and tab.profile is not None:
            target = f"{tab.profile.name}/{tab.database}" if tab.database else tab.profile.name
            text.append(f"{target} ", style="bold")
            if tab.profile.readonly:
                text.append("[read-only] ", style="yellow")
        if controller.status:
            text.append(f"| {controller.status.splitlines()[0]}")
        self.update(text)


__all__ = ["StatusBar"]
