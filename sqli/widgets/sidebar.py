"""Left pane: the connection list, or the active tab's databases and tables."""

from __future__ import annotations

from typing import Callable

from rich.text import Text
from textual import events
from textual.widgets import Static

from sqli.models import Focus
from sqli.session import SessionController
from sqli.tabs import SidebarListing


class SidebarPane(Static):
    """Mirrors whichever list the controller currently steers."""

    DEFAULT_CSS = """
    SidebarPane {
        width: 32;
        min-width: 22;
        height: 1fr;
        padding: 0 1;
        border: round $surface-lighten-1;
        background: $surface-darken-1;
        overflow-y: auto;
    }

    SidebarPane.-focused {
        border: round $primary;
    }
    """

    def __init__(self, controller: SessionController) -> None:
        super().__init__("", id="sidebar")
        self._controller = controller
        self._unsubscribe: Callable[[], None] | None = None

    async def on_mount(self) -> None:
        self._unsubscribe = self._controller.subscribe(self._handle_update)
        self._handle_update(self._controller)

    def on_unmount(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None

    def on_click(self, event: events.Click) -> None:
        if self._controller.focus is Focus.CONNECTION_LIST:
            self._controller.handle_click(pane=Focus.CONNECTION_LIST)
        else:
            self._controller.handle_click(pane=Focus.SIDEBAR)

    def _handle_update(self, controller: SessionController) -> None:
        focused = controller.focus in (Focus.CONNECTION_LIST, Focus.SIDEBAR)
        self.set_class(focused, "-focused")
        if controller.focus is Focus.CONNECTION_LIST:
            self.border_title = "Connections"
            self.border_subtitle = controller.group_filter or "all"
            self.update(self._render_profiles(controller))
            return
        tab = controller.active_tab
        if tab is None:
            self.update("")
            return
        if tab.listing is SidebarListing.DATABASES:
            self.border_title = "Databases"
            self.border_subtitle = "system shown" if tab.include_system else ""
        else:
            self.border_title = f"Tables ({tab.database})" if tab.database else "Tables"
            self.border_subtitle = ""
        self.update(_render_items(tab.sidebar_items, tab.view.sidebar_index, controller.focus is Focus.SIDEBAR))

    @staticmethod
    def _render_profiles(controller: SessionController) -> Text:
        text = Text()
        profiles = controller.visible_profiles
        if not profiles:
            text.append("No profiles", style="dim")
        for index, profile in enumerate(profiles):
            selected = index == controller.connection_index
            text.append("> " if selected else "  ", style="bold")
            text.append(profile.name, style="bold reverse" if selected else "")
            text.append(f" {profile.kind.short_label}", style="dim")
            if profile.readonly:
                text.append(" ro", style="yellow")
            text.append("\n")
        return text


def _render_items(items: list[str], index: int, focused: bool) -> Text:
    text = Text()
    if not items:
        text.append("(empty)", style="dim")
    for position, item in enumerate(items):
        selected = position == index
        style = "bold reverse" if selected and focused else ("bold" if selected else "")
        text.append(item, style=style)
        text.append("\n")
    return text


__all__ = ["SidebarPane"]
