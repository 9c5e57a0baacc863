"""Widget library for the Textual UI."""

from __future__ import annotations

from .query_pad import QueryPad
from .results import ResultsPane
from .sidebar import SidebarPane
from .status_bar import StatusBar
from .tab_bar import TabBar

__all__ = ["QueryPad", "ResultsPane", "SidebarPane", "StatusBar", "TabBar"]
