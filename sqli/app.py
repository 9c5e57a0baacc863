"""Textual application entry point for sqli."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Callable

from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Container, Horizontal, Vertical

from .config import CONFIG_DIR, AppConfig, ConfigError, load_config, parse_connection_string
from .session import SessionController
from .templates import TEMPLATES_FILE, TemplateStore, load_templates
from .widgets import QueryPad, ResultsPane, SidebarPane, StatusBar, TabBar

LOG = logging.getLogger(__name__)

DEBUG_LOG = CONFIG_DIR / "debug.log"


def _load_app_config(path: Path | None = None) -> AppConfig:
    """Load configuration with a small wrapper for tests to override."""

    return load_config(path)


class Workspace(Container, can_focus=True):
    """Single focus target that hands every key to the controller.

    Keys are stopped here so Textual's own focus bindings (tab, shift+tab)
    never see them.
    """

    DEFAULT_CSS = """
    Workspace {
        layout: vertical;
        height: 1fr;
    }

    Workspace #panes {
        layout: horizontal;
        height: 1fr;
    }

    Workspace #main-column {
        layout: vertical;
        height: 1fr;
    }
    """

    def __init__(self, controller: SessionController) -> None:
        super().__init__(id="workspace")
        self._controller = controller

    def compose(self) -> ComposeResult:
        yield TabBar(self._controller)
        with Horizontal(id="panes"):
            yield SidebarPane(self._controller)
            with Vertical(id="main-column"):
                yield QueryPad(self._controller)
                yield ResultsPane(self._controller)
        yield StatusBar(self._controller)

    def on_key(self, event: events.Key) -> None:
        key = event.character if event.is_printable and event.character else event.key
        event.stop()
        event.prevent_default()
        self._controller.handle_key(key)


class SqliApp(App[None]):
    """Multi-tab SQL client shell around one session controller."""

    CSS = """
    Screen {
        layout: vertical;
    }
    """

    BINDINGS = [
        Binding("ctrl+c", "quit", "Quit", priority=True),
    ]

    def __init__(
        self,
        config: AppConfig | None = None,
        templates: TemplateStore | None = None,
        *,
        controller: SessionController | None = None,
        template_path: Path | None = TEMPLATES_FILE,
        template_errors: list[str] | None = None,
    ) -> None:
        super().__init__()
        self._config = config if config is not None else _load_app_config()
        self._controller = controller or SessionController(
            self._config,
            templates,
            template_path=template_path,
        )
        self._unsubscribe: Callable[[], None] | None = None
        self._last_clipboard: str | None = None
        self._pending_notifications: list[tuple[str, str]] = [
            (message, "warning") for message in [*self._config.errors, *(template_errors or [])]
        ]

    @property
    def controller(self) -> SessionController:
        return self._controller

    def compose(self) -> ComposeResult:
        yield Workspace(self._controller)

    async def on_mount(self) -> None:
        self._unsubscribe = self._controller.subscribe(self._handle_controller_update)
        self.query_one(Workspace).focus()
        self._controller.handle_resize(self.size.width, self.size.height)
        self._flush_pending_notifications()

    def on_resize(self, event: events.Resize) -> None:
        self._controller.handle_resize(event.size.width, event.size.height)

    async def _shutdown(self) -> None:
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        self._controller.shutdown()
        await super()._shutdown()

    def _handle_controller_update(self, controller: SessionController) -> None:
        if controller.clipboard is not None and controller.clipboard != self._last_clipboard:
            self._last_clipboard = controller.clipboard
            self.copy_to_clipboard(controller.clipboard)
        if controller.quit:
            self.exit()

    def _flush_pending_notifications(self) -> None:
        pending = list(self._pending_notifications)
        self._pending_notifications.clear()
        for message, severity in pending:
            try:
                self.notify(message, severity=severity)
            except Exception:
                LOG.exception("Failed to display queued notification", extra={"message": message})


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="sqli", description="Multi-tab terminal SQL client.")
    parser.add_argument("--config", type=Path, help="Profile file to load instead of the default lookup")
    parser.add_argument(
        "--connect",
        metavar="URL",
        help="Connect straight away, e.g. pg://user:pass@host:5432/db or sq:///path/to.db",
    )
    parser.add_argument("--debug", action="store_true", help=f"Write a debug log to {DEBUG_LOG}")
    return parser.parse_args(argv)


def _configure_logging(debug: bool) -> None:
    """Log to a file; the terminal belongs to Textual."""

    DEBUG_LOG.parent.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=[logging.FileHandler(DEBUG_LOG, encoding="utf-8", delay=True)],
    )


def main(argv: list[str] | None = None) -> int:
    """Invoke the Textual application."""

    args = parse_args(sys.argv[1:] if argv is None else argv)
    profile = None
    if args.connect:
        try:
            profile = parse_connection_string(args.connect)
        except ConfigError as exc:
            print(f"sqli: {exc}", file=sys.stderr)
            return 1
    _configure_logging(args.debug)
    config = _load_app_config(args.config)
    if profile is not None:
        config = config.with_profile(profile)
    templates, template_errors = load_templates(TEMPLATES_FILE)
    app = SqliApp(config, templates, template_errors=[str(error) for error in template_errors])
    if profile is not None:
        app.controller.open_profile(profile)
    app.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
