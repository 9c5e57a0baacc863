"""App-level tests driving the Textual shell through its pilot."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import pytest

from sqli.app import SqliApp, main, parse_args
from sqli.config import AppConfig
from sqli.models import BackendKind, ConnectionProfile, Focus, Mode
from sqli.templates import TemplateStore


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def sqlite_config(tmp_path: Path) -> AppConfig:
    path = tmp_path / "shop.db"
    conn = sqlite3.connect(path)
    conn.execute("CREATE TABLE products (id INTEGER PRIMARY KEY, name TEXT)")
    conn.execute("INSERT INTO products (name) VALUES ('lamp'), ('desk')")
    conn.commit()
    conn.close()
    return AppConfig(profiles=[ConnectionProfile(name="shop", kind=BackendKind.SQLITE, path=str(path))])


@pytest.mark.anyio
async def test_keys_reach_the_controller(sqlite_config: AppConfig, tmp_path: Path) -> None:
    app = SqliApp(sqlite_config, TemplateStore(), template_path=tmp_path / "templates.sql")

    async with app.run_test() as pilot:
        await pilot.press("enter")
        controller = app.controller
        tab = controller.active_tab
        assert tab is not None and tab.connected
        assert tab.tables == ["products"]
        assert controller.focus is Focus.QUERY

        await pilot.press("i", *"select", "space", "1")
        assert controller.mode is Mode.INSERT
        assert tab.buffer.text == "select 1"

        await pilot.press("ctrl+e")
        assert tab.result is not None and tab.result.rows == ((1,),)

        await pilot.press("escape", "tab")
        assert controller.focus is Focus.OUTPUT


@pytest.mark.anyio
async def test_quit_command_exits_the_app(sqlite_config: AppConfig, tmp_path: Path) -> None:
    app = SqliApp(sqlite_config, TemplateStore(), template_path=tmp_path / "templates.sql")

    async with app.run_test() as pilot:
        await pilot.press("enter", "colon", "q", "a", "enter")
        await pilot.pause()
        assert app.controller.quit

    assert app.return_code == 0


def test_parse_args_defaults() -> None:
    args = parse_args([])

    assert args.config is None
    assert args.connect is None
    assert args.debug is False


def test_bad_connection_string_exits_with_an_error(capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["--connect", "oracle://db"]) == 1

    assert "Unknown database type" in capsys.readouterr().err
