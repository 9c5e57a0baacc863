"""Tests for the query buffer."""

from __future__ import annotations

from sqli.editor import QueryBuffer


def test_insert_and_backspace_track_the_cursor() -> None:
    buffer = QueryBuffer()

    buffer.insert("SELEC")
    buffer.insert("T")
    buffer.backspace()

    assert buffer.text == "SELEC"
    assert buffer.cursor == 5


def test_vertical_motion_keeps_the_column_when_possible() -> None:
    buffer = QueryBuffer("SELECT *\nFROM t\nWHERE id = 1", cursor=7)

    buffer.move_down()
    assert buffer.position == (1, 6)

    buffer.move_down()
    assert buffer.position == (2, 6)

    buffer.move_up()
    buffer.move_up()
    assert buffer.position == (0, 6)


def test_line_start_and_end() -> None:
    buffer = QueryBuffer("a\nbcd\ne", cursor=3)

    buffer.move_line_end()
    assert buffer.cursor == 5
    buffer.move_line_start()
    assert buffer.cursor == 2


def test_replace_range_places_cursor_after_insertion() -> None:
    buffer = QueryBuffer("SELECT * FROM ord", cursor=17)

    buffer.replace_range(14, 17, "orders")

    assert buffer.text == "SELECT * FROM orders"
    assert buffer.cursor == 20


def test_undo_and_redo_restore_text_and_cursor() -> None:
    buffer = QueryBuffer()
    buffer.insert("SELECT 1")
    buffer.set_text("SELECT 2", cursor=0)

    assert buffer.undo()
    assert (buffer.text, buffer.cursor) == ("SELECT 1", 8)
    assert buffer.redo()
    assert (buffer.text, buffer.cursor) == ("SELECT 2", 0)
    assert not buffer.redo()


def test_edits_at_the_boundaries_are_no_ops() -> None:
    buffer = QueryBuffer("x", cursor=0)

    buffer.backspace()
    buffer.move_left()
    assert (buffer.text, buffer.cursor) == ("x", 0)

    buffer.move_right()
    buffer.delete()
    assert (buffer.text, buffer.cursor) == ("x", 1)
