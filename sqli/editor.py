"""Plain-text query buffer with a cursor and undo history."""

from __future__ import annotations

from dataclasses import dataclass, field

UNDO_LIMIT = 200


@dataclass(slots=True)
class QueryBuffer:
    """Editable SQL text; ``cursor`` is a character offset into ``text``."""

    text: str = ""
    cursor: int = 0
    _undo: list[tuple[str, int]] = field(default_factory=list, repr=False)
    _redo: list[tuple[str, int]] = field(default_factory=list, repr=False)

    def __post_init__(self) -> None:
        self.cursor = max(0, min(self.cursor, len(self.text)))

    # Editing -----------------------------------------------------------------

    def insert(self, value: str) -> None:
        if not value:
            return
        self._checkpoint()
        self.text = self.text[: self.cursor] + value + self.text[self.cursor :]
        self.cursor += len(value)

    def backspace(self) -> None:
        if self.cursor == 0:
            return
        self._checkpoint()
        self.text = self.text[: self.cursor - 1] + self.text[self.cursor :]
        self.cursor -= 1

    def delete(self) -> None:
        if self.cursor >= len(self.text):
            return
        self._checkpoint()
        self.text = self.text[: self.cursor] + self.text[self.cursor + 1 :]

    def replace_range(self, start: int, end: int, value: str) -> None:
        """Replace ``text[start:end]`` and leave the cursor after ``value``."""

        start = max(0, min(start, len(self.text)))
        end = max(start, min(end, len(self.text)))
        self._checkpoint()
        self.text = self.text[:start] + value + self.text[end:]
        self.cursor = start + len(value)

    def set_text(self, value: str, *, cursor: int | None = None) -> None:
        self._checkpoint()
        self.text = value
        self.cursor = len(value) if cursor is None else max(0, min(cursor, len(value)))

    def undo(self) -> bool:
        if not self._undo:
            return False
        self._redo.append((self.text, self.cursor))
        self.text, self.cursor = self._undo.pop()
        return True

    def redo(self) -> bool:
        if not self._redo:
            return False
        self._undo.append((self.text, self.cursor))
        self.text, self.cursor = self._redo.pop()
        return True

    # Motions -----------------------------------------------------------------

    def move_left(self) -> None:
        self.cursor = max(0, self.cursor - 1)

    def move_right(self) -> None:
        self.cursor = min(len(self.text), self.cursor + 1)

    def move_line_start(self) -> None:
        self.cursor = self._line_start(self.cursor)

    def move_line_end(self) -> None:
        end = self.text.find("\n", self.cursor)
        self.cursor = len(self.text) if end < 0 else end

    def move_up(self) -> None:
        start = self._line_start(self.cursor)
        if start == 0:
            return
        column = self.cursor - start
        previous_start = self._line_start(start - 1)
        self.cursor = min(previous_start + column, start - 1)

    def move_down(self) -> None:
        start = self._line_start(self.cursor)
        column = self.cursor - start
        end = self.text.find("\n", self.cursor)
        if end < 0:
            return
        next_end = self.text.find("\n", end + 1)
        next_end = len(self.text) if next_end < 0 else next_end
        self.cursor = min(end + 1 + column, next_end)

    # Introspection -------------------------------------------------------------

    @property
    def lines(self) -> list[str]:
        return self.text.split("\n")

    @property
    def position(self) -> tuple[int, int]:
        """Cursor as ``(line, column)``, both zero based."""

        before = self.text[: self.cursor]
        line = before.count("\n")
        return line, self.cursor - (before.rfind("\n") + 1)

    def _line_start(self, offset: int) -> int:
        return self.text.rfind("\n", 0, offset) + 1

    def _checkpoint(self) -> None:
        self._undo.append((self.text, self.cursor))
        if len(self._undo) > UNDO_LIMIT:
            del self._undo[0]
        self._redo.clear()


__all__ = ["QueryBuffer"]
