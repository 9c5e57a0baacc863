"""Core dataclasses shared by the completion engine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class SuggestionKind(str, Enum):
    """Kinds of candidates, listed in ranking order."""

    KEYWORD = "keyword"
    TABLE = "table"
    COLUMN = "column"

    @property
    def order(self) -> int:
        return _KIND_ORDER[self]


_KIND_ORDER = {SuggestionKind.KEYWORD: 0, SuggestionKind.TABLE: 1, SuggestionKind.COLUMN: 2}


class ContextKind(str, Enum):
    """What the token under the cursor is expected to be."""

    GENERAL = "general"
    TABLE = "table"
    COLUMN = "column"


@dataclass(frozen=True, slots=True)
class Suggestion:
    """Single autocomplete entry."""

    text: str
    kind: SuggestionKind
    rank: int = 0
    detail: str | None = None


@dataclass(frozen=True, slots=True)
class CompletionContext:
    """Details derived from the text around the cursor."""

    kind: ContextKind
    prefix: str
    start: int
    statement: str
    qualifier: str | None = None
    ambiguous: bool = False

    @property
    def end(self) -> int:
        return self.start + len(self.prefix)


@dataclass(frozen=True, slots=True)
class TableRef:
    """A table named in a statement, with the alias bound to it if any."""

    name: str
    alias: str | None = None


__all__ = [
    "CompletionContext",
    "ContextKind",
    "Suggestion",
    "SuggestionKind",
    "TableRef",
]
