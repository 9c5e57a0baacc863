"""Keyword catalog powering keyword suggestions."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence, Tuple

from .models import Suggestion, SuggestionKind


@dataclass(frozen=True, slots=True)
class KeywordEntry:
    keyword: str
    detail: str = "keyword"


class KeywordCatalog:
    """Fixed SQL vocabulary offered wherever a keyword may appear."""

    def __init__(self, entries: Sequence[KeywordEntry]) -> None:
        self._entries = tuple(entries)
        self._words = frozenset(entry.keyword for entry in self._entries)

    @classmethod
    def default(cls) -> "KeywordCatalog":
        return cls(_DEFAULT_ENTRIES)

    def __contains__(self, word: object) -> bool:
        return isinstance(word, str) and word.upper() in self._words

    def suggestions(self) -> list[Suggestion]:
        return [
            Suggestion(text=entry.keyword, kind=SuggestionKind.KEYWORD, detail=entry.detail)
            for entry in self._entries
        ]


def _entries(words: Iterable[str], detail: str) -> Tuple[KeywordEntry, ...]:
    return tuple(KeywordEntry(word, detail) for word in words)


_DEFAULT_ENTRIES: Tuple[KeywordEntry, ...] = _entries(
    (
        "SELECT", "FROM", "WHERE", "AND", "OR", "NOT", "IN", "IS", "NULL",
        "LIKE", "ILIKE", "BETWEEN", "EXISTS", "CASE", "WHEN", "THEN", "ELSE", "END",
        "AS", "ON", "USING", "JOIN", "INNER", "LEFT", "RIGHT", "FULL", "OUTER", "CROSS",
        "ORDER", "BY", "ASC", "DESC", "NULLS", "FIRST", "LAST",
        "GROUP", "HAVING", "LIMIT", "OFFSET", "FETCH", "NEXT", "ROWS", "ONLY",
        "UNION", "INTERSECT", "EXCEPT", "ALL", "DISTINCT",
        "INSERT", "INTO", "VALUES", "DEFAULT", "RETURNING",
        "UPDATE", "SET", "DELETE", "TRUNCATE",
        "CREATE", "ALTER", "DROP", "TABLE", "INDEX", "VIEW", "SCHEMA", "DATABASE",
        "PRIMARY", "KEY", "FOREIGN", "REFERENCES", "UNIQUE", "CHECK", "CONSTRAINT",
        "TRUE", "FALSE", "WITH", "RECURSIVE",
    ),
    "keyword",
) + _entries(("COUNT", "SUM", "AVG", "MIN", "MAX", "COALESCE", "NULLIF", "CAST"), "function")

TABLE_KEYWORDS = frozenset({"FROM", "JOIN", "INTO", "UPDATE", "TABLE", "TRUNCATE"})


__all__ = ["KeywordCatalog", "KeywordEntry", "TABLE_KEYWORDS"]
