"""Query results, statement helpers and the read-only policy guard."""

from __future__ import annotations

import dataclasses
import re
from dataclasses import dataclass
from datetime import date, datetime, time
from decimal import Decimal
from typing import Iterable, Sequence

import sqlglot
from sqlglot import exp
from sqlglot.errors import SqlglotError


class QueryExecutionError(RuntimeError):
    """Raised when a backend reports a failure while running a statement."""


class PolicyError(RuntimeError):
    """Raised when a statement is rejected locally before reaching the backend."""


@dataclass(frozen=True, slots=True)
class QueryResult:
    """Normalized query output returned to the UI.

    A result either carries rows that are exactly as wide as ``columns`` or an
    ``error`` message with no rows at all.
    """

    columns: tuple[str, ...]
    rows: tuple[tuple[object, ...], ...]
    status: str = "OK"
    elapsed_ms: int = 0
    row_count: int | None = None
    rows_affected: int | None = None
    error: str | None = None

    def __post_init__(self) -> None:
        if self.error is not None:
            if self.rows or self.columns:
                raise QueryExecutionError("Error results cannot carry rows.")
            return
        width = len(self.columns)
        for index, row in enumerate(self.rows):
            if len(row) != width:
                raise QueryExecutionError(
                    f"Row {index} has {len(row)} value(s) but the result has {width} column(s)."
                )

    @classmethod
    def from_rows(
        cls,
        columns: Sequence[str],
        rows: Iterable[Sequence[object]],
        *,
        elapsed_ms: int = 0,
    ) -> "QueryResult":
        materialized = tuple(tuple(row) for row in rows)
        return cls(
            columns=tuple(str(column) for column in columns),
            rows=materialized,
            status=f"{len(materialized)} row(s)",
            elapsed_ms=elapsed_ms,
            row_count=len(materialized),
        )

    @classmethod
    def affected(cls, count: int | None, *, elapsed_ms: int = 0) -> "QueryResult":
        status = f"{count} row(s) affected" if count is not None else "OK"
        return cls(columns=(), rows=(), status=status, elapsed_ms=elapsed_ms, rows_affected=count)

    @classmethod
    def failure(cls, message: str) -> "QueryResult":
        return cls(columns=(), rows=(), status="Error", error=message)

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @property
    def returns_rows(self) -> bool:
        return self.error is None and self.row_count is not None

    def with_elapsed(self, elapsed_ms: int) -> "QueryResult":
        return dataclasses.replace(self, elapsed_ms=elapsed_ms)


READ_KEYWORDS = frozenset(
    {
        "SELECT",
        "SHOW",
        "DESCRIBE",
        "DESC",
        "EXPLAIN",
        "WITH",
        "USE",
        "HELP",
        "LIST",
        "PRAGMA",
        "VALUES",
    }
)

_ROW_KEYWORDS = frozenset({"SELECT", "WITH", "SHOW", "VALUES", "DESCRIBE", "DESC", "EXPLAIN", "PRAGMA", "TABLE"})
_WRITE_NODES = (exp.Insert, exp.Update, exp.Delete, exp.Merge)
_WORD = re.compile(r"[A-Za-z_]+")


def strip_leading_comments(statement: str) -> str:
    """Drop whitespace plus ``--`` and ``/* */`` comments ahead of the first token."""

    text = statement
    while True:
        text = text.lstrip()
        if text.startswith("--"):
            newline = text.find("\n")
            text = "" if newline < 0 else text[newline + 1 :]
        elif text.startswith("/*"):
            end = text.find("*/")
            text = "" if end < 0 else text[end + 2 :]
        else:
            return text


def first_keyword(statement: str) -> str:
    """Upper-cased first word of the statement, ignoring leading comments."""

    match = _WORD.match(strip_leading_comments(statement))
    return match.group(0).upper() if match else ""


def is_read_statement(statement: str) -> bool:
    """Return True when the statement is safe for a read-only profile."""

    body = strip_leading_comments(statement)
    keyword = first_keyword(body)
    if keyword not in READ_KEYWORDS:
        return False
    if keyword == "EXPLAIN":
        # EXPLAIN ANALYZE runs the explained statement.
        rest = body[len("EXPLAIN") :].lstrip()
        if rest.startswith("("):
            close = rest.find(")")
            if close < 0:
                return False
            options = {word.upper() for word in _WORD.findall(rest[1:close])}
            rest = rest[close + 1 :]
            if options & {"ANALYZE", "ANALYSE"}:
                return is_read_statement(rest)
            return True
        option = first_keyword(rest)
        if option in {"ANALYZE", "ANALYSE"}:
            rest = rest[len(option) :].lstrip()
            if first_keyword(rest) == "VERBOSE":
                rest = rest[len("VERBOSE") :]
            return is_read_statement(rest)
        return True
    if keyword == "WITH":
        try:
            parsed = sqlglot.parse_one(body)
        except SqlglotError:
            return False
        if parsed is None:
            return False
        return parsed.find(*_WRITE_NODES) is None
    return True


def check_read_only(statements: Iterable[str]) -> None:
    """Raise PolicyError for the first statement that is not a read."""

    for statement in statements:
        if not is_read_statement(statement):
            raise PolicyError(
                "Connection is read-only, only read statements are allowed "
                f"(rejected: {first_keyword(statement) or statement.strip()[:20]})."
            )


def returns_rows(statement: str) -> bool:
    """Best-effort guess whether a statement yields a result set."""

    return first_keyword(statement) in _ROW_KEYWORDS


def split_statements(text: str) -> list[str]:
    """Split on top-level semicolons, respecting quotes and comments."""

    statements: list[str] = []
    current: list[str] = []
    quote: str | None = None
    index = 0
    length = len(text)
    while index < length:
        char = text[index]
        if quote:
            current.append(char)
            if char == quote:
                if index + 1 < length and text[index + 1] == quote:
                    current.append(quote)
                    index += 1
                else:
                    quote = None
        elif char in "'\"`":
            quote = char
            current.append(char)
        elif text.startswith("--", index):
            end = text.find("\n", index)
            end = length if end < 0 else end
            current.append(text[index:end])
            index = end
            continue
        elif text.startswith("/*", index):
            end = text.find("*/", index + 2)
            end = length if end < 0 else end + 2
            current.append(text[index:end])
            index = end
            continue
        elif char == ";":
            _flush_statement(current, statements)
        else:
            current.append(char)
        index += 1
    _flush_statement(current, statements)
    return statements


def _flush_statement(buffer: list[str], statements: list[str]) -> None:
    statement = "".join(buffer).strip()
    buffer.clear()
    if statement and strip_leading_comments(statement):
        statements.append(statement)


def format_cell(value: object) -> str:
    """Render a cell value the same way for every backend."""

    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, Decimal)):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        raw = bytes(value)
        if len(raw) <= 32:
            return f"\\x{raw.hex()}"
        return f"<blob: {len(raw)} bytes>"
    if isinstance(value, datetime):
        return value.isoformat(sep=" ", timespec="milliseconds")
    if isinstance(value, (date, time)):
        return value.isoformat()
    if isinstance(value, (list, tuple, set, frozenset)):
        return "{" + ",".join(format_cell(item) for item in value) + "}"
    return str(value)


__all__ = [
    "PolicyError",
    "QueryExecutionError",
    "QueryResult",
    "READ_KEYWORDS",
    "check_read_only",
    "first_keyword",
    "format_cell",
    "is_read_statement",
    "returns_rows",
    "split_statements",
    "strip_leading_comments",
]
