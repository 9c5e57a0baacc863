"""Context detection and ranking for query-pad completion."""

from __future__ import annotations

import re
from typing import Iterable, Mapping, Sequence

from .catalog import TABLE_KEYWORDS, KeywordCatalog
from .metadata import find_table_refs, match_table, resolve_table
from .models import CompletionContext, ContextKind, Suggestion, SuggestionKind

MAX_SUGGESTIONS = 50

_WORD = re.compile(r"[\w$]+")
_QUALIFIER_TAIL = re.compile(r'[\w$."`]+$')
_KEYWORDS = KeywordCatalog.default()


def detect_context(text: str, cursor: int) -> CompletionContext | None:
    """Classify the cursor position; None inside string literals and comments."""

    cursor = max(0, min(cursor, len(text)))
    inside_literal, boundaries = _scan(text, cursor)
    if inside_literal:
        return None
    statement_start = max((pos + 1 for pos in boundaries if pos < cursor), default=0)
    statement_end = min((pos for pos in boundaries if pos >= cursor), default=len(text))
    statement = text[statement_start:statement_end]

    start = cursor
    while start > statement_start and _is_word_char(text[start - 1]):
        start -= 1
    prefix = text[start:cursor]

    if start > statement_start and text[start - 1] == ".":
        match = _QUALIFIER_TAIL.search(text, statement_start, start - 1)
        qualifier = match.group(0).strip(".") if match else ""
        if qualifier:
            return CompletionContext(
                kind=ContextKind.COLUMN,
                prefix=prefix,
                start=start,
                statement=statement,
                qualifier=qualifier,
            )

    before = text[statement_start:start]
    for match in reversed(list(_WORD.finditer(before))):
        word = match.group(0).upper()
        if word not in _KEYWORDS:
            continue
        if word in TABLE_KEYWORDS:
            tail = before[match.end() :].rsplit(",", 1)[-1]
            named = any(_WORD.fullmatch(token) for token in tail.split())
            return CompletionContext(
                kind=ContextKind.TABLE,
                prefix=prefix,
                start=start,
                statement=statement,
                ambiguous=named,
            )
        break
    return CompletionContext(kind=ContextKind.GENERAL, prefix=prefix, start=start, statement=statement)


def referenced_tables(text: str, cursor: int, tables: Iterable[str]) -> list[str]:
    """Snapshot tables whose columns the completion at ``cursor`` will need."""

    context = detect_context(text, cursor)
    if context is None:
        return []
    known = tuple(tables)
    if context.kind is ContextKind.COLUMN:
        table = resolve_table(context.qualifier or "", context.statement, known)
        return [table] if table else []
    if context.kind is ContextKind.TABLE:
        return []
    resolved: list[str] = []
    for ref in find_table_refs(context.statement):
        table = match_table(ref.name, known)
        if table is not None and table not in resolved:
            resolved.append(table)
    return resolved


def complete(text: str, cursor: int, snapshot: Mapping[str, Sequence[str]]) -> list[Suggestion]:
    """Ranked, deduplicated candidates for the token ending at ``cursor``."""

    context = detect_context(text, cursor)
    if context is None:
        return []
    candidates: list[Suggestion] = []
    if context.kind is ContextKind.COLUMN:
        table = resolve_table(context.qualifier or "", context.statement, snapshot)
        if table is not None:
            candidates.extend(_columns(table, snapshot[table]))
    elif context.kind is ContextKind.TABLE:
        candidates.extend(Suggestion(text=table, kind=SuggestionKind.TABLE, detail="table") for table in snapshot)
        if context.ambiguous:
            candidates.extend(_KEYWORDS.suggestions())
    else:
        candidates.extend(_KEYWORDS.suggestions())
        for table in referenced_tables(text, cursor, snapshot):
            candidates.extend(_columns(table, snapshot[table]))
    return rank(candidates, context.prefix)


def rank(candidates: Iterable[Suggestion], prefix: str) -> list[Suggestion]:
    """Filter by prefix, drop duplicates and order by match, kind and name."""

    lowered = prefix.lower()
    seen: set[tuple[SuggestionKind, str]] = set()
    matches: list[Suggestion] = []
    for candidate in candidates:
        key = (candidate.kind, candidate.text)
        if key in seen or not candidate.text.lower().startswith(lowered):
            continue
        seen.add(key)
        matches.append(candidate)
    matches.sort(key=lambda item: (not item.text.startswith(prefix), item.kind.order, item.text.lower()))
    return [
        Suggestion(text=item.text, kind=item.kind, rank=position, detail=item.detail)
        for position, item in enumerate(matches[:MAX_SUGGESTIONS])
    ]


def _columns(table: str, columns: Sequence[str]) -> list[Suggestion]:
    return [Suggestion(text=column, kind=SuggestionKind.COLUMN, detail=f"{table} column") for column in columns]


def _is_word_char(char: str) -> bool:
    return char.isalnum() or char in "_$"


def _scan(text: str, cursor: int) -> tuple[bool, list[int]]:
    """Return whether ``cursor`` sits in a literal/comment, plus top-level ``;`` offsets."""

    state: str | None = None
    inside: bool | None = None
    boundaries: list[int] = []
    index = 0
    while index < len(text):
        if inside is None and index >= cursor:
            inside = state is not None
        char = text[index]
        if state in ("'", '"', "`"):
            if char == state:
                state = None
        elif state == "--":
            if char == "\n":
                state = None
        elif state == "/*":
            if text.startswith("*/", index):
                index += 1
                state = None
        elif char in "'\"`":
            state = char
        elif text.startswith("--", index):
            state = "--"
            index += 1
        elif text.startswith("/*", index):
            state = "/*"
            index += 1
        elif char == ";":
            boundaries.append(index)
        index += 1
    if inside is None:
        inside = state is not None
    return inside, boundaries


__all__ = ["MAX_SUGGESTIONS", "complete", "detect_context", "rank", "referenced_tables"]
