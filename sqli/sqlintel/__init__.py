"""SQL completion: context detection, table resolution and ranking."""

from __future__ import annotations

from .catalog import KeywordCatalog, TABLE_KEYWORDS
from .metadata import find_table_refs, match_table, resolve_table
from .models import CompletionContext, ContextKind, Suggestion, SuggestionKind, TableRef
from .service import MAX_SUGGESTIONS, complete, detect_context, rank, referenced_tables

__all__ = [
    "CompletionContext",
    "ContextKind",
    "KeywordCatalog",
    "MAX_SUGGESTIONS",
    "Suggestion",
    "SuggestionKind",
    "TABLE_KEYWORDS",
    "TableRef",
    "complete",
    "detect_context",
    "find_table_refs",
    "match_table",
    "rank",
    "referenced_tables",
    "resolve_table",
]
