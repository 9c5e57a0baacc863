"""Tests for context detection and completion ranking."""

from __future__ import annotations

import pytest

from sqli.sqlintel import (
    MAX_SUGGESTIONS,
    ContextKind,
    Suggestion,
    SuggestionKind,
    complete,
    detect_context,
    find_table_refs,
    rank,
    referenced_tables,
    resolve_table,
)
from sqli.sqlintel.models import TableRef

SNAPSHOT = {
    "orders": ("id", "user_id", "total"),
    "products": ("id", "name", "price"),
    "users": ("id", "email"),
}


def _complete(text: str, snapshot=SNAPSHOT) -> list[Suggestion]:  # type: ignore[no-untyped-def]
    return complete(text, len(text), snapshot)


def test_alias_qualifier_offers_columns_alphabetically() -> None:
    suggestions = _complete("SELECT * FROM orders o WHERE o.", {"orders": ("id", "user_id", "total")})

    assert [item.text for item in suggestions] == ["id", "total", "user_id"]
    assert {item.kind for item in suggestions} == {SuggestionKind.COLUMN}
    assert [item.rank for item in suggestions] == [0, 1, 2]


def test_table_keyword_offers_matching_tables() -> None:
    suggestions = _complete("SELECT * FROM ord", {"orders": (), "products": ()})

    assert [(item.text, item.kind) for item in suggestions] == [("orders", SuggestionKind.TABLE)]


def test_nothing_is_offered_inside_string_literals() -> None:
    assert _complete("SELECT * FROM orders WHERE status = 'pen") == []
    assert detect_context("SELECT 1 -- FROM ord", 20) is None


def test_partial_column_after_table_name_qualifier() -> None:
    suggestions = _complete("SELECT orders.us")

    assert [item.text for item in suggestions] == ["user_id"]


def test_as_alias_and_join_alias_resolve() -> None:
    text = "SELECT * FROM users AS u JOIN products p ON p."

    assert [item.text for item in _complete(text)] == ["id", "name", "price"]
    assert resolve_table("u", text, SNAPSHOT) == "users"


def test_unknown_qualifier_yields_nothing() -> None:
    assert _complete("SELECT * FROM orders o WHERE x.") == []


def test_join_offers_tables_with_empty_prefix() -> None:
    suggestions = _complete("SELECT * FROM orders JOIN ")

    assert [item.text for item in suggestions] == ["orders", "products", "users"]


def test_after_a_named_table_keywords_are_offered_too() -> None:
    context = detect_context("SELECT * FROM orders WH", 23)

    assert context is not None
    assert context.kind is ContextKind.TABLE
    assert context.ambiguous
    assert [item.text for item in _complete("SELECT * FROM orders WH")] == ["WHEN", "WHERE"]


def test_general_context_mixes_keywords_and_referenced_columns() -> None:
    suggestions = _complete("SELECT * FROM users WHERE e")

    assert [(item.text, item.kind) for item in suggestions] == [
        ("email", SuggestionKind.COLUMN),
        ("ELSE", SuggestionKind.KEYWORD),
        ("END", SuggestionKind.KEYWORD),
        ("EXCEPT", SuggestionKind.KEYWORD),
        ("EXISTS", SuggestionKind.KEYWORD),
    ]


def test_context_is_limited_to_the_current_statement() -> None:
    text = "SELECT * FROM orders o; SELECT * FROM users o WHERE o."

    assert [item.text for item in _complete(text)] == ["email", "id"]


def test_prefix_start_points_at_token_start() -> None:
    context = detect_context("SELECT * FROM ord", 17)

    assert context is not None
    assert (context.start, context.end, context.prefix) == (14, 17, "ord")


def test_rank_orders_by_case_match_then_kind_then_name() -> None:
    candidates = [
        Suggestion(text="id", kind=SuggestionKind.COLUMN),
        Suggestion(text="ID", kind=SuggestionKind.KEYWORD),
        Suggestion(text="idx", kind=SuggestionKind.TABLE),
        Suggestion(text="id", kind=SuggestionKind.COLUMN),
    ]

    ranked = rank(candidates, "id")

    assert [(item.text, item.kind) for item in ranked] == [
        ("idx", SuggestionKind.TABLE),
        ("id", SuggestionKind.COLUMN),
        ("ID", SuggestionKind.KEYWORD),
    ]


def test_rank_caps_the_list() -> None:
    candidates = [Suggestion(text=f"t{index:03}", kind=SuggestionKind.TABLE) for index in range(80)]

    assert len(rank(candidates, "")) == MAX_SUGGESTIONS


@pytest.mark.parametrize(
    ("statement", "expected"),
    [
        ("SELECT * FROM orders", [TableRef("orders")]),
        ("SELECT * FROM orders o, users AS u", [TableRef("orders", "o"), TableRef("users", "u")]),
        ('SELECT * FROM "public"."orders" o JOIN users ON true', [TableRef("public.orders", "o"), TableRef("users")]),
        ("UPDATE users SET email = 'x'", [TableRef("users")]),
    ],
)
def test_find_table_refs(statement: str, expected: list[TableRef]) -> None:
    assert find_table_refs(statement) == expected


def test_referenced_tables_matches_unqualified_snapshot_names() -> None:
    text = "SELECT * FROM public.orders WHERE "

    assert referenced_tables(text, len(text), SNAPSHOT) == ["orders"]
