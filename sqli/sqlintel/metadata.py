"""Table and alias resolution over a schema snapshot."""

from __future__ import annotations

import re
from typing import Iterable

from .catalog import TABLE_KEYWORDS, KeywordCatalog
from .models import TableRef

_TOKEN = re.compile(r'(?:"[^"]*"|`[^`]*`|[\w$]+)(?:\.(?:"[^"]*"|`[^`]*`|[\w$]+))*\.?|\S')
_IDENTIFIER = re.compile(r'^(?:"[^"]*"|`[^`]*`|[\w$]+)(?:\.(?:"[^"]*"|`[^`]*`|[\w$]+))*$')
_KEYWORDS = KeywordCatalog.default()


def find_table_refs(statement: str) -> list[TableRef]:
    """Tables named after FROM/JOIN/INTO/UPDATE/TABLE/TRUNCATE, with their aliases."""

    tokens = _TOKEN.findall(statement)
    refs: list[TableRef] = []
    index = 0
    while index < len(tokens):
        keyword = tokens[index].upper()
        index += 1
        if keyword not in TABLE_KEYWORDS:
            continue
        while index < len(tokens) and _is_name(tokens[index]):
            name = tokens[index]
            index += 1
            alias = None
            if index < len(tokens) and tokens[index].upper() == "AS":
                index += 1
            if index < len(tokens) and _is_name(tokens[index]):
                alias = _unquote(tokens[index])
                index += 1
            refs.append(TableRef(name=_unquote(name), alias=alias))
            if keyword == "FROM" and index < len(tokens) and tokens[index] == ",":
                index += 1
                continue
            break
    return refs


def resolve_table(qualifier: str, statement: str, tables: Iterable[str]) -> str | None:
    """Map a qualifier to a snapshot table: exact name, last segment, then alias."""

    known = tuple(tables)
    direct = match_table(qualifier, known)
    if direct is not None:
        return direct
    wanted = _normalize(qualifier)
    for ref in reversed(find_table_refs(statement)):
        if ref.alias and _normalize(ref.alias) == wanted:
            return match_table(ref.name, known)
    return None


def match_table(name: str, tables: Iterable[str]) -> str | None:
    known = tuple(tables)
    key = _normalize(name)
    for table in known:
        if _normalize(table) == key:
            return table
    short = key.rsplit(".", 1)[-1]
    for table in known:
        if _normalize(table).rsplit(".", 1)[-1] == short:
            return table
    return None


def _is_name(token: str) -> bool:
    return bool(_IDENTIFIER.match(token)) and token not in _KEYWORDS


def _unquote(value: str) -> str:
    return ".".join(part.strip('"`') for part in value.split("."))


def _normalize(value: str) -> str:
    return value.replace('"', "").replace("`", "").lower()


__all__ = ["find_table_refs", "match_table", "resolve_table"]
