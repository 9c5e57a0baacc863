"""Named query templates with ``<placeholder>`` markers."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator

from .config import ConfigError

LOG = logging.getLogger(__name__)

GLOBAL_SCOPE = "global"
TEMPLATES_FILE = Path.home() / ".config" / "sqli" / "templates.sql"

_PLACEHOLDER = re.compile(r"<\w[\w-]*>")
_HEADER_PREFIX = "--- "


def extract_placeholders(body: str) -> tuple[tuple[int, int], ...]:
    """Half-open ``(start, end)`` offsets of each ``<name>`` marker, in order."""

    return tuple(match.span() for match in _PLACEHOLDER.finditer(body))


def normalize_scope(scope: str) -> str:
    return GLOBAL_SCOPE if scope.strip().lower() == GLOBAL_SCOPE else scope.strip()


@dataclass(frozen=True, slots=True)
class Template:
    name: str
    scope: str
    body: str

    @property
    def is_global(self) -> bool:
        return self.scope == GLOBAL_SCOPE

    @property
    def placeholders(self) -> tuple[tuple[int, int], ...]:
        return extract_placeholders(self.body)

    def visible_to(self, connection: str | None) -> bool:
        return self.is_global or self.scope == connection


class TemplateStore:
    """Ordered collection keyed by ``(name, scope)``.

    Replacing an existing template keeps its position.
    """

    def __init__(self, templates: Iterable[Template] = ()) -> None:
        self._templates: dict[tuple[str, str], Template] = {}
        for template in templates:
            self.insert_or_replace(template)

    def list(self, scope: str | None = None) -> list[Template]:
        """Global templates plus those scoped to ``scope``; everything when None."""

        if scope is None:
            return list(self._templates.values())
        return [template for template in self._templates.values() if template.visible_to(scope)]

    def get(self, name: str, scope: str) -> Template | None:
        return self._templates.get((name, normalize_scope(scope)))

    def insert_or_replace(self, template: Template) -> None:
        scope = normalize_scope(template.scope)
        if scope != template.scope:
            template = Template(name=template.name, scope=scope, body=template.body)
        self._templates[(template.name, scope)] = template

    def delete(self, name: str, scope: str) -> bool:
        return self._templates.pop((name, normalize_scope(scope)), None) is not None

    def __len__(self) -> int:
        return len(self._templates)

    def __iter__(self) -> Iterator[Template]:
        return iter(tuple(self._templates.values()))


def parse_templates(text: str) -> tuple[list[Template], list[ConfigError]]:
    """Read ``--- name [scope]`` sections; bad sections are reported, not raised."""

    templates: list[Template] = []
    errors: list[ConfigError] = []
    header: tuple[str, str] | None = None
    header_line = 0
    body: list[str] = []

    def _finish() -> None:
        if header is None:
            return
        content = "\n".join(body).strip()
        if not content:
            errors.append(ConfigError(f"line {header_line}: template '{header[0]}' has an empty body"))
            return
        templates.append(Template(name=header[0], scope=header[1], body=content))

    for number, line in enumerate(text.splitlines(), start=1):
        if line.startswith(_HEADER_PREFIX):
            _finish()
            body = []
            header = _parse_header(line[len(_HEADER_PREFIX) :])
            header_line = number
            if header is None:
                errors.append(ConfigError(f"line {number}: malformed template header {line!r}"))
        elif header is not None:
            body.append(line)
    _finish()
    return templates, errors


def _parse_header(raw: str) -> tuple[str, str] | None:
    raw = raw.strip()
    start = raw.rfind("[")
    end = raw.rfind("]")
    if start < 0 or end <= start:
        return None
    name = raw[:start].strip()
    scope = raw[start + 1 : end].strip()
    if not name or not scope:
        return None
    return name, normalize_scope(scope)


def serialize_templates(templates: Iterable[Template]) -> str:
    return "\n".join(f"{_HEADER_PREFIX}{template.name} [{template.scope}]\n{template.body}\n" for template in templates)


def load_templates(path: Path | None = None) -> tuple[TemplateStore, list[ConfigError]]:
    target = path or TEMPLATES_FILE
    if not target.exists():
        return TemplateStore(), []
    try:
        text = target.read_text(encoding="utf-8")
    except OSError as exc:
        return TemplateStore(), [ConfigError(f"Failed to read templates from {target}: {exc}")]
    templates, errors = parse_templates(text)
    for error in errors:
        LOG.warning("Skipping template entry", extra={"path": str(target), "error": str(error)})
    return TemplateStore(templates), errors


def save_templates(path: Path, store: TemplateStore) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(serialize_templates(store), encoding="utf-8")


__all__ = [
    "GLOBAL_SCOPE",
    "TEMPLATES_FILE",
    "Template",
    "TemplateStore",
    "extract_placeholders",
    "load_templates",
    "parse_templates",
    "save_templates",
    "serialize_templates",
]
