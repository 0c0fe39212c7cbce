"""URI and name template parsing and matching.

A template is split on ``/`` into segments. A segment is either literal text,
which must match exactly, or contains ``{param}`` placeholders, each binding a
non-empty run of characters that never crosses a separator:

    logs://{date}/{level}      matches  logs://2025-01-01/error
    config:///{name}.json      matches  config:///app.json

When several templates match the same string the one with the fewest
placeholders wins; ties go to the earliest registered template.
"""

import re
from typing import Iterable, TypeVar

SEPARATOR = "/"

_PLACEHOLDER_RE = re.compile(r"\{([^{}]*)\}")
_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class TemplateSyntaxError(ValueError):
    """Raised for malformed templates."""


def _check_syntax(template: str) -> None:
    if not template:
        raise TemplateSyntaxError("Template must not be empty")
    stripped = _PLACEHOLDER_RE.sub("", template)
    if "{" in stripped or "}" in stripped:
        raise TemplateSyntaxError(f"Unbalanced braces in template: {template}")
    if "}{" in template:
        raise TemplateSyntaxError(f"Adjacent placeholders are ambiguous: {template}")
    seen: set[str] = set()
    for name in _PLACEHOLDER_RE.findall(template):
        if not _NAME_RE.match(name):
            raise TemplateSyntaxError(f"Invalid placeholder name '{name}' in {template}")
        if name in seen:
            raise TemplateSyntaxError(f"Duplicate placeholder '{name}' in {template}")
        seen.add(name)


class _Segment:
    """One separator-delimited piece of a template."""

    def __init__(self, text: str):
        self.text = text
        self.names: list[str] = _PLACEHOLDER_RE.findall(text)
        self.pattern: re.Pattern[str] | None = None
        if self.names:
            parts = _PLACEHOLDER_RE.split(text)
            # split() alternates literal, name, literal, ...
            regex = "".join(
                re.escape(part) if i % 2 == 0 else f"(?P<{part}>.+?)"
                for i, part in enumerate(parts)
            )
            self.pattern = re.compile(f"^{regex}$")

    def match(self, candidate: str) -> dict[str, str] | None:
        if self.pattern is None:
            return {} if candidate == self.text else None
        m = self.pattern.match(candidate)
        if m is None:
            return None
        return m.groupdict()


class Template:
    """A parsed URI or name template."""

    def __init__(self, template: str):
        _check_syntax(template)
        self.template = template
        self.segments = [_Segment(part) for part in template.split(SEPARATOR)]
        self.names = [name for segment in self.segments for name in segment.names]

    @property
    def placeholder_count(self) -> int:
        return len(self.names)

    @property
    def is_literal(self) -> bool:
        return not self.names

    def match(self, candidate: str) -> dict[str, str] | None:
        """Return the bound placeholders, or None when the candidate does not match."""
        parts = candidate.split(SEPARATOR)
        if len(parts) != len(self.segments):
            return None
        bindings: dict[str, str] = {}
        for segment, part in zip(self.segments, parts):
            bound = segment.match(part)
            if bound is None:
                return None
            bindings.update(bound)
        return bindings

    def expand(self, bindings: dict[str, str]) -> str:
        """Substitute bindings back into the template."""
        return _PLACEHOLDER_RE.sub(lambda m: str(bindings[m.group(1)]), self.template)

    def __repr__(self) -> str:
        return f"Template({self.template!r})"


T = TypeVar("T")


def find_best_match(
    candidates: Iterable[tuple[Template, T]],
    value: str,
) -> tuple[T, dict[str, str]] | None:
    """
    Find the most specific template matching ``value``.

    ``candidates`` must be given in registration order; that order breaks
    ties between templates with the same number of placeholders.

    Returns (item, bindings) or None.
    """
    best: tuple[int, T, dict[str, str]] | None = None
    for template, item in candidates:
        bindings = template.match(value)
        if bindings is None:
            continue
        if best is None or template.placeholder_count < best[0]:
            best = (template.placeholder_count, item, bindings)
    if best is None:
        return None
    return best[1], best[2]
