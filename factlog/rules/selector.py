"""
Selector Engine
================

Path-like selectors for navigating the fact tree.

Grammar:
    selector := segment ('.' segment)*
    segment  := identifier suffix*
    suffix   := '[' integer ']'    0-based index; out of range → no match
              | '[*]'              wildcard; fans out over every element

Examples:
    csv_importer.capabilities   → [Field("csv_importer"), Field("capabilities")]
    tests[0].name               → [Field("tests"), Index(0), Field("name")]
    items[*].id                 → [Field("items"), Wildcard(), Field("id")]

Resolution never raises for a well-formed selector: a missing key, an
index past the end, or a type mismatch (indexing a mapping, keying into a
list) simply contributes no match. Malformed selectors raise
SelectorSyntaxError when parsed, which the Rule Compiler surfaces as a
rulespec error.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Union

from factlog.errors import SelectorSyntaxError


@dataclass(frozen=True)
class Field:
    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Index:
    position: int

    def __str__(self) -> str:
        return f"[{self.position}]"


@dataclass(frozen=True)
class Wildcard:
    def __str__(self) -> str:
        return "[*]"


Segment = Union[Field, Index, Wildcard]


@dataclass(frozen=True)
class Selector:
    """A parsed selector. Use `parse_selector` to build one."""
    source: str
    segments: tuple[Segment, ...]

    def select(self, document: Any) -> list[Any]:
        """
        Resolve against a document.

        Returns every matching value in document order (depth-first, left to
        right across wildcards). A matching explicit null is returned as
        None; "no match" is an empty list.
        """
        results: list[Any] = []
        self._select(document, 0, results)
        return results

    def _select(self, value: Any, idx: int, out: list[Any]) -> None:
        if idx >= len(self.segments):
            out.append(value)
            return

        segment = self.segments[idx]
        if isinstance(segment, Field):
            if isinstance(value, dict) and segment.name in value:
                self._select(value[segment.name], idx + 1, out)
        elif isinstance(segment, Index):
            if isinstance(value, list) and segment.position < len(value):
                self._select(value[segment.position], idx + 1, out)
        else:
            if isinstance(value, list):
                for item in value:
                    self._select(item, idx + 1, out)

    def __str__(self) -> str:
        parts: list[str] = []
        for segment in self.segments:
            if isinstance(segment, Field) and parts:
                parts.append(".")
            parts.append(str(segment))
        return "".join(parts)


def parse_selector(text: str) -> Selector:
    """
    Parse a selector string.

    Raises:
        SelectorSyntaxError: on an empty selector, empty segment,
            unbalanced/stray brackets, or an invalid index.
    """
    source = text
    if text is None or not text.strip():
        raise SelectorSyntaxError(source or "", "selector cannot be empty")
    text = text.strip()

    segments: list[Segment] = []
    for part in text.split("."):
        if not part:
            raise SelectorSyntaxError(source, "empty path segment")
        segments.extend(_parse_segment(source, part))

    return Selector(source=source, segments=tuple(segments))


def _parse_segment(source: str, part: str) -> list[Segment]:
    bracket = part.find("[")
    name = part if bracket < 0 else part[:bracket]
    if not name or not name.strip():
        raise SelectorSyntaxError(source, f"segment '{part}' has no field name")
    if "]" in name:
        raise SelectorSyntaxError(source, "unexpected ']'")

    segments: list[Segment] = [Field(name)]
    rest = "" if bracket < 0 else part[bracket:]
    while rest:
        if not rest.startswith("["):
            raise SelectorSyntaxError(
                source, f"unexpected text '{rest}' after index in '{part}'"
            )
        close = rest.find("]")
        if close < 0:
            raise SelectorSyntaxError(source, f"unbalanced '[' in '{part}'")
        inner = rest[1:close]
        if "[" in inner:
            raise SelectorSyntaxError(source, f"nested '[' in '{part}'")
        segments.append(_parse_suffix(source, inner))
        rest = rest[close + 1:]
    return segments


def _parse_suffix(source: str, inner: str) -> Segment:
    inner = inner.strip()
    if inner == "*":
        return Wildcard()
    if not (inner.isascii() and inner.isdigit()):
        raise SelectorSyntaxError(source, f"invalid array index '{inner}'")
    return Index(int(inner))
