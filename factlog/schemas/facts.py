"""
Fact Schema
============

Ground facts extracted from the action envelope, and the tagged value type
shared by facts, rule literals and the datalog engine.

The fact tree mixes strings, numbers, booleans, sequences and mappings
under one type. Python's own equality conflates some of these
(`1 == 1.0 == True`), so every scalar travels with an explicit kind tag:
strings compare as strings, numbers as numbers, booleans as booleans.

Data Flow:
    ActionEnvelope → Fact Extractor → set[Fact] → Evaluator
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Reserved suffix for synthesized container-length facts.
LENGTH_SUFFIX = ".__length"

# Value recorded for a claim that resolved to a mapping.
OBJECT_MARKER = "{object}"


class ValueKind(str, Enum):
    """Tag of a value in the fact tree."""
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    OBJECT = "object"   # marker for a resolved mapping
    LIST = "list"       # only in rule literals (any_of / none_of sets)
    NULL = "null"       # only in rule literals


def kind_of(raw: Any) -> ValueKind:
    """Classify a raw document value."""
    if raw is None:
        return ValueKind.NULL
    if isinstance(raw, bool):
        return ValueKind.BOOLEAN
    if isinstance(raw, (int, float)):
        return ValueKind.NUMBER
    if isinstance(raw, str):
        return ValueKind.STRING
    if isinstance(raw, (list, tuple)):
        return ValueKind.LIST
    if isinstance(raw, dict):
        return ValueKind.OBJECT
    # Dates and other YAML scalars are compared by their text form
    return ValueKind.STRING


@dataclass(frozen=True)
class Value:
    """A kind-tagged constant: the unit the datalog engine stores and compares."""
    kind: ValueKind
    data: Any

    @classmethod
    def of(cls, raw: Any) -> "Value":
        kind = kind_of(raw)
        if kind == ValueKind.LIST:
            return cls(kind, tuple(cls.of(item) for item in raw))
        if kind == ValueKind.OBJECT:
            return cls(kind, OBJECT_MARKER)
        if kind == ValueKind.STRING and not isinstance(raw, str):
            return cls(kind, str(raw))
        return cls(kind, raw)

    @property
    def is_number(self) -> bool:
        return self.kind == ValueKind.NUMBER

    @property
    def is_string(self) -> bool:
        return self.kind == ValueKind.STRING

    def render(self) -> str:
        """Literal syntax used in the datalog program dump."""
        if self.kind == ValueKind.OBJECT:
            return "$object"
        if self.kind == ValueKind.LIST:
            return "[" + ", ".join(v.render() for v in self.data) + "]"
        return json.dumps(self.data, ensure_ascii=False)

    def display(self) -> str:
        """Human-readable text for verdict reasons."""
        if self.kind == ValueKind.STRING:
            return self.data
        if self.kind == ValueKind.LIST:
            return "[" + ", ".join(v.display() for v in self.data) + "]"
        if self.kind == ValueKind.OBJECT:
            return OBJECT_MARKER
        return json.dumps(self.data)

    def __str__(self) -> str:
        return self.render()


def display_literal(raw: Any) -> str:
    """Human-readable text for a rule literal; mappings are shown in full."""
    if isinstance(raw, dict):
        return json.dumps(raw, sort_keys=True, ensure_ascii=False, default=str)
    if isinstance(raw, (list, tuple)):
        return "[" + ", ".join(display_literal(item) for item in raw) + "]"
    return Value.of(raw).display()


class Fact(BaseModel):
    """
    One ground fact: a claim name bound to a single tagged scalar.

    A claim that resolves to several values (wildcards, arrays) yields
    several facts sharing the same claim name. Containers also yield a
    length fact under `claim_name + LENGTH_SUFFIX`.

    Values taken from a sequence are flagged as elements: `contains`
    compares them by equality, while a string the selector resolved to
    directly is searched for a substring.
    """
    model_config = ConfigDict(frozen=True)

    claim_name: str = Field(description="Claim (or sub-claim) this fact belongs to")
    kind: ValueKind = Field(description="Tag of the value")
    value: Any = Field(description="The scalar value, type preserved")
    element: bool = Field(default=False, description="Value is an element of a sequence")

    @classmethod
    def scalar(cls, claim_name: str, raw: Any) -> "Fact":
        v = Value.of(raw)
        return cls(claim_name=claim_name, kind=v.kind, value=v.data)

    @classmethod
    def item(cls, claim_name: str, raw: Any) -> "Fact":
        v = Value.of(raw)
        return cls(claim_name=claim_name, kind=v.kind, value=v.data, element=True)

    @classmethod
    def object_marker(cls, claim_name: str) -> "Fact":
        return cls(claim_name=claim_name, kind=ValueKind.OBJECT, value=OBJECT_MARKER)

    @classmethod
    def length(cls, claim_name: str, count: int) -> "Fact":
        return cls(
            claim_name=f"{claim_name}{LENGTH_SUFFIX}",
            kind=ValueKind.NUMBER,
            value=count,
        )

    @property
    def is_length(self) -> bool:
        return self.claim_name.endswith(LENGTH_SUFFIX)

    @property
    def base_claim(self) -> str:
        """Claim name without the length suffix."""
        if self.is_length:
            return self.claim_name[: -len(LENGTH_SUFFIX)]
        return self.claim_name

    @property
    def term(self) -> Value:
        return Value(self.kind, self.value)

    def sort_key(self) -> tuple[str, str, bool]:
        return (self.claim_name, self.term.render(), self.element)


def sorted_facts(facts: Any) -> list[Fact]:
    """Facts in a stable (claim, value) order for reports and dumps."""
    return sorted(facts, key=Fact.sort_key)
