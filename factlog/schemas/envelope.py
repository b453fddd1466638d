"""
Action Envelope Schema
=======================

The action envelope is the fact document: evidence of completed work as a
free-form tree of mappings, sequences and scalars, conventionally rooted
under a single `facts` key.

    facts:
      csv_importer:
        file: src/import/csv.rs
        capabilities: [handle_headers, handle_tsv]
      breaking_changes: null
    verified: "flv1:..."      # set only by a passing verification

`null` is a first-class value meaning "explicitly absent"; it produces no
facts at all during extraction.
"""

from __future__ import annotations

from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from factlog.errors import DocumentError

ENVELOPE_HEADER = (
    "# Action Envelope - Evidence of work done\n"
    "# Generated by FactLog\n\n"
)


class ActionEnvelope(BaseModel):
    """Facts about completed work plus an optional verification token."""
    facts: dict[str, Any] = Field(
        default_factory=dict,
        description="Free-form fact tree (mappings, sequences, scalars)"
    )
    verified: Optional[str] = Field(
        default=None,
        description="Verification token, present only after a passing run"
    )

    @classmethod
    def from_document(cls, data: Any, root_key: str = "facts") -> "ActionEnvelope":
        """
        Build an envelope from a parsed document.

        Accepts both the wrapped form (`{facts: {...}, verified: ...}`) and
        a bare fact tree; the latter is taken as the facts mapping itself.
        """
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise DocumentError(
                f"Envelope must be a mapping, got {type(data).__name__}"
            )
        wrapped = (
            root_key in data
            and isinstance(data[root_key], (dict, type(None)))
            and set(data) <= {root_key, "verified"}
        )
        try:
            if wrapped:
                return cls(facts=dict(data[root_key] or {}), verified=data.get("verified"))
            return cls(facts=dict(data))
        except ValidationError as e:
            raise DocumentError(f"Envelope validation failed: {e}") from e

    @property
    def is_empty(self) -> bool:
        return not self.facts

    def wrapped_document(self, root_key: str = "facts") -> dict[str, Any]:
        """The on-disk form: facts under the root label, plus the token if set."""
        body: dict[str, Any] = {root_key: self.facts}
        if self.verified:
            body["verified"] = self.verified
        return body

    def without_token(self) -> "ActionEnvelope":
        return ActionEnvelope(facts=self.facts, verified=None)

    def canonical_facts_yaml(self) -> str:
        """Deterministic YAML of the facts only (never the token)."""
        return yaml.safe_dump(self.facts, sort_keys=True, allow_unicode=True)

    def to_yaml(self, root_key: str = "facts") -> str:
        """Pretty YAML with a comment header, for writing back to disk."""
        body = self.wrapped_document(root_key)
        return ENVELOPE_HEADER + yaml.safe_dump(body, sort_keys=False, allow_unicode=True)
