"""
Rulespec Schema
================

Machine-readable invariants: named **claims** (selectors over the action
envelope) and **predicates** (rule checks over a claim's values).

A rulespec is authored once, checked into the collaborator's storage and
compiled fresh on every verification request.

Example (YAML):

    claims:
      - name: caps
        selector: csv_importer.capabilities
    predicates:
      - claim: caps
        rule: contains
        value: handle_tsv
        source: task_prompt
        notes: User requested TSV support
      - claim: reply_id
        rule: exists
        source: memory
        when:
          claim: subject
          rule: matches
          value: "^Re: "

Data Flow:
    Rulespec → Rule Compiler → CompiledRulespec → Evaluator
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from factlog.errors import RulespecError


class InvariantSource(str, Enum):
    """Where an invariant was extracted from."""
    TASK_PROMPT = "task_prompt"   # the user's task prompt
    MEMORY = "memory"             # persistent workspace memory

    def __str__(self) -> str:
        return self.value


class PredicateRule(str, Enum):
    """
    The twelve rule kinds a predicate (or a `when` condition) can apply.

    Grouped by the type of literal they expect:
        - none:    EXISTS, NOT_EXISTS
        - array:   ANY_OF, NONE_OF
        - number:  GREATER_THAN, LESS_THAN, MIN_LENGTH, MAX_LENGTH
        - string:  MATCHES (a regular expression)
        - scalar:  CONTAINS, NOT_CONTAINS
        - any:     EQUALS
    """
    EXISTS = "exists"
    NOT_EXISTS = "not_exists"
    EQUALS = "equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    ANY_OF = "any_of"
    NONE_OF = "none_of"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    MIN_LENGTH = "min_length"
    MAX_LENGTH = "max_length"
    MATCHES = "matches"

    def __str__(self) -> str:
        return self.value

    @property
    def requires_value(self) -> bool:
        """Every rule except the two existence checks needs a literal."""
        return self not in (PredicateRule.EXISTS, PredicateRule.NOT_EXISTS)


class Claim(BaseModel):
    """
    A named selector over the action envelope.

    Selectors use a path-like syntax:
        - `csv_importer.capabilities`  the capabilities array
        - `tests[0].name`              the first test's name
        - `items[*].id`                every item's id
    """
    name: str = Field(description="Claim name referenced by predicates")
    selector: str = Field(description="Selector path into the action envelope")


class WhenCondition(BaseModel):
    """
    Gate for a predicate. Evaluated exactly like a predicate of the same
    rule kind; when it does not hold, the owning predicate is skipped
    and reported as a (vacuous) pass.
    """
    claim: str = Field(description="Claim the condition is checked against")
    rule: PredicateRule = Field(description="Rule applied for the condition check")
    value: Optional[Any] = Field(default=None, description="Literal for the rule")


class Predicate(BaseModel):
    """A rule evaluated against one claim's values."""
    claim: str = Field(description="Name of the claim this predicate evaluates")
    rule: PredicateRule = Field(description="The rule to apply")
    value: Optional[Any] = Field(
        default=None,
        description="Literal to compare against (omitted for exists/not_exists)"
    )
    source: InvariantSource = Field(description="Provenance of this invariant")
    notes: Optional[str] = Field(default=None, description="Free-text nuance")
    when: Optional[WhenCondition] = Field(
        default=None,
        description="Condition that must hold for the predicate to be evaluated"
    )


class Rulespec(BaseModel):
    """Claims plus predicates: the full set of invariants."""
    claims: list[Claim] = Field(default_factory=list)
    predicates: list[Predicate] = Field(default_factory=list)

    @classmethod
    def from_document(cls, data: Any) -> "Rulespec":
        """
        Build a Rulespec from a parsed YAML/JSON document.

        Raises:
            RulespecError: if the document does not match the schema.
        """
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise RulespecError(
                f"Rulespec must be a mapping with 'claims' and 'predicates', "
                f"got {type(data).__name__}"
            )
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise RulespecError(f"Rulespec schema validation failed: {e}") from e

    @property
    def is_empty(self) -> bool:
        return not self.claims and not self.predicates

    def get_claim(self, name: str) -> Optional[Claim]:
        """Look up a claim by name."""
        for claim in self.claims:
            if claim.name == name:
                return claim
        return None

    def to_document(self) -> dict[str, Any]:
        """Plain-data form with unset optionals dropped."""
        return self.model_dump(mode="json", exclude_none=True)

    def to_canonical_yaml(self) -> str:
        """Deterministic YAML used for token computation."""
        return yaml.safe_dump(self.to_document(), sort_keys=True, allow_unicode=True)
