"""
Compiled Rulespec Schema
=========================

The lowered, validated form of a rulespec used at evaluation time. Every
compiled predicate carries a stable identifier (its position in the
rulespec) for traceability into the evaluation report.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from factlog.schemas.rulespec import InvariantSource, PredicateRule


class CompiledWhenCondition(BaseModel):
    claim_name: str
    selector: str
    rule: PredicateRule
    expected_value: Optional[Any] = None


class CompiledPredicate(BaseModel):
    """A validated predicate with its claim's selector resolved."""
    id: int = Field(description="Position of the predicate in the rulespec")
    claim_name: str = Field(description="Claim the predicate evaluates")
    selector: str = Field(description="Selector of that claim")
    rule: PredicateRule
    expected_value: Optional[Any] = Field(default=None, description="Rule literal")
    source: InvariantSource
    notes: Optional[str] = None
    when: Optional[CompiledWhenCondition] = None

    @property
    def check_id(self) -> str:
        """Datalog identifier of the predicate's own check."""
        return f"p{self.id}"

    @property
    def when_check_id(self) -> str:
        """Datalog identifier of the predicate's `when` check."""
        return f"w{self.id}"


class CompiledRulespec(BaseModel):
    """Compiled predicates plus the claim name → selector mapping."""
    name: str = Field(default="rulespec", description="Label of the compiled rulespec")
    revision: int = Field(default=0, description="Revision the rulespec was compiled at")
    claims: dict[str, str] = Field(default_factory=dict)
    predicates: list[CompiledPredicate] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.predicates
