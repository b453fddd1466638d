"""
Verification Result Schema
===========================

Output of the evaluator: one verdict per compiled predicate plus
aggregate counts.

Design Decisions:
    - A predicate skipped by its `when` condition is a PASS (`skipped=True`),
      never a failure and never missing from the result
    - Verdicts are always ordered by predicate id so that two runs over the
      same inputs serialize byte-identically

Data Flow:
    CompiledRulespec + set[Fact] → Evaluator → ExecutionResult → Report
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from factlog.schemas.rulespec import InvariantSource, PredicateRule


class PredicateVerdict(BaseModel):
    """Pass/fail outcome of a single predicate."""
    id: int = Field(description="Compiled predicate id")
    claim_name: str
    rule: PredicateRule
    expected_value: Optional[Any] = None
    passed: bool
    skipped: bool = Field(
        default=False,
        description="True when the `when` condition was not met (vacuous pass)"
    )
    reason: str = Field(description="Human-readable explanation")
    source: InvariantSource
    notes: Optional[str] = None


class ExecutionResult(BaseModel):
    """All verdicts of one evaluation run."""
    verdicts: list[PredicateVerdict] = Field(default_factory=list)
    fact_count: int = Field(default=0, description="Facts extracted from the envelope")
    passed_count: int = 0
    failed_count: int = 0

    @classmethod
    def from_verdicts(
        cls, verdicts: list[PredicateVerdict], fact_count: int
    ) -> "ExecutionResult":
        ordered = sorted(verdicts, key=lambda v: v.id)
        passed = sum(1 for v in ordered if v.passed)
        return cls(
            verdicts=ordered,
            fact_count=fact_count,
            passed_count=passed,
            failed_count=len(ordered) - passed,
        )

    @property
    def all_passed(self) -> bool:
        return self.failed_count == 0

    @property
    def total(self) -> int:
        return self.passed_count + self.failed_count

    @property
    def failed(self) -> list[PredicateVerdict]:
        return [v for v in self.verdicts if not v.passed]

    def get_verdict(self, predicate_id: int) -> Optional[PredicateVerdict]:
        for verdict in self.verdicts:
            if verdict.id == predicate_id:
                return verdict
        return None
