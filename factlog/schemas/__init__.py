"""
FactLog Data Schemas
=====================

Pydantic v2 models for the documents and artifacts of the verification
pipeline:

1. Rulespec          — claims + predicates (input)
2. ActionEnvelope    — the fact document (input)
3. Fact / Value      — extracted ground facts and tagged values
4. CompiledRulespec  — validated, lowered predicates
5. ExecutionResult   — verdicts and counts
6. VerificationReport — sealed audit trail (output)
"""

from factlog.schemas.rulespec import (
    Claim,
    InvariantSource,
    Predicate,
    PredicateRule,
    Rulespec,
    WhenCondition,
)
from factlog.schemas.envelope import ActionEnvelope
from factlog.schemas.facts import (
    LENGTH_SUFFIX,
    OBJECT_MARKER,
    Fact,
    Value,
    ValueKind,
)
from factlog.schemas.compiled import (
    CompiledPredicate,
    CompiledRulespec,
    CompiledWhenCondition,
)
from factlog.schemas.verification import (
    ExecutionResult,
    PredicateVerdict,
)
from factlog.schemas.report import VerificationReport

__all__ = [
    # Rulespec
    "Claim",
    "InvariantSource",
    "Predicate",
    "PredicateRule",
    "Rulespec",
    "WhenCondition",
    # Envelope
    "ActionEnvelope",
    # Facts
    "LENGTH_SUFFIX",
    "OBJECT_MARKER",
    "Fact",
    "Value",
    "ValueKind",
    # Compiled
    "CompiledPredicate",
    "CompiledRulespec",
    "CompiledWhenCondition",
    # Verification
    "ExecutionResult",
    "PredicateVerdict",
    "VerificationReport",
]
