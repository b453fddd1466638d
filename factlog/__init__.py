"""
FactLog — Datalog-Backed Invariant Verification
=================================================

FactLog checks machine-readable invariants (a *rulespec*) against
structured evidence of completed work (an *action envelope*). Every
invariant is lowered to datalog and evaluated mechanically, so a verdict
never depends on anyone's judgement.

Architecture Overview:
    Rulespec → Compile → Extract Facts → Evaluate (datalog) → Report

Modules:
    - rules:     Selector parsing, rulespec compilation and validation
    - extract:   Fact extraction from the action envelope
    - verify:    Datalog engine, predicate evaluation, verification tokens
    - render:    Program dump, evaluation trace and sealed JSON report
    - pipeline:  End-to-end orchestrator
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
