"""
FactLog Test Configuration
============================

Shared fixtures, factories, and helpers for the entire test suite.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

import pytest

from factlog.config import FactLogConfig, TokenConfig
from factlog.extract.extractor import extract_facts
from factlog.rules.compiler import compile_rulespec
from factlog.schemas.envelope import ActionEnvelope
from factlog.schemas.rulespec import (
    Claim,
    InvariantSource,
    Predicate,
    PredicateRule,
    Rulespec,
    WhenCondition,
)
from factlog.schemas.verification import ExecutionResult, PredicateVerdict
from factlog.verify.evaluator import execute_rules


# ── Markers ─────────────────────────────────────────────────────

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: fast unit tests")
    config.addinivalue_line("markers", "integration: multi-component tests")
    config.addinivalue_line("markers", "adversarial: tampering and evasion attempts")


# ── Fixtures ────────────────────────────────────────────────────

@pytest.fixture
def config(tmp_path: Path) -> FactLogConfig:
    """Test config writing into a temporary directory, with a private key."""
    return FactLogConfig(
        output_dir=tmp_path / "outputs",
        token=TokenConfig(key_path=tmp_path / "keys" / "verification.key"),
    )


@pytest.fixture
def csv_rulespec() -> Rulespec:
    """The CSV importer rulespec used across tests."""
    return make_rulespec(
        claims={
            "caps": "csv_importer.capabilities",
            "file": "csv_importer.file",
            "breaking": "breaking_changes",
        },
        predicates=[
            make_predicate("caps", "contains", "handle_tsv", notes="User requested TSV support"),
            make_predicate("caps", "min_length", 2),
            make_predicate("file", "matches", r"\.rs$", source="memory"),
            make_predicate("breaking", "not_exists"),
        ],
    )


@pytest.fixture
def csv_facts() -> dict[str, Any]:
    """Facts satisfying `csv_rulespec`."""
    return {
        "csv_importer": {
            "file": "src/import/csv.rs",
            "capabilities": ["handle_headers", "handle_tsv", "handle_quotes"],
        },
        "breaking_changes": None,
    }


# ── Factories ───────────────────────────────────────────────────

def make_predicate(
    claim: str,
    rule: str | PredicateRule,
    value: Any = None,
    source: str = "task_prompt",
    notes: Optional[str] = None,
    when: Optional[dict[str, Any]] = None,
) -> Predicate:
    """Factory for creating test predicates."""
    return Predicate(
        claim=claim,
        rule=PredicateRule(rule),
        value=value,
        source=InvariantSource(source),
        notes=notes,
        when=WhenCondition(**when) if when else None,
    )


def make_rulespec(
    claims: dict[str, str],
    predicates: Optional[list[Predicate]] = None,
) -> Rulespec:
    """Factory for creating test rulespecs from a claim → selector mapping."""
    return Rulespec(
        claims=[Claim(name=name, selector=selector) for name, selector in claims.items()],
        predicates=predicates or [],
    )


def make_envelope(facts: dict[str, Any], verified: Optional[str] = None) -> ActionEnvelope:
    """Factory for creating test envelopes."""
    return ActionEnvelope(facts=facts, verified=verified)


def evaluate(rulespec: Rulespec, facts: dict[str, Any], max_workers: int = 1) -> ExecutionResult:
    """Compile, extract and evaluate in one call."""
    compiled = compile_rulespec(rulespec)
    extracted = extract_facts(make_envelope(facts), compiled)
    return execute_rules(compiled, extracted, max_workers=max_workers)


def check(
    selector: str,
    rule: str,
    value: Any,
    facts: dict[str, Any],
    when: Optional[dict[str, Any]] = None,
    claims: Optional[dict[str, str]] = None,
) -> PredicateVerdict:
    """Evaluate a single predicate on claim `x` and return its verdict."""
    all_claims = {"x": selector, **(claims or {})}
    rulespec = make_rulespec(all_claims, [make_predicate("x", rule, value, when=when)])
    return evaluate(rulespec, facts).verdicts[0]
