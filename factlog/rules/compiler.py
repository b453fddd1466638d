"""
Rule Compiler
==============

Validates a Rulespec and lowers it into a CompiledRulespec.

Validation runs in a fixed order and stops at the first problem:
    1. Claim names are non-empty, unique, do not use the length suffix and
       do not extend another claim's name with a dot
    2. Every claim selector parses
    3. Every predicate references a declared claim
    4. Every predicate that needs a literal has one of the right type
    5. Every `when` condition references a declared claim and its literal
       obeys the same typing rules as a predicate

All problems surface as RulespecError *before* any fact is extracted, so
a malformed rulespec can never produce a partial verdict set.

Usage:
    from factlog.rules.compiler import compile_rulespec
    compiled = compile_rulespec(rulespec)
    for pred in compiled.predicates:
        print(pred.id, pred.claim_name, pred.rule)
"""

from __future__ import annotations

import logging
import math
import re
from typing import Any, Optional, Union

from factlog.errors import RulespecError, SelectorSyntaxError
from factlog.rules.selector import parse_selector
from factlog.schemas.compiled import (
    CompiledPredicate,
    CompiledRulespec,
    CompiledWhenCondition,
)
from factlog.schemas.facts import LENGTH_SUFFIX
from factlog.schemas.rulespec import Predicate, PredicateRule, Rulespec

logger = logging.getLogger("factlog.rules.compiler")


# ── Rule literal typing ────────────────────────────────────────────

_ARRAY_RULES = {PredicateRule.ANY_OF, PredicateRule.NONE_OF}
_NUMBER_RULES = {PredicateRule.GREATER_THAN, PredicateRule.LESS_THAN}
_LENGTH_RULES = {PredicateRule.MIN_LENGTH, PredicateRule.MAX_LENGTH}
_SCALAR_RULES = {PredicateRule.CONTAINS, PredicateRule.NOT_CONTAINS}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_scalar(value: Any) -> bool:
    return isinstance(value, (str, int, float, bool))


def _has_non_finite(value: Any) -> bool:
    if isinstance(value, float):
        return not math.isfinite(value)
    if isinstance(value, list):
        return any(_has_non_finite(v) for v in value)
    if isinstance(value, dict):
        return any(_has_non_finite(v) for v in value.values())
    return False


def check_rule_value(rule: PredicateRule, value: Any) -> Optional[str]:
    """
    Check a rule literal against its rule kind.

    Returns:
        An error message, or None when the literal is acceptable.
    """
    if not rule.requires_value:
        return None
    if value is None:
        return f"Rule '{rule}' requires a value"
    if _has_non_finite(value):
        return f"Rule '{rule}' requires finite numbers, got {value!r}"

    if rule in _ARRAY_RULES:
        if not isinstance(value, list):
            return f"Rule '{rule}' requires an array value"
    elif rule in _NUMBER_RULES:
        if not _is_number(value):
            return f"Rule '{rule}' requires a numeric value"
    elif rule in _LENGTH_RULES:
        if not isinstance(value, int) or isinstance(value, bool):
            return f"Rule '{rule}' requires an integer value"
        if value < 0:
            return f"Rule '{rule}' requires a non-negative length, got {value}"
    elif rule == PredicateRule.MATCHES:
        if not isinstance(value, str):
            return f"Rule '{rule}' requires a string pattern"
        try:
            re.compile(value)
        except re.error as e:
            return f"Invalid regex pattern '{value}': {e}"
    elif rule in _SCALAR_RULES:
        if not _is_scalar(value):
            return f"Rule '{rule}' requires a scalar value"
    # EQUALS accepts any literal
    return None


# ── Compilation ────────────────────────────────────────────────────

def compile_rulespec(
    rulespec: Union[Rulespec, dict[str, Any]],
    name: str = "rulespec",
    revision: int = 0,
) -> CompiledRulespec:
    """
    Validate and compile a rulespec.

    Args:
        rulespec: A Rulespec, or its parsed document form.
        name: Label recorded on the compiled rulespec and its reports.
        revision: Revision recorded on the compiled rulespec.

    Returns:
        CompiledRulespec with one CompiledPredicate per predicate, ids
        assigned by position.

    Raises:
        RulespecError: on the first validation failure.
    """
    if not isinstance(rulespec, Rulespec):
        rulespec = Rulespec.from_document(rulespec)

    claims = _compile_claims(rulespec)

    predicates: list[CompiledPredicate] = []
    for idx, pred in enumerate(rulespec.predicates):
        predicates.append(_compile_predicate(idx, pred, claims))

    compiled = CompiledRulespec(
        name=name,
        revision=revision,
        claims=claims,
        predicates=predicates,
    )
    logger.debug(
        f"Compiled rulespec '{name}' r{revision}: "
        f"{len(claims)} claims, {len(predicates)} predicates"
    )
    return compiled


def _compile_claims(rulespec: Rulespec) -> dict[str, str]:
    claims: dict[str, str] = {}
    for claim in rulespec.claims:
        if not claim.name or not claim.name.strip():
            raise RulespecError("Claim name cannot be empty")
        if claim.name.endswith(LENGTH_SUFFIX):
            raise RulespecError(
                f"Claim name cannot end with reserved suffix '{LENGTH_SUFFIX}'",
                claim=claim.name,
            )
        if claim.name in claims:
            raise RulespecError("Duplicate claim name", claim=claim.name)
        claims[claim.name] = claim.selector

    for claim_name in claims:
        for other in claims:
            if claim_name.startswith(f"{other}."):
                # sub-claims of `other` are named `other.<key>`
                raise RulespecError(
                    f"Claim name collides with sub-claims of claim '{other}'",
                    claim=claim_name,
                )

    for claim_name, selector in claims.items():
        try:
            parse_selector(selector)
        except SelectorSyntaxError as e:
            raise RulespecError(str(e), claim=claim_name) from e
    return claims


def _compile_predicate(
    idx: int, pred: Predicate, claims: dict[str, str]
) -> CompiledPredicate:
    if pred.claim not in claims:
        raise RulespecError(
            f"Predicate references unknown claim '{pred.claim}'",
            claim=pred.claim,
            predicate_index=idx,
            rule=str(pred.rule),
        )

    problem = check_rule_value(pred.rule, pred.value)
    if problem:
        raise RulespecError(
            problem, claim=pred.claim, predicate_index=idx, rule=str(pred.rule)
        )

    when = None
    if pred.when is not None:
        cond = pred.when
        if cond.claim not in claims:
            raise RulespecError(
                f"When condition references unknown claim '{cond.claim}'",
                claim=cond.claim,
                predicate_index=idx,
                rule=str(cond.rule),
            )
        problem = check_rule_value(cond.rule, cond.value)
        if problem:
            raise RulespecError(
                f"When condition: {problem}",
                claim=cond.claim,
                predicate_index=idx,
                rule=str(cond.rule),
            )
        when = CompiledWhenCondition(
            claim_name=cond.claim,
            selector=claims[cond.claim],
            rule=cond.rule,
            expected_value=cond.value,
        )

    return CompiledPredicate(
        id=idx,
        claim_name=pred.claim,
        selector=claims[pred.claim],
        rule=pred.rule,
        expected_value=pred.value,
        source=pred.source,
        notes=pred.notes,
        when=when,
    )
