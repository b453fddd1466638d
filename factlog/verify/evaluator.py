"""
Predicate Evaluator
====================

Lowers compiled predicates into datalog and evaluates them against the
extracted facts.

EDB relations built from the fact set:
    claim_value(claim, value)     one per value fact
    claim_direct(claim, value)    values the selector resolved to directly
    claim_element(claim, value)   values taken from a sequence
    claim_length(claim, n)        one per length fact
    claim_count(claim, n)         number of distinct value facts per claim
    predicate(id)                 one per compiled predicate

Every check (a predicate's own rule, or its `when` condition) is lowered by
the same function, `lower_check`, into rules deriving `check_pass(k)`,
where `k` is `p<id>` for predicates and `w<id>` for conditions. Gating
rules then combine the two:

    predicate_pass(i)    :- check_pass("w<i>"), check_pass("p<i>").
    predicate_skipped(i) :- predicate(i), !check_pass("w<i>").
    predicate_pass(i)    :- predicate_skipped(i).
    predicate_fail(i)    :- predicate(i), !predicate_pass(i).

Claims are multi-valued. Positive rules hold when *some* value satisfies
them; `not_contains` and `none_of` fail when *any* value hits and pass
vacuously when the claim has no values. `contains` searches direct string
values for a substring and compares sequence elements by equality.

Usage:
    from factlog.verify.evaluator import execute_rules
    result = execute_rules(compiled, facts)
    print(result.passed_count, result.failed_count)
"""

from __future__ import annotations

import concurrent.futures
import logging
import operator
import re
from collections import Counter
from functools import lru_cache
from typing import Any, Iterable, Optional, Union

from factlog.extract.extractor import materialize_values
from factlog.schemas.compiled import CompiledPredicate, CompiledRulespec
from factlog.schemas.facts import Fact, Value, ValueKind, display_literal
from factlog.schemas.rulespec import PredicateRule
from factlog.schemas.verification import ExecutionResult, PredicateVerdict
from factlog.verify.datalog import Atom, Facts, Program, Rule, Var, atom, neg, ANY

logger = logging.getLogger("factlog.verify.evaluator")

SKIPPED_REASON = "Skipped (when condition not met)"


# ── Builtins ───────────────────────────────────────────────────────

@lru_cache(maxsize=256)
def _compile_pattern(pattern: str) -> re.Pattern:
    return re.compile(pattern)


def _contains(value: Value, element: Value) -> bool:
    if value.is_string and element.is_string:
        return element.data in value.data
    return value == element


def _member(value: Value, options: Value) -> bool:
    return options.kind == ValueKind.LIST and value in options.data


def _numeric(op):
    def compare(a: Value, b: Value) -> bool:
        return a.is_number and b.is_number and op(a.data, b.data)
    return compare


def _matches(value: Value, pattern: Value) -> bool:
    if not (value.is_string and pattern.is_string):
        return False
    return _compile_pattern(pattern.data).search(value.data) is not None


BUILTINS = {
    "eq": operator.eq,
    "ne": operator.ne,
    "contains": _contains,
    "member": _member,
    "gt": _numeric(operator.gt),
    "lt": _numeric(operator.lt),
    "ge": _numeric(operator.ge),
    "le": _numeric(operator.le),
    "matches": _matches,
}


# ── Lowering ───────────────────────────────────────────────────────

V = Var("V")
L = Var("L")
N = Var("N")
C = Var("C")

# Relations asserted from the fact set.
EDB_RELATIONS = ("claim_value", "claim_direct", "claim_element", "claim_length", "claim_count")

# Helper relations shared by every program.
PRELUDE: list[Rule] = [
    Rule(atom("claim_present", C), (atom("claim_value", C, ANY),)),
    Rule(atom("claim_measured", C), (atom("claim_length", C, ANY),)),
]

# Existential rules: pass when some value satisfies the builtin.
_EXISTENTIAL = {
    PredicateRule.ANY_OF: "member",
    PredicateRule.GREATER_THAN: "gt",
    PredicateRule.LESS_THAN: "lt",
    PredicateRule.MATCHES: "matches",
}

# Universal rules: fail when some value hits the builtin.
_UNIVERSAL = {
    PredicateRule.NONE_OF: "member",
}


def _containment(head: Atom, c: Value, x: Value) -> list[Rule]:
    """Rules deriving `head` when the claim contains `x`."""
    return [
        Rule(head, (atom("claim_direct", c, V), atom("contains", V, x))),
        Rule(head, (atom("claim_element", c, V), atom("eq", V, x))),
    ]


def lower_check(
    check_id: str,
    claim: str,
    rule: Union[PredicateRule, str],
    value: Any = None,
) -> list[Rule]:
    """
    Lower one check into rules deriving `check_pass(check_id)`.

    Used identically for predicates and their `when` conditions.
    """
    rule = PredicateRule(rule)
    k = Value.of(check_id)
    c = Value.of(claim)
    passes = atom("check_pass", k)

    if rule == PredicateRule.EXISTS:
        return [Rule(passes, (atom("claim_value", c, ANY),))]

    if rule == PredicateRule.NOT_EXISTS:
        return [Rule(passes, (neg("claim_present", c),))]

    if rule == PredicateRule.EQUALS:
        if isinstance(value, (list, dict)):
            return _lower_container_equals(k, claim, value)
        return [Rule(passes, (
            atom("claim_count", c, Value.of(1)),
            atom("claim_value", c, V),
            atom("eq", V, Value.of(value)),
        ))]

    if rule == PredicateRule.CONTAINS:
        return _containment(passes, c, Value.of(value))

    if rule == PredicateRule.NOT_CONTAINS:
        hit = atom("check_hit", k)
        return _containment(hit, c, Value.of(value)) + [Rule(passes, (neg("check_hit", k),))]

    if rule in _EXISTENTIAL:
        return [Rule(passes, (
            atom("claim_value", c, V),
            atom(_EXISTENTIAL[rule], V, Value.of(value)),
        ))]

    if rule in _UNIVERSAL:
        hit = atom("check_hit", k)
        return [
            Rule(hit, (
                atom("claim_value", c, V),
                atom(_UNIVERSAL[rule], V, Value.of(value)),
            )),
            Rule(passes, (neg("check_hit", k),)),
        ]

    if rule in (PredicateRule.MIN_LENGTH, PredicateRule.MAX_LENGTH):
        bound = "ge" if rule == PredicateRule.MIN_LENGTH else "le"
        n = Value.of(value)
        return [
            Rule(passes, (atom("claim_length", c, L), atom(bound, L, n))),
            # a claim without a length fact has length 0
            Rule(passes, (neg("claim_measured", c), atom(bound, Value.of(0), n))),
        ]

    raise ValueError(f"Unsupported rule: {rule}")


def _lower_container_equals(k: Value, claim: str, literal: Any) -> list[Rule]:
    """
    Equality against an array or mapping literal.

    The literal is materialized exactly like a resolved value. Every
    expected fact must be present and every expected claim must hold the
    same number of distinct values; anything else derives `check_miss`.
    """
    miss = atom("check_miss", k)
    expected = sorted(materialize_values(claim, [literal]), key=Fact.sort_key)
    counts = Counter(name for name, _ in {(f.claim_name, f.term) for f in expected if not f.is_length})

    rules: list[Rule] = []
    for fact in expected:
        if fact.is_length:
            rules.append(Rule(miss, (neg("claim_length", Value.of(fact.base_claim), fact.term),)))
        else:
            rules.append(Rule(miss, (neg("claim_value", Value.of(fact.claim_name), fact.term),)))
    for name in sorted(counts):
        rules.append(Rule(miss, (
            atom("claim_count", Value.of(name), N),
            atom("ne", N, Value.of(counts[name])),
        )))
    rules.append(Rule(atom("check_pass", k), (neg("check_miss", k),)))
    return rules


def gating_rules(pred: CompiledPredicate) -> list[Rule]:
    """Rules combining a predicate's check with its `when` condition."""
    i = Value.of(pred.id)
    p = Value.of(pred.check_id)
    rules: list[Rule] = []
    if pred.when is None:
        rules.append(Rule(atom("predicate_pass", i), (atom("check_pass", p),)))
    else:
        w = Value.of(pred.when_check_id)
        rules += [
            Rule(atom("predicate_pass", i), (atom("check_pass", w), atom("check_pass", p))),
            Rule(atom("predicate_skipped", i), (atom("predicate", i), neg("check_pass", w))),
            Rule(atom("predicate_pass", i), (atom("predicate_skipped", i),)),
        ]
    rules.append(Rule(atom("predicate_fail", i), (atom("predicate", i), neg("predicate_pass", i))))
    return rules


def lower_predicate(pred: CompiledPredicate) -> list[Rule]:
    """All rules for one compiled predicate: condition, check and gating."""
    rules: list[Rule] = []
    if pred.when is not None:
        rules += lower_check(
            pred.when_check_id, pred.when.claim_name, pred.when.rule, pred.when.expected_value
        )
    rules += lower_check(pred.check_id, pred.claim_name, pred.rule, pred.expected_value)
    rules += gating_rules(pred)
    return rules


def build_edb(facts: Iterable[Fact]) -> Facts:
    """EDB relations (claim values by origin, lengths, counts) from a fact set."""
    edb: Facts = {relation: set() for relation in EDB_RELATIONS}
    for fact in facts:
        if fact.is_length:
            edb["claim_length"].add((Value.of(fact.base_claim), fact.term))
        else:
            row = (Value.of(fact.claim_name), fact.term)
            edb["claim_value"].add(row)
            edb["claim_element" if fact.element else "claim_direct"].add(row)
    # a value seen both directly and as an element counts once
    counts = Counter(claim for claim, _ in edb["claim_value"])
    for claim, count in counts.items():
        edb["claim_count"].add((claim, Value.of(count)))
    return edb


def build_program(
    predicates: Iterable[CompiledPredicate],
    edb: Facts,
) -> Program:
    """Assemble an evaluable program for the given predicates."""
    predicates = list(predicates)
    rules = list(PRELUDE)
    for pred in predicates:
        rules += lower_predicate(pred)
    program = Program(rules, edb, BUILTINS)
    for pred in predicates:
        program.add_fact("predicate", Value.of(pred.id))
    return program


# ── Reasons ────────────────────────────────────────────────────────

class FactLookup:
    """Per-claim view of the fact set used to explain verdicts."""

    def __init__(self, facts: Iterable[Fact]):
        values: dict[str, set[Value]] = {}
        self.lengths: dict[str, int] = {}
        for fact in facts:
            if fact.is_length:
                self.lengths[fact.base_claim] = fact.value
            else:
                values.setdefault(fact.claim_name, set()).add(fact.term)
        self.values = {k: sorted(v, key=Value.render) for k, v in values.items()}

    def values_of(self, claim: str) -> list[Value]:
        return self.values.get(claim, [])

    def length_of(self, claim: str) -> int:
        return self.lengths.get(claim, 0)


def describe(
    rule: PredicateRule,
    claim: str,
    expected: Any,
    passed: bool,
    lookup: FactLookup,
) -> str:
    """Human-readable reason for a check outcome."""
    values = lookup.values_of(claim)
    x = display_literal(expected) if expected is not None else ""
    no_values = f"Claim '{claim}' has no values"

    if rule == PredicateRule.EXISTS:
        return "Value exists" if passed else "Value does not exist"
    if rule == PredicateRule.NOT_EXISTS:
        return "Value does not exist as expected" if passed else "Value exists but should not"

    if rule in (PredicateRule.MIN_LENGTH, PredicateRule.MAX_LENGTH):
        length = lookup.length_of(claim)
        if rule == PredicateRule.MIN_LENGTH:
            return f"Length {length} >= {x}" if passed else f"Length {length} < {x} (minimum)"
        return f"Length {length} <= {x}" if passed else f"Length {length} > {x} (maximum)"

    if rule == PredicateRule.NOT_CONTAINS:
        if not values:
            return f"{no_values} (not_contains passes vacuously)"
        return f"Does not contain '{x}'" if passed else f"Contains '{x}' but should not"
    if rule == PredicateRule.NONE_OF:
        if not values:
            return f"{no_values} (none_of passes vacuously)"
        return "Value is not in forbidden set" if passed else "Value is in forbidden set"

    if rule == PredicateRule.EQUALS and passed:
        return f"Equals '{x}'"

    if not values:
        return no_values

    if rule == PredicateRule.EQUALS:
        if not isinstance(expected, (list, dict)) and len(values) > 1:
            return f"Multiple values found, expected single value '{x}'"
        actual = values[0].display() if len(values) == 1 else _display_all(values)
        return f"Expected '{x}', got '{actual}'"
    if rule == PredicateRule.CONTAINS:
        return f"Contains '{x}'" if passed else f"Does not contain '{x}'"
    if rule == PredicateRule.ANY_OF:
        return "Value is in allowed set" if passed else "Value is not in allowed set"
    if rule == PredicateRule.MATCHES:
        return f"Matches pattern '{x}'" if passed else f"No value matches pattern '{x}'"

    if rule in (PredicateRule.GREATER_THAN, PredicateRule.LESS_THAN):
        numbers = [v for v in values if v.is_number]
        if not numbers:
            return "Value is not a number"
        symbol = ">" if rule == PredicateRule.GREATER_THAN else "<"
        check = BUILTINS["gt" if symbol == ">" else "lt"]
        if passed:
            hit = next(v for v in numbers if check(v, Value.of(expected)))
            return f"{hit.display()} {symbol} {x}"
        best = max(numbers, key=lambda v: v.data) if symbol == ">" else min(numbers, key=lambda v: v.data)
        return f"{best.display()} is not {symbol} {x}"

    return "Passed" if passed else "Failed"


def _display_all(values: list[Value]) -> str:
    return "[" + ", ".join(v.display() for v in values) + "]"


# ── Execution ──────────────────────────────────────────────────────

def _verdicts(
    predicates: list[CompiledPredicate],
    edb: Facts,
    lookup: FactLookup,
) -> list[PredicateVerdict]:
    program = build_program(predicates, edb)
    program.evaluate()

    verdicts = []
    for pred in predicates:
        i = Value.of(pred.id)
        passed = program.holds("predicate_pass", i)
        skipped = program.holds("predicate_skipped", i)
        if skipped:
            reason = SKIPPED_REASON
        else:
            reason = describe(pred.rule, pred.claim_name, pred.expected_value, passed, lookup)
        verdicts.append(PredicateVerdict(
            id=pred.id,
            claim_name=pred.claim_name,
            rule=pred.rule,
            expected_value=pred.expected_value,
            passed=passed,
            skipped=skipped,
            reason=reason,
            source=pred.source,
            notes=pred.notes,
        ))
    return verdicts


def execute_rules(
    compiled: CompiledRulespec,
    facts: Iterable[Fact],
    max_workers: Optional[int] = None,
) -> ExecutionResult:
    """
    Evaluate every compiled predicate against a fact set.

    Args:
        compiled: Output of `compile_rulespec`.
        facts: Output of `extract_facts`. Not modified.
        max_workers: When greater than 1, each predicate is evaluated as
            its own sub-program on a thread pool. Verdicts are identical to
            sequential evaluation and always ordered by predicate id.

    Returns:
        ExecutionResult with one verdict per predicate.
    """
    facts = frozenset(facts)
    edb = build_edb(facts)
    lookup = FactLookup(facts)
    predicates = list(compiled.predicates)

    if max_workers and max_workers > 1 and len(predicates) > 1:
        verdicts: list[PredicateVerdict] = []
        with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = [executor.submit(_verdicts, [pred], edb, lookup) for pred in predicates]
            for future in concurrent.futures.as_completed(futures):
                verdicts.extend(future.result())
    else:
        verdicts = _verdicts(predicates, edb, lookup)

    result = ExecutionResult.from_verdicts(verdicts, fact_count=len(facts))
    logger.info(
        f"Evaluated {result.total} predicates over {result.fact_count} facts: "
        f"{result.passed_count} passed, {result.failed_count} failed"
    )
    return result


def evaluate_check(
    claim: str,
    rule: Union[PredicateRule, str],
    value: Any,
    facts: Iterable[Fact],
) -> bool:
    """Evaluate a single standalone check through the same lowering."""
    rules = list(PRELUDE) + lower_check("check", claim, rule, value)
    program = Program(rules, build_edb(facts), BUILTINS)
    return program.holds("check_pass", Value.of("check"))
