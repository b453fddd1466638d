"""
Datalog Core
=============

A small bottom-up datalog engine with stratified negation-as-failure.

Terms are either kind-tagged constants (`Value`) or variables (`Var`).
Variables are written in upper case; `_` is anonymous and matches
anything without binding.

Supports:
    - unification of rule bodies against stored facts (backtracking)
    - stratified negation (`!atom`), computed from the rule dependency graph
    - injectable builtins (`eq(A, B)`, `gt(A, B)`, ...) over ground arguments
    - a fixed-point loop per stratum

Safety constraints:
    - Every named variable in a negated atom or a builtin must be bound by
      an earlier positive atom of the same rule.
    - A program with a cycle through negation is rejected.

Usage:
    program = Program(rules, facts, builtins)
    derived = program.evaluate()
    program.holds("predicate_pass", Value.of(0))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Mapping, Optional, Union

from factlog.schemas.facts import Value

logger = logging.getLogger("factlog.verify.datalog")


# ── Terms, atoms, rules ────────────────────────────────────────────

@dataclass(frozen=True)
class Var:
    """A logic variable. `_` is anonymous."""
    name: str

    @property
    def is_anonymous(self) -> bool:
        return self.name == "_"

    def __str__(self) -> str:
        return self.name


Term = Union[Var, Value]

ANY = Var("_")


@dataclass(frozen=True)
class Atom:
    """pred(arg1, arg2, ...) or its negation !pred(...)."""
    pred: str
    args: tuple[Term, ...]
    negated: bool = False

    def __str__(self) -> str:
        prefix = "!" if self.negated else ""
        return f"{prefix}{self.pred}({', '.join(_render_term(a) for a in self.args)})"

    def is_ground(self) -> bool:
        return all(not isinstance(a, Var) for a in self.args)


@dataclass(frozen=True)
class Rule:
    """Horn clause `head :- body.` A rule with an empty body is a fact."""
    head: Atom
    body: tuple[Atom, ...] = ()

    def __str__(self) -> str:
        if not self.body:
            return f"{self.head}."
        return f"{self.head} :- {', '.join(str(a) for a in self.body)}."


def atom(pred: str, *args: Term, negated: bool = False) -> Atom:
    return Atom(pred=pred, args=tuple(args), negated=negated)


def neg(pred: str, *args: Term) -> Atom:
    return Atom(pred=pred, args=tuple(args), negated=True)


def _render_term(term: Term) -> str:
    if isinstance(term, Var):
        return term.name
    return term.render()


# ── Substitutions ──────────────────────────────────────────────────

Substitution = dict[str, Value]
Facts = dict[str, set[tuple[Value, ...]]]
Builtin = Callable[..., bool]


def _resolve(term: Term, subst: Substitution) -> Term:
    if isinstance(term, Var) and term.name in subst:
        return subst[term.name]
    return term


def _unify(
    pattern: tuple[Term, ...],
    ground: tuple[Value, ...],
    subst: Substitution,
) -> Optional[Substitution]:
    """Unify a pattern with a ground tuple. Returns the extended substitution or None."""
    if len(pattern) != len(ground):
        return None
    s = dict(subst)
    for p, g in zip(pattern, ground):
        if isinstance(p, Var):
            if p.is_anonymous:
                continue
            bound = s.get(p.name)
            if bound is None:
                s[p.name] = g
            elif bound != g:
                return None
        elif p != g:
            return None
    return s


# ── Stratification ─────────────────────────────────────────────────

def compute_strata(rules: Iterable[Rule], builtins: Iterable[str] = ()) -> dict[str, int]:
    """
    Assign a stratum to every predicate.

    Rules:
        stratum[p] >= stratum[q]   when p depends positively on q
        stratum[p] >  stratum[q]   when p depends negatively on q

    Raises:
        ValueError: if the program is not stratifiable (cycle through negation).
    """
    builtins = set(builtins)
    preds: set[str] = set()
    pos_deps: dict[str, set[str]] = {}
    neg_deps: dict[str, set[str]] = {}

    for rule in rules:
        head = rule.head.pred
        preds.add(head)
        pos_deps.setdefault(head, set())
        neg_deps.setdefault(head, set())
        for body_atom in rule.body:
            if body_atom.pred in builtins:
                continue
            preds.add(body_atom.pred)
            if body_atom.negated:
                neg_deps[head].add(body_atom.pred)
            else:
                pos_deps[head].add(body_atom.pred)

    stratum = {p: 0 for p in preds}
    limit = len(preds)
    changed = True
    while changed:
        changed = False
        for p in preds:
            for dep in pos_deps.get(p, ()):
                if stratum[p] < stratum[dep]:
                    stratum[p] = stratum[dep]
                    changed = True
            for dep in neg_deps.get(p, ()):
                if stratum[p] < stratum[dep] + 1:
                    stratum[p] = stratum[dep] + 1
                    changed = True
            if stratum[p] > limit:
                raise ValueError(
                    f"Program is not stratifiable: '{p}' depends on itself "
                    f"through negation"
                )
    return stratum


# ── Program ────────────────────────────────────────────────────────

class Program:
    """
    A datalog program: EDB facts, IDB rules and the builtins they may call.

    Evaluation is bottom-up, one stratum at a time, iterating each stratum
    to a fixed point. The input fact mapping is copied and never mutated.

    Args:
        rules: IDB rules. Rules with an empty body are treated as facts.
        facts: EDB facts, relation name → set of ground tuples.
        builtins: Relation name → predicate over ground `Value` arguments.
    """

    def __init__(
        self,
        rules: Iterable[Rule],
        facts: Optional[Mapping[str, Iterable[tuple[Value, ...]]]] = None,
        builtins: Optional[Mapping[str, Builtin]] = None,
    ):
        self.builtins: dict[str, Builtin] = dict(builtins or {})
        self.rules: list[Rule] = []
        self._facts: Facts = {k: set(v) for k, v in (facts or {}).items()}

        for rule in rules:
            if rule.body:
                self._check_safety(rule)
                self.rules.append(rule)
            else:
                self.add_fact(rule.head.pred, *rule.head.args)

        self.strata = compute_strata(self.rules, self.builtins)
        self._evaluated = False

    def add_fact(self, pred: str, *args: Term) -> None:
        if any(isinstance(a, Var) for a in args):
            raise ValueError(f"Fact {pred}({', '.join(map(str, args))}) is not ground")
        self._facts.setdefault(pred, set()).add(tuple(args))
        self._evaluated = False

    def _check_safety(self, rule: Rule) -> None:
        bound: set[str] = set()
        for body_atom in rule.body:
            named = {a.name for a in body_atom.args if isinstance(a, Var) and not a.is_anonymous}
            if body_atom.pred in self.builtins or body_atom.negated:
                unbound = named - bound
                if unbound:
                    raise ValueError(
                        f"Unsafe rule {rule}: variables {sorted(unbound)} in "
                        f"'{body_atom}' are not bound by a preceding positive atom"
                    )
                if body_atom.pred in self.builtins and any(
                    isinstance(a, Var) and a.is_anonymous for a in body_atom.args
                ):
                    raise ValueError(f"Unsafe rule {rule}: builtin '{body_atom}' has '_'")
            else:
                bound |= named
        head_vars = {a.name for a in rule.head.args if isinstance(a, Var)}
        if head_vars - bound or any(
            isinstance(a, Var) and a.is_anonymous for a in rule.head.args
        ):
            raise ValueError(f"Unsafe rule {rule}: head variables must be bound")

    # ------------------------------------------------------------------

    def evaluate(self) -> Facts:
        """
        Run bottom-up evaluation to the least (stratified) model.

        Returns:
            Relation name → set of tuples, EDB and derived facts together.
        """
        if not self._evaluated:
            max_stratum = max(self.strata.values(), default=0)
            for s in range(max_stratum + 1):
                layer = [r for r in self.rules if self.strata.get(r.head.pred, 0) == s]
                if layer:
                    self._eval_stratum(layer)
            self._evaluated = True
            logger.debug(
                f"Evaluated {len(self.rules)} rules over {max_stratum + 1} strata, "
                f"{sum(len(v) for v in self._facts.values())} facts"
            )
        return {k: set(v) for k, v in self._facts.items()}

    def _eval_stratum(self, rules: list[Rule]) -> None:
        changed = True
        while changed:
            changed = False
            for rule in rules:
                for subst in self._match_body(rule.body, {}):
                    head = tuple(_resolve(a, subst) for a in rule.head.args)
                    relation = self._facts.setdefault(rule.head.pred, set())
                    if head not in relation:
                        relation.add(head)
                        changed = True

    def _match_body(self, body: tuple[Atom, ...], subst: Substitution) -> list[Substitution]:
        """All substitutions extending `subst` under which `body` holds."""
        if not body:
            return [subst]

        first, rest = body[0], body[1:]
        args = tuple(_resolve(a, subst) for a in first.args)

        if first.pred in self.builtins:
            ok = bool(self.builtins[first.pred](*args))
            if ok != first.negated:
                return self._match_body(rest, subst)
            return []

        if first.negated:
            if self._exists(first.pred, args):
                return []
            return self._match_body(rest, subst)

        results: list[Substitution] = []
        for fact_args in self._facts.get(first.pred, ()):
            extended = _unify(args, fact_args, subst)
            if extended is not None:
                results.extend(self._match_body(rest, extended))
        return results

    def _exists(self, pred: str, args: tuple[Term, ...]) -> bool:
        relation = self._facts.get(pred, set())
        if all(not isinstance(a, Var) for a in args):
            return args in relation
        return any(_unify(args, fact, {}) is not None for fact in relation)

    # ------------------------------------------------------------------

    def holds(self, pred: str, *args: Value) -> bool:
        """True if the ground atom pred(args) is in the model."""
        self.evaluate()
        return tuple(args) in self._facts.get(pred, set())

    def query(self, pred: str, *args: Term) -> list[Substitution]:
        """Substitutions for every fact of `pred` that unifies with `args`."""
        self.evaluate()
        results = []
        for fact_args in self._facts.get(pred, ()):
            subst = _unify(tuple(args), fact_args, {})
            if subst is not None:
                results.append(subst)
        return results
