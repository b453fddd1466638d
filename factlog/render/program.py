"""
Datalog Program Dump
=====================

Renders the lowered program (the relations, the asserted facts and the
rules derived from every predicate) in a Soufflé-style text format, and
parses that text back.

The dump is produced from the very rules the evaluator runs, so it is an
exact record of what was checked. It is deterministic: facts are sorted
per relation and predicates appear in id order.

Example:

    // --- Facts (from envelope) ---
    claim_value("caps", "handle_tsv").
    claim_element("caps", "handle_tsv").
    claim_length("caps", 2).
    predicate(0).

    // --- Rules (from rulespec predicates) ---
    // pred[0]: contains caps 'handle_tsv'  -- User requested TSV support
    check_pass("p0") :- claim_direct("caps", V), contains(V, "handle_tsv").
    check_pass("p0") :- claim_element("caps", V), eq(V, "handle_tsv").
    predicate_pass(0) :- check_pass("p0").
    predicate_fail(0) :- predicate(0), !predicate_pass(0).

Usage:
    text = format_datalog_program(compiled, facts)
    parsed = parse_datalog_program(text)
    parsed.to_program().holds("predicate_pass", Value.of(0))
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Iterable

from factlog.errors import DocumentError
from factlog.schemas.compiled import CompiledPredicate, CompiledRulespec
from factlog.schemas.facts import OBJECT_MARKER, Fact, Value, ValueKind, display_literal
from factlog.verify.datalog import Atom, Facts, Program, Rule, Term, Var
from factlog.verify.evaluator import BUILTINS, EDB_RELATIONS, PRELUDE, build_edb, lower_predicate

# Relation declarations, in dump order.
DECLARATIONS: dict[str, tuple[str, ...]] = {
    "claim_value": ("claim: symbol", "value: symbol"),
    "claim_direct": ("claim: symbol", "value: symbol"),
    "claim_element": ("claim: symbol", "value: symbol"),
    "claim_length": ("claim: symbol", "length: number"),
    "claim_count": ("claim: symbol", "count: number"),
    "predicate": ("id: number",),
    "claim_present": ("claim: symbol",),
    "claim_measured": ("claim: symbol",),
    "check_hit": ("check: symbol",),
    "check_miss": ("check: symbol",),
    "check_pass": ("check: symbol",),
    "predicate_skipped": ("id: number",),
    "predicate_pass": ("id: number",),
    "predicate_fail": ("id: number",),
}

OUTPUTS = ("predicate_pass", "predicate_fail")


# ── Formatting ─────────────────────────────────────────────────────

def format_datalog_program(compiled: CompiledRulespec, facts: Iterable[Fact]) -> str:
    """
    Render the complete lowered program for a compiled rulespec.

    Args:
        compiled: The compiled rulespec.
        facts: Facts extracted from the envelope.

    Returns:
        Program text; parse it back with `parse_datalog_program`.
    """
    lines = [
        "// Auto-generated datalog program",
        f"// Rulespec: {compiled.name}",
        f"// Compiled at revision: {compiled.revision}",
        "",
        "// --- Relation declarations ---",
    ]
    for relation, columns in DECLARATIONS.items():
        lines.append(f".decl {relation}({', '.join(columns)})")
    lines.append("")
    for relation in OUTPUTS:
        lines.append(f".output {relation}")
    lines.append("")

    edb = build_edb(facts)
    edb["predicate"] = {(Value.of(p.id),) for p in compiled.predicates}
    lines.append("// --- Facts (from envelope) ---")
    for relation in (*EDB_RELATIONS, "predicate"):
        rows = sorted(edb.get(relation, ()), key=lambda row: [v.render() for v in row])
        for row in rows:
            lines.append(str(Rule(Atom(relation, row))))
    lines.append("")

    lines.append("// --- Helper rules ---")
    lines.extend(str(rule) for rule in PRELUDE)
    lines.append("")

    lines.append("// --- Rules (from rulespec predicates) ---")
    for pred in compiled.predicates:
        lines.append(_describe_predicate(pred))
        if pred.when is not None:
            lines.append(
                f"//   when: {pred.when.rule} {pred.when.claim_name}"
                f"{_quoted(pred.when.expected_value)}"
            )
        lines.extend(str(rule) for rule in lower_predicate(pred))
        lines.append("")

    return "\n".join(lines)


def _quoted(value) -> str:
    if value is None:
        return ""
    return f" '{_one_line(display_literal(value))}'"


def _one_line(text: str) -> str:
    return " ".join(text.splitlines())


def _describe_predicate(pred: CompiledPredicate) -> str:
    notes = f"  -- {_one_line(pred.notes)}" if pred.notes else ""
    return (
        f"// pred[{pred.id}]: {pred.rule} {pred.claim_name}"
        f"{_quoted(pred.expected_value)}{notes}"
    )


# ── Parsing ────────────────────────────────────────────────────────

@dataclass
class ParsedProgram:
    """Structure recovered from a program dump."""
    declarations: dict[str, tuple[str, ...]] = field(default_factory=dict)
    outputs: list[str] = field(default_factory=list)
    facts: Facts = field(default_factory=dict)
    rules: list[Rule] = field(default_factory=list)

    def to_program(self) -> Program:
        """An evaluable program with the standard builtins."""
        return Program(self.rules, self.facts, BUILTINS)


_PRED_NAME = re.compile(r"[a-z][A-Za-z0-9_]*")
_VAR_NAME = re.compile(r"[A-Z_][A-Za-z0-9_]*")
_NON_FINITE = re.compile(r"(?:Infinity|NaN)(?![A-Za-z0-9_])")
_OBJECT_LITERAL = "$object"
_decoder = json.JSONDecoder()


def parse_datalog_program(text: str) -> ParsedProgram:
    """
    Parse a program dump produced by `format_datalog_program`.

    Raises:
        DocumentError: on a line that is not a comment, directive or clause.
    """
    parsed = ParsedProgram()
    for lineno, raw in enumerate(text.split("\n"), start=1):
        line = raw.strip()
        if not line or line.startswith("//"):
            continue
        try:
            if line.startswith(".decl "):
                relation, columns = _parse_decl(line[len(".decl "):])
                parsed.declarations[relation] = columns
            elif line.startswith(".output "):
                parsed.outputs.append(line[len(".output "):].strip())
            else:
                rule = _ClauseParser(line).parse()
                if rule.body:
                    parsed.rules.append(rule)
                else:
                    parsed.facts.setdefault(rule.head.pred, set()).add(rule.head.args)
        except ValueError as e:
            raise DocumentError(f"line {lineno}: {e}") from e
    return parsed


def _parse_decl(text: str) -> tuple[str, tuple[str, ...]]:
    match = re.fullmatch(r"\s*([a-z][A-Za-z0-9_]*)\((.*)\)\s*", text)
    if not match:
        raise ValueError(f"malformed declaration '{text}'")
    columns = tuple(c.strip() for c in match.group(2).split(",") if c.strip())
    return match.group(1), columns


class _ClauseParser:
    """Recursive-descent parser for one `head [:- body].` clause."""

    def __init__(self, text: str):
        self.text = text
        self.pos = 0

    def parse(self) -> Rule:
        head = self._atom()
        if head.negated:
            raise ValueError("clause head cannot be negated")
        body: list[Atom] = []
        self._skip()
        if self.text.startswith(":-", self.pos):
            self.pos += 2
            body.append(self._atom())
            while self._accept(","):
                body.append(self._atom())
        self._expect(".")
        self._skip()
        if self.pos != len(self.text):
            raise ValueError(f"unexpected text '{self.text[self.pos:]}'")
        if not body and not head.is_ground():
            raise ValueError(f"fact '{head}' is not ground")
        return Rule(head, tuple(body))

    def _atom(self) -> Atom:
        self._skip()
        negated = self._accept("!")
        self._skip()
        match = _PRED_NAME.match(self.text, self.pos)
        if not match:
            raise ValueError(f"expected relation name at column {self.pos + 1}")
        self.pos = match.end()
        self._expect("(")
        args: list[Term] = []
        if not self._accept(")"):
            args.append(self._term())
            while self._accept(","):
                args.append(self._term())
            self._expect(")")
        return Atom(match.group(0), tuple(args), negated)

    def _term(self) -> Term:
        self._skip()
        if self._accept("["):
            items: list[Value] = []
            if not self._accept("]"):
                items.append(self._constant())
                while self._accept(","):
                    items.append(self._constant())
                self._expect("]")
            return Value(ValueKind.LIST, tuple(items))
        if self.text.startswith(_OBJECT_LITERAL, self.pos):
            self.pos += len(_OBJECT_LITERAL)
            return Value(ValueKind.OBJECT, OBJECT_MARKER)
        # Infinity and NaN are number literals, not variables
        if not _NON_FINITE.match(self.text, self.pos):
            match = _VAR_NAME.match(self.text, self.pos)
            if match:
                self.pos = match.end()
                return Var(match.group(0))
        try:
            raw, end = _decoder.raw_decode(self.text, self.pos)
        except json.JSONDecodeError as e:
            raise ValueError(f"invalid literal at column {self.pos + 1}: {e.msg}") from e
        if isinstance(raw, (list, dict)):
            raise ValueError(f"unexpected JSON container at column {self.pos + 1}")
        self.pos = end
        return Value.of(raw)

    def _constant(self) -> Value:
        term = self._term()
        if isinstance(term, Var):
            raise ValueError(f"variable '{term}' inside a list literal")
        return term

    def _skip(self) -> None:
        while self.pos < len(self.text) and self.text[self.pos].isspace():
            self.pos += 1

    def _accept(self, token: str) -> bool:
        self._skip()
        if self.text.startswith(token, self.pos):
            self.pos += len(token)
            return True
        return False

    def _expect(self, token: str) -> None:
        if not self._accept(token):
            found = self.text[self.pos:self.pos + 10] or "end of line"
            raise ValueError(f"expected '{token}' at column {self.pos + 1}, found '{found}'")
