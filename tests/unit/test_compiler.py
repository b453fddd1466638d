"""
Rule Compiler Tests
====================

Tests rulespec validation and lowering:
    - Claim name uniqueness and selector syntax
    - Claim references from predicates and `when` conditions
    - Literal presence and typing per rule kind
    - Error context (claim, predicate index, rule)
"""

from __future__ import annotations

import pytest

from factlog.errors import RulespecError
from factlog.rules.compiler import check_rule_value, compile_rulespec
from factlog.rules.validator import unused_claims, validate_rulespec
from factlog.schemas.rulespec import InvariantSource, PredicateRule

from tests.conftest import make_predicate, make_rulespec


class TestCompileSuccess:

    def test_predicates_get_positional_ids(self, csv_rulespec):
        compiled = compile_rulespec(csv_rulespec, name="csv", revision=3)
        assert compiled.name == "csv"
        assert compiled.revision == 3
        assert [p.id for p in compiled.predicates] == [0, 1, 2, 3]
        assert compiled.predicates[0].selector == "csv_importer.capabilities"
        assert compiled.predicates[0].check_id == "p0"
        assert compiled.predicates[2].source == InvariantSource.MEMORY
        assert compiled.claims["breaking"] == "breaking_changes"

    def test_when_condition_is_resolved(self):
        rulespec = make_rulespec(
            {"subject": "email.subject", "reply": "email.reply_to"},
            [make_predicate("reply", "exists",
                            when={"claim": "subject", "rule": "matches", "value": "^Re: "})],
        )
        pred = compile_rulespec(rulespec).predicates[0]
        assert pred.when.claim_name == "subject"
        assert pred.when.selector == "email.subject"
        assert pred.when.rule == PredicateRule.MATCHES
        assert pred.when_check_id == "w0"

    def test_empty_rulespec(self):
        compiled = compile_rulespec(make_rulespec({}))
        assert compiled.is_empty

    def test_accepts_raw_document(self):
        compiled = compile_rulespec({
            "claims": [{"name": "x", "selector": "a.b"}],
            "predicates": [{"claim": "x", "rule": "exists", "source": "task_prompt"}],
        })
        assert compiled.predicates[0].rule == PredicateRule.EXISTS


class TestCompileErrors:

    def test_duplicate_claim_name(self):
        rulespec = make_rulespec({"x": "a"})
        rulespec.claims.append(rulespec.claims[0].model_copy())
        with pytest.raises(RulespecError, match="Duplicate claim name") as exc:
            compile_rulespec(rulespec)
        assert exc.value.claim == "x"

    def test_empty_claim_name(self):
        with pytest.raises(RulespecError, match="empty"):
            compile_rulespec(make_rulespec({"": "a"}))

    def test_bad_selector_names_claim(self):
        with pytest.raises(RulespecError, match="Invalid selector") as exc:
            compile_rulespec(make_rulespec({"x": "a[oops]"}))
        assert exc.value.claim == "x"

    def test_non_ascii_index_is_rulespec_error(self):
        with pytest.raises(RulespecError, match="invalid array index") as exc:
            compile_rulespec(make_rulespec({"x": "a[²]"}))
        assert exc.value.claim == "x"

    @pytest.mark.parametrize("claims", [
        {"feature": "feature", "feature.extra": "other.extra"},
        {"feature.extra": "other.extra", "feature": "feature"},
        {"a": "a", "a.b.c": "c"},
    ])
    def test_claim_name_colliding_with_sub_claims(self, claims):
        with pytest.raises(RulespecError, match="sub-claims of claim") as exc:
            compile_rulespec(make_rulespec(claims))
        assert "." in exc.value.claim

    def test_dotted_names_without_a_prefix_claim_are_allowed(self):
        compiled = compile_rulespec(make_rulespec({"feature.extra": "x", "featured": "y"}))
        assert set(compiled.claims) == {"feature.extra", "featured"}

    def test_unknown_claim_reference(self):
        rulespec = make_rulespec({"x": "a"}, [
            make_predicate("x", "exists"),
            make_predicate("y", "exists"),
        ])
        with pytest.raises(RulespecError, match="unknown claim 'y'") as exc:
            compile_rulespec(rulespec)
        assert exc.value.predicate_index == 1
        assert exc.value.rule == "exists"
        assert "predicate[1]" in str(exc.value)

    def test_unknown_when_claim(self):
        rulespec = make_rulespec({"x": "a"}, [
            make_predicate("x", "exists", when={"claim": "nope", "rule": "exists"}),
        ])
        with pytest.raises(RulespecError, match="When condition") as exc:
            compile_rulespec(rulespec)
        assert exc.value.claim == "nope"

    def test_when_value_is_type_checked(self):
        rulespec = make_rulespec({"x": "a"}, [
            make_predicate("x", "exists", when={"claim": "x", "rule": "matches", "value": "(["}),
        ])
        with pytest.raises(RulespecError, match="Invalid regex"):
            compile_rulespec(rulespec)

    def test_missing_value(self):
        rulespec = make_rulespec({"x": "a"}, [make_predicate("x", "equals")])
        with pytest.raises(RulespecError, match="requires a value") as exc:
            compile_rulespec(rulespec)
        assert exc.value.rule == "equals"

    def test_validation_order_claims_before_predicates(self):
        rulespec = make_rulespec({"x": "a..b"}, [make_predicate("y", "exists")])
        with pytest.raises(RulespecError, match="Invalid selector"):
            compile_rulespec(rulespec)

    def test_schema_error_is_rulespec_error(self):
        with pytest.raises(RulespecError, match="schema validation"):
            compile_rulespec({"claims": [{"name": "x"}]})
        with pytest.raises(RulespecError):
            compile_rulespec({
                "claims": [{"name": "x", "selector": "a"}],
                "predicates": [{"claim": "x", "rule": "bogus", "source": "task_prompt"}],
            })


class TestRuleValueTyping:

    @pytest.mark.parametrize("rule,value", [
        ("exists", None),
        ("not_exists", None),
        ("equals", "x"),
        ("equals", 3),
        ("equals", ["a", "b"]),
        ("equals", {"k": 1}),
        ("contains", "tsv"),
        ("contains", 2),
        ("not_contains", False),
        ("any_of", ["a", 1]),
        ("none_of", []),
        ("greater_than", 1.5),
        ("less_than", -3),
        ("min_length", 0),
        ("max_length", 10),
        ("matches", r"^\d+$"),
    ])
    def test_accepted(self, rule, value):
        assert check_rule_value(PredicateRule(rule), value) is None

    @pytest.mark.parametrize("rule,value,message", [
        ("equals", None, "requires a value"),
        ("any_of", "a", "array"),
        ("none_of", {"a": 1}, "array"),
        ("greater_than", "5", "numeric"),
        ("greater_than", True, "numeric"),
        ("less_than", [1], "numeric"),
        ("min_length", 1.5, "integer"),
        ("min_length", True, "integer"),
        ("max_length", -1, "non-negative"),
        ("matches", 5, "string pattern"),
        ("matches", "([", "Invalid regex"),
        ("contains", ["a"], "scalar"),
        ("not_contains", {"a": 1}, "scalar"),
        ("less_than", float("inf"), "finite"),
        ("greater_than", float("-inf"), "finite"),
        ("any_of", [1, float("nan")], "finite"),
        ("equals", {"k": float("inf")}, "finite"),
    ])
    def test_rejected(self, rule, value, message):
        problem = check_rule_value(PredicateRule(rule), value)
        assert problem is not None
        assert message in problem


class TestValidator:

    def test_valid_document(self):
        assert validate_rulespec({
            "claims": [{"name": "x", "selector": "a"}],
            "predicates": [{"claim": "x", "rule": "exists", "source": "memory"}],
        }) == []

    def test_errors_are_returned_not_raised(self):
        errors = validate_rulespec({
            "claims": [{"name": "x", "selector": "a"}],
            "predicates": [{"claim": "x", "rule": "greater_than", "value": "big",
                            "source": "memory"}],
        })
        assert len(errors) == 1
        assert "numeric" in errors[0]

    def test_non_mapping_document(self):
        assert validate_rulespec(["not", "a", "mapping"])

    def test_unused_claims(self):
        rulespec = make_rulespec(
            {"a": "a", "b": "b", "c": "c"},
            [make_predicate("a", "exists", when={"claim": "b", "rule": "exists"})],
        )
        assert unused_claims(rulespec) == ["c"]
