"""
Adversarial Robustness Tests
==============================

Tests that an envelope cannot be made to look verified without actually
satisfying its rulespec:
    - Type confusion (strings posing as numbers or booleans)
    - Reserved-name injection (fake length facts, fake tokens)
    - Condition evasion (gated predicates silently skipped)
    - Token replay and rulespec weakening after stamping

These tests are critical for demonstrating that a passing verdict and a
valid token can only come from a genuine evaluation.
"""

from __future__ import annotations

import pytest

from factlog.errors import RulespecError
from factlog.pipeline import VerificationPipeline
from factlog.rules.compiler import compile_rulespec
from factlog.verify.token import get_or_create_verification_key, verify_token

from tests.conftest import check, make_envelope, make_predicate, make_rulespec


@pytest.mark.adversarial
class TestTypeConfusion:
    """
    Attack: supply a value of the wrong type that "looks" right.
    Expected: comparisons are kind-aware and the predicate fails.
    """

    @pytest.mark.parametrize("rule,value,facts", [
        ("equals", True, {"x": "true"}),
        ("equals", 1, {"x": True}),
        ("equals", 0, {"x": False}),
        ("greater_than", 10, {"x": "100"}),
        ("less_than", 10, {"x": None}),
        ("any_of", [1, 2], {"x": "1"}),
        ("contains", 3, {"x": "123"}),
    ])
    def test_wrong_kind_never_passes(self, rule, value, facts):
        assert not check("x", rule, value, facts).passed

    def test_non_numeric_hides_no_numeric_pass(self):
        verdict = check("x[*]", "greater_than", 5, {"x": ["9", 1]})
        assert not verdict.passed
        assert verdict.reason == "1 is not > 5"


@pytest.mark.adversarial
class TestReservedNames:
    """
    Attack: inject facts under names the engine uses internally.
    Expected: the injected data is ignored or rejected.
    """

    def test_fake_length_key_is_ignored(self):
        verdict = check("imp.caps", "min_length", 50, {"imp": {"caps": {"__length": 99}}})
        assert not verdict.passed
        assert verdict.reason == "Length 1 < 50 (minimum)"

    def test_reserved_claim_name_is_rejected(self):
        with pytest.raises(RulespecError, match="reserved suffix"):
            compile_rulespec(make_rulespec({"caps.__length": "caps"}))

    def test_claim_shadowing_sub_claims_is_rejected(self):
        rulespec = make_rulespec(
            {"feature": "feature", "feature.extra": "other.extra"},
            [make_predicate("feature.extra", "not_exists")],
        )
        with pytest.raises(RulespecError, match="sub-claims of claim 'feature'"):
            compile_rulespec(rulespec)

    def test_element_superstring_does_not_satisfy_contains(self):
        verdict = check("caps", "contains", "handle_tsv", {"caps": ["handle_tsv_export"]})
        assert not verdict.passed

    def test_verified_inside_facts_is_not_a_token(self, config, csv_rulespec, csv_facts):
        facts = {**csv_facts, "verified": "flv1:forged"}
        key = get_or_create_verification_key(config.token.key_path)
        envelope = make_envelope(facts)
        assert envelope.verified is None
        assert not verify_token(key, envelope, csv_rulespec)


@pytest.mark.adversarial
class TestConditionEvasion:
    """
    Attack: craft facts so a gated predicate looks skipped.
    Expected: the condition is evaluated with the same semantics as a
    predicate, so it cannot be dodged by a non-literal match.
    """

    CLAIMS = {"subject": "email.subject"}

    @pytest.mark.parametrize("subject", ["Re: hi", "Re: ", "Re: Re: again"])
    def test_regex_condition_triggers(self, subject):
        when = {"claim": "subject", "rule": "matches", "value": "^Re: "}
        verdict = check("email.reply_to", "exists", None, {"email": {"subject": subject}},
                        when=when, claims=self.CLAIMS)
        assert not verdict.skipped
        assert not verdict.passed

    def test_multi_valued_condition_triggers_on_any_value(self):
        when = {"claim": "subject", "rule": "equals", "value": "urgent"}
        verdict = check("email.owner", "exists", None,
                        {"email": {"tags": ["low", "urgent"]}},
                        when=when, claims={"subject": "email.tags[*]"})
        # equals requires a single value, so the condition is not met
        assert verdict.skipped

        when = {"claim": "subject", "rule": "any_of", "value": ["urgent"]}
        verdict = check("email.owner", "exists", None,
                        {"email": {"tags": ["low", "urgent"]}},
                        when=when, claims={"subject": "email.tags[*]"})
        assert not verdict.skipped
        assert not verdict.passed


@pytest.mark.adversarial
class TestTokenReplay:
    """
    Attack: reuse a token minted for different facts or a different rulespec.
    Expected: the token no longer verifies and a re-run drops it.
    """

    def test_token_copied_onto_other_facts(self, config, csv_rulespec, csv_facts):
        pipeline = VerificationPipeline(config)
        stamped = pipeline.run(csv_rulespec, csv_facts).envelope
        key = get_or_create_verification_key(config.token.key_path)

        forged = make_envelope({**csv_facts, "breaking_changes": ["dropped header API"]},
                               verified=stamped.verified)
        assert not verify_token(key, forged, csv_rulespec)
        assert pipeline.run(csv_rulespec, forged).envelope.verified is None

    def test_token_checked_against_stricter_rulespec(self, config, csv_rulespec, csv_facts):
        stamped = VerificationPipeline(config).run(csv_rulespec, csv_facts).envelope
        key = get_or_create_verification_key(config.token.key_path)

        stricter = csv_rulespec.model_copy(deep=True)
        stricter.predicates.append(make_predicate("caps", "max_length", 1))
        assert verify_token(key, stamped, csv_rulespec)
        assert not verify_token(key, stamped, stricter)

    def test_notes_change_invalidates_token(self, config, csv_rulespec, csv_facts):
        stamped = VerificationPipeline(config).run(csv_rulespec, csv_facts).envelope
        key = get_or_create_verification_key(config.token.key_path)

        edited = csv_rulespec.model_copy(deep=True)
        edited.predicates[0].notes = "TSV support is optional"
        assert not verify_token(key, stamped, edited)
