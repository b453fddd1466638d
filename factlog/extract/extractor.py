"""
Fact Extractor
===============

Realizes every declared claim of a compiled rulespec into ground facts.

For each claim, the selector is resolved against the unwrapped facts
mapping. If that finds nothing, it is retried against the facts re-wrapped
under the conventional root label, so `facts.feature.done` and
`feature.done` address the same value.

Materialization of one resolved value:
    null      → nothing (explicit absence)
    scalar    → one fact, type preserved
    sequence  → each element under the same claim name, flagged as an
                element (nested sequences flatten, nested mappings recurse)
    mapping   → an object marker fact plus one sub-claim per key
                (`claim.key`), recursively

Containers resolved directly by a claim (or by a mapping key) also add to
that claim's length fact (`claim.__length`); a mapping key named `__length`
is skipped so it cannot shadow that fact. When a wildcard resolves to
several containers, their sizes are summed into a single length fact.

Data Flow:
    ActionEnvelope + CompiledRulespec → Extractor → set[Fact] → Evaluator
"""

from __future__ import annotations

import logging
from typing import Any, Union

from factlog.rules.selector import Selector, parse_selector
from factlog.schemas.compiled import CompiledRulespec
from factlog.schemas.envelope import ActionEnvelope
from factlog.schemas.facts import LENGTH_SUFFIX, Fact

logger = logging.getLogger("factlog.extract.extractor")


def resolve_claim(
    selector: Union[Selector, str],
    facts: dict[str, Any],
    root_key: str = "facts",
) -> list[Any]:
    """
    Resolve a selector with the root-label fallback.

    Returns:
        Matched values (possibly including None for explicit nulls).
    """
    if isinstance(selector, str):
        selector = parse_selector(selector)
    values = selector.select(facts)
    if not values:
        values = selector.select({root_key: facts})
    return values


def extract_facts(
    envelope: Union[ActionEnvelope, dict[str, Any]],
    compiled: CompiledRulespec,
    root_key: str = "facts",
) -> set[Fact]:
    """
    Extract the ground fact set for a compiled rulespec.

    Args:
        envelope: The action envelope (or its bare facts mapping).
        compiled: Compiled rulespec whose claims are realized.
        root_key: Conventional root label used by the fallback.

    Returns:
        Set of facts. Order is irrelevant; use `sorted_facts` for display.
    """
    document = envelope.facts if isinstance(envelope, ActionEnvelope) else envelope

    facts: set[Fact] = set()
    for claim_name, selector in compiled.claims.items():
        values = resolve_claim(selector, document, root_key)
        if not values:
            logger.debug(f"Claim '{claim_name}' ({selector}) resolved to nothing")
        facts |= materialize_values(claim_name, values)

    logger.debug(f"Extracted {len(facts)} facts for {len(compiled.claims)} claims")
    return facts


def materialize_values(claim_name: str, values: list[Any]) -> set[Fact]:
    """
    Materialize the values resolved for one claim into facts.

    Also used to lower container literals of `equals` rules, so that a
    literal and a resolved value of the same shape yield the same facts.
    """
    facts: set[Fact] = set()
    lengths: dict[str, int] = {}
    for value in values:
        _materialize(claim_name, value, facts, lengths)
    for name, count in lengths.items():
        facts.add(Fact.length(name, count))
    return facts


def _materialize(
    name: str,
    value: Any,
    facts: set[Fact],
    lengths: dict[str, int],
) -> None:
    """Materialize a value resolved directly for `name`."""
    if value is None:
        return
    if isinstance(value, list):
        lengths[name] = lengths.get(name, 0) + len(value)
        for item in value:
            _materialize_element(name, item, facts, lengths)
    elif isinstance(value, dict):
        lengths[name] = lengths.get(name, 0) + len(value)
        _materialize_mapping(name, value, facts, lengths)
    else:
        facts.add(Fact.scalar(name, value))


def _materialize_element(
    name: str,
    item: Any,
    facts: set[Fact],
    lengths: dict[str, int],
) -> None:
    """Materialize a sequence element; it shares the sequence's claim name."""
    if item is None:
        return
    if isinstance(item, list):
        for nested in item:
            _materialize_element(name, nested, facts, lengths)
    elif isinstance(item, dict):
        _materialize_mapping(name, item, facts, lengths)
    else:
        facts.add(Fact.item(name, item))


def _materialize_mapping(
    name: str,
    mapping: dict[Any, Any],
    facts: set[Fact],
    lengths: dict[str, int],
) -> None:
    facts.add(Fact.object_marker(name))
    for key, sub in mapping.items():
        sub_claim = f"{name}.{key}"
        if sub_claim.endswith(LENGTH_SUFFIX):
            # would shadow the synthesized length fact of `name`
            logger.warning(f"Skipping reserved key '{key}' under claim '{name}'")
            continue
        _materialize(sub_claim, sub, facts, lengths)
