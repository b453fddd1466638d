"""
Rulespec Validator
===================

Non-raising validation and JSON-schema export for FactLog documents.

`compile_rulespec` stops at the first problem; the validator is the
front door for authoring tools that want a list of messages instead.

Usage:
    from factlog.rules.validator import validate_rulespec
    errors = validate_rulespec(rulespec_dict)
    if errors:
        print("Validation failed:", errors)
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from factlog.errors import RulespecError
from factlog.rules.compiler import compile_rulespec
from factlog.schemas.envelope import ActionEnvelope
from factlog.schemas.report import VerificationReport
from factlog.schemas.rulespec import Rulespec
from factlog.schemas.verification import ExecutionResult

logger = logging.getLogger("factlog.rules.validator")

_SCHEMAS = {
    "rulespec": Rulespec,
    "envelope": ActionEnvelope,
    "result": ExecutionResult,
    "report": VerificationReport,
}


def get_json_schema(schema_name: str) -> dict[str, Any]:
    """
    Export the JSON Schema for a FactLog data contract.

    Args:
        schema_name: One of "rulespec", "envelope", "result", "report".

    Returns:
        JSON Schema dict.
    """
    if schema_name not in _SCHEMAS:
        raise ValueError(f"Unknown schema: {schema_name}. Use: {list(_SCHEMAS.keys())}")
    return _SCHEMAS[schema_name].model_json_schema()


def export_all_schemas(output_dir: str | Path) -> list[Path]:
    """
    Export all JSON Schemas to files, one `<name>_schema.json` per schema.

    Returns:
        Paths of the written files.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    written = []
    for name in _SCHEMAS:
        path = output_dir / f"{name}_schema.json"
        with open(path, "w", encoding="utf-8") as f:
            json.dump(get_json_schema(name), f, indent=2, ensure_ascii=False)
        logger.info(f"Exported schema: {path}")
        written.append(path)
    return written


def validate_rulespec(data: Any) -> list[str]:
    """
    Validate a rulespec document.

    Runs the same checks as the compiler (claims, selectors, references,
    literal types, `when` conditions).

    Args:
        data: Parsed rulespec document or a Rulespec.

    Returns:
        List of error messages (empty if valid).
    """
    errors: list[str] = []
    try:
        rulespec = data if isinstance(data, Rulespec) else Rulespec.from_document(data)
        compile_rulespec(rulespec)
    except RulespecError as e:
        errors.append(str(e))
    return errors


def unused_claims(rulespec: Rulespec) -> list[str]:
    """Claims that no predicate or `when` condition references."""
    used = {p.claim for p in rulespec.predicates}
    used |= {p.when.claim for p in rulespec.predicates if p.when is not None}
    return [c.name for c in rulespec.claims if c.name not in used]


def validate_report(data: dict[str, Any]) -> list[str]:
    """
    Validate a VerificationReport dict.

    Checks both schema validity and integrity hash.
    """
    errors: list[str] = []
    try:
        report = VerificationReport.model_validate(data)
    except ValidationError as e:
        errors.append(f"Schema validation failed: {e}")
        return errors
    if not report.verify_integrity():
        errors.append("Report integrity hash mismatch (possible tampering)")
    return errors
