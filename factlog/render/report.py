"""
Report Formatter
=================

Human-readable and machine-readable views of one verification run.

    - format_datalog_results:   evaluation trace (one block per verdict
                                plus an aggregate summary line)
    - format_envelope_markdown: readable listing of the action envelope
    - ReportBuilder:            sealed VerificationReport (JSON)

Everything here is deterministic: verdicts appear in predicate-id order,
mapping keys are sorted, and reports carry no timestamps, so two runs over
the same inputs can be diffed byte for byte.

Usage:
    builder = ReportBuilder(config)
    report = builder.build(compiled, rulespec, envelope, facts, result)
    builder.export_json(report, "outputs/report.json")
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable, Optional

from factlog.config import FactLogConfig
from factlog.schemas.compiled import CompiledRulespec
from factlog.schemas.envelope import ActionEnvelope
from factlog.schemas.facts import Fact, display_literal, sorted_facts
from factlog.schemas.report import VerificationReport
from factlog.schemas.rulespec import Rulespec
from factlog.schemas.verification import ExecutionResult, PredicateVerdict
from factlog.utils import compute_hash

logger = logging.getLogger("factlog.render.report")

RULE_WIDTH = 60


# ── Evaluation trace ───────────────────────────────────────────────

def _status(verdict: PredicateVerdict) -> str:
    if verdict.skipped:
        return "SKIP"
    return "PASS" if verdict.passed else "FAIL"


def format_datalog_results(result: ExecutionResult) -> str:
    """Render the evaluation trace for an ExecutionResult."""
    rule = "─" * RULE_WIDTH
    lines = [rule, "DATALOG INVARIANT VERIFICATION", rule, ""]
    lines.append(f"Facts extracted: {result.fact_count}")
    lines.append("")

    for verdict in result.verdicts:
        expected = ""
        if verdict.expected_value is not None:
            expected = f" '{display_literal(verdict.expected_value)}'"
        lines.append(
            f"{_status(verdict)} [{verdict.source}] {verdict.rule} "
            f"{verdict.claim_name}{expected}"
        )
        lines.append(f"   {verdict.reason}")
        if verdict.notes:
            lines.append(f"   Note: {verdict.notes}")
        lines.append("")

    lines.append(rule)
    if result.all_passed:
        lines.append(f"All {result.passed_count} invariant(s) satisfied")
    else:
        lines.append(
            f"{result.passed_count}/{result.total} invariant(s) satisfied, "
            f"{result.failed_count} failed"
        )
    lines.append(rule)
    return "\n".join(lines) + "\n"


# ── Envelope listing ───────────────────────────────────────────────

def _scalar(value: Any) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, default=str)


def _format_value(lines: list[str], value: Any, indent: int) -> None:
    prefix = "  " * indent
    if value is None:
        lines.append(f"{prefix}  - _null_")
    elif isinstance(value, list):
        for item in value:
            if isinstance(item, (list, dict)):
                _format_value(lines, item, indent + 1)
            elif item is None:
                lines.append(f"{prefix}  - _null_")
            else:
                lines.append(f"{prefix}  - `{_scalar(item)}`")
    elif isinstance(value, dict):
        for key in sorted(value, key=str):
            sub = value[key]
            if sub is None:
                lines.append(f"{prefix}  - {key}: _null_")
            elif isinstance(sub, (list, dict)):
                lines.append(f"{prefix}  - {key}:")
                _format_value(lines, sub, indent + 2)
            else:
                lines.append(f"{prefix}  - {key}: `{_scalar(sub)}`")
    else:
        lines.append(f"{prefix}  - `{_scalar(value)}`")


def format_envelope_markdown(envelope: ActionEnvelope) -> str:
    """Readable markdown listing of the envelope's facts, keys sorted."""
    lines = ["### Action Envelope", ""]
    if envelope.is_empty:
        lines.append("_No facts recorded._")
        return "\n".join(lines) + "\n"

    for key in sorted(envelope.facts, key=str):
        lines.append(f"**{key}**:")
        _format_value(lines, envelope.facts[key], 0)
        lines.append("")
    if envelope.verified:
        lines.append(f"_Verified: `{envelope.verified}`_")
        lines.append("")
    return "\n".join(lines)


# ── Sealed report ──────────────────────────────────────────────────

class ReportBuilder:
    """
    Builds sealed VerificationReports from pipeline outputs.

    Args:
        config: FactLog configuration (its hash is stamped on reports).
    """

    def __init__(self, config: Optional[FactLogConfig] = None):
        self.config = config or FactLogConfig()

    def build(
        self,
        compiled: CompiledRulespec,
        rulespec: Rulespec,
        envelope: ActionEnvelope,
        facts: Iterable[Fact],
        result: ExecutionResult,
        program: Optional[str] = None,
    ) -> VerificationReport:
        """
        Build a complete VerificationReport.

        Args:
            compiled: The compiled rulespec.
            rulespec: The source rulespec (hashed canonically).
            envelope: The action envelope (facts hashed, token ignored).
            facts: Extracted facts.
            result: Evaluator output.
            program: Optional program dump to embed.

        Returns:
            Sealed report with integrity hash.
        """
        facts = sorted_facts(facts)
        rulespec_hash = compute_hash(rulespec.to_canonical_yaml())
        facts_hash = compute_hash(envelope.canonical_facts_yaml())
        config_hash = self.config.config_hash()

        stats = {
            "num_claims": len(compiled.claims),
            "num_predicates": len(compiled.predicates),
            "num_facts": len(facts),
            "num_passed": result.passed_count,
            "num_failed": result.failed_count,
            "num_skipped": sum(1 for v in result.verdicts if v.skipped),
        }

        report = VerificationReport(
            report_id=compute_hash(f"{rulespec_hash}:{facts_hash}:{config_hash}", length=12),
            rulespec_name=compiled.name,
            rulespec_revision=compiled.revision,
            rulespec_hash=rulespec_hash,
            facts_hash=facts_hash,
            config_hash=config_hash,
            facts=facts,
            result=result,
            program=program,
            stats=stats,
        )
        report.seal()

        logger.info(
            f"Report {report.report_id} built: {stats['num_passed']} passed, "
            f"{stats['num_failed']} failed, {stats['num_skipped']} skipped"
        )
        return report

    def export_json(self, report: VerificationReport, path: str | Path) -> Path:
        """Write the report as indented JSON."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(report.model_dump(mode="json"), f, indent=2, ensure_ascii=False)
            f.write("\n")
        logger.info(f"Report exported to {path}")
        return path

    def load_report(self, path: str | Path) -> VerificationReport:
        """Load a report and check its integrity hash."""
        with open(path, encoding="utf-8") as f:
            report = VerificationReport.model_validate(json.load(f))
        if not report.verify_integrity():
            logger.warning(f"Report integrity check failed: {path}")
        return report


def build_report(
    compiled: CompiledRulespec,
    rulespec: Rulespec,
    envelope: ActionEnvelope,
    facts: Iterable[Fact],
    result: ExecutionResult,
    program: Optional[str] = None,
    config: Optional[FactLogConfig] = None,
) -> VerificationReport:
    """Build a sealed report without keeping a ReportBuilder around."""
    return ReportBuilder(config).build(compiled, rulespec, envelope, facts, result, program)
