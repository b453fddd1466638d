"""
FactLog End-to-End Pipeline
=============================

Orchestrates one verification request:
    Rulespec → Compile → Extract Facts → Evaluate → Render → (Stamp)

This is the single entry point for verifying an action envelope against a
rulespec. It manages component ordering, timing and artifact output.
Rulespec errors are raised from the compile step before any fact is
extracted, so a run either produces a complete result or none at all.

Usage:
    from factlog.pipeline import VerificationPipeline

    pipeline = VerificationPipeline(config)
    result = pipeline.run(rulespec, envelope)
    print(result.trace)

    result = pipeline.run_files("rulespec.yaml", "envelope.yaml")
    print(result.artifacts["report"])
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

from factlog.config import FactLogConfig, get_config
from factlog.extract.extractor import extract_facts
from factlog.render.program import format_datalog_program
from factlog.render.report import ReportBuilder, format_datalog_results
from factlog.rules.compiler import compile_rulespec
from factlog.schemas.compiled import CompiledRulespec
from factlog.schemas.envelope import ActionEnvelope
from factlog.schemas.facts import Fact
from factlog.schemas.report import VerificationReport
from factlog.schemas.rulespec import Rulespec
from factlog.schemas.verification import ExecutionResult
from factlog.utils import load_document, save_json, save_text
from factlog.verify.evaluator import execute_rules
from factlog.verify.token import get_or_create_verification_key, stamp_envelope

logger = logging.getLogger("factlog.pipeline")

PROGRAM_FILENAME = "rulespec.compiled.dl"
TRACE_FILENAME = "evaluation.txt"
REPORT_FILENAME = "report.json"


@dataclass
class PipelineResult:
    """
    Complete output of one verification run.

    Contains everything needed for display, debugging, and auditing.
    """
    rulespec: Rulespec
    compiled: CompiledRulespec
    envelope: ActionEnvelope          # stamped when `stamped` is True
    facts: set[Fact]
    result: ExecutionResult
    program: str
    trace: str
    report: VerificationReport
    stamped: bool = False
    artifacts: dict[str, Path] = field(default_factory=dict)
    timings: dict[str, float] = field(default_factory=dict)

    @property
    def all_passed(self) -> bool:
        return self.result.all_passed

    @property
    def exit_code(self) -> int:
        """0 when every predicate passed, 1 otherwise."""
        return 0 if self.result.all_passed else 1


class VerificationPipeline:
    """
    End-to-end verification orchestrator.

    Steps:
        1. Compile the rulespec (raises RulespecError on invalid input)
        2. Extract facts from the envelope
        3. Evaluate every predicate
        4. Render the program dump, trace and sealed report
        5. Stamp the envelope when every predicate passed

    Args:
        config: FactLog configuration.
    """

    def __init__(self, config: Optional[FactLogConfig] = None):
        self.config = config or get_config()
        self._report_builder = ReportBuilder(self.config)

    @classmethod
    def from_config(cls, config_path: Optional[str] = None) -> "VerificationPipeline":
        """Create pipeline from config file or environment."""
        return cls(get_config(config_path))

    def run(
        self,
        rulespec: Union[Rulespec, dict[str, Any]],
        envelope: Union[ActionEnvelope, dict[str, Any]],
        name: str = "rulespec",
        revision: int = 0,
    ) -> PipelineResult:
        """
        Verify an envelope against a rulespec in memory.

        Args:
            rulespec: Rulespec or its parsed document.
            envelope: ActionEnvelope or its parsed document.
            name: Label for the compiled rulespec and report.
            revision: Revision recorded on the compiled rulespec.

        Returns:
            PipelineResult with all outputs. No artifacts are written; the
            verification key file is created on first stamp if missing.

        Raises:
            RulespecError: If the rulespec is invalid.
        """
        if not isinstance(rulespec, Rulespec):
            rulespec = Rulespec.from_document(rulespec)
        if not isinstance(envelope, ActionEnvelope):
            envelope = ActionEnvelope.from_document(envelope, self.config.extraction.root_key)

        timings: dict[str, float] = {}
        total_start = time.time()

        # ── Step 1: Compile ────────────────────────────────────────
        t0 = time.time()
        compiled = compile_rulespec(rulespec, name=name, revision=revision)
        timings["compile_ms"] = (time.time() - t0) * 1000

        # ── Step 2: Extract ────────────────────────────────────────
        t0 = time.time()
        facts = extract_facts(envelope, compiled, self.config.extraction.root_key)
        timings["extract_ms"] = (time.time() - t0) * 1000

        # ── Step 3: Evaluate ───────────────────────────────────────
        t0 = time.time()
        result = execute_rules(compiled, facts, self.config.evaluation.max_workers)
        timings["evaluate_ms"] = (time.time() - t0) * 1000

        # ── Step 4: Render ─────────────────────────────────────────
        t0 = time.time()
        program = format_datalog_program(compiled, facts)
        trace = format_datalog_results(result)
        report = self._report_builder.build(
            compiled,
            rulespec,
            envelope,
            facts,
            result,
            program=program if self.config.render.include_program_in_report else None,
        )
        timings["render_ms"] = (time.time() - t0) * 1000

        # ── Step 5: Stamp ──────────────────────────────────────────
        stamped = False
        if self.config.token.stamp_on_pass and result.all_passed and result.total > 0:
            key = get_or_create_verification_key(self.config.token.key_path)
            envelope = stamp_envelope(key, envelope, rulespec, self.config.token.prefix)
            stamped = True
        elif envelope.verified:
            logger.warning("Dropping stale verification token from envelope")
            envelope = envelope.without_token()
        timings["total_ms"] = (time.time() - total_start) * 1000

        logger.info(
            f"Verification complete: {result.passed_count}/{result.total} passed"
            f"{' (stamped)' if stamped else ''} | Total: {timings['total_ms']:.0f}ms"
        )
        return PipelineResult(
            rulespec=rulespec,
            compiled=compiled,
            envelope=envelope,
            facts=facts,
            result=result,
            program=program,
            trace=trace,
            report=report,
            stamped=stamped,
            timings=timings,
        )

    def run_files(
        self,
        rulespec_path: str | Path,
        envelope_path: str | Path,
        output_dir: Optional[str | Path] = None,
        write_envelope: bool = True,
    ) -> PipelineResult:
        """
        Verify documents on disk and write the run's artifacts.

        Writes `rulespec.compiled.dl`, `evaluation.txt` and `report.json`
        into the output directory (as enabled in RenderConfig). When the
        envelope's token changes it is written back to `envelope_path`.

        Raises:
            DocumentError: If either document cannot be loaded.
            RulespecError: If the rulespec is invalid.
        """
        rulespec_path = Path(rulespec_path)
        envelope_path = Path(envelope_path)
        if output_dir is None:
            self.config.ensure_dirs()
            output_dir = self.config.output_dir
        output_dir = Path(output_dir)

        rulespec = Rulespec.from_document(load_document(rulespec_path))
        original = ActionEnvelope.from_document(
            load_document(envelope_path), self.config.extraction.root_key
        )
        result = self.run(rulespec, original, name=rulespec_path.stem)

        render = self.config.render
        if render.write_program:
            result.artifacts["program"] = save_text(result.program, output_dir / PROGRAM_FILENAME)
        if render.write_trace:
            result.artifacts["trace"] = save_text(result.trace, output_dir / TRACE_FILENAME)
        if render.write_report:
            result.artifacts["report"] = save_json(
                result.report.model_dump(mode="json"), output_dir / REPORT_FILENAME
            )

        if write_envelope and result.envelope.verified != original.verified:
            result.artifacts["envelope"] = self._write_envelope(result.envelope, envelope_path)

        for kind, path in result.artifacts.items():
            logger.debug(f"Wrote {kind}: {path}")
        return result

    def _write_envelope(self, envelope: ActionEnvelope, path: Path) -> Path:
        root_key = self.config.extraction.root_key
        if path.suffix.lower() == ".json":
            return save_json(envelope.wrapped_document(root_key), path)
        return save_text(envelope.to_yaml(root_key), path)
