"""
Verification Report Schema
===========================

The VerificationReport is the complete, inspectable audit trail of one
verification request: which rulespec and which facts went in, every
verdict that came out, and optionally the lowered datalog program.

Design Philosophy:
    The report is deterministic. It contains no timestamps or random ids,
    so identical inputs and config always produce a byte-identical report
    that can be diffed across runs. An integrity hash over the content
    (excluding the hash field itself) enables tamper detection.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from factlog.schemas.facts import Fact
from factlog.schemas.verification import ExecutionResult
from factlog.utils import compute_content_hash


class VerificationReport(BaseModel):
    """Audit trail for one rulespec × envelope evaluation."""
    # ── Identity ───────────────────────────────────────────────────
    report_id: str = Field(description="Content-derived identifier")
    rulespec_name: str = Field(default="rulespec")
    rulespec_revision: int = Field(default=0)

    # ── Inputs ─────────────────────────────────────────────────────
    rulespec_hash: str = Field(description="Hash of the canonical rulespec")
    facts_hash: str = Field(description="Hash of the canonical envelope facts")
    config_hash: str = Field(default="", description="Hash of the configuration used")
    facts: list[Fact] = Field(
        default_factory=list,
        description="Extracted facts in stable order"
    )

    # ── Outputs ────────────────────────────────────────────────────
    result: ExecutionResult = Field(description="Verdicts and aggregate counts")
    program: Optional[str] = Field(
        default=None,
        description="Lowered datalog program dump (for auditability)"
    )
    stats: dict[str, Any] = Field(default_factory=dict)

    # ── Integrity ──────────────────────────────────────────────────
    integrity_hash: str = Field(
        default="",
        description="SHA-256 of report content (tamper detection)"
    )

    @property
    def all_passed(self) -> bool:
        return self.result.all_passed

    def compute_integrity_hash(self) -> str:
        content = self.model_dump(mode="json", exclude={"integrity_hash"})
        return compute_content_hash(content)

    def seal(self) -> "VerificationReport":
        """Compute and store the integrity hash. Call after all fields are set."""
        self.integrity_hash = self.compute_integrity_hash()
        return self

    def verify_integrity(self) -> bool:
        if not self.integrity_hash:
            return False
        return self.integrity_hash == self.compute_integrity_hash()
