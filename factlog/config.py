"""
FactLog Configuration System
=============================

Central configuration using Pydantic Settings. Supports:
- Environment variables (FACTLOG_ prefix, `__` for nested fields)
- .env file loading
- YAML config file overrides

The config produces a deterministic hash for reproducibility tracking.
Every verification report is stamped with this hash.

Usage:
    from factlog.config import get_config
    cfg = get_config()                       # loads from env / .env
    cfg = get_config("configs/factlog.yaml") # loads with YAML overrides
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# ── Sub-configs ────────────────────────────────────────────────────
class ExtractionConfig(BaseModel):
    """Configuration for the fact extractor."""
    root_key: str = Field(
        default="facts",
        description="Conventional root label; selectors prefixed with it still resolve"
    )


class EvaluationConfig(BaseModel):
    """Configuration for the predicate evaluator."""
    max_workers: int = Field(
        default=1,
        ge=1,
        description="Worker threads for per-predicate evaluation (1 = sequential)"
    )


class RenderConfig(BaseModel):
    """Configuration for the report artifacts written per run."""
    write_program: bool = Field(default=True, description="Write rulespec.compiled.dl")
    write_trace: bool = Field(default=True, description="Write evaluation.txt")
    write_report: bool = Field(default=True, description="Write report.json")
    include_program_in_report: bool = Field(
        default=False,
        description="Embed the program dump in report.json"
    )


class TokenConfig(BaseModel):
    """Configuration for envelope verification tokens."""
    key_path: Path = Field(
        default=Path.home() / ".factlog" / "verification.key",
        description="Location of the local verification key"
    )
    prefix: str = Field(default="flv1:", description="Token version prefix")
    stamp_on_pass: bool = Field(
        default=True,
        description="Stamp the envelope when every predicate passes"
    )


# ── Main Config ────────────────────────────────────────────────────
class FactLogConfig(BaseSettings):
    """
    Root configuration for FactLog.

    Loads from environment variables (FACTLOG_ prefix) and .env file.
    Can be extended with YAML overrides via `get_config(yaml_path)`.

    Example:
        export FACTLOG_LOG_LEVEL=DEBUG
        export FACTLOG_EVALUATION__MAX_WORKERS=4
    """
    model_config = SettingsConfigDict(
        env_prefix="FACTLOG_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # ── Top-level settings ─────────────────────────────────────────
    output_dir: Path = Field(default=Path("./outputs"), description="Artifact directory")
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="text", description="Log format: 'json' or 'text'")

    # ── Sub-configs ────────────────────────────────────────────────
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    evaluation: EvaluationConfig = Field(default_factory=EvaluationConfig)
    render: RenderConfig = Field(default_factory=RenderConfig)
    token: TokenConfig = Field(default_factory=TokenConfig)

    def config_hash(self) -> str:
        """
        Produce a deterministic SHA-256 hash of the semantic configuration.

        Paths are excluded so that the same settings on two machines stamp
        reports with the same hash.
        """
        config_dict = self.model_dump(
            mode="json",
            exclude={"output_dir": True, "log_level": True, "log_format": True,
                     "token": {"key_path"}},
        )
        canonical = json.dumps(config_dict, sort_keys=True, default=str)
        return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]

    def ensure_dirs(self) -> None:
        """Create the output directory if it doesn't exist."""
        self.output_dir.mkdir(parents=True, exist_ok=True)


# ── Config Loading ─────────────────────────────────────────────────
def get_config(yaml_path: Optional[str] = None) -> FactLogConfig:
    """
    Load FactLog configuration.

    Priority (highest to lowest):
        1. Explicit YAML overrides (if provided)
        2. Environment variables (FACTLOG_ prefix)
        3. .env file
        4. Default values

    Args:
        yaml_path: Optional path to a YAML config file for overrides.

    Returns:
        Fully resolved FactLogConfig instance.
    """
    if yaml_path:
        import yaml
        with open(yaml_path, encoding="utf-8") as f:
            overrides = yaml.safe_load(f) or {}
        return FactLogConfig(**overrides)
    return FactLogConfig()
