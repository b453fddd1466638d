"""
Pipeline and CLI Tests
=======================

Tests file-based verification (artifacts, envelope write-back) and the
`factlog` command line with its exit codes.
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest
import yaml

from factlog.cli import EXIT_FAILED, EXIT_INVALID, EXIT_OK, main
from factlog.pipeline import (
    PROGRAM_FILENAME,
    REPORT_FILENAME,
    TRACE_FILENAME,
    VerificationPipeline,
)
from factlog.render.program import parse_datalog_program
from factlog.schemas.report import VerificationReport

pytestmark = pytest.mark.integration


@pytest.fixture
def rulespec_file(tmp_path: Path, csv_rulespec) -> Path:
    path = tmp_path / "csv_importer.yaml"
    path.write_text(yaml.safe_dump(csv_rulespec.to_document(), sort_keys=False), encoding="utf-8")
    return path


@pytest.fixture
def envelope_file(tmp_path: Path, csv_facts) -> Path:
    path = tmp_path / "envelope.yaml"
    path.write_text(yaml.safe_dump({"facts": csv_facts}, sort_keys=False), encoding="utf-8")
    return path


@pytest.fixture
def failing_envelope_file(tmp_path: Path) -> Path:
    path = tmp_path / "failing.json"
    path.write_text(json.dumps({"facts": {"csv_importer": {"file": "csv.py"}}}), encoding="utf-8")
    return path


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "factlog.yaml"
    path.write_text(yaml.safe_dump({
        "output_dir": str(tmp_path / "cli-outputs"),
        "token": {"key_path": str(tmp_path / "keys" / "verification.key")},
    }), encoding="utf-8")
    return path


def run_cli(config_file: Path, *args: str) -> int:
    with pytest.raises(SystemExit) as exc:
        main(["--config", str(config_file), *args])
    return exc.value.code


# ── Pipeline ────────────────────────────────────────────────────

class TestRunFiles:

    def test_artifacts(self, config, rulespec_file, envelope_file):
        result = VerificationPipeline(config).run_files(rulespec_file, envelope_file)
        out = config.output_dir
        assert result.artifacts["program"] == out / PROGRAM_FILENAME
        assert result.artifacts["trace"] == out / TRACE_FILENAME
        assert result.artifacts["report"] == out / REPORT_FILENAME

        program = (out / PROGRAM_FILENAME).read_text(encoding="utf-8")
        assert "// Rulespec: csv_importer" in program
        assert parse_datalog_program(program).rules

        trace = (out / TRACE_FILENAME).read_text(encoding="utf-8")
        assert trace == result.trace

        report = VerificationReport.model_validate_json((out / REPORT_FILENAME).read_text(encoding="utf-8"))
        assert report.verify_integrity()
        assert report.rulespec_name == "csv_importer"

    def test_passing_envelope_is_stamped_on_disk(self, config, rulespec_file, envelope_file):
        result = VerificationPipeline(config).run_files(rulespec_file, envelope_file)
        assert result.artifacts["envelope"] == envelope_file
        text = envelope_file.read_text(encoding="utf-8")
        assert text.startswith("# Action Envelope")
        assert yaml.safe_load(text)["verified"] == result.envelope.verified

    def test_rerun_leaves_envelope_untouched(self, config, rulespec_file, envelope_file):
        pipeline = VerificationPipeline(config)
        pipeline.run_files(rulespec_file, envelope_file)
        stamped = envelope_file.read_text(encoding="utf-8")
        result = pipeline.run_files(rulespec_file, envelope_file)
        assert "envelope" not in result.artifacts
        assert envelope_file.read_text(encoding="utf-8") == stamped

    def test_failing_json_envelope_keeps_format(self, config, rulespec_file, failing_envelope_file):
        data = json.loads(failing_envelope_file.read_text(encoding="utf-8"))
        data["verified"] = "flv1:stale"
        failing_envelope_file.write_text(json.dumps(data), encoding="utf-8")

        result = VerificationPipeline(config).run_files(rulespec_file, failing_envelope_file)
        assert result.exit_code == 1
        rewritten = json.loads(failing_envelope_file.read_text(encoding="utf-8"))
        assert "verified" not in rewritten
        assert rewritten["facts"] == data["facts"]

    def test_disabled_artifacts(self, config, rulespec_file, envelope_file):
        config.render.write_program = False
        config.render.write_trace = False
        config.render.include_program_in_report = True
        result = VerificationPipeline(config).run_files(
            rulespec_file, envelope_file, write_envelope=False
        )
        assert set(result.artifacts) == {"report"}
        assert result.report.program == result.program


# ── CLI ─────────────────────────────────────────────────────────

class TestCli:

    def test_verify_pass(self, config_file, rulespec_file, envelope_file, tmp_path, capsys):
        code = run_cli(config_file, "verify", str(rulespec_file), str(envelope_file))
        assert code == EXIT_OK
        out = capsys.readouterr().out
        assert "All 4 invariant(s) satisfied" in out
        assert "Envelope stamped: flv1:" in out
        assert (tmp_path / "cli-outputs" / REPORT_FILENAME).exists()

    def test_verify_fail(self, config_file, rulespec_file, failing_envelope_file, capsys):
        code = run_cli(config_file, "verify", str(rulespec_file), str(failing_envelope_file))
        assert code == EXIT_FAILED
        assert "FAIL [task_prompt] contains caps 'handle_tsv'" in capsys.readouterr().out

    def test_verify_invalid_rulespec(self, config_file, envelope_file, tmp_path, capsys):
        bad = tmp_path / "bad.yaml"
        bad.write_text(yaml.safe_dump({
            "claims": [{"name": "x", "selector": "a"}],
            "predicates": [{"claim": "nope", "rule": "exists", "source": "memory"}],
        }), encoding="utf-8")
        code = run_cli(config_file, "verify", str(bad), str(envelope_file))
        assert code == EXIT_INVALID
        assert "unknown claim 'nope'" in capsys.readouterr().err

    def test_verify_missing_document(self, config_file, rulespec_file, tmp_path):
        code = run_cli(config_file, "verify", str(rulespec_file), str(tmp_path / "absent.yaml"))
        assert code == EXIT_INVALID

    def test_verify_no_stamp(self, config_file, rulespec_file, envelope_file):
        before = envelope_file.read_text(encoding="utf-8")
        assert run_cli(config_file, "verify", "--no-stamp", str(rulespec_file), str(envelope_file)) == EXIT_OK
        assert envelope_file.read_text(encoding="utf-8") == before

    def test_check_token(self, config_file, rulespec_file, envelope_file, capsys):
        assert run_cli(config_file, "check-token", str(rulespec_file), str(envelope_file)) == EXIT_INVALID

        run_cli(config_file, "verify", str(rulespec_file), str(envelope_file))
        capsys.readouterr()
        assert run_cli(config_file, "check-token", str(rulespec_file), str(envelope_file)) == EXIT_OK
        assert "Token VALID" in capsys.readouterr().out

        data = yaml.safe_load(envelope_file.read_text(encoding="utf-8"))
        data["facts"]["breaking_changes"] = "renamed API"
        envelope_file.write_text(yaml.safe_dump(data), encoding="utf-8")
        assert run_cli(config_file, "check-token", str(rulespec_file), str(envelope_file)) == EXIT_FAILED

    def test_compile(self, config_file, rulespec_file, envelope_file, tmp_path, capsys):
        assert run_cli(config_file, "compile", str(rulespec_file)) == EXIT_OK
        out = capsys.readouterr().out
        assert "// --- Rules (from rulespec predicates) ---" in out
        assert 'claim_value("caps", "handle_tsv").' not in out

        target = tmp_path / "program.dl"
        code = run_cli(config_file, "compile", str(rulespec_file),
                       "--envelope", str(envelope_file), "--output", str(target))
        assert code == EXIT_OK
        assert 'claim_value("caps", "handle_tsv").' in target.read_text(encoding="utf-8")

    def test_validate(self, config_file, rulespec_file, tmp_path, capsys):
        assert run_cli(config_file, "validate", str(rulespec_file)) == EXIT_OK
        assert "Validation PASSED: 3 claims, 4 predicates" in capsys.readouterr().out

        bad = tmp_path / "bad.yaml"
        bad.write_text(yaml.safe_dump({
            "claims": [{"name": "x", "selector": "a[b]"}],
            "predicates": [],
        }), encoding="utf-8")
        assert run_cli(config_file, "validate", str(bad)) == EXIT_FAILED
        assert "Invalid selector" in capsys.readouterr().out

    def test_export_schemas(self, config_file, tmp_path):
        out = tmp_path / "schemas"
        assert run_cli(config_file, "export-schemas", "--output-dir", str(out)) == EXIT_OK
        names = sorted(p.name for p in out.iterdir())
        assert names == [
            "envelope_schema.json",
            "report_schema.json",
            "result_schema.json",
            "rulespec_schema.json",
        ]
        schema = json.loads((out / "rulespec_schema.json").read_text(encoding="utf-8"))
        assert "claims" in schema["properties"]

    def test_no_command(self, config_file):
        assert run_cli(config_file) == EXIT_FAILED


def test_pipeline_from_config_file(config_file, rulespec_file, envelope_file, tmp_path):
    pipeline = VerificationPipeline.from_config(str(config_file))
    result = pipeline.run_files(rulespec_file, envelope_file)
    assert result.all_passed
    assert (tmp_path / "keys" / "verification.key").exists()
    assert result.artifacts["report"].parent == tmp_path / "cli-outputs"
