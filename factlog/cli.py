"""
FactLog CLI
============

Command-line interface for verifying action envelopes and working with
rulespecs.

Usage:
    factlog verify rulespec.yaml envelope.yaml --output-dir outputs/
    factlog compile rulespec.yaml --envelope envelope.yaml
    factlog validate rulespec.yaml
    factlog check-token rulespec.yaml envelope.yaml
    factlog export-schemas --output-dir schemas/

Exit codes:
    0  success (all predicates passed / document valid / token valid)
    1  a predicate failed, validation failed or the token is invalid
    2  the rulespec, envelope or verification key is unusable
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from factlog.config import get_config
from factlog.errors import DocumentError, RulespecError, TokenError
from factlog.utils import setup_logging

logger = logging.getLogger("factlog.cli")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_INVALID = 2


def main(argv: Optional[list[str]] = None):
    parser = argparse.ArgumentParser(
        prog="factlog",
        description="FactLog: datalog-backed invariant verification for action envelopes",
    )
    parser.add_argument("--config", type=str, default=None, help="Path to config YAML")
    parser.add_argument("--verbose", "-v", action="store_true")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # ── verify ──────────────────────────────────────────────────
    verify_parser = subparsers.add_parser("verify", help="Verify an envelope against a rulespec")
    verify_parser.add_argument("rulespec", help="Rulespec YAML/JSON")
    verify_parser.add_argument("envelope", help="Action envelope YAML/JSON")
    verify_parser.add_argument("--output-dir", default=None, help="Artifact directory")
    verify_parser.add_argument("--workers", type=int, default=None, help="Evaluation threads")
    verify_parser.add_argument("--no-stamp", action="store_true",
                               help="Never write a verification token")
    verify_parser.add_argument("--show-program", action="store_true",
                               help="Also print the lowered datalog program")

    # ── compile ─────────────────────────────────────────────────
    compile_parser = subparsers.add_parser("compile", help="Print the lowered datalog program")
    compile_parser.add_argument("rulespec", help="Rulespec YAML/JSON")
    compile_parser.add_argument("--envelope", default=None, help="Include facts from this envelope")
    compile_parser.add_argument("--output", default=None, help="Write the program to this path")

    # ── validate ────────────────────────────────────────────────
    validate_parser = subparsers.add_parser("validate", help="Validate a rulespec")
    validate_parser.add_argument("rulespec", help="Rulespec YAML/JSON")

    # ── check-token ─────────────────────────────────────────────
    token_parser = subparsers.add_parser("check-token", help="Check an envelope's verification token")
    token_parser.add_argument("rulespec", help="Rulespec YAML/JSON")
    token_parser.add_argument("envelope", help="Action envelope YAML/JSON")

    # ── export-schemas ──────────────────────────────────────────
    schema_parser = subparsers.add_parser("export-schemas", help="Export JSON schemas")
    schema_parser.add_argument("--output-dir", default="schemas")

    args = parser.parse_args(argv)

    config = get_config(args.config)
    setup_logging(
        level="DEBUG" if args.verbose else config.log_level,
        format_style=config.log_format,
    )

    commands = {
        "verify": cmd_verify,
        "compile": cmd_compile,
        "validate": cmd_validate,
        "check-token": cmd_check_token,
        "export-schemas": cmd_export_schemas,
    }
    command = commands.get(args.command)
    if command is None:
        parser.print_help()
        sys.exit(EXIT_FAILED)

    try:
        code = command(args, config)
    except RulespecError as e:
        print(f"Rulespec error: {e}", file=sys.stderr)
        code = EXIT_INVALID
    except DocumentError as e:
        print(f"Document error: {e}", file=sys.stderr)
        code = EXIT_INVALID
    except TokenError as e:
        print(f"Token error: {e}", file=sys.stderr)
        code = EXIT_INVALID
    sys.exit(code)


def cmd_verify(args, config) -> int:
    """Run the full verification pipeline on two documents."""
    from factlog.pipeline import VerificationPipeline

    if args.workers is not None:
        config.evaluation.max_workers = max(1, args.workers)
    if args.no_stamp:
        config.token.stamp_on_pass = False

    pipeline = VerificationPipeline(config)
    result = pipeline.run_files(args.rulespec, args.envelope, output_dir=args.output_dir)

    if args.show_program:
        print(result.program)
    print(result.trace, end="")

    for kind, path in sorted(result.artifacts.items()):
        print(f"  {kind}: {path}")
    if result.stamped:
        print(f"  Envelope stamped: {result.envelope.verified}")

    return EXIT_OK if result.all_passed else EXIT_FAILED


def cmd_compile(args, config) -> int:
    """Compile a rulespec and print (or save) its datalog program."""
    from factlog.extract.extractor import extract_facts
    from factlog.render.program import format_datalog_program
    from factlog.rules.compiler import compile_rulespec
    from factlog.schemas.envelope import ActionEnvelope
    from factlog.schemas.rulespec import Rulespec
    from factlog.utils import load_document, save_text

    rulespec_path = Path(args.rulespec)
    rulespec = Rulespec.from_document(load_document(rulespec_path))
    compiled = compile_rulespec(rulespec, name=rulespec_path.stem)

    facts = set()
    if args.envelope:
        root_key = config.extraction.root_key
        envelope = ActionEnvelope.from_document(load_document(args.envelope), root_key)
        facts = extract_facts(envelope, compiled, root_key)

    program = format_datalog_program(compiled, facts)
    if args.output:
        path = save_text(program, args.output)
        print(f"Program written to {path}")
    else:
        print(program)
    return EXIT_OK


def cmd_validate(args, config) -> int:
    """Validate a rulespec without evaluating it."""
    from factlog.rules.validator import unused_claims, validate_rulespec
    from factlog.schemas.rulespec import Rulespec
    from factlog.utils import load_document

    data = load_document(args.rulespec)
    errors = validate_rulespec(data)
    if errors:
        print(f"Validation FAILED: {len(errors)} errors")
        for err in errors:
            print(f"  - {err}")
        return EXIT_FAILED

    rulespec = Rulespec.from_document(data)
    for name in unused_claims(rulespec):
        print(f"  warning: claim '{name}' is not referenced by any predicate")
    print(
        f"Validation PASSED: {len(rulespec.claims)} claims, "
        f"{len(rulespec.predicates)} predicates"
    )
    return EXIT_OK


def cmd_check_token(args, config) -> int:
    """Check that an envelope's token matches its facts and the rulespec."""
    from factlog.schemas.envelope import ActionEnvelope
    from factlog.schemas.rulespec import Rulespec
    from factlog.utils import load_document
    from factlog.verify.token import read_verification_key, verify_token

    key = read_verification_key(config.token.key_path)
    if key is None:
        raise TokenError(f"No verification key at {config.token.key_path}")

    rulespec = Rulespec.from_document(load_document(args.rulespec))
    envelope = ActionEnvelope.from_document(
        load_document(args.envelope), config.extraction.root_key
    )
    if verify_token(key, envelope, rulespec, config.token.prefix):
        print("Token VALID")
        return EXIT_OK
    print("Token INVALID" if envelope.verified else "Envelope is not stamped")
    return EXIT_FAILED


def cmd_export_schemas(args, config) -> int:
    """Export JSON schemas for all data contracts."""
    from factlog.rules.validator import export_all_schemas

    paths = export_all_schemas(args.output_dir)
    for path in paths:
        print(f"Exported: {path}")
    print(f"\n{len(paths)} schemas exported to {args.output_dir}/")
    return EXIT_OK
