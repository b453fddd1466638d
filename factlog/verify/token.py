"""
Verification Tokens
====================

Stamps an action envelope that passed verification with a keyed token:

    verified: "flv1:<base64url>"

The token is an HMAC-SHA256 (truncated to 8 bytes) under a local 32-byte
key, computed over

    canonical_facts_yaml || "\\x00" || canonical_rulespec_yaml

so it binds the exact facts to the exact rulespec they were checked
against. The `verified` field itself never participates: it is neither
extracted as a fact nor hashed.

The key lives outside the project (default `~/.factlog/verification.key`)
with owner-only permissions, so a token can only be minted by a process
that ran the verifier on this machine.
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import logging
import os
import secrets
from pathlib import Path
from typing import Optional

from factlog.errors import TokenError
from factlog.schemas.envelope import ActionEnvelope
from factlog.schemas.rulespec import Rulespec

logger = logging.getLogger("factlog.verify.token")

TOKEN_PREFIX = "flv1:"
KEY_SIZE = 32
DIGEST_SIZE = 8


def read_verification_key(key_path: str | Path) -> Optional[bytes]:
    """Read the verification key, or None if it has not been created yet."""
    key_path = Path(key_path)
    if not key_path.exists():
        return None
    key = key_path.read_bytes()
    if len(key) < KEY_SIZE:
        raise TokenError(f"Verification key at {key_path} is truncated ({len(key)} bytes)")
    return key


def get_or_create_verification_key(key_path: str | Path) -> bytes:
    """
    Load the verification key, creating it on first use.

    New keys are written with mode 0600 in a directory created on demand.
    """
    key_path = Path(key_path)
    key = read_verification_key(key_path)
    if key is not None:
        return key

    key_path.parent.mkdir(parents=True, exist_ok=True)
    key = secrets.token_bytes(KEY_SIZE)
    fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(key)
    os.chmod(key_path, 0o600)
    logger.info(f"Created verification key: {key_path}")
    return key


def _token_message(envelope: ActionEnvelope, rulespec: Rulespec) -> bytes:
    return (
        envelope.canonical_facts_yaml().encode("utf-8")
        + b"\x00"
        + rulespec.to_canonical_yaml().encode("utf-8")
    )


def mint_token(
    key: bytes,
    envelope: ActionEnvelope,
    rulespec: Rulespec,
    prefix: str = TOKEN_PREFIX,
) -> str:
    """Compute the verification token for an envelope/rulespec pair."""
    digest = hmac.new(key, _token_message(envelope, rulespec), hashlib.sha256).digest()
    encoded = base64.urlsafe_b64encode(digest[:DIGEST_SIZE]).rstrip(b"=").decode("ascii")
    return f"{prefix}{encoded}"


def verify_token(
    key: bytes,
    envelope: ActionEnvelope,
    rulespec: Rulespec,
    prefix: str = TOKEN_PREFIX,
) -> bool:
    """
    Check an envelope's `verified` token against the rulespec.

    Returns False for a missing, foreign-prefixed or forged token, and for
    an envelope whose facts changed after stamping.
    """
    token = envelope.verified
    if not token or not token.startswith(prefix):
        return False
    expected = mint_token(key, envelope, rulespec, prefix)
    return hmac.compare_digest(token, expected)


def stamp_envelope(
    key: bytes,
    envelope: ActionEnvelope,
    rulespec: Rulespec,
    prefix: str = TOKEN_PREFIX,
) -> ActionEnvelope:
    """Return a copy of the envelope carrying a fresh token."""
    stamped = envelope.model_copy(deep=True)
    stamped.verified = mint_token(key, envelope, rulespec, prefix)
    return stamped
