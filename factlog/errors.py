"""
FactLog Errors
===============

Exception types raised across the verification pipeline.

Only *rulespec* problems and I/O problems are exceptions. A selector
that finds nothing, or a predicate that fails its check, is a normal
outcome and is reported through verdicts instead.
"""

from __future__ import annotations

from typing import Optional


class FactLogError(Exception):
    """Base class for all FactLog errors."""


class SelectorSyntaxError(FactLogError, ValueError):
    """A selector string does not follow the path grammar."""

    def __init__(self, selector: str, message: str):
        self.selector = selector
        super().__init__(f"Invalid selector '{selector}': {message}")


class RulespecError(FactLogError, ValueError):
    """
    Structural validation failure in a rulespec.

    Carries enough context (claim, predicate index, rule) to fix the
    document without re-running the verification.
    """

    def __init__(
        self,
        message: str,
        claim: Optional[str] = None,
        predicate_index: Optional[int] = None,
        rule: Optional[str] = None,
    ):
        self.message = message
        self.claim = claim
        self.predicate_index = predicate_index
        self.rule = rule
        super().__init__(self._render())

    def _render(self) -> str:
        context = []
        if self.predicate_index is not None:
            context.append(f"predicate[{self.predicate_index}]")
        if self.rule is not None:
            context.append(f"rule={self.rule}")
        if self.claim is not None:
            context.append(f"claim={self.claim}")
        if not context:
            return self.message
        return f"{self.message} ({', '.join(context)})"


class DocumentError(FactLogError):
    """An input document could not be read or has the wrong shape."""


class TokenError(FactLogError):
    """Verification token material is missing or unusable."""
