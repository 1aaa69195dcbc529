"""Error taxonomy for rule-set lookups.

Only the lookup is fallible. "No rules configured" is an empty result, not an
error, and a single malformed stored rule is skipped (see validation.py).
"""

from __future__ import annotations

from typing import Optional


class RuleStoreError(Exception):
    """The rule-set lookup could not produce a usable answer."""

    kind = "rule_store_error"
    retryable = False

    def __init__(self, message: str, *, source: Optional[str] = None) -> None:
        super().__init__(message)
        self.source = source


class RuleStoreUnavailable(RuleStoreError):
    """Network, database or filesystem failure while reading rule sets."""

    kind = "rule_store_unavailable"
    retryable = True


class MalformedRuleStoreData(RuleStoreError):
    """The store answered, but not with rule documents."""

    kind = "malformed_rule_store_data"


class InvalidRuleSetError(ValueError):
    """A rule-set document fails document-level validation."""


__all__ = [
    "RuleStoreError",
    "RuleStoreUnavailable",
    "MalformedRuleStoreData",
    "InvalidRuleSetError",
]
