"""
policy
======

Normalization policy: the explicit, versioned rule set the normalizer applies.

Canonicalization of default expressions and Query Store query text has no
single authoritative definition, so every switch that changes what compares
equal lives here instead of being hard-coded in :mod:`schemadrift.normalizer`.
Results record ``policy.version`` so two results can be checked for
comparability.

Rules (version 1)
-----------------
- ``case_sensitive``: when False, identifiers and the code portions of SQL
  text are casefolded. String literals are never changed.
- ``strip_comments``: drop ``--`` and ``/* */`` comments from definitions.
- ``canonicalize_create_header``: ``CREATE OR ALTER`` -> ``CREATE`` and
  ``PROC`` -> ``PROCEDURE`` at the start of a definition.
- ``boolean_literals``: literal forms rewritten inside default expressions
  (``TRUE`` -> ``1``).
- ``query_text``: independent switches for Query Store query text.
- ``ignore_attributes``: per-kind attributes excluded from comparison.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Mapping

from .models import Kind

POLICY_VERSION = "1"

DEFAULT_BOOLEAN_LITERALS: Dict[str, str] = {
    "true": "1",
    "false": "0",
}


@dataclass(frozen=True)
class QueryTextPolicy:
    """How Query Store query text is canonicalized before comparison."""

    collapse_whitespace: bool = True
    strip_comments: bool = False
    fold_case: bool = False


@dataclass(frozen=True)
class NormalizationPolicy:
    version: str = POLICY_VERSION
    case_sensitive: bool = False
    strip_comments: bool = True
    canonicalize_create_header: bool = True
    boolean_literals: Mapping[str, str] = field(default_factory=lambda: dict(DEFAULT_BOOLEAN_LITERALS))
    query_text: QueryTextPolicy = QueryTextPolicy()
    ignore_attributes: Mapping[Kind, FrozenSet[str]] = field(default_factory=dict)

    def fold(self, value: str) -> str:
        """Apply the identifier case policy to *value*."""
        return value if self.case_sensitive else value.casefold()

    def is_ignored(self, kind: Kind, attribute: str) -> bool:
        return attribute in self.ignore_attributes.get(kind, frozenset())


DEFAULT_POLICY = NormalizationPolicy()
