"""
filters
=======

Include/exclude filtering of top-level objects by qualified name.

Patterns support:
- SQL LIKE wildcards: ``%`` and ``_`` (default)
- Regex patterns if you prefix with ``re:``

Examples:
- include: ["Sales.%", "dbo.%"]              (SQL LIKE)
- exclude: ["%.tmp_%", "re:^audit\\."]        (mix LIKE + regex)

Matching is case-insensitive unless ``case_sensitive`` is set, mirroring how
SQL Server compares identifiers under the default collation.
"""

from __future__ import annotations

import dataclasses
import fnmatch
import re
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from .models import CatalogObject, Kind, Snapshot


@dataclass(frozen=True)
class ObjectFilter:
    """Include/exclude patterns applied to top-level qualified names."""

    include: List[str] = field(default_factory=list)
    exclude: List[str] = field(default_factory=list)
    case_sensitive: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.include and not self.exclude

    def keeps(self, name: str) -> bool:
        if self.include and not any(matches_pattern(name, p, self.case_sensitive) for p in self.include):
            return False
        return not any(matches_pattern(name, p, self.case_sensitive) for p in self.exclude)


def sql_like_to_fnmatch(pattern: str) -> str:
    """Convert SQL LIKE patterns (% and _) to fnmatch syntax (* and ?)."""
    return pattern.replace("%", "*").replace("_", "?")


def matches_pattern(name: str, pattern: str, case_sensitive: bool = False) -> bool:
    """Return True if name matches pattern (LIKE by default, regex via ``re:``)."""
    if pattern.startswith("re:"):
        flags = 0 if case_sensitive else re.IGNORECASE
        return re.search(pattern[3:], name, flags) is not None
    if case_sensitive:
        return fnmatch.fnmatchcase(name, sql_like_to_fnmatch(pattern))
    return fnmatch.fnmatchcase(name.casefold(), sql_like_to_fnmatch(pattern).casefold())


def filter_snapshot(snapshot: Snapshot, flt: ObjectFilter) -> Snapshot:
    """Return a copy of *snapshot* holding only the top-level objects *flt* keeps.

    Children always follow their parent. Unavailable kinds and issues are kept.
    """
    if flt.is_empty:
        return snapshot
    objects: Dict[Kind, Tuple[CatalogObject, ...]] = {
        kind: tuple(o for o in objs if flt.keeps(o.qualified_name)) for kind, objs in snapshot.objects.items()
    }
    return dataclasses.replace(snapshot, objects=objects)
