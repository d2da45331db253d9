"""
matcher
=======

Pair objects of one kind across the source and target snapshots.

Identity rules
--------------
- Primary key: qualified name (casefolded unless the policy is case-sensitive).
- Procedures and functions may be overloaded; when a name occurs more than
  once on a side, the canonical parameter signature is the secondary key.
  Overloaded objects get the signature appended to their qualified name,
  e.g. ``Sales.CalcTotal(int)``.
- Candidates that still collide are paired in snapshot order and reported
  with an ``AmbiguousIdentity`` warning.
- Duplicate keys for any other kind are an ``InvariantViolation``: the key is
  reported in ``conflicts`` (status Unknown) and its objects take no part in
  the Added/Removed/Common partition.
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass
from typing import Callable, Dict, Hashable, List, Sequence, Tuple

from .errors import AmbiguousIdentity, InvariantViolation
from .models import CatalogObject, DiffWarning, Kind, OVERLOADABLE_KINDS
from .normalizer import parameter_key, routine_signature
from .policy import DEFAULT_POLICY, NormalizationPolicy

logger = logging.getLogger(__name__)

KeyFunc = Callable[[CatalogObject], Hashable]


@dataclass(frozen=True)
class MatchResult:
    """Partition of one kind's objects.

    Attributes:
        added: Objects present only in the target.
        removed: Objects present only in the source.
        common: ``(source, target)`` pairs sharing an identity key.
        conflicts: Display names of keys that violate uniqueness (status Unknown).
        warnings: Ambiguity and invariant notes raised while matching.
    """

    added: Tuple[CatalogObject, ...] = ()
    removed: Tuple[CatalogObject, ...] = ()
    common: Tuple[Tuple[CatalogObject, CatalogObject], ...] = ()
    conflicts: Tuple[str, ...] = ()
    warnings: Tuple[DiffWarning, ...] = ()


def _group(objects: Sequence[CatalogObject], key: KeyFunc) -> Dict[Hashable, List[CatalogObject]]:
    groups: Dict[Hashable, List[CatalogObject]] = {}
    for obj in objects:
        groups.setdefault(key(obj), []).append(obj)
    return groups


def _with_signature(obj: CatalogObject, signature: str) -> CatalogObject:
    return dataclasses.replace(obj, qualified_name=f"{obj.qualified_name}{signature}")


class IdentityMatcher:
    """Match catalog objects by identity key.

    Parameters
    ----------
    policy:
        Supplies the case-sensitivity rule for keys.
    """

    def __init__(self, policy: NormalizationPolicy = DEFAULT_POLICY):
        self.policy = policy

    # ---- keys ----
    def top_level_key(self, obj: CatalogObject) -> Hashable:
        return self.policy.fold(obj.qualified_name)

    def child_key(self, obj: CatalogObject) -> Hashable:
        """Natural key of a child within its parent (name; position+name for parameters)."""
        if obj.kind is Kind.PARAMETER:
            return parameter_key(obj, self.policy)
        return self.policy.fold(obj.name)

    # ---- matching ----
    def match(
        self,
        kind: Kind,
        source: Sequence[CatalogObject],
        target: Sequence[CatalogObject],
        key: KeyFunc | None = None,
    ) -> MatchResult:
        """Partition *source* and *target* objects of *kind* into added/removed/common."""
        key = key or self.top_level_key
        src_groups = _group(source, key)
        tgt_groups = _group(target, key)

        added: List[CatalogObject] = []
        removed: List[CatalogObject] = []
        common: List[Tuple[CatalogObject, CatalogObject]] = []
        conflicts: List[str] = []
        warnings: List[DiffWarning] = []

        for k in sorted(set(src_groups) | set(tgt_groups)):
            src = src_groups.get(k, [])
            tgt = tgt_groups.get(k, [])

            if len(src) <= 1 and len(tgt) <= 1:
                if src and tgt:
                    common.append((src[0], tgt[0]))
                elif src:
                    removed.append(src[0])
                else:
                    added.append(tgt[0])
                continue

            if kind in OVERLOADABLE_KINDS:
                self._match_overloads(kind, src, tgt, added, removed, common, warnings)
                continue

            display = (src or tgt)[0].qualified_name
            conflicts.append(display)
            warnings.append(
                InvariantViolation(
                    f"duplicate identity key: {len(src)} source and {len(tgt)} target objects "
                    f"share the key {display!r}; reported as Unknown",
                    kind=kind,
                    qualified_name=display,
                ).to_warning()
            )

        if conflicts or warnings:
            logger.debug("%s: %d conflict(s), %d warning(s)", kind.value, len(conflicts), len(warnings))
        return MatchResult(
            added=tuple(added),
            removed=tuple(removed),
            common=tuple(common),
            conflicts=tuple(conflicts),
            warnings=tuple(warnings),
        )

    def _match_overloads(
        self,
        kind: Kind,
        src: List[CatalogObject],
        tgt: List[CatalogObject],
        added: List[CatalogObject],
        removed: List[CatalogObject],
        common: List[Tuple[CatalogObject, CatalogObject]],
        warnings: List[DiffWarning],
    ) -> None:
        src_by_sig = _group(src, routine_signature)
        tgt_by_sig = _group(tgt, routine_signature)

        for sig in sorted(set(src_by_sig) | set(tgt_by_sig)):
            a = [_with_signature(o, sig) for o in src_by_sig.get(sig, [])]
            b = [_with_signature(o, sig) for o in tgt_by_sig.get(sig, [])]
            if len(a) > 1 or len(b) > 1:
                name = (a or b)[0].qualified_name
                outcome = "paired in snapshot order" if a and b else "reported individually"
                warnings.append(
                    AmbiguousIdentity(
                        f"{len(a)} source and {len(b)} target candidates share signature {sig}; {outcome}",
                        kind=kind,
                        qualified_name=name,
                    ).to_warning()
                )
            pairs = min(len(a), len(b))
            common.extend(zip(a[:pairs], b[:pairs]))
            removed.extend(a[pairs:])
            added.extend(b[pairs:])
