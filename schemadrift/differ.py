"""
differ
======

Attribute-level and recursive diffing of matched objects.

For a ``(source, target)`` pair every attribute present on either side is
compared; a value missing on one side is reported as
:data:`~schemadrift.models.ABSENT`. Composite objects recurse: tables diff
their columns, indexes and constraints, routines their parameters. A pair is
Modified iff it has its own change records or an Added, Removed or Modified
child diff. A pair whose only other children are Unknown (duplicate child
keys) is Unknown itself.
"""

from __future__ import annotations

from typing import Any, Iterable, List, Sequence, Tuple

from .matcher import IdentityMatcher
from .models import (
    ABSENT,
    CHILD_KINDS,
    CatalogObject,
    ChangeRecord,
    DiffWarning,
    Kind,
    ObjectDiff,
    Status,
)
from .normalizer import parameter_key
from .policy import DEFAULT_POLICY, NormalizationPolicy
from .schema import is_structural

_DRIFT_STATUSES = frozenset({Status.ADDED, Status.REMOVED, Status.MODIFIED})


def values_equal(a: Any, b: Any) -> bool:
    """Type-strict equality: ``True`` does not equal ``1`` and ``"255"`` does not equal ``255``."""
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    if type(a) is not type(b) and not (isinstance(a, (int, float)) and isinstance(b, (int, float))):
        return False
    return a == b


class AttributeDiffer:
    """Produce :class:`~schemadrift.models.ObjectDiff` trees.

    Parameters
    ----------
    policy:
        Supplies ``ignore_attributes`` and the key case rule for children.
    matcher:
        Matcher used for child collections. Built from *policy* when omitted.
    """

    def __init__(self, policy: NormalizationPolicy = DEFAULT_POLICY, matcher: IdentityMatcher | None = None):
        self.policy = policy
        self.matcher = matcher or IdentityMatcher(policy)

    # ---- attributes ----
    def compare_attributes(self, source: CatalogObject, target: CatalogObject) -> Tuple[ChangeRecord, ...]:
        """Change records for every differing attribute, in first-seen order."""
        raw_fields = set(source.unnormalized) | set(target.unnormalized)
        names: List[str] = list(source.attributes)
        names.extend(n for n in target.attributes if n not in source.attributes)

        changes: List[ChangeRecord] = []
        for name in names:
            if self.policy.is_ignored(source.kind, name):
                continue
            if is_structural(source.kind, name) and name not in raw_fields:
                continue
            old = source.attributes.get(name, ABSENT)
            new = target.attributes.get(name, ABSENT)
            if old is not ABSENT and new is not ABSENT and values_equal(old, new):
                continue
            changes.append(ChangeRecord(field=name, old_value=old, new_value=new, normalized=name not in raw_fields))
        return tuple(changes)

    # ---- objects ----
    def diff_pair(self, source: CatalogObject, target: CatalogObject) -> Tuple[ObjectDiff, List[DiffWarning]]:
        """Diff one matched pair, recursing into child collections."""
        changes = self.compare_attributes(source, target)
        child_diffs, warnings = self.diff_children(source, target)
        child_statuses = {c.status for c in child_diffs}
        if changes or child_statuses & _DRIFT_STATUSES:
            status = Status.MODIFIED
        elif Status.UNKNOWN in child_statuses:
            status = Status.UNKNOWN
        else:
            status = Status.UNCHANGED
        unnormalized = tuple(sorted(set(source.unnormalized) | set(target.unnormalized)))
        return (
            ObjectDiff(
                kind=source.kind,
                qualified_name=target.qualified_name,
                status=status,
                changes=changes,
                child_diffs=child_diffs,
                unnormalized=unnormalized,
            ),
            warnings,
        )

    def one_sided(self, obj: CatalogObject, status: Status) -> ObjectDiff:
        """Added/Removed diff for *obj*; its children carry the same status."""
        return ObjectDiff(
            kind=obj.kind,
            qualified_name=obj.qualified_name,
            status=status,
            child_diffs=tuple(self.one_sided(c, status) for c in self._ordered(obj.children)),
            unnormalized=tuple(sorted(obj.unnormalized)),
        )

    def diff_children(
        self, source: CatalogObject, target: CatalogObject
    ) -> Tuple[Tuple[ObjectDiff, ...], List[DiffWarning]]:
        """Match and diff each child collection separately, in child-kind order."""
        child_kinds = list(CHILD_KINDS.get(source.kind, ()))
        for c in source.children + target.children:
            if c.kind not in child_kinds:
                child_kinds.append(c.kind)

        diffs: List[ObjectDiff] = []
        warnings: List[DiffWarning] = []
        for kind in child_kinds:
            result = self.matcher.match(
                kind,
                source.children_of(kind),
                target.children_of(kind),
                key=self.matcher.child_key,
            )
            warnings.extend(result.warnings)
            keyed: List[Tuple[Tuple[Any, ...], ObjectDiff]] = []
            keyed.extend((self._sort_key(o), self.one_sided(o, Status.REMOVED)) for o in result.removed)
            keyed.extend((self._sort_key(o), self.one_sided(o, Status.ADDED)) for o in result.added)
            for src, tgt in result.common:
                diff, pair_warnings = self.diff_pair(src, tgt)
                keyed.append((self._sort_key(tgt), diff))
                warnings.extend(pair_warnings)
            for name in result.conflicts:
                conflict = ObjectDiff(kind=kind, qualified_name=name, status=Status.UNKNOWN)
                keyed.append(((kind.order, (0, name.rsplit(".", 1)[-1].casefold()), name), conflict))
            keyed.sort(key=lambda pair: (pair[0], pair[1].status.order))
            diffs.extend(d for _, d in keyed)
        return tuple(diffs), warnings

    # ---- ordering ----
    def _sort_key(self, obj: CatalogObject) -> Tuple[Any, ...]:
        """Kind order, then natural key: ``(position, name)`` for parameters, name otherwise."""
        if obj.kind is Kind.PARAMETER:
            return (obj.kind.order, parameter_key(obj, self.policy), obj.qualified_name)
        return (obj.kind.order, (0, obj.name.casefold()), obj.qualified_name)

    def _ordered(self, children: Iterable[CatalogObject]) -> Sequence[CatalogObject]:
        return sorted(children, key=self._sort_key)
