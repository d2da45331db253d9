"""
categorizer
===========

Group object diffs by kind and status, count them, and build the two
presentation orders carried on :class:`~schemadrift.models.DiffResult`.
"""

from __future__ import annotations

import datetime as dt
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple

from .models import (
    Availability,
    CategoryCounts,
    CategoryDiff,
    DiffResult,
    DiffWarning,
    Kind,
    ObjectDiff,
    Status,
)


def _name_key(diff: ObjectDiff) -> Tuple[str, str]:
    return (diff.qualified_name.casefold(), diff.qualified_name)


def _unnormalized_fields(diffs: Iterable[ObjectDiff]) -> List[str]:
    fields: List[str] = []
    for diff in diffs:
        fields.extend(f"{diff.qualified_name}.{name}" for name in diff.unnormalized)
        fields.extend(_unnormalized_fields(diff.child_diffs))
    return fields


def build_category(kind: Kind, diffs: Sequence[ObjectDiff]) -> CategoryDiff:
    """Bucket *diffs* (all of *kind*) by status and count each bucket."""
    buckets: Dict[Status, List[ObjectDiff]] = {s: [] for s in Status}
    for diff in diffs:
        buckets[diff.status].append(diff)
    for bucket in buckets.values():
        bucket.sort(key=_name_key)

    counts = CategoryCounts(
        added=len(buckets[Status.ADDED]),
        removed=len(buckets[Status.REMOVED]),
        modified=len(buckets[Status.MODIFIED]),
        unchanged=len(buckets[Status.UNCHANGED]),
        unknown=len(buckets[Status.UNKNOWN]),
    )
    return CategoryDiff(
        kind=kind,
        availability=Availability.AVAILABLE,
        added=tuple(buckets[Status.ADDED]),
        removed=tuple(buckets[Status.REMOVED]),
        modified=tuple(buckets[Status.MODIFIED]),
        unchanged=tuple(buckets[Status.UNCHANGED]),
        unknown=tuple(buckets[Status.UNKNOWN]),
        counts=counts,
        unnormalized=tuple(sorted(set(_unnormalized_fields(diffs)), key=lambda s: (s.casefold(), s))),
    )


def unavailable_category(kind: Kind) -> CategoryDiff:
    """A category that could not be collected on one side: no diffs, zero counts."""
    return CategoryDiff(kind=kind, availability=Availability.UNAVAILABLE)


def categorize(
    per_kind: Mapping[Kind, Sequence[ObjectDiff]],
    unavailable: Iterable[Kind],
    *,
    generated_at: dt.datetime,
    source_id: str,
    target_id: str,
    policy_version: str,
    warnings: Sequence[DiffWarning] = (),
) -> DiffResult:
    """Assemble the final :class:`DiffResult`.

    Parameters
    ----------
    per_kind:
        Top-level kind -> object diffs of that kind (any order).
    unavailable:
        Kinds marked Unavailable; any diffs given for them are ignored.
    generated_at, source_id, target_id, policy_version:
        Copied onto the result.
    warnings:
        Already-sorted warnings for the run.

    Returns
    -------
    DiffResult
        Categories in kind order; ``alphabetical`` and ``by_category`` hold
        every top-level diff of the available categories.
    """
    missing = set(unavailable)
    kinds = sorted(set(per_kind) | missing, key=lambda k: k.order)

    categories: List[CategoryDiff] = []
    for kind in kinds:
        if kind in missing:
            categories.append(unavailable_category(kind))
        else:
            categories.append(build_category(kind, per_kind.get(kind, ())))

    everything: List[ObjectDiff] = [d for c in categories for d in c.all_diffs()]
    alphabetical = sorted(everything, key=lambda d: (d.qualified_name.casefold(), d.qualified_name, d.kind.order))
    by_category = sorted(
        everything,
        key=lambda d: (d.kind.order, d.status.order, d.qualified_name.casefold(), d.qualified_name),
    )

    summary = CategoryCounts()
    for category in categories:
        summary = summary + category.counts

    return DiffResult(
        generated_at=generated_at,
        source_id=source_id,
        target_id=target_id,
        policy_version=policy_version,
        categories=tuple(categories),
        alphabetical=tuple(alphabetical),
        by_category=tuple(by_category),
        summary=summary,
        warnings=tuple(warnings),
    )
