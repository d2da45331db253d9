"""
engine
======

The diff pipeline: ``(Snapshot, Snapshot) -> DiffResult``.

Stages
------
1) Normalize both snapshots (per kind)
2) Match objects of each kind by identity
3) Diff matched pairs attribute by attribute, recursing into children
4) Categorize, count and order

Object-level faults become warnings on the result; only input that is not a
:class:`~schemadrift.models.Snapshot` raises.
"""

from __future__ import annotations

import datetime as dt
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from .categorizer import categorize
from .differ import AttributeDiffer
from .errors import ProviderUnavailable
from .matcher import IdentityMatcher
from .models import (
    TOP_LEVEL_KINDS,
    CatalogObject,
    DiffResult,
    DiffWarning,
    Kind,
    ObjectDiff,
    Snapshot,
    Status,
)
from .normalizer import Normalizer
from .policy import DEFAULT_POLICY, NormalizationPolicy

logger = logging.getLogger(__name__)

KindOutcome = Tuple[List[ObjectDiff], List[DiffWarning]]


@dataclass(frozen=True)
class RunContext:
    """Caller-supplied settings for one diff run.

    Attributes:
        policy: Normalization rule set.
        max_workers: Upper bound on kinds diffed concurrently (1 = inline).
        generated_at: Timestamp stamped on the result. When None the later of
            the two snapshots' ``captured_at`` is used, so repeated runs over
            the same snapshots produce identical results.
    """

    policy: NormalizationPolicy = DEFAULT_POLICY
    max_workers: int = 1
    generated_at: Optional[dt.datetime] = None


class DiffEngine:
    """Wire the pipeline stages together for one :class:`RunContext`."""

    def __init__(self, context: Optional[RunContext] = None):
        self.context = context or RunContext()
        if self.context.max_workers < 1:
            raise ValueError("max_workers must be >= 1")
        policy = self.context.policy
        self.normalizer = Normalizer(policy)
        self.matcher = IdentityMatcher(policy)
        self.differ = AttributeDiffer(policy, self.matcher)

    def diff_kind(
        self,
        kind: Kind,
        source: Sequence[CatalogObject],
        target: Sequence[CatalogObject],
    ) -> KindOutcome:
        """Normalize, match and diff all objects of one kind."""
        warnings: List[DiffWarning] = []
        src, w = self.normalizer.normalize_objects(source, side="source")
        warnings.extend(w)
        tgt, w = self.normalizer.normalize_objects(target, side="target")
        warnings.extend(w)

        match = self.matcher.match(kind, src, tgt)
        warnings.extend(match.warnings)

        diffs: List[ObjectDiff] = []
        diffs.extend(self.differ.one_sided(o, Status.ADDED) for o in match.added)
        diffs.extend(self.differ.one_sided(o, Status.REMOVED) for o in match.removed)
        for a, b in match.common:
            diff, pair_warnings = self.differ.diff_pair(a, b)
            diffs.append(diff)
            warnings.extend(pair_warnings)
        diffs.extend(ObjectDiff(kind=kind, qualified_name=n, status=Status.UNKNOWN) for n in match.conflicts)

        logger.debug(
            "%s: %d source, %d target -> +%d -%d ~%d ?%d",
            kind.value,
            len(src),
            len(tgt),
            len(match.added),
            len(match.removed),
            len(match.common),
            len(match.conflicts),
        )
        return diffs, warnings

    def run(self, source: Snapshot, target: Snapshot) -> DiffResult:
        if not isinstance(source, Snapshot) or not isinstance(target, Snapshot):
            raise TypeError("diff_snapshots expects two Snapshot instances")

        warnings: List[DiffWarning] = list(source.issues) + list(target.issues)
        unavailable: List[Kind] = []
        kinds: List[Kind] = list(TOP_LEVEL_KINDS)
        for kind in list(source.objects) + list(target.objects):
            if kind not in kinds:
                kinds.append(kind)

        pending: List[Kind] = []
        for kind in kinds:
            reasons = [
                f"{side} ({snap.source_id}): {snap.unavailable[kind]}"
                for side, snap in (("source", source), ("target", target))
                if kind in snap.unavailable
            ]
            if reasons:
                unavailable.append(kind)
                warnings.append(
                    ProviderUnavailable(
                        f"{kind.value} could not be collected; " + "; ".join(reasons),
                        kind=kind,
                    ).to_warning()
                )
            else:
                pending.append(kind)

        per_kind: Dict[Kind, List[ObjectDiff]] = {}
        for kind, (diffs, kind_warnings) in self._diff_all(pending, source, target).items():
            per_kind[kind] = diffs
            warnings.extend(kind_warnings)

        generated_at = self.context.generated_at or max(source.captured_at, target.captured_at)
        result = categorize(
            per_kind,
            unavailable,
            generated_at=generated_at,
            source_id=source.source_id,
            target_id=target.source_id,
            policy_version=self.context.policy.version,
            warnings=sorted(set(warnings), key=DiffWarning.sort_key),
        )
        s = result.summary
        logger.info(
            "diff %s -> %s: %d added, %d removed, %d modified, %d unchanged, %d unknown, %d warning(s)",
            result.source_id,
            result.target_id,
            s.added,
            s.removed,
            s.modified,
            s.unchanged,
            s.unknown,
            len(result.warnings),
        )
        return result

    def _diff_all(self, kinds: Sequence[Kind], source: Snapshot, target: Snapshot) -> Dict[Kind, KindOutcome]:
        outcomes: Dict[Kind, KindOutcome] = {}
        if self.context.max_workers == 1 or len(kinds) <= 1:
            for kind in kinds:
                outcomes[kind] = self.diff_kind(kind, source.objects_of(kind), target.objects_of(kind))
            return outcomes

        with ThreadPoolExecutor(max_workers=self.context.max_workers) as ex:
            futs = {
                ex.submit(self.diff_kind, kind, source.objects_of(kind), target.objects_of(kind)): kind
                for kind in kinds
            }
            for fut in as_completed(futs):
                outcomes[futs[fut]] = fut.result()
        return outcomes


def diff_snapshots(source: Snapshot, target: Snapshot, context: Optional[RunContext] = None) -> DiffResult:
    """Diff *source* against *target*.

    Parameters
    ----------
    source, target:
        Snapshots to compare. ``Added`` means present only in *target*.
    context:
        Policy, worker bound and timestamp for the run.

    Returns
    -------
    DiffResult
        Deterministic for identical inputs and context.

    Raises
    ------
    TypeError
        If either input is not a :class:`Snapshot`.
    ValueError
        If ``context.max_workers`` is less than 1.
    """
    return DiffEngine(context).run(source, target)
