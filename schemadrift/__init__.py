"""
schemadrift
===========

Snapshot normalization and diff engine for SQL Server schema drift audits.

The engine is a pure function of two snapshots:

- :func:`schemadrift.engine.diff_snapshots`

Snapshots are loaded with :mod:`schemadrift.snapshots`; results are rendered
with :mod:`schemadrift.reporting`. Scenario runs go through the CLI entry
point :mod:`schemadrift.cli`.
"""

from .engine import RunContext, diff_snapshots
from .models import (
    ABSENT,
    CatalogObject,
    CategoryDiff,
    ChangeRecord,
    DiffResult,
    DiffWarning,
    Kind,
    ObjectDiff,
    Snapshot,
    Status,
)
from .policy import DEFAULT_POLICY, NormalizationPolicy
from .snapshots import build_snapshot, load_snapshot, snapshot_from_document

__version__ = "0.1.0"

__all__ = [
    "ABSENT",
    "CatalogObject",
    "CategoryDiff",
    "ChangeRecord",
    "DEFAULT_POLICY",
    "DiffResult",
    "DiffWarning",
    "Kind",
    "NormalizationPolicy",
    "ObjectDiff",
    "RunContext",
    "Snapshot",
    "Status",
    "build_snapshot",
    "diff_snapshots",
    "load_snapshot",
    "snapshot_from_document",
]
