"""
models
======

Immutable data model shared by every stage of the diff pipeline.

Inputs
------
- :class:`CatalogObject` (one schema object, possibly with children)
- :class:`Snapshot` (all catalog objects captured from one database)

Outputs
-------
- :class:`ChangeRecord` (one differing attribute)
- :class:`ObjectDiff` (one matched/added/removed object, recursive)
- :class:`CategoryDiff` (all object diffs of one :class:`Kind`)
- :class:`DiffResult` (the full result handed to renderers)

All types are frozen dataclasses holding tuples; values are safe to share
between threads.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple


class Kind(str, Enum):
    """Closed set of catalog object kinds.

    Declaration order is the canonical "by category" order used in results.
    """

    SCHEMA = "Schema"
    DATA_TYPE = "DataType"
    TABLE = "Table"
    VIEW = "View"
    PROCEDURE = "Procedure"
    FUNCTION = "Function"
    USER = "User"
    ROLE = "Role"
    PERMISSION = "Permission"
    QUERY_STORE = "QueryStore"
    QUERY_STORE_PLAN = "QueryStorePlan"
    COLUMN = "Column"
    INDEX = "Index"
    CONSTRAINT = "Constraint"
    PARAMETER = "Parameter"

    @property
    def order(self) -> int:
        return _KIND_ORDER[self]

    @classmethod
    def parse(cls, value: Any) -> "Kind":
        """Resolve a kind from its value (``"DataType"``) or member name (``"DATA_TYPE"``)."""
        if isinstance(value, Kind):
            return value
        text = str(value).strip()
        for kind in cls:
            if text == kind.value or text.upper() == kind.name:
                return kind
        lowered = text.replace("_", "").lower()
        for kind in cls:
            if lowered == kind.value.lower():
                return kind
        raise ValueError(f"unknown object kind: {value!r}")


_KIND_ORDER: Dict[Kind, int] = {k: i for i, k in enumerate(Kind)}

TOP_LEVEL_KINDS: Tuple[Kind, ...] = (
    Kind.SCHEMA,
    Kind.DATA_TYPE,
    Kind.TABLE,
    Kind.VIEW,
    Kind.PROCEDURE,
    Kind.FUNCTION,
    Kind.USER,
    Kind.ROLE,
    Kind.PERMISSION,
    Kind.QUERY_STORE,
    Kind.QUERY_STORE_PLAN,
)

CHILD_KINDS: Dict[Kind, Tuple[Kind, ...]] = {
    Kind.TABLE: (Kind.COLUMN, Kind.INDEX, Kind.CONSTRAINT),
    Kind.VIEW: (Kind.COLUMN, Kind.INDEX),
    Kind.PROCEDURE: (Kind.PARAMETER,),
    Kind.FUNCTION: (Kind.PARAMETER,),
}

OVERLOADABLE_KINDS = frozenset({Kind.PROCEDURE, Kind.FUNCTION})


class Absent(Enum):
    """Sentinel type for an attribute that exists on only one side."""

    ABSENT = "<absent>"

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = Absent.ABSENT


class Status(str, Enum):
    ADDED = "Added"
    REMOVED = "Removed"
    MODIFIED = "Modified"
    UNCHANGED = "Unchanged"
    UNKNOWN = "Unknown"

    @property
    def order(self) -> int:
        return _STATUS_ORDER[self]


_STATUS_ORDER: Dict[Status, int] = {s: i for i, s in enumerate(Status)}


class Availability(str, Enum):
    AVAILABLE = "Available"
    UNAVAILABLE = "Unavailable"


class WarningCode(str, Enum):
    PROVIDER_UNAVAILABLE = "ProviderUnavailable"
    NORMALIZATION_FAILURE = "NormalizationFailure"
    AMBIGUOUS_IDENTITY = "AmbiguousIdentity"
    INVARIANT_VIOLATION = "InvariantViolation"


@dataclass(frozen=True)
class DiffWarning:
    """A diagnostic note attached to a snapshot or a diff result.

    Attributes:
        code: Error taxonomy bucket.
        kind: Object kind the note is about (``None`` for run-wide notes).
        qualified_name: Object the note is about (empty for category-wide notes).
        message: Human-readable explanation.
    """

    code: WarningCode
    kind: Optional[Kind]
    qualified_name: str
    message: str

    def sort_key(self) -> Tuple[int, str, str, str]:
        return (
            self.kind.order if self.kind is not None else -1,
            self.qualified_name.casefold(),
            self.code.value,
            self.message,
        )


@dataclass(frozen=True)
class CatalogObject:
    """One schema object with its attributes and child objects.

    Attributes:
        kind: Object kind.
        qualified_name: Schema-qualified name (``schema.object[.subobject]``).
        attributes: Attribute name -> value, held in a read-only mapping.
        children: Child objects (columns, indexes, constraints, parameters).
        unnormalized: Attribute names whose values were not canonicalized
            (unknown to the kind's schema, or failed to parse).
    """

    kind: Kind
    qualified_name: str
    attributes: Mapping[str, Any] = field(default_factory=dict)
    children: Tuple["CatalogObject", ...] = ()
    unnormalized: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))

    @property
    def name(self) -> str:
        """Last dotted part of the qualified name."""
        return self.qualified_name.rsplit(".", 1)[-1]

    def children_of(self, kind: Kind) -> Tuple["CatalogObject", ...]:
        return tuple(c for c in self.children if c.kind is kind)

    def count(self) -> int:
        """Number of objects in this subtree, including this one."""
        return 1 + sum(c.count() for c in self.children)


@dataclass(frozen=True)
class Snapshot:
    """Point-in-time metadata extract of one database.

    Build instances with :func:`schemadrift.snapshots.build_snapshot`, which
    checks the invariants and records violations in ``issues``.

    Attributes:
        source_id: Label of the database the snapshot came from.
        captured_at: Capture timestamp.
        objects: Top-level kind -> objects of that kind, in catalog order.
        unavailable: Kinds that could not be collected, with the reason.
        issues: Invariant violations found while building the snapshot.
    """

    source_id: str
    captured_at: dt.datetime
    objects: Mapping[Kind, Tuple[CatalogObject, ...]] = field(default_factory=dict)
    unavailable: Mapping[Kind, str] = field(default_factory=dict)
    issues: Tuple[DiffWarning, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "objects", MappingProxyType(dict(self.objects)))
        object.__setattr__(self, "unavailable", MappingProxyType(dict(self.unavailable)))

    def objects_of(self, kind: Kind) -> Tuple[CatalogObject, ...]:
        return tuple(self.objects.get(kind, ()))

    def object_count(self) -> int:
        return sum(len(v) for v in self.objects.values())


@dataclass(frozen=True)
class ChangeRecord:
    """One differing attribute on a matched pair.

    ``normalized`` is False when either side's value bypassed canonicalization.
    """

    field: str
    old_value: Any
    new_value: Any
    normalized: bool = True


@dataclass(frozen=True)
class ObjectDiff:
    kind: Kind
    qualified_name: str
    status: Status
    changes: Tuple[ChangeRecord, ...] = ()
    child_diffs: Tuple["ObjectDiff", ...] = ()
    unnormalized: Tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return self.qualified_name.rsplit(".", 1)[-1]

    def child(self, kind: Kind, name: str) -> Optional["ObjectDiff"]:
        """Return the child diff of *kind* whose last name part is *name* (case-insensitive)."""
        wanted = name.casefold()
        for c in self.child_diffs:
            if c.kind is kind and c.name.casefold() == wanted:
                return c
        return None

    def change(self, field_name: str) -> Optional[ChangeRecord]:
        for c in self.changes:
            if c.field == field_name:
                return c
        return None


@dataclass(frozen=True)
class CategoryCounts:
    added: int = 0
    removed: int = 0
    modified: int = 0
    unchanged: int = 0
    unknown: int = 0

    @property
    def total(self) -> int:
        return self.added + self.removed + self.modified + self.unchanged + self.unknown

    @property
    def drift(self) -> int:
        """Number of Added, Removed and Modified objects."""
        return self.added + self.removed + self.modified

    def __add__(self, other: "CategoryCounts") -> "CategoryCounts":
        return CategoryCounts(
            added=self.added + other.added,
            removed=self.removed + other.removed,
            modified=self.modified + other.modified,
            unchanged=self.unchanged + other.unchanged,
            unknown=self.unknown + other.unknown,
        )


@dataclass(frozen=True)
class CategoryDiff:
    """All object diffs of one kind, bucketed by status."""

    kind: Kind
    availability: Availability = Availability.AVAILABLE
    added: Tuple[ObjectDiff, ...] = ()
    removed: Tuple[ObjectDiff, ...] = ()
    modified: Tuple[ObjectDiff, ...] = ()
    unchanged: Tuple[ObjectDiff, ...] = ()
    unknown: Tuple[ObjectDiff, ...] = ()
    counts: CategoryCounts = CategoryCounts()
    unnormalized: Tuple[str, ...] = ()

    @property
    def is_available(self) -> bool:
        return self.availability is Availability.AVAILABLE

    def all_diffs(self) -> Tuple[ObjectDiff, ...]:
        return self.added + self.removed + self.modified + self.unchanged + self.unknown

    def find(self, qualified_name: str) -> Optional[ObjectDiff]:
        wanted = qualified_name.casefold()
        for d in self.all_diffs():
            if d.qualified_name.casefold() == wanted:
                return d
        return None


@dataclass(frozen=True)
class DiffResult:
    """Result of diffing a source snapshot against a target snapshot.

    ``alphabetical`` and ``by_category`` hold every top-level object diff in
    the two presentation orders renderers offer ("Sort A-Z" and "Sort by
    Category").
    """

    generated_at: dt.datetime
    source_id: str
    target_id: str
    policy_version: str
    categories: Tuple[CategoryDiff, ...] = ()
    alphabetical: Tuple[ObjectDiff, ...] = ()
    by_category: Tuple[ObjectDiff, ...] = ()
    summary: CategoryCounts = CategoryCounts()
    warnings: Tuple[DiffWarning, ...] = ()

    def category(self, kind: Kind) -> CategoryDiff:
        for c in self.categories:
            if c.kind is kind:
                return c
        raise KeyError(kind)

    @property
    def has_drift(self) -> bool:
        return self.summary.drift > 0 or self.summary.unknown > 0
