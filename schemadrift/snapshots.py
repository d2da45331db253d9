"""
snapshots
=========

Build validated :class:`~schemadrift.models.Snapshot` values.

Snapshots come from an external catalog collector as JSON or YAML documents::

    source_id: SchemaDriftDemo_Source
    captured_at: "2024-05-01T09:30:00Z"
    objects:
      Table:
        - name: Sales.Customers
          attributes: {IsMemoryOptimized: false}
          children:
            - kind: Column
              name: Email
              attributes: {DataType: "nvarchar(255)", IsNullable: true}
      Procedure:
        - name: Sales.GetCustomerOrders
          attributes:
            Parameters: "@CustomerID INT, @StartDate DATE = NULL"
            Definition: "CREATE PROCEDURE Sales.GetCustomerOrders ..."
    child_rows:
      - {kind: Index, parent_kind: Table, parent: Sales.Customers, name: IX_Customers_Email,
         attributes: {IndexType: NONCLUSTERED, KeyColumns: [Email]}}
    unavailable:
      QueryStorePlan: "Query Store is disabled"

Invariant checks (unknown top-level kinds, child kinds a parent cannot hold,
child rows whose parent does not exist) never raise: the offending object is
dropped and an ``InvariantViolation`` is recorded in ``Snapshot.issues``.
Malformed documents raise :class:`~schemadrift.errors.SnapshotFormatError`.
"""

from __future__ import annotations

import dataclasses
import datetime as dt
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

import yaml

from .errors import InvariantViolation, SnapshotFormatError
from .models import CHILD_KINDS, TOP_LEVEL_KINDS, CatalogObject, DiffWarning, Kind, Snapshot
from .textdiff import write_text

logger = logging.getLogger(__name__)

KindLike = Union[Kind, str]


# ---- building ----
def _as_utc(value: dt.datetime) -> dt.datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=dt.timezone.utc)
    return value


def _checked_children(obj: CatalogObject, issues: List[DiffWarning]) -> CatalogObject:
    allowed = CHILD_KINDS.get(obj.kind, ())
    kept: List[CatalogObject] = []
    for child in obj.children:
        if child.kind not in allowed:
            issues.append(
                InvariantViolation(
                    f"{obj.kind.value} cannot hold a {child.kind.value} child ({child.qualified_name}); dropped",
                    kind=obj.kind,
                    qualified_name=obj.qualified_name,
                ).to_warning()
            )
            continue
        kept.append(_checked_children(child, issues))
    if len(kept) == len(obj.children):
        return obj
    return dataclasses.replace(obj, children=tuple(kept))


def build_snapshot(
    source_id: str,
    captured_at: dt.datetime,
    objects: Mapping[KindLike, Iterable[CatalogObject]],
    unavailable: Optional[Mapping[KindLike, str]] = None,
    issues: Iterable[DiffWarning] = (),
) -> Snapshot:
    """Validate and freeze catalog objects into a :class:`Snapshot`.

    Parameters
    ----------
    source_id:
        Label of the database the objects came from.
    captured_at:
        Capture time. Naive timestamps are taken as UTC.
    objects:
        Top-level kind -> objects. Kinds may be given as :class:`Kind` or text.
    unavailable:
        Kinds that could not be collected, with the reason.
    issues:
        Violations already found by the caller (e.g. orphan child rows).

    Returns
    -------
    Snapshot
        Objects that violate an invariant are dropped and reported in ``issues``.
    """
    found: List[DiffWarning] = list(issues)
    frozen: Dict[Kind, Tuple[CatalogObject, ...]] = {}

    for raw_kind, objs in objects.items():
        kind = Kind.parse(raw_kind)
        objs = tuple(objs)
        if kind not in TOP_LEVEL_KINDS:
            found.append(
                InvariantViolation(
                    f"{kind.value} is not a top-level kind; {len(objs)} object(s) dropped",
                    kind=kind,
                ).to_warning()
            )
            continue
        kept: List[CatalogObject] = []
        for obj in objs:
            if obj.kind is not kind:
                found.append(
                    InvariantViolation(
                        f"{obj.kind.value} object listed under {kind.value}; dropped",
                        kind=kind,
                        qualified_name=obj.qualified_name,
                    ).to_warning()
                )
                continue
            kept.append(_checked_children(obj, found))
        frozen[kind] = frozen.get(kind, ()) + tuple(kept)

    missing = {Kind.parse(k): str(reason) for k, reason in (unavailable or {}).items()}
    snapshot = Snapshot(
        source_id=source_id,
        captured_at=_as_utc(captured_at),
        objects=frozen,
        unavailable=missing,
        issues=tuple(found),
    )
    logger.debug(
        "snapshot %s: %d top-level object(s), %d unavailable kind(s), %d issue(s)",
        source_id,
        snapshot.object_count(),
        len(missing),
        len(found),
    )
    return snapshot


# ---- documents ----
def parse_timestamp(value: Any) -> dt.datetime:
    """Parse an ISO-8601 timestamp (``Z`` suffix accepted); naive values are UTC."""
    if isinstance(value, dt.datetime):
        return _as_utc(value)
    if isinstance(value, dt.date):
        return dt.datetime(value.year, value.month, value.day, tzinfo=dt.timezone.utc)
    if not isinstance(value, str) or not value.strip():
        raise SnapshotFormatError(f"captured_at must be an ISO-8601 timestamp, got {value!r}")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        return _as_utc(dt.datetime.fromisoformat(text))
    except ValueError:
        raise SnapshotFormatError(f"invalid captured_at timestamp: {value!r}") from None


def _parse_kind(value: Any, where: str) -> Kind:
    try:
        return Kind.parse(value)
    except ValueError:
        raise SnapshotFormatError(f"{where}: unknown object kind {value!r}") from None


def _child_name(parent: str, name: str) -> str:
    if name.casefold().startswith(parent.casefold() + "."):
        return name
    return f"{parent}.{name}"


def _object_from_entry(entry: Any, kind: Kind, parent: Optional[str] = None) -> CatalogObject:
    where = f"{kind.value} under {parent}" if parent else kind.value
    if not isinstance(entry, Mapping):
        raise SnapshotFormatError(f"{where}: object entry must be a mapping, got {type(entry).__name__}")
    name = entry.get("name")
    if not isinstance(name, str) or not name.strip():
        raise SnapshotFormatError(f"{where}: object entry without a name")
    attributes = entry.get("attributes") or {}
    if not isinstance(attributes, Mapping):
        raise SnapshotFormatError(f"{where} {name}: attributes must be a mapping")

    qualified_name = _child_name(parent, name.strip()) if parent else name.strip()
    children: List[CatalogObject] = []
    for child in entry.get("children") or []:
        if not isinstance(child, Mapping) or "kind" not in child:
            raise SnapshotFormatError(f"{where} {name}: child entries need a kind")
        child_kind = _parse_kind(child["kind"], f"{where} {name}")
        children.append(_object_from_entry(child, child_kind, qualified_name))
    return CatalogObject(kind=kind, qualified_name=qualified_name, attributes=dict(attributes), children=tuple(children))


def _attach_child_rows(
    objects: Dict[Kind, List[CatalogObject]], rows: Iterable[Any]
) -> List[DiffWarning]:
    """Attach flat child rows to their parents in place; return orphan violations."""
    issues: List[DiffWarning] = []
    extra: Dict[Tuple[Kind, str], List[CatalogObject]] = {}
    index: Dict[Tuple[Kind, str], int] = {}
    for kind, objs in objects.items():
        for i, obj in enumerate(objs):
            index.setdefault((kind, obj.qualified_name.casefold()), i)

    for row in rows:
        if not isinstance(row, Mapping):
            raise SnapshotFormatError(f"child row must be a mapping, got {type(row).__name__}")
        for required in ("kind", "parent_kind", "parent", "name"):
            if required not in row:
                raise SnapshotFormatError(f"child row without {required}: {dict(row)!r}")
        kind = _parse_kind(row["kind"], "child row")
        parent_kind = _parse_kind(row["parent_kind"], "child row")
        parent = str(row["parent"])
        key = (parent_kind, parent.casefold())
        if key not in index:
            issues.append(
                InvariantViolation(
                    f"{kind.value} {row['name']} references missing parent {parent_kind.value} {parent}; dropped",
                    kind=parent_kind,
                    qualified_name=parent,
                ).to_warning()
            )
            continue
        parent_name = objects[parent_kind][index[key]].qualified_name
        extra.setdefault(key, []).append(_object_from_entry(row, kind, parent_name))

    for (parent_kind, folded), children in extra.items():
        i = index[(parent_kind, folded)]
        parent_obj = objects[parent_kind][i]
        objects[parent_kind][i] = dataclasses.replace(parent_obj, children=parent_obj.children + tuple(children))
    return issues


def snapshot_from_document(doc: Any) -> Snapshot:
    """Build a :class:`Snapshot` from a parsed JSON/YAML document."""
    if not isinstance(doc, Mapping):
        raise SnapshotFormatError("snapshot document must be a mapping")
    source_id = doc.get("source_id")
    if not isinstance(source_id, str) or not source_id.strip():
        raise SnapshotFormatError("snapshot document without source_id")
    captured_at = parse_timestamp(doc.get("captured_at"))

    raw_objects = doc.get("objects") or {}
    if not isinstance(raw_objects, Mapping):
        raise SnapshotFormatError("objects must be a mapping of kind -> list")
    objects: Dict[Kind, List[CatalogObject]] = {}
    for raw_kind, entries in raw_objects.items():
        kind = _parse_kind(raw_kind, "objects")
        if not isinstance(entries, list):
            raise SnapshotFormatError(f"objects.{raw_kind} must be a list")
        objects.setdefault(kind, []).extend(_object_from_entry(e, kind) for e in entries)

    issues = _attach_child_rows(objects, doc.get("child_rows") or [])

    raw_unavailable = doc.get("unavailable") or {}
    if not isinstance(raw_unavailable, Mapping):
        raise SnapshotFormatError("unavailable must be a mapping of kind -> reason")
    unavailable = {_parse_kind(k, "unavailable"): str(v) for k, v in raw_unavailable.items()}

    return build_snapshot(source_id.strip(), captured_at, objects, unavailable, issues)


def load_snapshot(path: Path) -> Snapshot:
    """Load a snapshot document from a ``.json``, ``.yml`` or ``.yaml`` file.

    Raises
    ------
    SnapshotFormatError
        If the file is missing, cannot be parsed, or is not a valid document.
    """
    if not path.exists():
        raise SnapshotFormatError(f"snapshot not found: {path}")
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix.lower() in (".yml", ".yaml"):
            doc = yaml.safe_load(text)
        else:
            doc = json.loads(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise SnapshotFormatError(f"cannot parse snapshot {path}: {exc}") from exc
    return snapshot_from_document(doc)


# ---- export ----
def _entry(obj: CatalogObject, nested: bool = False) -> Dict[str, Any]:
    entry: Dict[str, Any] = {"name": obj.name if nested else obj.qualified_name}
    if nested:
        entry = {"kind": obj.kind.value, **entry}
    entry["attributes"] = {k: list(v) if isinstance(v, tuple) else v for k, v in obj.attributes.items()}
    if obj.children:
        entry["children"] = [_entry(c, nested=True) for c in obj.children]
    return entry


def snapshot_to_document(snapshot: Snapshot) -> Dict[str, Any]:
    """Inverse of :func:`snapshot_from_document` (issues are not exported)."""
    return {
        "source_id": snapshot.source_id,
        "captured_at": snapshot.captured_at.isoformat(),
        "objects": {
            kind.value: [_entry(o) for o in snapshot.objects[kind]]
            for kind in sorted(snapshot.objects, key=lambda k: k.order)
        },
        "unavailable": {k.value: snapshot.unavailable[k] for k in sorted(snapshot.unavailable, key=lambda k: k.order)},
    }


def write_snapshot(snapshot: Snapshot, path: Path) -> Path:
    """Write *snapshot* as an indented JSON document."""
    write_text(path, json.dumps(snapshot_to_document(snapshot), indent=2, default=str) + "\n")
    return path
