"""Unit tests for snapshots module (documents, invariants, load/write)."""

import datetime as dt
import json
from pathlib import Path
from typing import Any, Dict

import pytest
import yaml

from schemadrift.errors import SnapshotFormatError
from schemadrift.models import CatalogObject, Kind, WarningCode
from schemadrift.snapshots import (
    build_snapshot,
    load_snapshot,
    parse_timestamp,
    snapshot_from_document,
    snapshot_to_document,
    write_snapshot,
)

from conftest import make_snapshot, obj


class TestParseTimestamp:
    """Tests for parse_timestamp function."""

    def test_zulu_suffix(self) -> None:
        """Test a trailing Z means UTC."""
        assert parse_timestamp("2024-05-01T09:00:00Z") == dt.datetime(2024, 5, 1, 9, 0, tzinfo=dt.timezone.utc)

    def test_naive_is_utc(self) -> None:
        """Test naive timestamps are taken as UTC."""
        assert parse_timestamp("2024-05-01 09:00:00").tzinfo == dt.timezone.utc

    def test_datetime_and_date_values(self) -> None:
        """Test YAML-decoded datetime and date values are accepted."""
        assert parse_timestamp(dt.datetime(2024, 5, 1, 9, 0)).tzinfo == dt.timezone.utc
        assert parse_timestamp(dt.date(2024, 5, 1)) == dt.datetime(2024, 5, 1, tzinfo=dt.timezone.utc)

    @pytest.mark.parametrize("value", [None, "", "yesterday", 42])
    def test_invalid(self, value: Any) -> None:
        """Test missing or malformed timestamps raise SnapshotFormatError."""
        with pytest.raises(SnapshotFormatError):
            parse_timestamp(value)


class TestBuildSnapshot:
    """Tests for build_snapshot invariant checks."""

    def test_kinds_accept_text(self) -> None:
        """Test kinds may be given by value or member name."""
        snap = make_snapshot("db", {"Schema": [obj(Kind.SCHEMA, "HR")], "DATA_TYPE": []})
        assert set(snap.objects) == {Kind.SCHEMA, Kind.DATA_TYPE}
        assert snap.issues == ()

    def test_snapshot_mappings_are_read_only(self) -> None:
        """Test objects, unavailable and attributes cannot be changed after building."""
        attrs = {"Owner": "dbo"}
        schema_obj = CatalogObject(kind=Kind.SCHEMA, qualified_name="HR", attributes=attrs)
        snap = make_snapshot("db", {Kind.SCHEMA: [schema_obj]}, unavailable={Kind.USER: "denied"})
        attrs["Owner"] = "changed"
        (schema,) = snap.objects_of(Kind.SCHEMA)
        assert schema.attributes == {"Owner": "dbo"}
        with pytest.raises(TypeError):
            schema.attributes["Owner"] = "sa"
        with pytest.raises(TypeError):
            snap.objects[Kind.VIEW] = ()
        with pytest.raises(TypeError):
            snap.unavailable[Kind.ROLE] = "x"

    def test_child_kind_at_top_level_dropped(self) -> None:
        """Test Column is not accepted as a top-level kind."""
        snap = make_snapshot("db", {Kind.COLUMN: [obj(Kind.COLUMN, "HR.T.c")]})
        assert snap.objects == {}
        assert [w.code for w in snap.issues] == [WarningCode.INVARIANT_VIOLATION]

    def test_mismatched_object_kind_dropped(self) -> None:
        """Test an object listed under the wrong kind is dropped."""
        snap = make_snapshot("db", {Kind.TABLE: [obj(Kind.VIEW, "HR.V"), obj(Kind.TABLE, "HR.T")]})
        assert [o.qualified_name for o in snap.objects_of(Kind.TABLE)] == ["HR.T"]
        assert snap.issues[0].qualified_name == "HR.V"

    def test_disallowed_child_dropped(self) -> None:
        """Test a parameter under a table is dropped with a violation."""
        table = obj(Kind.TABLE, "HR.T", [obj(Kind.COLUMN, "HR.T.Id"), obj(Kind.PARAMETER, "HR.T.@x")])
        snap = make_snapshot("db", {Kind.TABLE: [table]})
        (kept,) = snap.objects_of(Kind.TABLE)
        assert [c.kind for c in kept.children] == [Kind.COLUMN]
        assert snap.issues[0].kind is Kind.TABLE

    def test_unavailable_and_naive_capture_time(self) -> None:
        """Test unavailable kinds are parsed and naive captured_at becomes UTC."""
        snap = build_snapshot("db", dt.datetime(2024, 5, 1), {}, {"QueryStorePlan": "disabled"})
        assert snap.unavailable == {Kind.QUERY_STORE_PLAN: "disabled"}
        assert snap.captured_at.tzinfo == dt.timezone.utc


class TestSnapshotFromDocument:
    """Tests for snapshot_from_document function."""

    def test_demo_document(self, source_doc: Dict[str, Any]) -> None:
        """Test nested children are qualified with their parent's name."""
        snap = snapshot_from_document(source_doc)
        assert snap.source_id == "TestSourceDB"
        employees = snap.objects_of(Kind.TABLE)[0]
        assert employees.qualified_name == "HR.Employees"
        assert employees.children[0].qualified_name == "HR.Employees.EmployeeID"
        assert employees.children[0].kind is Kind.COLUMN
        assert snap.issues == ()

    def test_prefixed_child_name_kept(self) -> None:
        """Test a child name already carrying the parent prefix is not doubled."""
        doc = {
            "source_id": "db",
            "captured_at": "2024-05-01T09:00:00Z",
            "objects": {"Table": [{"name": "HR.T", "children": [{"kind": "Column", "name": "HR.T.Id"}]}]},
        }
        (table,) = snapshot_from_document(doc).objects_of(Kind.TABLE)
        assert table.children[0].qualified_name == "HR.T.Id"

    def test_child_rows_attached(self, source_doc: Dict[str, Any]) -> None:
        """Test flat child rows are attached to their parent (case-insensitive lookup)."""
        source_doc["child_rows"] = [
            {"kind": "Column", "parent_kind": "Table", "parent": "hr.employees", "name": "LastName",
             "attributes": {"DataType": "nvarchar(50)"}},
        ]
        snap = snapshot_from_document(source_doc)
        employees = snap.objects_of(Kind.TABLE)[0]
        assert employees.children[-1].qualified_name == "HR.Employees.LastName"
        assert snap.issues == ()

    def test_orphan_child_row(self, source_doc: Dict[str, Any]) -> None:
        """Test a child row without a parent is dropped and reported."""
        source_doc["child_rows"] = [
            {"kind": "Index", "parent_kind": "Table", "parent": "HR.Missing", "name": "IX_X"},
        ]
        snap = snapshot_from_document(source_doc)
        (issue,) = snap.issues
        assert (issue.code, issue.kind, issue.qualified_name) == (
            WarningCode.INVARIANT_VIOLATION,
            Kind.TABLE,
            "HR.Missing",
        )

    @pytest.mark.parametrize(
        "doc",
        [
            [],
            {"captured_at": "2024-05-01T09:00:00Z"},
            {"source_id": "db", "captured_at": "2024-05-01T09:00:00Z", "objects": ["Table"]},
            {"source_id": "db", "captured_at": "2024-05-01T09:00:00Z", "objects": {"Table": {}}},
            {"source_id": "db", "captured_at": "2024-05-01T09:00:00Z", "objects": {"Widget": []}},
            {"source_id": "db", "captured_at": "2024-05-01T09:00:00Z", "objects": {"Table": [{"attributes": {}}]}},
            {"source_id": "db", "captured_at": "2024-05-01T09:00:00Z",
             "objects": {"Table": [{"name": "t", "children": [{"name": "c"}]}]}},
            {"source_id": "db", "captured_at": "2024-05-01T09:00:00Z", "child_rows": [{"kind": "Column"}]},
            {"source_id": "db", "captured_at": "2024-05-01T09:00:00Z", "unavailable": ["Table"]},
        ],
    )
    def test_malformed_documents(self, doc: Any) -> None:
        """Test structurally invalid documents raise SnapshotFormatError."""
        with pytest.raises(SnapshotFormatError):
            snapshot_from_document(doc)


class TestLoadAndWrite:
    """Tests for load_snapshot and write_snapshot."""

    def test_load_json(self, tmp_path: Path, source_doc: Dict[str, Any]) -> None:
        """Test a JSON document loads."""
        path = tmp_path / "source.json"
        path.write_text(json.dumps(source_doc), encoding="utf-8")
        assert load_snapshot(path) == snapshot_from_document(source_doc)

    def test_load_yaml(self, tmp_path: Path, target_doc: Dict[str, Any]) -> None:
        """Test a YAML document loads, including its unavailable kinds."""
        path = tmp_path / "target.yml"
        path.write_text(yaml.safe_dump(target_doc), encoding="utf-8")
        snap = load_snapshot(path)
        assert snap.source_id == "TestTargetDB"
        assert Kind.QUERY_STORE_PLAN in snap.unavailable

    def test_missing_file(self, tmp_path: Path) -> None:
        """Test a missing file raises SnapshotFormatError."""
        with pytest.raises(SnapshotFormatError, match="snapshot not found"):
            load_snapshot(tmp_path / "nope.json")

    def test_unparseable_file(self, tmp_path: Path) -> None:
        """Test broken JSON raises SnapshotFormatError."""
        path = tmp_path / "broken.json"
        path.write_text("{not json", encoding="utf-8")
        with pytest.raises(SnapshotFormatError, match="cannot parse snapshot"):
            load_snapshot(path)

    def test_write_then_load(self, tmp_path: Path, target_doc: Dict[str, Any]) -> None:
        """Test a written snapshot loads back to an equal snapshot."""
        snap = snapshot_from_document(target_doc)
        path = write_snapshot(snap, tmp_path / "out" / "target.json")
        assert load_snapshot(path) == snap

    def test_document_export_shape(self) -> None:
        """Test exported documents nest children by short name."""
        table = CatalogObject(
            kind=Kind.TABLE,
            qualified_name="HR.T",
            attributes={},
            children=(CatalogObject(kind=Kind.INDEX, qualified_name="HR.T.IX", attributes={"KeyColumns": ("a", "b")}),),
        )
        doc = snapshot_to_document(make_snapshot("db", {Kind.TABLE: [table]}))
        assert doc["objects"]["Table"][0]["children"] == [
            {"kind": "Index", "name": "IX", "attributes": {"KeyColumns": ["a", "b"]}}
        ]
        assert doc["captured_at"] == "2024-05-01T09:00:00+00:00"
