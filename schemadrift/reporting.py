"""
reporting
=========

JSON export and Markdown summary of a :class:`~schemadrift.models.DiffResult`.

Primary API
-----------
- :func:`result_to_dict` (deterministic, JSON-ready mapping)
- :func:`write_result_json`
- :func:`generate_summary_md` (``SUMMARY.md`` plus unified diffs of changed
  definitions under ``diffs/``)
"""

from __future__ import annotations

import datetime as dt
import json
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Mapping

from .models import (
    ABSENT,
    CategoryCounts,
    CategoryDiff,
    DiffResult,
    DiffWarning,
    ObjectDiff,
    Status,
)
from .schema import AttrType, attr_type
from .textdiff import md_anchor, rel_link, write_definition_diff, write_text
from .utils import display_value, safe_name

TEXT_DIFF_TYPES = frozenset({AttrType.DEFINITION, AttrType.QUERY_TEXT})


# ---- JSON ----
def encode_value(value: Any) -> Any:
    """JSON-ready form of an attribute value (``ABSENT`` -> ``"<absent>"``)."""
    if value is ABSENT:
        return ABSENT.value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (tuple, list)):
        return [encode_value(v) for v in value]
    if isinstance(value, (dt.date, dt.time)):
        return value.isoformat()
    if isinstance(value, Mapping):
        return {str(k): encode_value(v) for k, v in value.items()}
    if value is None or isinstance(value, (str, int, float)):
        return value
    return str(value)


def _counts(counts: CategoryCounts) -> Dict[str, int]:
    return {
        "added": counts.added,
        "removed": counts.removed,
        "modified": counts.modified,
        "unchanged": counts.unchanged,
        "unknown": counts.unknown,
        "total": counts.total,
    }


def diff_to_dict(diff: ObjectDiff) -> Dict[str, Any]:
    out: Dict[str, Any] = {
        "kind": diff.kind.value,
        "qualified_name": diff.qualified_name,
        "status": diff.status.value,
    }
    if diff.changes:
        out["changes"] = [
            {
                "field": c.field,
                "old_value": encode_value(c.old_value),
                "new_value": encode_value(c.new_value),
                "normalized": c.normalized,
            }
            for c in diff.changes
        ]
    if diff.child_diffs:
        out["children"] = [diff_to_dict(c) for c in diff.child_diffs]
    if diff.unnormalized:
        out["unnormalized"] = list(diff.unnormalized)
    return out


def _warning_to_dict(w: DiffWarning) -> Dict[str, Any]:
    return {
        "code": w.code.value,
        "kind": w.kind.value if w.kind is not None else None,
        "qualified_name": w.qualified_name,
        "message": w.message,
    }


def _category_to_dict(cat: CategoryDiff) -> Dict[str, Any]:
    return {
        "kind": cat.kind.value,
        "availability": cat.availability.value,
        "counts": _counts(cat.counts),
        "added": [diff_to_dict(d) for d in cat.added],
        "removed": [diff_to_dict(d) for d in cat.removed],
        "modified": [diff_to_dict(d) for d in cat.modified],
        "unchanged": [diff_to_dict(d) for d in cat.unchanged],
        "unknown": [diff_to_dict(d) for d in cat.unknown],
        "unnormalized": list(cat.unnormalized),
    }


def _ref(diff: ObjectDiff) -> Dict[str, str]:
    return {"kind": diff.kind.value, "qualified_name": diff.qualified_name, "status": diff.status.value}


def result_to_dict(result: DiffResult) -> Dict[str, Any]:
    """Deterministic mapping of *result*; equal results give equal mappings."""
    return {
        "generated_at": result.generated_at.isoformat(),
        "source_id": result.source_id,
        "target_id": result.target_id,
        "policy_version": result.policy_version,
        "summary": _counts(result.summary),
        "categories": [_category_to_dict(c) for c in result.categories],
        "alphabetical": [_ref(d) for d in result.alphabetical],
        "by_category": [_ref(d) for d in result.by_category],
        "warnings": [_warning_to_dict(w) for w in result.warnings],
    }


def write_result_json(result: DiffResult, path: Path) -> Path:
    write_text(path, json.dumps(result_to_dict(result), indent=2, ensure_ascii=False) + "\n")
    return path


# ---- Markdown ----
_STATUS_MARK = {
    Status.ADDED: "+",
    Status.REMOVED: "-",
    Status.MODIFIED: "~",
    Status.UNCHANGED: "=",
    Status.UNKNOWN: "?",
}


def _diff_lines(
    diff: ObjectDiff,
    summary_path: Path,
    diffs_dir: Path,
    depth: int = 0,
) -> List[str]:
    """Bullet lines for one object diff and its non-unchanged children."""
    indent = "  " * depth
    label = diff.qualified_name if depth == 0 else diff.name
    lines = [f"{indent}- `{_STATUS_MARK[diff.status]}` {diff.kind.value} **{label}** ({diff.status.value})\n"]
    for c in diff.changes:
        if attr_type(diff.kind, c.field) in TEXT_DIFF_TYPES and isinstance(c.old_value, str) and isinstance(c.new_value, str):
            out_path = diffs_dir / diff.kind.value / f"{safe_name(diff.qualified_name)}.{c.field}.diff"
            if write_definition_diff(out_path, c.old_value, c.new_value, f"source/{diff.qualified_name}", f"target/{diff.qualified_name}"):
                lines.append(f"{indent}  - {c.field} changed: [{out_path.name}]({rel_link(summary_path, out_path)})\n")
                continue
        raw = "" if c.normalized else " _(unnormalized)_"
        lines.append(
            f"{indent}  - {c.field}: `{display_value(c.old_value)}` -> `{display_value(c.new_value)}`{raw}\n"
        )
    for child in diff.child_diffs:
        if child.status is not Status.UNCHANGED:
            lines.extend(_diff_lines(child, summary_path, diffs_dir, depth + 1))
    return lines


def generate_summary_md(out_dir: Path, result: DiffResult, header_lines: List[str]) -> Path:
    """Generate ``SUMMARY.md`` for *result* under *out_dir*.

    Parameters
    ----------
    out_dir:
        Output directory where ``SUMMARY.md`` (and ``diffs/``) are written.
    result:
        Diff to summarize.
    header_lines:
        Bullet-style lines to include near the top (config/descriptors/policy).

    Returns
    -------
    pathlib.Path
        The path to the generated ``SUMMARY.md``.

    Notes
    -----
    Changed definitions and query texts are written as unified diffs under
    ``out_dir/diffs/<Kind>/`` and linked *relatively*, so the output directory
    can be moved or archived while preserving navigation.
    """
    summary_path = out_dir / "SUMMARY.md"
    diffs_dir = out_dir / "diffs"

    lines: List[str] = []
    lines.append("# Schema Drift Summary\n\n")
    lines.append(f"_Generated: {result.generated_at.strftime('%Y-%m-%d %H:%M:%S %Z').strip()}_\n\n")
    lines.append(f"- Source: `{result.source_id}`\n")
    lines.append(f"- Target: `{result.target_id}`\n")
    lines.append(f"- Normalization policy: v{result.policy_version}\n")
    for h in header_lines:
        lines.append(h + "\n")
    lines.append("\n")

    lines.append("## Overview\n\n")
    lines.append("| Category | Added | Removed | Modified | Unchanged | Unknown |\n")
    lines.append("| --- | ---: | ---: | ---: | ---: | ---: |\n")
    for cat in result.categories:
        if not cat.is_available:
            lines.append(f"| {cat.kind.value} | _unavailable_ | | | | |\n")
            continue
        n = cat.counts
        lines.append(f"| {cat.kind.value} | {n.added} | {n.removed} | {n.modified} | {n.unchanged} | {n.unknown} |\n")
    s = result.summary
    lines.append(f"| **Total** | {s.added} | {s.removed} | {s.modified} | {s.unchanged} | {s.unknown} |\n\n")

    drifted = [c for c in result.categories if c.is_available and (c.counts.drift or c.counts.unknown)]
    lines.append("## Contents\n")
    for cat in drifted:
        lines.append(f"- [{cat.kind.value}](#{md_anchor(cat.kind.value)})\n")
    if result.warnings:
        lines.append("- [Warnings](#warnings)\n")
    lines.append("\n")

    if not drifted:
        lines.append("- ✅ No differences\n\n")
    for cat in drifted:
        lines.append(f"## {cat.kind.value}\n\n")
        for diff in cat.added + cat.removed + cat.modified + cat.unknown:
            lines.extend(_diff_lines(diff, summary_path, diffs_dir))
        if cat.unnormalized:
            lines.append(f"\n_Unnormalized fields: {', '.join(cat.unnormalized)}_\n")
        lines.append("\n")

    if result.warnings:
        lines.append("## Warnings\n\n")
        for w in result.warnings:
            where = " ".join(p for p in (w.kind.value if w.kind else "", w.qualified_name) if p)
            prefix = f"{where}: " if where else ""
            lines.append(f"- **{w.code.value}** {prefix}{w.message}\n")
        lines.append("\n")

    write_text(summary_path, "".join(lines))
    return summary_path
