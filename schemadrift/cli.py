"""
cli
===

Run one or more source/target scenarios from a YAML config and write, per
scenario, ``<out>/<scenario>/diff.json`` and ``<out>/<scenario>/SUMMARY.md``.

CLI Usage
---------

Basic run::

    schemadrift --config scenarios.yml

Only some scenarios, custom output directory::

    schemadrift --config scenarios.yml --scenario demo --out out_demo

Override a single descriptor field (example: target snapshot)::

    schemadrift --config scenarios.yml --target-snapshot exports/target_2024-05-02.json

Exit status is 1 when any scenario fails to load its snapshots, else 0.
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .config import (
    DESCRIPTOR_FIELDS,
    SIDES,
    Scenario,
    load_config,
    load_policy,
    parse_scenarios,
    policy_from_mapping,
    read_object_filter,
)
from .engine import RunContext, diff_snapshots
from .errors import SnapshotFormatError
from .filters import ObjectFilter, filter_snapshot
from .models import DiffResult
from .providers import FileSnapshotProvider, MetadataProvider
from .reporting import generate_summary_md, write_result_json
from .utils import safe_name

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="schemadrift",
        description="SQL Server schema drift audit: diff two catalog snapshots per scenario.",
    )
    ap.add_argument("--config", default="scenarios.yml", help="Path to scenarios.yml (default: scenarios.yml)")
    ap.add_argument("--out", default=None, help="Override out_dir from config")
    ap.add_argument("--scenario", action="append", default=[], help="Run only this scenario (repeatable)")
    ap.add_argument("--workers", type=int, default=None, help="Kinds diffed concurrently (default: config or 1)")
    ap.add_argument("--policy", default=None, help="Normalization policy YAML (replaces the config's policy section)")
    ap.add_argument("--case-sensitive", action="store_true", help="Compare identifiers case-sensitively")
    ap.add_argument(
        "--include",
        action="append",
        default=[],
        help="Include object pattern (repeatable). SQL LIKE (%% _) or regex via re:... e.g. --include 'Sales.%%'",
    )
    ap.add_argument(
        "--exclude",
        action="append",
        default=[],
        help="Exclude object pattern (repeatable). SQL LIKE (%% _) or regex via re:...",
    )
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    # password: env only (SCHEMADRIFT_<SIDE>_PASSWORD)
    for side in SIDES:
        for field in DESCRIPTOR_FIELDS:
            if field == "password":
                continue
            ap.add_argument(f"--{side}-{field.replace('_', '-')}", dest=f"{side}_{field}", default=None)
    return ap


def read_workers(cfg: Dict[str, Any], args: argparse.Namespace) -> int:
    workers = args.workers if args.workers is not None else cfg.get("workers", 1)
    if not isinstance(workers, int) or isinstance(workers, bool) or workers < 1:
        raise SystemExit(f"ERROR: workers must be a positive integer, got {workers!r}")
    return workers


def select_scenarios(scenarios: List[Scenario], names: Sequence[str]) -> List[Scenario]:
    if not names:
        return scenarios
    known = {s.name for s in scenarios}
    unknown = [n for n in names if n not in known]
    if unknown:
        raise SystemExit(f"ERROR: unknown scenario(s): {', '.join(unknown)}")
    return [s for s in scenarios if s.name in names]


def run_scenario(
    scenario: Scenario,
    provider: MetadataProvider,
    context: RunContext,
    flt: ObjectFilter,
    out_dir: Path,
    header_lines: List[str],
) -> DiffResult:
    """Fetch both snapshots concurrently, diff them and write the outputs."""
    with ThreadPoolExecutor(max_workers=2) as ex:
        src_fut = ex.submit(provider.fetch, scenario.source)
        tgt_fut = ex.submit(provider.fetch, scenario.target)
        source = src_fut.result()
        target = tgt_fut.result()

    result = diff_snapshots(filter_snapshot(source, flt), filter_snapshot(target, flt), context)
    write_result_json(result, out_dir / "diff.json")
    generate_summary_md(
        out_dir,
        result,
        header_lines
        + [
            f"- Scenario: `{scenario.name}`",
            f"- {scenario.source.describe()}",
            f"- {scenario.target.describe()}",
        ],
    )
    return result


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the CLI entry-point."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    cfg_path = Path(args.config).resolve()
    cfg = load_config(cfg_path)
    out_root = Path(args.out or cfg.get("out_dir", "out")).resolve()

    policy = load_policy(Path(args.policy)) if args.policy else policy_from_mapping(cfg.get("policy"))
    if args.case_sensitive:
        policy = dataclasses.replace(policy, case_sensitive=True)
    context = RunContext(policy=policy, max_workers=read_workers(cfg, args))
    flt = read_object_filter(cfg, args)

    overrides = {f"{side}_{field}": getattr(args, f"{side}_{field}", None) for side in SIDES for field in DESCRIPTOR_FIELDS}
    scenarios = select_scenarios(parse_scenarios(cfg, overrides), args.scenario)
    provider = FileSnapshotProvider(base_dir=cfg_path.parent)

    header = [
        f"- Config: `{cfg_path.name}`",
        f"- Object filters: include={flt.include or '[]'} exclude={flt.exclude or '[]'}",
    ]

    failed = 0
    for scenario in scenarios:
        out_dir = out_root / safe_name(scenario.name)
        print(f"Scenario {scenario.name}: diffing {scenario.source.database} -> {scenario.target.database}...")
        try:
            result = run_scenario(scenario, provider, context, flt, out_dir, header)
        except SnapshotFormatError as exc:
            failed += 1
            logger.error("scenario %s: %s", scenario.name, exc)
            print(f"  FAILED: {exc}")
            continue
        s = result.summary
        print(
            f"  added={s.added} removed={s.removed} modified={s.modified} "
            f"unchanged={s.unchanged} unknown={s.unknown} warnings={len(result.warnings)}"
        )
        print(f"  Summary: {out_dir / 'SUMMARY.md'}")

    print("\nDone.")
    if failed:
        print(f"{failed} scenario(s) failed to load snapshots.")
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
