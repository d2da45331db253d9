"""
config
======

YAML configuration for scenario runs and the normalization policy.

Example ``scenarios.yml``::

    out_dir: out
    workers: 4

    policy:
      case_sensitive: false
      strip_comments: true
      boolean_literals: {"true": "1", "false": "0"}
      query_text:
        collapse_whitespace: true
        fold_case: false
      ignore_attributes:
        QueryStorePlan: [PlanId, QueryId, ForceFailureCount]

    object_filter:
      include: ["Sales.%", "HR.%"]
      exclude: ["re:^dbo\\.tmp_"]

    scenarios:
      - name: demo
        source:
          server: "localhost,1433"
          database: SchemaDriftDemo_Source
          auth_type: SqlAuth
          username: sa
          snapshot: snapshots/source.json
        target:
          server: "localhost,1433"
          database: SchemaDriftDemo_Target
          auth_type: SqlAuth
          username: sa
          snapshot: snapshots/target.json

Priority for descriptor fields: environment variable
(``SCHEMADRIFT_<SIDE>_<FIELD>``, e.g. ``SCHEMADRIFT_SOURCE_PASSWORD``) >
CLI override > config file.
"""

from __future__ import annotations

import argparse
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, FrozenSet, List, Mapping, Optional

import yaml

from .filters import ObjectFilter
from .models import Kind
from .policy import DEFAULT_BOOLEAN_LITERALS, POLICY_VERSION, NormalizationPolicy, QueryTextPolicy
from .providers import AuthType, ConnectionDescriptor

ENV_PREFIX = "SCHEMADRIFT"
SIDES = ("source", "target")
DESCRIPTOR_FIELDS = ("server", "database", "auth_type", "username", "password", "snapshot")
REQUIRED_FIELDS = ("server", "database")


@dataclass(frozen=True)
class Scenario:
    """One named source/target comparison."""

    name: str
    source: ConnectionDescriptor
    target: ConnectionDescriptor


# ---- loading ----
def load_config(path: Path) -> Dict[str, Any]:
    """Load YAML config file; a missing file raises SystemExit."""
    if not path.exists():
        raise SystemExit(f"ERROR: config not found: {path}")
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def deep_get(d: Mapping[str, Any], keys: List[str], default: Any = None) -> Any:
    """Safely get nested dict value with default."""
    cur: Any = d
    for k in keys:
        if not isinstance(cur, Mapping) or k not in cur:
            return default
        cur = cur[k]
    return cur


def get_env_var(side: str, field: str) -> Optional[str]:
    """Return ``SCHEMADRIFT_<SIDE>_<FIELD>`` from the environment, or None."""
    return os.environ.get(f"{ENV_PREFIX}_{side.upper()}_{field.upper()}")


def pick(*values: Optional[str]) -> Optional[str]:
    """First value that is neither None nor empty."""
    for v in values:
        if v is not None and v != "":
            return v
    return None


# ---- descriptors / scenarios ----
def build_descriptor(
    side_cfg: Mapping[str, Any],
    side: str,
    overrides: Optional[Mapping[str, Optional[str]]] = None,
    scenario: str = "",
) -> ConnectionDescriptor:
    """Build a :class:`ConnectionDescriptor` for *side* (``source`` or ``target``).

    Parameters
    ----------
    side_cfg:
        The ``source:``/``target:`` mapping of one scenario.
    side:
        Which side is being built; selects env vars and CLI overrides.
    overrides:
        CLI values keyed ``<side>_<field>`` (e.g. ``source_server``).
    scenario:
        Scenario name, used in error messages only.

    Raises
    ------
    SystemExit
        If a required field is missing or the descriptor is invalid.
    """
    overrides = overrides or {}
    values: Dict[str, Optional[str]] = {}
    for field in DESCRIPTOR_FIELDS:
        cfg_val = side_cfg.get(field)
        values[field] = pick(
            get_env_var(side, field),
            overrides.get(f"{side}_{field}"),
            str(cfg_val) if cfg_val is not None else None,
        )

    where = f"{scenario}." if scenario else ""
    for field in REQUIRED_FIELDS:
        if not values[field]:
            env_name = f"{ENV_PREFIX}_{side.upper()}_{field.upper()}"
            raise SystemExit(
                f"ERROR: missing {where}{side}.{field} "
                f"(set it in the config, {env_name}, or --{side}-{field})"
            )

    try:
        auth_type = AuthType.parse(values["auth_type"]) if values["auth_type"] else AuthType.TRUSTED_CONNECTION
        snapshot = values["snapshot"]
        return ConnectionDescriptor(
            server=values["server"] or "",
            database=values["database"] or "",
            auth_type=auth_type,
            username=values["username"],
            password=values["password"],
            snapshot_path=Path(snapshot) if snapshot else None,
            label=side,
        )
    except ValueError as exc:
        raise SystemExit(f"ERROR: invalid {where}{side}: {exc}") from None


def parse_scenarios(cfg: Mapping[str, Any], overrides: Optional[Mapping[str, Optional[str]]] = None) -> List[Scenario]:
    """Read the ``scenarios:`` list; top-level ``source``/``target`` form one scenario named ``default``."""
    raw = cfg.get("scenarios")
    if raw is None and ("source" in cfg or "target" in cfg):
        raw = [{"name": "default", "source": cfg.get("source") or {}, "target": cfg.get("target") or {}}]
    if not isinstance(raw, list) or not raw:
        raise SystemExit("ERROR: config defines no scenarios")

    scenarios: List[Scenario] = []
    seen = set()
    for i, entry in enumerate(raw, start=1):
        if not isinstance(entry, Mapping):
            raise SystemExit(f"ERROR: scenario #{i} must be a mapping")
        name = str(entry.get("name") or f"scenario{i}")
        if name in seen:
            raise SystemExit(f"ERROR: duplicate scenario name: {name}")
        seen.add(name)
        scenarios.append(
            Scenario(
                name=name,
                source=build_descriptor(entry.get("source") or {}, "source", overrides, name),
                target=build_descriptor(entry.get("target") or {}, "target", overrides, name),
            )
        )
    return scenarios


# ---- policy ----
def _as_bool(value: Any, field: str) -> bool:
    if isinstance(value, bool):
        return value
    raise SystemExit(f"ERROR: policy.{field} must be true or false, got {value!r}")


def policy_from_mapping(cfg: Optional[Mapping[str, Any]]) -> NormalizationPolicy:
    """Build a :class:`NormalizationPolicy` from the ``policy:`` section of a config."""
    cfg = cfg or {}
    if not isinstance(cfg, Mapping):
        raise SystemExit("ERROR: policy must be a mapping")

    ignore: Dict[Kind, FrozenSet[str]] = {}
    for raw_kind, attrs in (cfg.get("ignore_attributes") or {}).items():
        try:
            kind = Kind.parse(raw_kind)
        except ValueError:
            raise SystemExit(f"ERROR: policy.ignore_attributes: unknown object kind {raw_kind!r}") from None
        if isinstance(attrs, str):
            attrs = [attrs]
        ignore[kind] = frozenset(str(a) for a in attrs or [])

    literals = cfg.get("boolean_literals")
    if literals is None:
        boolean_literals = dict(DEFAULT_BOOLEAN_LITERALS)
    else:
        boolean_literals = {str(k).casefold(): str(v) for k, v in literals.items()}

    query_text = QueryTextPolicy(
        collapse_whitespace=_as_bool(deep_get(cfg, ["query_text", "collapse_whitespace"], True), "query_text.collapse_whitespace"),
        strip_comments=_as_bool(deep_get(cfg, ["query_text", "strip_comments"], False), "query_text.strip_comments"),
        fold_case=_as_bool(deep_get(cfg, ["query_text", "fold_case"], False), "query_text.fold_case"),
    )
    return NormalizationPolicy(
        version=str(cfg.get("version", POLICY_VERSION)),
        case_sensitive=_as_bool(cfg.get("case_sensitive", False), "case_sensitive"),
        strip_comments=_as_bool(cfg.get("strip_comments", True), "strip_comments"),
        canonicalize_create_header=_as_bool(cfg.get("canonicalize_create_header", True), "canonicalize_create_header"),
        boolean_literals=boolean_literals,
        query_text=query_text,
        ignore_attributes=ignore,
    )


def load_policy(path: Path) -> NormalizationPolicy:
    """Load a policy from a YAML file holding either a bare policy or a ``policy:`` section."""
    cfg = load_config(path)
    return policy_from_mapping(cfg.get("policy", cfg))


# ---- filters ----
def read_object_filter(cfg: Mapping[str, Any], args: argparse.Namespace) -> ObjectFilter:
    """Config patterns extended by repeatable ``--include``/``--exclude`` CLI flags."""
    include = list(deep_get(cfg, ["object_filter", "include"], []) or [])
    exclude = list(deep_get(cfg, ["object_filter", "exclude"], []) or [])
    include.extend(getattr(args, "include", None) or [])
    exclude.extend(getattr(args, "exclude", None) or [])
    return ObjectFilter(
        include=include,
        exclude=exclude,
        case_sensitive=bool(deep_get(cfg, ["object_filter", "case_sensitive"], False)),
    )
