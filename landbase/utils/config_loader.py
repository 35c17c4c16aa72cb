"""
Config loader & resolver

- load_yaml(path): loads YAML into dict (requires PyYAML)
- resolve_config(path, overrides_json): loads, applies optional JSON overrides,
  and fills the defaults every run relies on
"""
from __future__ import annotations

import copy
import json
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

DEFAULTS: Dict[str, Any] = {
    "run": {
        "output_dir": "outputs",
        "random_seed": 42,
        "diagnostics": False,
    },
    "codes": {"multiplier": 10000},
    "lookup": {"merge": {"code": 186, "members": [272, 273]}},
    "landcover": {"forest_min": 1, "forest_max": 8},
    "logging": {"level": "INFO", "to_file": False, "to_json": False, "dir": "logs"},
}


def load_yaml(path: str | Path) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config not found: {p}")
    return yaml.safe_load(p.read_text(encoding="utf-8")) or {}


def deep_merge(a: Dict, b: Dict) -> Dict:
    """Recursively merge dict b into a (returns a new dict)."""
    out = dict(a)
    for k, v in b.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def with_defaults(cfg: Dict[str, Any]) -> Dict[str, Any]:
    merged = deep_merge(copy.deepcopy(DEFAULTS), cfg)
    run = merged["run"]
    # the reference year is always processed, and last
    years = [int(y) for y in run.get("years") or []]
    if "reference_year" in run:
        ref = int(run["reference_year"])
        years = [y for y in years if y != ref] + [ref]
    run["years"] = years
    return merged


def resolve_config(path: str | Path, overrides_json: Optional[str] = None) -> Dict[str, Any]:
    cfg = load_yaml(path)
    if overrides_json:
        # Accept a JSON string (e.g. {"run":{"random_seed":7}})
        cfg = deep_merge(cfg, json.loads(overrides_json))
    return with_defaults(cfg)
