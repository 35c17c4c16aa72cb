"""
landbase: land-cover disaggregation and land-mask reconciliation

Builds a consistent land base on a fine global working grid:
1) disaggregate → hand coarse land-cover class areas to the unclaimed land of
                  each fine cell, once per processed year
2) reconcile    → intersect the per-dataset land masks, resolve countries and
                  regions, emit composite country/region × zone code rasters

The Typer CLI (``python -m landbase``) drives both from one YAML config.

License: MIT
"""
from importlib.metadata import PackageNotFoundError, version

__all__ = [
    "cli",
    "disaggregate",
    "errors",
    "grid",
    "io",
    "lookup",
    "permutation",
    "pipeline",
    "reconcile",
    "get_version",
]


def get_version() -> str:
    try:
        return version("landbase")
    except PackageNotFoundError:
        return "0.1.0"


__version__ = get_version()
