"""
Full land-base run: load inputs -> disaggregate every year -> reconcile -> write outputs.

The reference year is processed last, so its land use and reference
vegetation are what the reconciliation and the written outputs see. Earlier
years only contribute their summaries.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import numpy as np

from .disaggregate import calc_refveg_area
from .errors import InputError, TopologyError
from .grid import DATASETS, HYDE, LU_TYPES, SAGE, ZONE_NEW, GridTopology, WorkingGrid
from .io import RasterInfo, read_ascii_grid, read_bil, read_hyde_year, read_landcover, read_zone_info, write_raster, write_text_column
from .lookup import CountryTable
from .permutation import PermutationCache
from .reconcile import CODE_RASTERS, NOLAND_RASTERS, reconcile
from .utils.logging_utils import get_logger

log = get_logger("landbase.pipeline")


def _read_input(entry: Dict[str, Any], name: str, ncells: int) -> Tuple[np.ndarray, Optional[float]]:
    """One static dataset as configured: ``{path, format, dtype, nodata}``."""
    if not entry or "path" not in entry:
        raise InputError("no input path configured", dataset=name)
    fmt = str(entry.get("format", "bil")).lower()
    if fmt == "ascii":
        values, info = read_ascii_grid(entry["path"], dataset=name)
        if values.size != ncells:
            raise InputError(f"grid has {values.size} cells, expected {ncells}", dataset=name)
        return values, entry.get("nodata", info.nodata)
    if fmt != "bil":
        raise InputError(f"unknown input format '{fmt}'", dataset=name)
    values = read_bil(entry["path"], entry.get("dtype", "float32"), ncells, dataset=name)
    return values, entry.get("nodata")


def _build_grid(cfg: Dict[str, Any]) -> WorkingGrid:
    g = cfg["grid"]
    grid = WorkingGrid(int(g["nrows"]), int(g["ncols"]))
    inputs = cfg.get("inputs", {})
    for name in DATASETS:
        values, nodata = _read_input(inputs.get(name), name, grid.ncells)
        grid.set_dataset(name, values, nodata)
        log.debug("Loaded %s (%d valid cells)", name, int(grid.valid(name).sum()))
    return grid


def _build_topology(cfg: Dict[str, Any], grid: WorkingGrid) -> GridTopology:
    lc = cfg["landcover"]
    topo = GridTopology(fine_cols=grid.ncols, fine_rows=grid.nrows, coarse_cols=int(lc["ncols"]))
    if "nrows" in lc and int(lc["nrows"]) != topo.coarse_rows:
        raise TopologyError(
            f"land cover has {lc['nrows']} rows, the grid split implies {topo.coarse_rows}"
        )
    return topo


def _write_outputs(
    out_dir: Path,
    grid: WorkingGrid,
    rasters: Dict[str, np.ndarray],
    land_cells: Mapping[str, np.ndarray],
    diagnostics: bool,
    info: Optional[RasterInfo] = None,
) -> List[str]:
    written: List[str] = []
    transform = info.transform if info is not None else None

    def _raster(arr: np.ndarray, name: str, where: Path = out_dir) -> None:
        if arr.dtype.kind == "f":
            arr = arr.astype(np.float32)
        elif arr.dtype != np.uint8:
            arr = arr.astype(np.int32)
        written.append(str(write_raster(arr, name, where, grid.nrows, grid.ncols, transform)))

    for name in CODE_RASTERS:
        _raster(rasters[name], name)
    _raster(rasters["valid_land_area"], "valid_land_area")
    written.append(str(write_text_column(grid.forest_cells, "forest_cells.txt", out_dir)))
    for name in (HYDE, SAGE, ZONE_NEW):
        written.append(str(write_text_column(land_cells[name], f"land_cells_{name}.txt", out_dir)))

    if diagnostics:
        diag = out_dir / "diagnostics"
        for name in NOLAND_RASTERS + ("residual_ice_water_area", "sage_minus_hyde_land_area"):
            _raster(rasters[name], name, diag)
        for name, mask in grid.masks.items():
            _raster(mask.astype(np.uint8), f"mask_{name}", diag)
        for lu_type in LU_TYPES:
            _raster(grid.land_use_of(lu_type), f"{lu_type}_area", diag)
        _raster(grid.refveg_area, "refveg_area", diag)
        _raster(grid.refveg_thematic, "refveg_thematic", diag)
    return written


def run_pipeline(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """
    Run the land-base pipeline for one resolved config.

    Parameters
    ----------
    cfg : dict
        Config resolved by ``resolve_config`` (defaults filled, years ordered).

    Returns
    -------
    dict
        Artifact summary: output paths, per-year summaries and the area ledger.

    Raises
    ------
    LandbaseError
        Any input, topology, lookup or allocation failure; partial outputs
        are left as written.
    """
    run = cfg["run"]
    out_dir = Path(run["output_dir"]).resolve()
    out_dir.mkdir(parents=True, exist_ok=True)
    years = [int(y) for y in run.get("years") or []]
    if not years:
        raise InputError("no years to process (set run.years or run.reference_year)", dataset="hyde")
    diagnostics = bool(run.get("diagnostics", False))

    grid = _build_grid(cfg)
    topology = _build_topology(cfg, grid)
    lc = cfg["landcover"]
    class_codes = [int(c) for c in lc["class_codes"]]
    coarse_areas = read_landcover(lc["path"], lc.get("dtype", "float32"), len(class_codes), topology.coarse_cells)

    lookup = cfg.get("lookup", {})
    merge = lookup.get("merge", {}) or {}
    table = CountryTable.from_csv(
        lookup["countries_csv"],
        merge_code=merge.get("code"),
        merge_members=merge.get("members", ()),
    )
    zone_codes = None
    if lookup.get("zone_info_csv"):
        zone_codes = read_zone_info(lookup["zone_info_csv"])["zone_id"].tolist()

    log.info(
        "Grid %dx%d, land cover %dx%d (split %d), %d classes, years %s",
        grid.nrows, grid.ncols, topology.coarse_rows, topology.coarse_cols,
        topology.num_split, len(class_codes), years,
    )

    cache = PermutationCache(topology.coarse_cells, topology.block_size, seed=run.get("random_seed"))
    hyde_dir = cfg["inputs"]["land_use"]["dir"]
    info: Optional[RasterInfo] = None
    year_summaries: List[Dict[str, Any]] = []
    for year in years:
        grid.reset_working_arrays()
        areas, info = read_hyde_year(hyde_dir, year)
        if (info.nrows, info.ncols) != (grid.nrows, grid.ncols):
            raise InputError(
                f"land use {year} is {info.nrows}x{info.ncols}, grid is {grid.nrows}x{grid.ncols}",
                dataset="hyde",
            )
        grid.set_land_use(areas, nodata=info.nodata)
        summary = calc_refveg_area(grid, topology, cache, coarse_areas, class_codes, year=year)
        year_summaries.append(summary.as_dict())
        if diagnostics:
            write_raster(grid.refveg_area.astype(np.float32), f"refveg_area_{year}", out_dir / "diagnostics",
                         grid.nrows, grid.ncols, info.transform)

    result = reconcile(
        grid,
        table,
        multiplier=int(cfg["codes"]["multiplier"]),
        forest_range=(int(lc["forest_min"]), int(lc["forest_max"])),
        zone_codes=zone_codes,
    )
    cache.release()

    written = _write_outputs(out_dir, grid, result.rasters, result.land_cells, diagnostics, info)

    summary_path = out_dir / "run_summary.json"
    run_summary = {
        "reference_year": years[-1],
        "years": year_summaries,
        "ledger": result.ledger.as_dict(),
        "canonical_cells": result.canonical_cells,
        "noland_cells": result.noland_cells,
        "forest_cells": result.forest_cells,
        "unknown_zone_ids": list(result.unknown_zone_ids),
    }
    summary_path.write_text(json.dumps(run_summary, indent=2), encoding="utf-8")
    log.info("Land base written to %s (%d files)", out_dir, len(written) + 1)

    return {
        "stage": "landbase",
        "output_dir": str(out_dir),
        "summary_file": str(summary_path),
        "files": written,
        "years": years,
        "canonical_cells": result.canonical_cells,
        "forest_cells": result.forest_cells,
    }
