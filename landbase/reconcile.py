"""
Land-mask reconciliation.

Intersects the per-dataset validity masks into the canonical land base:

    canonical land cell = hyde land  AND  new zone  AND  country code
                          AND  country87 + region resolvable

and emits the country / region / zone composite code rasters for those cells,
the same rasters for zone cells without land-use base land ("noland"), the
forest cell set, and an area ledger describing how much land each dataset
drops relative to the others. The ledger is diagnostic only.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Dict, Iterable, Optional, Tuple

import numpy as np

from .grid import FAO, HYDE, HYDE_CELL, MASKED_DATASETS, NODATA, POTVEG, SAGE, ZONE_NEW, ZONE_ORIG, WorkingGrid
from .lookup import CountryTable
from .utils.logging_utils import get_logger, log_quantities

log = get_logger("landbase.reconcile")

CODE_RASTERS = ("country", "country87", "region", "country_zone", "region_zone", "zone")
NOLAND_RASTERS = ("country_noland", "region_noland", "country_zone_noland", "region_zone_noland", "zone_noland")


@dataclass
class AreaLedger:
    """Global land area tracking (km^2)."""
    total_sage_land_area: float = 0.0
    extra_sage_area: float = 0.0
    new_zone_sage_area_lost: float = 0.0
    orig_zone_sage_area_lost: float = 0.0
    potveg_sage_area_lost: float = 0.0
    fao_sage_area_lost: float = 0.0
    fao_new_zone_sage_area_lost: float = 0.0
    total_hyde_land_area: float = 0.0
    extra_hyde_area: float = 0.0
    new_zone_hyde_area_lost: float = 0.0
    orig_zone_hyde_area_lost: float = 0.0
    potveg_hyde_area_lost: float = 0.0
    fao_hyde_area_lost: float = 0.0
    fao_new_zone_hyde_area_lost: float = 0.0
    no_region_hyde_area_lost: float = 0.0
    residual_ice_water_area: float = 0.0

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass
class ReconcileResult:
    rasters: Dict[str, np.ndarray]
    ledger: AreaLedger
    land_cells: Dict[str, np.ndarray] = field(default_factory=dict)
    canonical_cells: int = 0
    noland_cells: int = 0
    forest_cells: int = 0
    unknown_zone_ids: Tuple[int, ...] = ()


def _base_losses(area: np.ndarray, base: np.ndarray, masks: Dict[str, np.ndarray], other: str) -> Dict[str, float]:
    """Area of one base lost against each other dataset."""
    a = np.where(base, area, 0.0)

    def lost(missing: np.ndarray) -> float:
        return float(a[missing].sum())

    return {
        "total": float(a.sum()),
        "extra": lost(~masks[other]),
        "new_zone": lost(~masks[ZONE_NEW]),
        "orig_zone": lost(~masks[ZONE_ORIG]),
        "potveg": lost(~masks[POTVEG]),
        "fao": lost(~masks[FAO]),
        "fao_new_zone": lost(~masks[FAO] | ~masks[ZONE_NEW]),
    }


def _track_area(grid: WorkingGrid) -> AreaLedger:
    m = grid.masks
    sage = _base_losses(grid.raw[SAGE], m[SAGE], m, HYDE)
    hyde = _base_losses(grid.raw[HYDE], m[HYDE], m, SAGE)
    ledger = AreaLedger()
    for prefix, losses in (("sage", sage), ("hyde", hyde)):
        setattr(ledger, f"total_{prefix}_land_area", losses["total"])
        setattr(ledger, f"extra_{prefix}_area", losses["extra"])
        for key in ("new_zone", "orig_zone", "potveg", "fao", "fao_new_zone"):
            setattr(ledger, f"{key}_{prefix}_area_lost", losses[key])
    return ledger


def _emit_codes(
    out: Dict[str, np.ndarray],
    cells: np.ndarray,
    country: np.ndarray,
    region: np.ndarray,
    zone: np.ndarray,
    multiplier: int,
    suffix: str = "",
) -> None:
    out["country" + suffix][cells] = country
    out["region" + suffix][cells] = region
    out["zone" + suffix][cells] = zone
    out["country_zone" + suffix][cells] = country * multiplier + zone
    out["region_zone" + suffix][cells] = region * multiplier + zone


def reconcile(
    grid: WorkingGrid,
    table: CountryTable,
    multiplier: int = 10000,
    forest_range: Tuple[int, int] = (1, 8),
    zone_codes: Optional[Iterable[int]] = None,
) -> ReconcileResult:
    """
    Build the canonical masks, composite code rasters and forest cells.

    Runs once, after the reference year's land use and reference vegetation
    are final. Mutates ``grid.masks`` and appends to ``grid.forest_cells``.

    Parameters
    ----------
    grid : WorkingGrid
        Grid holding every raw dataset.
    table : CountryTable
        Country lookup with the merge rule configured.
    multiplier : int
        Composite code factor: ``code * multiplier + zone``.
    forest_range : (int, int)
        Inclusive range of forest thematic classes.
    zone_codes : iterable of int, optional
        Declared new-zone ids; ids found in the raster but not declared are
        reported.

    Raises
    ------
    LookupResolutionError
        If a gated cell carries a country code missing from the table.
    """
    n = grid.ncells
    masks = grid.masks

    # 1-2. per-dataset validity
    for name in MASKED_DATASETS:
        masks[name][:] = grid.valid(name)
    masks["forest"][:] = False
    masks["refveg"] &= masks[HYDE]

    rasters: Dict[str, np.ndarray] = {
        name: np.full(n, NODATA, dtype=np.int64) for name in CODE_RASTERS + NOLAND_RASTERS
    }
    rasters["valid_land_area"] = np.full(n, NODATA, dtype=np.float64)

    # 3. area tracking
    ledger = _track_area(grid)

    hyde_land = grid.raw[HYDE]
    cell_valid = masks[HYDE] & grid.valid(HYDE_CELL)
    residual = np.full(n, NODATA, dtype=np.float64)
    residual[cell_valid] = grid.raw[HYDE_CELL][cell_valid] - hyde_land[cell_valid]
    ledger.residual_ice_water_area = float(residual[cell_valid].sum())
    rasters["residual_ice_water_area"] = residual

    both = masks[HYDE] & masks[SAGE]
    sage_minus_hyde = np.full(n, NODATA, dtype=np.float64)
    sage_minus_hyde[both] = grid.raw[SAGE][both] - hyde_land[both]
    rasters["sage_minus_hyde_land_area"] = sage_minus_hyde

    country_raw = grid.raw[FAO]
    zone_raw = grid.raw[ZONE_NEW].astype(np.int64)

    # 4-5. canonical land cells
    gate = masks[HYDE] & masks[ZONE_NEW]
    n_no_country = int((gate & ~masks[FAO]).sum())
    cand = np.flatnonzero(gate & masks[FAO])
    res = table.resolve(country_raw[cand])
    cells = cand[res.resolved]
    _emit_codes(rasters, cells, res.country[res.resolved], res.region[res.resolved], zone_raw[cells], multiplier)
    rasters["country87"][cells] = res.country87[res.resolved]
    rasters["valid_land_area"][cells] = hyde_land[cells]
    dropped = cand[~res.resolved]
    ledger.no_region_hyde_area_lost = float(hyde_land[dropped].sum())
    if n_no_country:
        log.debug("%d land cells with a zone have no country code", n_no_country)
    if dropped.size:
        names = [table.iso3(c) or str(c) for c in np.unique(country_raw[dropped])]
        log.info(
            "%d land cells skipped: country without economic region (%.3f km^2): %s",
            dropped.size, ledger.no_region_hyde_area_lost, ", ".join(names),
        )

    # 6. zone cells without land-use base land
    cand_nl = np.flatnonzero(~masks[HYDE] & masks[ZONE_NEW] & masks[FAO])
    res_nl = table.resolve(country_raw[cand_nl])
    cells_nl = cand_nl[res_nl.resolved]
    _emit_codes(
        rasters, cells_nl, res_nl.country[res_nl.resolved], res_nl.region[res_nl.resolved],
        zone_raw[cells_nl], multiplier, suffix="_noland",
    )

    # 7. forest candidates; country/zone eligibility is checked downstream
    lo, hi = forest_range
    them = grid.refveg_thematic
    forest = masks["refveg"] & (them >= lo) & (them <= hi)
    masks["forest"][:] = forest
    known = set(grid.forest_cells)
    grid.forest_cells.extend(int(i) for i in np.flatnonzero(forest) if int(i) not in known)

    unknown: Tuple[int, ...] = ()
    if zone_codes is not None:
        present = np.unique(zone_raw[masks[ZONE_NEW]])
        unknown = tuple(int(z) for z in np.setdiff1d(present, np.asarray(list(zone_codes), dtype=np.int64)))
        if unknown:
            log.warning("%d new-zone ids are not in the zone info table: %s", len(unknown), list(unknown)[:10])

    log_quantities(log, "Global land area tracking (km^2)", ledger.as_dict())
    log.info(
        "Reconciled %d canonical land cells, %d noland cells, %d forest cells",
        cells.size, cells_nl.size, int(forest.sum()),
    )

    return ReconcileResult(
        rasters=rasters,
        ledger=ledger,
        land_cells={
            HYDE: np.flatnonzero(masks[HYDE]),
            SAGE: np.flatnonzero(masks[SAGE]),
            ZONE_NEW: np.flatnonzero(masks[ZONE_NEW]),
        },
        canonical_cells=int(cells.size),
        noland_cells=int(cells_nl.size),
        forest_cells=int(forest.sum()),
        unknown_zone_ids=unknown,
    )
