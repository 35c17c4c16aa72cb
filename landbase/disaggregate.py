"""
Disaggregation of coarse land-cover areas onto the working grid.

The land-use base (HYDE) areas are kept as they are, apart from a consistency
clamp. Each coarse land-cover cell then hands out its class areas, as
reference vegetation, to whatever land in its fine cells is not yet claimed
by land use. Fine cells are served in the cached per-coarse-cell order, and
classes are drawn in ascending class index.

Area bookkeeping (km^2):
    refveg_area(cell) + sum(main land use)(cell) <= land_area(cell)
    sum(refveg_area over block) + leftover(block) == sum(class pool)
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Dict, Optional, Sequence

import numpy as np

from .errors import InputError, TopologyError
from .grid import HYDE, NODATA, NUM_LU_MAIN, GridTopology, WorkingGrid
from .permutation import PermutationCache
from .utils.logging_utils import get_logger

log = get_logger("landbase.disaggregate")

AREA_TOLERANCE = 1e-6


@dataclass
class BlockResult:
    """Output of one coarse-cell disaggregation, in block (not grid) order."""
    refveg_area: np.ndarray
    refveg_thematic: np.ndarray
    lu_areas: np.ndarray
    leftover: np.ndarray
    clamped: int


@dataclass
class RefvegSummary:
    year: Optional[int] = None
    pool_total: float = 0.0
    allocated_total: float = 0.0
    leftover_total: float = 0.0
    land_use_total: float = 0.0
    refveg_cells: int = 0
    clamped_cells: int = 0

    def as_dict(self) -> Dict[str, float]:
        return asdict(self)


def validate_land_use(
    land_area: np.ndarray,
    land_valid: np.ndarray,
    lu_areas: np.ndarray,
    tol: float = AREA_TOLERANCE,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Make land-use areas consistent with the land area of their cells.

    NODATA and negative land-use values count as zero. Where the main classes
    add up to more than the cell's land area, every class of that cell is
    scaled down by the same factor.

    Returns
    -------
    (lu_areas, clamped) : (np.ndarray, np.ndarray)
        Cleaned copy of ``lu_areas`` and a boolean flag per cell.
    """
    lu = np.where((lu_areas == NODATA) | (lu_areas < 0), 0.0, lu_areas).astype(np.float64)
    land = np.where(land_valid, np.maximum(land_area, 0.0), 0.0)
    main_sum = lu[:, :NUM_LU_MAIN].sum(axis=1)
    clamped = land_valid & (main_sum > land + tol)
    if clamped.any():
        scale = land[clamped] / main_sum[clamped]
        lu[clamped] *= scale[:, None]
    return lu, clamped


def disaggregate_block(
    coarse_id: int,
    class_areas: np.ndarray,
    land_area: np.ndarray,
    lu_areas: np.ndarray,
    order: np.ndarray,
    class_codes: Sequence[int],
    land_valid: Optional[np.ndarray] = None,
    tol: float = AREA_TOLERANCE,
) -> BlockResult:
    """
    Distribute one coarse cell's class areas over the unclaimed land of its fine cells.

    Parameters
    ----------
    coarse_id : int
        Coarse cell id, used for error context.
    class_areas : np.ndarray
        Area per land-cover class (km^2), the pool to hand out.
    land_area : np.ndarray
        Land-use base land area per fine cell (km^2), block order.
    lu_areas : np.ndarray
        Land-use class areas, shape ``(block_size, n_lu_types)``.
    order : np.ndarray
        Visiting order over the block positions.
    class_codes : sequence of int
        Thematic id of each land-cover class.
    land_valid : np.ndarray, optional
        Cells that have land-use base land; defaults to ``land_area != NODATA``.

    Raises
    ------
    TopologyError
        If the block arrays or the order do not all have the same length.
    """
    block_size = len(order)
    if land_area.shape[0] != block_size or lu_areas.shape[0] != block_size:
        raise TopologyError(
            f"block has {land_area.shape[0]} land cells and {lu_areas.shape[0]} land-use rows "
            f"for an order of {block_size}",
            coarse_cell=coarse_id,
        )
    if len(class_areas) != len(class_codes):
        raise InputError(
            f"{len(class_areas)} class areas for {len(class_codes)} class codes",
            coarse_cell=coarse_id,
            dataset="landcover",
        )
    if land_valid is None:
        land_valid = land_area != NODATA

    lu, clamped = validate_land_use(land_area, land_valid, lu_areas, tol)
    if clamped.any():
        log.debug("coarse cell %d: clamped land use in %d fine cells", coarse_id, int(clamped.sum()))
    claimed = lu[:, :NUM_LU_MAIN].sum(axis=1)

    pool = np.where(class_areas > 0, class_areas, 0.0).astype(np.float64)
    refveg = np.zeros(block_size, dtype=np.float64)
    thematic = np.full(block_size, NODATA, dtype=np.int32)

    nclasses = len(pool)
    k = 0
    while k < nclasses and pool[k] <= 0:
        k += 1

    for pos in order:
        if k >= nclasses:
            break
        if not land_valid[pos]:
            continue
        available = land_area[pos] - claimed[pos]
        if available <= 0:
            continue
        while available > 0 and k < nclasses:
            take = min(available, pool[k])
            pool[k] -= take
            refveg[pos] += take
            available -= take
            if thematic[pos] == NODATA:
                thematic[pos] = class_codes[k]
            while k < nclasses and pool[k] <= 0:
                k += 1

    return BlockResult(
        refveg_area=refveg,
        refveg_thematic=thematic,
        lu_areas=lu,
        leftover=pool,
        clamped=int(clamped.sum()),
    )


def calc_refveg_area(
    grid: WorkingGrid,
    topology: GridTopology,
    cache: PermutationCache,
    coarse_areas: np.ndarray,
    class_codes: Sequence[int],
    year: Optional[int] = None,
) -> RefvegSummary:
    """
    Run the block disaggregation over every coarse cell and store the results.

    The grid must already hold the year's land use and the land-use base land
    area. Non-land cells end up NODATA in every working array; land cells that
    received reference vegetation are added to the ``refveg`` mask. The cache
    is left untouched for later years.
    """
    if topology.fine_cells != grid.ncells:
        raise TopologyError(f"topology covers {topology.fine_cells} fine cells, grid has {grid.ncells}")
    if coarse_areas.shape != (len(class_codes), topology.coarse_cells):
        raise InputError(
            f"land cover shape {coarse_areas.shape} does not match "
            f"({len(class_codes)}, {topology.coarse_cells})",
            dataset="landcover",
        )

    land = grid.raw[HYDE]
    has_land = grid.hyde_land
    summary = RefvegSummary(year=year)
    summary.pool_total = float(np.clip(coarse_areas, 0, None).sum())

    for i in range(topology.coarse_cells):
        ids = topology.block_ids(i)
        mask = has_land[ids]
        if not mask.any():
            grid.land_use[:, ids] = NODATA
            grid.refveg_area[ids] = NODATA
            grid.refveg_thematic[ids] = NODATA
            grid.masks["refveg"][ids] = False
            summary.leftover_total += float(np.clip(coarse_areas[:, i], 0, None).sum())
            continue

        res = disaggregate_block(
            i,
            coarse_areas[:, i],
            land[ids],
            grid.land_use[:, ids].T,
            cache.order(i),
            class_codes,
            land_valid=mask,
        )
        grid.land_use[:, ids] = np.where(mask[None, :], res.lu_areas.T, NODATA)
        grid.refveg_area[ids] = np.where(mask, res.refveg_area, NODATA)
        grid.refveg_thematic[ids] = np.where(mask, res.refveg_thematic, NODATA)
        grid.masks["refveg"][ids] = mask & (res.refveg_thematic != NODATA)

        summary.allocated_total += float(res.refveg_area.sum())
        summary.leftover_total += float(res.leftover.sum())
        summary.land_use_total += float(res.lu_areas[mask, :NUM_LU_MAIN].sum())
        summary.clamped_cells += res.clamped

    summary.refveg_cells = int(grid.masks["refveg"].sum())
    log.info(
        "Reference vegetation%s: allocated %.3f of %.3f km^2 (%.3f left), %d cells, %d clamped",
        f" {year}" if year is not None else "",
        summary.allocated_total, summary.pool_total, summary.leftover_total,
        summary.refveg_cells, summary.clamped_cells,
    )
    return summary
