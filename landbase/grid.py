"""
Working grid and coarse/fine grid topology.

The working grid is the fine-resolution, row-major global grid every dataset
is reconciled onto. ``WorkingGrid`` owns all per-cell arrays; components get
it passed in explicitly and mutate it in place. ``GridTopology`` maps a coarse
land-cover cell onto the block of working-grid cells it covers.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional

import numpy as np

from .errors import AllocationError, InputError, TopologyError

NODATA = -9999

# land-use classes, main classes first; detail classes are sub-components of
# the main ones and never add to the claimed land-use total
LU_MAIN_TYPES = ("urban", "cropland", "pasture")
LU_DETAIL_TYPES = ("conv_rangeland", "rangeland", "ir_rice", "rf_rice", "ir_norice", "rf_norice")
LU_TYPES = LU_MAIN_TYPES + LU_DETAIL_TYPES
NUM_LU_MAIN = len(LU_MAIN_TYPES)

# raw per-cell datasets and the masks derived from them
HYDE = "hyde"
HYDE_CELL = "hyde_cell"
SAGE = "sage"
FAO = "fao"
ZONE_ORIG = "zone_orig"
ZONE_NEW = "zone_new"
POTVEG = "potveg"

DATASETS = (HYDE, HYDE_CELL, SAGE, FAO, ZONE_ORIG, ZONE_NEW, POTVEG)
MASKED_DATASETS = (HYDE, SAGE, FAO, ZONE_ORIG, ZONE_NEW, POTVEG)
DERIVED_MASKS = ("refveg", "forest")

_FLOAT_DATASETS = (HYDE, HYDE_CELL, SAGE)


@dataclass(frozen=True)
class GridTopology:
    """Nesting of the coarse land-cover grid inside the fine working grid.

    Both grids cover the same extent and the coarse cells are assumed square
    in fine-cell units, so one ratio serves rows and columns.
    """

    fine_cols: int
    fine_rows: int
    coarse_cols: int
    num_split: int = field(init=False)

    def __post_init__(self) -> None:
        if self.coarse_cols <= 0 or self.fine_cols % self.coarse_cols != 0:
            raise TopologyError(
                f"fine grid columns ({self.fine_cols}) are not a whole multiple "
                f"of coarse grid columns ({self.coarse_cols})"
            )
        split = self.fine_cols // self.coarse_cols
        if self.fine_rows % split != 0:
            raise TopologyError(
                f"fine grid rows ({self.fine_rows}) are not a whole multiple of the split ({split})"
            )
        object.__setattr__(self, "num_split", split)

    @property
    def block_size(self) -> int:
        return self.num_split * self.num_split

    @property
    def coarse_rows(self) -> int:
        return self.fine_rows // self.num_split

    @property
    def coarse_cells(self) -> int:
        return self.coarse_rows * self.coarse_cols

    @property
    def fine_cells(self) -> int:
        return self.fine_rows * self.fine_cols

    def upper_left(self, coarse_id: int) -> tuple[int, int]:
        """Row and column of the upper-left fine cell of a coarse cell."""
        row = (coarse_id // self.coarse_cols) * self.num_split
        col = (coarse_id % self.coarse_cols) * self.num_split
        return row, col

    def block_ids(self, coarse_id: int) -> np.ndarray:
        """Fine-cell ids inside ``coarse_id``, row by row."""
        if not 0 <= coarse_id < self.coarse_cells:
            raise TopologyError(f"coarse cell id out of range [0, {self.coarse_cells})", coarse_cell=coarse_id)
        row0, col0 = self.upper_left(coarse_id)
        rows = np.arange(row0, row0 + self.num_split)
        cols = np.arange(col0, col0 + self.num_split)
        ids = (rows[:, None] * self.fine_cols + cols[None, :]).ravel()
        if ids.size != self.block_size or ids.max() >= self.fine_cells:
            raise TopologyError(
                f"coarse cell maps to {ids.size} fine cells, expected {self.block_size}",
                coarse_cell=coarse_id,
            )
        return ids


class WorkingGrid:
    """
    Explicit owner of every per-cell array of one run.

    Attributes
    ----------
    raw : dict[str, np.ndarray]
        Raw dataset values on the working grid, keyed by dataset name.
    nodata : dict[str, float]
        Declared nodata sentinel of each raw dataset.
    land_use : np.ndarray
        Land-use class areas (km^2), shape ``(len(LU_TYPES), ncells)``.
    refveg_area, refveg_thematic : np.ndarray
        Reference-vegetation area (km^2) and thematic class per cell.
    masks : dict[str, np.ndarray]
        Boolean validity masks, per dataset plus ``refveg`` and ``forest``.
    forest_cells : list[int]
        Forest cell ids, append-only within a run.
    """

    def __init__(self, nrows: int, ncols: int) -> None:
        self.nrows = int(nrows)
        self.ncols = int(ncols)
        self.ncells = self.nrows * self.ncols
        try:
            self.raw: Dict[str, np.ndarray] = {
                name: np.full(self.ncells, NODATA, dtype=np.float64 if name in _FLOAT_DATASETS else np.int32)
                for name in DATASETS
            }
            self.land_use = np.full((len(LU_TYPES), self.ncells), NODATA, dtype=np.float64)
            self.refveg_area = np.full(self.ncells, NODATA, dtype=np.float64)
            self.refveg_thematic = np.full(self.ncells, NODATA, dtype=np.int32)
            self.masks: Dict[str, np.ndarray] = {
                name: np.zeros(self.ncells, dtype=bool) for name in MASKED_DATASETS + DERIVED_MASKS
            }
        except MemoryError as e:
            raise AllocationError(f"cannot allocate working grid of {self.ncells} cells") from e
        self.nodata: Dict[str, float] = {name: NODATA for name in DATASETS}
        self.forest_cells: List[int] = []

    # ------------------------------------------------------------------
    # loading
    # ------------------------------------------------------------------

    def set_dataset(self, name: str, values: np.ndarray, nodata: Optional[float] = None) -> None:
        """Store one raw dataset and its nodata sentinel."""
        if name not in self.raw:
            raise KeyError(f"unknown dataset: {name}")
        arr = np.asarray(values).ravel()
        if arr.size != self.ncells:
            raise InputError(f"expected {self.ncells} cells, got {arr.size}", dataset=name)
        self.raw[name] = arr.astype(self.raw[name].dtype, copy=True)
        if nodata is not None:
            self.nodata[name] = nodata

    def set_land_use(self, areas: Mapping[str, np.ndarray], nodata: Optional[float] = None) -> None:
        """Load one year's land-use areas; input nodata becomes NODATA."""
        for i, name in enumerate(LU_TYPES):
            if name not in areas:
                raise InputError(f"missing land-use type '{name}'", dataset=HYDE)
            arr = np.asarray(areas[name], dtype=np.float64).ravel()
            if arr.size != self.ncells:
                raise InputError(f"land-use type '{name}' has {arr.size} cells, expected {self.ncells}", dataset=HYDE)
            if nodata is not None:
                arr = np.where(arr == nodata, NODATA, arr)
            self.land_use[i] = arr

    def reset_working_arrays(self) -> None:
        """Re-initialise the per-year working arrays to NODATA."""
        self.land_use.fill(NODATA)
        self.refveg_area.fill(NODATA)
        self.refveg_thematic.fill(NODATA)
        self.masks["refveg"].fill(False)

    # ------------------------------------------------------------------
    # views
    # ------------------------------------------------------------------

    def valid(self, name: str) -> np.ndarray:
        """Cells whose raw value differs from the dataset's nodata sentinel."""
        return self.raw[name] != self.nodata[name]

    @property
    def hyde_land(self) -> np.ndarray:
        return self.valid(HYDE)

    def land_use_of(self, name: str) -> np.ndarray:
        return self.land_use[LU_TYPES.index(name)]
