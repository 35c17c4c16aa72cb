# FILE: landbase/io.py
# =================================================================================================
# Raster / table readers and writers
#
# Readers
# -------
# - read_bil ............ raw row-major binary raster (one band), any NumPy dtype
# - read_ascii_grid ..... single-band GDAL raster (ESRI ASCII grids for the HYDE yearly layers)
# - read_hyde_year ...... every land-use type for one year, unzipping the year's archive on demand
# - read_landcover ...... coarse land-cover class areas, shape (nclasses, ncells)
# - read_country_table .. country lookup CSV
# - read_zone_info ...... new-zone id/name CSV
#
# Writers
# -------
# - write_raster ........ EHdr .bil + .hdr through rasterio (diagnostics and outputs)
# - write_text_column ... one value per line
#
# Every failure to find or fully read an input is raised as InputError naming the dataset.
# =================================================================================================
from __future__ import annotations

import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Optional, Tuple

import numpy as np
import pandas as pd
import rasterio
from rasterio.errors import RasterioError
from rasterio.transform import Affine, from_origin

from .errors import InputError
from .grid import HYDE, LU_TYPES, NODATA
from .utils.logging_utils import get_logger

log = get_logger("landbase.io")

# HYDE file prefixes for each land-use type, in LU_TYPES order
HYDE_FILE_PREFIXES: Dict[str, str] = {
    "urban": "uopp_",
    "cropland": "cropland",
    "pasture": "pasture",
    "conv_rangeland": "conv_rangeland",
    "rangeland": "rangeland",
    "ir_rice": "ir_rice",
    "rf_rice": "rf_rice",
    "ir_norice": "ir_norice",
    "rf_norice": "rf_norice",
}

# output rasters are georeferenced as a global lat/lon grid unless the caller passes a transform
OUTPUT_CRS = "EPSG:4326"


@dataclass
class RasterInfo:
    ncols: int
    nrows: int
    xmin: float
    ymin: float
    res: float
    nodata: Optional[float]

    @property
    def ncells(self) -> int:
        return self.nrows * self.ncols

    @property
    def ymax(self) -> float:
        return self.ymin + self.nrows * self.res

    @property
    def transform(self) -> Affine:
        return from_origin(self.xmin, self.ymax, self.res, self.res)


# =================================================================================================
# Readers
# =================================================================================================


def read_bil(path: str | Path, dtype: str, count: int, dataset: str) -> np.ndarray:
    p = Path(path)
    try:
        data = np.fromfile(p, dtype=np.dtype(dtype), count=count)
    except OSError as e:
        raise InputError(f"failed to open {p}", dataset=dataset) from e
    if data.size != count:
        raise InputError(f"read {data.size} values from {p}, expected {count}", dataset=dataset)
    return data


def read_ascii_grid(path: str | Path, dataset: str) -> Tuple[np.ndarray, RasterInfo]:
    """Read band 1 of a grid (ESRI ASCII or any GDAL format) into a flat float64 array plus its header."""
    p = Path(path)
    if not p.exists():
        raise InputError(f"failed to open {p}", dataset=dataset)
    try:
        with rasterio.open(str(p)) as ds:
            data = ds.read(1).astype(np.float64).ravel()
            info = RasterInfo(
                ncols=ds.width,
                nrows=ds.height,
                xmin=ds.bounds.left,
                ymin=ds.bounds.bottom,
                res=ds.res[0],
                nodata=ds.nodata,
            )
    except (OSError, RasterioError) as e:
        raise InputError(f"failed to read {p}", dataset=dataset) from e
    return data, info


def hyde_path(hyde_dir: str | Path, lu_type: str, year: int) -> Path:
    return Path(hyde_dir) / f"{HYDE_FILE_PREFIXES[lu_type]}{year}AD.asc"


def ensure_year_unzipped(hyde_dir: str | Path, year: int) -> None:
    """Extract ``{year}AD_lu.zip`` when the year's first layer is not on disk yet."""
    if hyde_path(hyde_dir, LU_TYPES[0], year).exists():
        return
    archive = Path(hyde_dir) / f"{year}AD_lu.zip"
    if not archive.exists():
        raise InputError(f"no layers and no archive {archive.name} for year {year}", dataset=HYDE)
    log.info("Unzipping %s", archive)
    try:
        with zipfile.ZipFile(archive) as zf:
            zf.extractall(Path(hyde_dir))
    except (OSError, zipfile.BadZipFile) as e:
        raise InputError(f"failed to unzip {archive}", dataset=HYDE) from e


def read_hyde_year(hyde_dir: str | Path, year: int) -> Tuple[Dict[str, np.ndarray], RasterInfo]:
    """All land-use type areas (km^2) for one year; every layer must share the first one's header."""
    ensure_year_unzipped(hyde_dir, year)
    areas: Dict[str, np.ndarray] = {}
    info = None
    for lu_type in LU_TYPES:
        data, this_info = read_ascii_grid(hyde_path(hyde_dir, lu_type, year), dataset=HYDE)
        if info is None:
            info = this_info
        elif (this_info.ncols, this_info.nrows) != (info.ncols, info.nrows):
            raise InputError(f"{lu_type} {year} grid differs from {LU_TYPES[0]}", dataset=HYDE)
        areas[lu_type] = data
    log.debug("Read %d land-use layers for %d", len(areas), year)
    return areas, info


def read_landcover(path: str | Path, dtype: str, nclasses: int, ncells: int) -> np.ndarray:
    """Coarse land-cover class areas, band-sequential, shape ``(nclasses, ncells)``."""
    data = read_bil(path, dtype, nclasses * ncells, dataset="landcover")
    return data.astype(np.float64).reshape(nclasses, ncells)


def read_country_table(path: str | Path) -> pd.DataFrame:
    p = Path(path)
    if not p.exists():
        raise InputError(f"country table not found: {p}", dataset="countries")
    return pd.read_csv(p, skipinitialspace=True)


def read_zone_info(path: str | Path) -> pd.DataFrame:
    """Zone id/name table: one header row, first column integer id, second column name."""
    p = Path(path)
    if not p.exists():
        raise InputError(f"zone info not found: {p}", dataset="zone_new")
    df = pd.read_csv(p, skipinitialspace=True)
    if df.shape[1] < 2:
        raise InputError(f"{p} needs an id and a name column", dataset="zone_new")
    df = df.iloc[:, :2]
    df.columns = ["zone_id", "zone_name"]
    ids = pd.to_numeric(df["zone_id"], errors="coerce")
    if ids.isna().any():
        raise InputError(f"non-integer zone ids in {p}", dataset="zone_new")
    df["zone_id"] = ids.astype(np.int64)
    return df


# =================================================================================================
# Writers
# =================================================================================================


def write_raster(
    array: np.ndarray,
    name: str,
    out_dir: str | Path,
    nrows: int = 0,
    ncols: int = 0,
    transform: Optional[Affine] = None,
) -> Path:
    """
    Write a flat array as a single-band EHdr raster (``<name>.bil`` plus ``.hdr``).

    Parameters
    ----------
    array : np.ndarray
        Cell values in row-major order.
    nrows, ncols : int
        Grid shape; a 1 x N row is written when omitted.
    transform : Affine, optional
        Georeferencing; defaults to a global lat/lon grid of the given shape.
    """
    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)
    arr = np.ascontiguousarray(array)
    height, width = (nrows or 1), (ncols or arr.size)
    if transform is None:
        transform = from_origin(-180.0, 90.0, 360.0 / width, 180.0 / height)
    profile = {
        "driver": "EHdr",
        "height": height,
        "width": width,
        "count": 1,
        "dtype": arr.dtype.name,
        "crs": OUTPUT_CRS,
        "transform": transform,
        "nodata": None if arr.dtype == np.uint8 else NODATA,
    }
    path = out / f"{name}.bil"
    try:
        with rasterio.open(str(path), "w", **profile) as dst:
            dst.write(arr.reshape(height, width), 1)
    except (OSError, RasterioError) as e:
        raise InputError(f"failed to write {path}", dataset=name) from e
    return path


def write_text_column(values: Iterable, name: str, out_dir: str | Path) -> Path:
    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)
    path = out / name
    try:
        path.write_text("".join(f"{v}\n" for v in values), encoding="utf-8")
    except OSError as e:
        raise InputError(f"failed to write {path}", dataset=name) from e
    return path
