"""
Shared pytest fixtures for landbase tests.

Writes a tiny synthetic world into tmp_path (4x4 working grid, 2x2 land-cover
grid, two land-use years, one of them zipped) plus a config pointing at it,
and provides the resolved config via landbase.utils.config_loader.

Layout of the synthetic world (cell ids, row-major):

     0  1 |  2  3        hyde land 10 km^2 in rows 0-2, ocean in row 3
     4  5 |  6  7        country 100 in columns 0-1, 272 (merge member) in 2-3
    ------+------        cell 11 has no country code
     8  9 | 10 11        cell 12 is ocean for hyde but has zone + country (noland)
    12 13 | 14 15        sage land 10 km^2 where hyde has land, 5 km^2 in cell 12
"""
from __future__ import annotations

import zipfile
from pathlib import Path
from typing import Dict

import numpy as np
import pytest

from landbase.io import HYDE_FILE_PREFIXES
from landbase.utils.config_loader import resolve_config

ND = -9999
NROWS, NCOLS = 4, 4
OCEAN = [12, 13, 14, 15]

CLASS_CODES = [1, 20]
# band-sequential: one row per class, one column per coarse cell
LANDCOVER = np.array([[20.0, 5.0, 10.0, 0.0], [10.0, 5.0, 0.0, 30.0]], dtype=np.float32)

COUNTRIES_CSV = """\
country_code,iso3,country87_code,region_code
100,aaa,10,1
186,scg,20,2
272,srb,,
273,mne,,
"""

ZONES_CSV = """\
zone_id,zone_name
1,zone one
3,zone three
"""

_CONFIG_YAML = """\
run:
  output_dir: "{ROOT}/outputs"
  random_seed: 7
  diagnostics: false
  reference_year: 2000
  years: [1990]

grid: {nrows: 4, ncols: 4}

inputs:
  hyde:      {path: "{ROOT}/inputs/hyde_land.bil", dtype: float32, nodata: -9999}
  hyde_cell: {path: "{ROOT}/inputs/hyde_cell.bil", dtype: float32, nodata: -9999}
  sage:      {path: "{ROOT}/inputs/sage_land.bil", dtype: float32, nodata: -9999}
  fao:       {path: "{ROOT}/inputs/country.bil", dtype: int32, nodata: -9999}
  zone_orig: {path: "{ROOT}/inputs/zone_orig.bil", dtype: int32, nodata: -9999}
  zone_new:  {path: "{ROOT}/inputs/zone_new.bil", dtype: int32, nodata: -9999}
  potveg:    {path: "{ROOT}/inputs/potveg.bil", dtype: int32, nodata: -9999}
  land_use:  {dir: "{ROOT}/inputs/hyde"}

landcover:
  path: "{ROOT}/inputs/landcover.bil"
  dtype: float32
  ncols: 2
  nrows: 2
  class_codes: [1, 20]

lookup:
  countries_csv: "{ROOT}/inputs/countries.csv"
  zone_info_csv: "{ROOT}/inputs/zones.csv"

logging:
  level: "INFO"
  to_file: false
"""


def write_asc(path: Path, values: np.ndarray, nrows: int, ncols: int, nodata: float = ND) -> None:
    header = (
        f"ncols {ncols}\nnrows {nrows}\nxllcorner -180\nyllcorner -90\n"
        f"cellsize 90\nNODATA_value {nodata}\n"
    )
    rows = np.asarray(values, dtype=np.float64).reshape(nrows, ncols)
    body = "\n".join(" ".join(f"{v:g}" for v in row) for row in rows)
    path.write_text(header + body + "\n", encoding="ascii")


def land_use_layers(cropland: float) -> Dict[str, np.ndarray]:
    layers = {}
    for name in HYDE_FILE_PREFIXES:
        arr = np.full(NROWS * NCOLS, cropland if name == "cropland" else 0.0)
        arr[OCEAN] = ND
        layers[name] = arr
    return layers


def _write_world(root: Path) -> Path:
    inputs = root / "inputs"
    hyde_dir = inputs / "hyde"
    hyde_dir.mkdir(parents=True)

    hyde = np.full(16, 10.0, dtype=np.float32)
    hyde[OCEAN] = ND
    hyde.tofile(inputs / "hyde_land.bil")
    np.full(16, 12.0, dtype=np.float32).tofile(inputs / "hyde_cell.bil")

    sage = hyde.copy()
    sage[12] = 5.0
    sage.tofile(inputs / "sage_land.bil")

    country = np.tile(np.array([100, 100, 272, 272], dtype=np.int32), 4)
    country[11] = ND
    country.tofile(inputs / "country.bil")

    zone = np.ones(16, dtype=np.int32)
    zone[12] = 3
    zone[[13, 14, 15]] = ND
    zone.tofile(inputs / "zone_new.bil")
    zone.tofile(inputs / "zone_orig.bil")
    np.ones(16, dtype=np.int32).tofile(inputs / "potveg.bil")

    LANDCOVER.tofile(inputs / "landcover.bil")
    (inputs / "countries.csv").write_text(COUNTRIES_CSV, encoding="utf-8")
    (inputs / "zones.csv").write_text(ZONES_CSV, encoding="utf-8")

    # reference year on disk, earlier year only inside its archive
    for name, arr in land_use_layers(2.0).items():
        write_asc(hyde_dir / f"{HYDE_FILE_PREFIXES[name]}2000AD.asc", arr, NROWS, NCOLS)
    staging = root / "staging"
    staging.mkdir()
    with zipfile.ZipFile(hyde_dir / "1990AD_lu.zip", "w") as zf:
        for name, arr in land_use_layers(1.0).items():
            fname = f"{HYDE_FILE_PREFIXES[name]}1990AD.asc"
            write_asc(staging / fname, arr, NROWS, NCOLS)
            zf.write(staging / fname, arcname=fname)
    return inputs


@pytest.fixture(scope="function")
def world(tmp_path: Path) -> Path:
    """Writes the synthetic inputs and returns the inputs directory."""
    return _write_world(tmp_path)


@pytest.fixture(scope="function")
def cfg_path(tmp_path: Path, world: Path) -> Path:
    """Writes a landbase.yaml into tmp_path/configs/ and returns its path."""
    cfg_dir = tmp_path / "configs"
    cfg_dir.mkdir(parents=True, exist_ok=True)
    text = _CONFIG_YAML.replace("{ROOT}", str(tmp_path.as_posix()))
    p = cfg_dir / "landbase.yaml"
    p.write_text(text, encoding="utf-8")
    return p


@pytest.fixture(scope="function")
def cfg(cfg_path: Path) -> Dict:
    """Resolved config for the synthetic world."""
    return resolve_config(cfg_path)
