from __future__ import annotations

import json
from pathlib import Path

import numpy as np
import pytest
import rasterio
from rasterio.transform import from_origin

from landbase.errors import InputError, TopologyError
from landbase.grid import NODATA
from landbase.pipeline import run_pipeline


def _raster(out_dir: Path, name: str, dtype=np.int32) -> np.ndarray:
    return np.fromfile(out_dir / f"{name}.bil", dtype=dtype)


def test_full_run_writes_land_base(cfg):
    art = run_pipeline(cfg)
    out_dir = Path(art["output_dir"])

    assert art["years"] == [1990, 2000]
    assert art["canonical_cells"] == 11
    assert art["forest_cells"] == 6

    country_zone = _raster(out_dir, "country_zone")
    assert country_zone[0] == 100 * 10000 + 1
    assert country_zone[2] == 186 * 10000 + 1
    assert country_zone[11] == NODATA  # no country code
    assert (country_zone[12:] == NODATA).all()
    assert _raster(out_dir, "region_zone")[3] == 2 * 10000 + 1

    land = _raster(out_dir, "valid_land_area", np.float32)
    assert land[:11].tolist() == [10.0] * 11
    assert (land[11:] == NODATA).all()

    forest = (out_dir / "forest_cells.txt").read_text().split()
    assert len(forest) == 6
    assert all(int(c) < 11 for c in forest)

    def _cells(name: str) -> list:
        return [int(c) for c in (out_dir / f"land_cells_{name}.txt").read_text().split()]

    assert _cells("hyde") == list(range(12))
    assert _cells("sage") == list(range(13))
    assert _cells("zone_new") == list(range(13))

    assert not (out_dir / "diagnostics").exists()


def test_run_summary(cfg):
    art = run_pipeline(cfg)
    summary = json.loads(Path(art["summary_file"]).read_text())

    assert summary["reference_year"] == 2000
    y1990, y2000 = summary["years"]
    assert y1990["year"] == 1990 and y2000["year"] == 2000
    assert y1990["pool_total"] == pytest.approx(80.0)
    assert y1990["allocated_total"] == pytest.approx(68.0)
    assert y1990["leftover_total"] == pytest.approx(12.0)
    assert y2000["allocated_total"] == pytest.approx(66.0)
    assert y2000["leftover_total"] == pytest.approx(14.0)
    assert y2000["refveg_cells"] == 10

    ledger = summary["ledger"]
    assert ledger["total_hyde_land_area"] == pytest.approx(120.0)
    assert ledger["total_sage_land_area"] == pytest.approx(125.0)
    assert ledger["extra_sage_area"] == pytest.approx(5.0)
    assert ledger["fao_hyde_area_lost"] == pytest.approx(10.0)
    assert ledger["residual_ice_water_area"] == pytest.approx(24.0)
    assert summary["noland_cells"] == 1
    assert summary["unknown_zone_ids"] == []


def test_zipped_year_is_extracted(cfg, world: Path):
    run_pipeline(cfg)
    assert (world / "hyde" / "uopp_1990AD.asc").exists()


def test_diagnostics_and_determinism(cfg, tmp_path: Path):
    cfg["run"]["diagnostics"] = True
    outputs = []
    for name in ("a", "b"):
        cfg["run"]["output_dir"] = str(tmp_path / name)
        outputs.append(Path(run_pipeline(cfg)["output_dir"]) / "diagnostics")

    a, b = outputs
    for name in ("refveg_thematic", "refveg_area", "refveg_area_1990", "mask_forest", "country_zone_noland"):
        assert (a / f"{name}.bil").read_bytes() == (b / f"{name}.bil").read_bytes(), name

    noland = np.fromfile(a / "country_zone_noland.bil", dtype=np.int32)
    assert noland[12] == 100 * 10000 + 3
    assert (np.delete(noland, 12) == NODATA).all()


def test_missing_input_is_input_error(cfg, world: Path):
    (world / "sage_land.bil").unlink()
    with pytest.raises(InputError) as exc:
        run_pipeline(cfg)
    assert exc.value.dataset == "sage"


def test_landcover_rows_must_match_split(cfg):
    cfg["landcover"]["nrows"] = 3
    with pytest.raises(TopologyError):
        run_pipeline(cfg)


def test_outputs_carry_land_use_georeferencing(cfg):
    out_dir = Path(run_pipeline(cfg)["output_dir"])
    with rasterio.open(out_dir / "country_zone.bil") as ds:
        assert (ds.height, ds.width) == (4, 4)
        assert ds.nodata == NODATA
        # reference-year land-use grid: lower-left (-180, -90), 90-unit cells
        assert ds.transform == from_origin(-180, 270, 90, 90)
        assert ds.read(1).ravel()[0] == 100 * 10000 + 1
