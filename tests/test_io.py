from __future__ import annotations

import zipfile
from pathlib import Path

import numpy as np
import pytest
import rasterio
from rasterio.transform import from_origin

from landbase.errors import InputError
from landbase.io import (
    ensure_year_unzipped,
    hyde_path,
    read_ascii_grid,
    read_bil,
    read_hyde_year,
    read_landcover,
    read_zone_info,
    write_raster,
    write_text_column,
)

from conftest import land_use_layers, write_asc


def test_read_bil_and_short_read(tmp_path: Path):
    p = tmp_path / "x.bil"
    np.arange(6, dtype=np.int32).tofile(p)
    assert read_bil(p, "int32", 6, dataset="x").tolist() == list(range(6))
    with pytest.raises(InputError) as exc:
        read_bil(p, "int32", 8, dataset="x")
    assert exc.value.dataset == "x"
    with pytest.raises(InputError):
        read_bil(tmp_path / "missing.bil", "int32", 6, dataset="x")


def test_read_ascii_grid(tmp_path: Path):
    p = tmp_path / "g.asc"
    write_asc(p, np.array([1, 2, 3, -9999, 5, 6]), nrows=2, ncols=3)
    data, info = read_ascii_grid(p, dataset="g")
    assert data.tolist() == [1, 2, 3, -9999, 5, 6]
    assert (info.nrows, info.ncols, info.ncells) == (2, 3, 6)
    assert info.nodata == -9999
    assert (info.xmin, info.ymin, info.res) == (-180, -90, 90)
    assert info.ymax == pytest.approx(90)
    assert info.transform == from_origin(-180, 90, 90, 90)


def test_read_ascii_grid_without_nodata_line(tmp_path: Path):
    p = tmp_path / "g.asc"
    p.write_text("ncols 2\nnrows 1\nxllcorner 0\nyllcorner 0\ncellsize 1\n4 5\n", encoding="ascii")
    data, info = read_ascii_grid(p, dataset="g")
    assert data.tolist() == [4, 5]
    assert info.nodata is None


def test_read_ascii_grid_cell_centre_origin(tmp_path: Path):
    p = tmp_path / "g.asc"
    p.write_text(
        "ncols 2\nnrows 2\nxllcenter 0.5\nyllcenter 0.5\ncellsize 1\nNODATA_value -1\n1 2\n3 4\n",
        encoding="ascii",
    )
    _, info = read_ascii_grid(p, dataset="g")
    assert info.xmin == pytest.approx(0.0)
    assert info.ymin == pytest.approx(0.0)
    assert info.ymax == pytest.approx(2.0)


def test_read_ascii_grid_missing_or_unreadable(tmp_path: Path):
    with pytest.raises(InputError) as exc:
        read_ascii_grid(tmp_path / "missing.asc", dataset="g")
    assert exc.value.dataset == "g"
    p = tmp_path / "junk.asc"
    p.write_text("not a grid\n", encoding="ascii")
    with pytest.raises(InputError):
        read_ascii_grid(p, dataset="g")


def test_year_unzipped_on_demand(tmp_path: Path):
    with zipfile.ZipFile(tmp_path / "1700AD_lu.zip", "w") as zf:
        for name, arr in land_use_layers(1.0).items():
            src = tmp_path / f"src_{name}.asc"
            write_asc(src, arr, 4, 4)
            zf.write(src, arcname=hyde_path(tmp_path, name, 1700).name)
    assert not hyde_path(tmp_path, "urban", 1700).exists()

    areas, info = read_hyde_year(tmp_path, 1700)
    assert hyde_path(tmp_path, "urban", 1700).exists()
    assert info.ncells == 16
    assert areas["cropland"][0] == 1.0
    assert areas["cropland"][15] == -9999
    # already extracted: no archive needed any more
    (tmp_path / "1700AD_lu.zip").unlink()
    ensure_year_unzipped(tmp_path, 1700)


def test_missing_year_archive(tmp_path: Path):
    with pytest.raises(InputError):
        ensure_year_unzipped(tmp_path, 1800)


def test_read_landcover_shape(tmp_path: Path):
    p = tmp_path / "lc.bil"
    np.arange(8, dtype=np.float32).tofile(p)
    lc = read_landcover(p, "float32", nclasses=2, ncells=4)
    assert lc.shape == (2, 4)
    assert lc[1].tolist() == [4.0, 5.0, 6.0, 7.0]


def test_read_zone_info(tmp_path: Path):
    p = tmp_path / "zones.csv"
    p.write_text("id,name\n1,north\n2,south\n", encoding="utf-8")
    df = read_zone_info(p)
    assert df["zone_id"].tolist() == [1, 2]
    assert df["zone_name"].tolist() == ["north", "south"]
    p.write_text("id,name\nx,north\n", encoding="utf-8")
    with pytest.raises(InputError):
        read_zone_info(p)


def test_writers(tmp_path: Path):
    path = write_raster(np.array([1, 2, 3, 4], dtype=np.int32), "codes", tmp_path / "out", 2, 2)
    assert path.with_suffix(".hdr").exists()
    assert np.fromfile(path, dtype=np.int32).tolist() == [1, 2, 3, 4]
    with rasterio.open(path) as ds:
        assert ds.driver == "EHdr"
        assert ds.read(1).tolist() == [[1, 2], [3, 4]]
        assert ds.nodata == -9999
        assert ds.transform == from_origin(-180, 90, 180, 90)

    mask = write_raster(np.array([1, 0], dtype=np.uint8), "mask", tmp_path / "out", 1, 2,
                        transform=from_origin(0, 1, 1, 1))
    with rasterio.open(mask) as ds:
        assert ds.read(1).tolist() == [[1, 0]]
        assert ds.nodata is None
        assert ds.bounds.left == 0 and ds.bounds.top == 1

    col = write_text_column([5, 9], "cells.txt", tmp_path / "out")
    assert col.read_text().splitlines() == ["5", "9"]
