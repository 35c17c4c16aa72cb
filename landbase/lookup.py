"""
Country lookup table: raw country code -> country87 code and economic region.

Some territories carry their own codes in the country raster but are
processed jointly under one merged entry (Serbia 272 and Montenegro 273 under
Serbia and Montenegro 186 by default). When a member code has no direct
mapping it resolves through the merged entry, and its output country code
becomes the merged code.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional

import numpy as np
import pandas as pd

from .errors import InputError, LookupResolutionError
from .grid import NODATA
from .utils.logging_utils import get_logger

log = get_logger("landbase.lookup")

REQUIRED_COLUMNS = ("country_code", "country87_code", "region_code")


@dataclass
class Resolution:
    """Per-cell resolution of raw country codes. Unresolved entries are NODATA."""
    country: np.ndarray
    country87: np.ndarray
    region: np.ndarray
    resolved: np.ndarray


def _code_column(df: pd.DataFrame, name: str) -> np.ndarray:
    col = pd.to_numeric(df[name], errors="coerce")
    return col.fillna(NODATA).astype(np.int64).to_numpy()


class CountryTable:
    def __init__(
        self,
        df: pd.DataFrame,
        merge_code: Optional[int] = 186,
        merge_members: Iterable[int] = (272, 273),
    ) -> None:
        missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
        if missing:
            raise InputError(f"country table lacks columns {missing}", dataset="countries")
        codes = pd.to_numeric(df["country_code"], errors="coerce")
        if codes.isna().any():
            raise InputError("country table has non-numeric country codes", dataset="countries")
        codes = codes.astype(np.int64)
        if codes.duplicated().any():
            dups = sorted(set(codes[codes.duplicated()].tolist()))
            raise InputError(f"duplicate country codes {dups}", dataset="countries")

        self._index = pd.Index(codes.to_numpy())
        self._country87 = _code_column(df, "country87_code")
        self._region = _code_column(df, "region_code")
        self._iso3 = df["iso3"].fillna("").astype(str).to_numpy() if "iso3" in df.columns else None
        self.merge_code = merge_code
        self.merge_members = tuple(int(m) for m in merge_members)

        n_unmapped = int((self._country87 == NODATA).sum())
        if n_unmapped:
            log.debug("%d of %d countries have no country87 mapping", n_unmapped, len(self))

    @classmethod
    def from_csv(cls, path: str | Path, **kwargs) -> "CountryTable":
        from .io import read_country_table

        return cls(read_country_table(path), **kwargs)

    def __len__(self) -> int:
        return len(self._index)

    @property
    def codes(self) -> np.ndarray:
        return self._index.to_numpy()

    def iso3(self, code: int) -> str:
        if self._iso3 is None:
            return ""
        return str(self._iso3[self.index_of(np.array([code]))[0]])

    def index_of(self, codes: np.ndarray) -> np.ndarray:
        """Row index of each code; any code missing from the table is fatal."""
        idx = self._index.get_indexer(np.asarray(codes, dtype=np.int64))
        if (idx < 0).any():
            bad = np.unique(np.asarray(codes)[idx < 0])
            raise LookupResolutionError(
                f"country codes {bad.tolist()[:10]} are not in the country table", dataset="countries"
            )
        return idx

    def resolve(self, codes: np.ndarray) -> Resolution:
        """
        Resolve raw country codes to output country, country87 and region codes.

        A code resolves when both its country87 and region mappings exist,
        directly or, for merge members, through the merged entry.
        """
        codes = np.asarray(codes, dtype=np.int64)
        idx = self.index_of(codes)
        country = codes.copy()
        country87 = self._country87[idx]
        region = self._region[idx]

        direct = (country87 != NODATA) & (region != NODATA)
        member = ~direct & np.isin(codes, self.merge_members)
        if member.any():
            if self.merge_code is None:
                raise LookupResolutionError("merge members present but no merge code configured", dataset="countries")
            m = self.index_of(np.array([self.merge_code]))[0]
            country87[member] = self._country87[m]
            region[member] = self._region[m]
            country[member] = self.merge_code

        resolved = (country87 != NODATA) & (region != NODATA)
        return Resolution(
            country=np.where(resolved, country, NODATA),
            country87=np.where(resolved, country87, NODATA),
            region=np.where(resolved, region, NODATA),
            resolved=resolved,
        )
