"""
Per-coarse-cell visiting orders for disaggregation.

Each coarse land-cover cell gets one Fisher-Yates shuffled order over its
fine cells. Orders are generated once per run and reused for every processed
year, so all years break ties between fine cells the same way. The seed comes
from config, which makes the orders reproducible across runs too.
"""
from __future__ import annotations

from typing import Optional

import numpy as np

from .errors import AllocationError
from .utils.logging_utils import get_logger

log = get_logger("landbase.permutation")


class PermutationCache:
    """
    Lazily built table of visiting orders, shape ``(coarse_cells, block_size)``.

    The cache is shared by reference across all disaggregation calls of a
    run. Only the caller that owns the run releases it, exactly once.
    """

    def __init__(self, coarse_cells: int, block_size: int, seed: Optional[int] = 42) -> None:
        self.coarse_cells = int(coarse_cells)
        self.block_size = int(block_size)
        self.seed = seed
        self._orders: Optional[np.ndarray] = None
        self._released = False

    def _build(self) -> np.ndarray:
        rng = np.random.default_rng(self.seed)
        try:
            orders = np.tile(np.arange(self.block_size, dtype=np.int32), (self.coarse_cells, 1))
        except MemoryError as e:
            raise AllocationError(
                f"cannot allocate {self.coarse_cells} x {self.block_size} permutation table"
            ) from e
        for row in orders:
            for j in range(self.block_size - 1, 0, -1):
                m = int(rng.integers(0, j + 1))
                row[j], row[m] = row[m], row[j]
        log.info(
            "Built cell orders for %d coarse cells (block size %d, seed=%s)",
            self.coarse_cells, self.block_size, self.seed,
        )
        return orders

    @property
    def built(self) -> bool:
        return self._orders is not None

    def order(self, coarse_id: int) -> np.ndarray:
        """Visiting order of the fine cells of ``coarse_id`` (read-only view)."""
        if self._released:
            raise RuntimeError("permutation cache has been released")
        if self._orders is None:
            self._orders = self._build()
            self._orders.setflags(write=False)
        return self._orders[coarse_id]

    def release(self) -> None:
        if self._released:
            raise RuntimeError("permutation cache released twice")
        self._orders = None
        self._released = True
        log.debug("Released permutation cache")
