from __future__ import annotations

import numpy as np
import pytest

from landbase.permutation import PermutationCache


def test_orders_are_permutations():
    cache = PermutationCache(coarse_cells=5, block_size=16, seed=3)
    for i in range(5):
        assert sorted(cache.order(i).tolist()) == list(range(16))


def test_orders_built_once_and_stable():
    cache = PermutationCache(coarse_cells=3, block_size=9, seed=3)
    assert not cache.built
    first = cache.order(1).copy()
    assert cache.built
    cache.order(2)
    assert np.array_equal(cache.order(1), first)


def test_same_seed_reproduces_orders():
    a = PermutationCache(coarse_cells=4, block_size=25, seed=11)
    b = PermutationCache(coarse_cells=4, block_size=25, seed=11)
    c = PermutationCache(coarse_cells=4, block_size=25, seed=12)
    assert all(np.array_equal(a.order(i), b.order(i)) for i in range(4))
    assert not all(np.array_equal(a.order(i), c.order(i)) for i in range(4))


def test_orders_are_read_only():
    cache = PermutationCache(coarse_cells=1, block_size=4, seed=0)
    with pytest.raises(ValueError):
        cache.order(0)[0] = 3


def test_release_exactly_once():
    cache = PermutationCache(coarse_cells=1, block_size=4, seed=0)
    cache.order(0)
    cache.release()
    with pytest.raises(RuntimeError):
        cache.order(0)
    with pytest.raises(RuntimeError):
        cache.release()
