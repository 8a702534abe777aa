"""Tests for the already-compressed heuristic."""

import pytest

from zfsrecompress.heuristic import should_skip


def test_allocation_above_logical_size_is_processed():
    # 1024 allocated for 1000 logical bytes: ratio ~1.024
    assert should_skip(size=1000, blocks=2, block_size=512) is False


def test_allocation_well_below_logical_size_is_skipped():
    # 512 allocated for 1000 logical bytes: ratio 0.512
    assert should_skip(size=1000, blocks=1, block_size=512) is True


@pytest.mark.parametrize(
    "size,blocks,block_size,expected",
    [
        (1200, 2, 500, False),  # exactly 10/12: not strictly below, processed
        (1201, 2, 500, True),  # just past the threshold
        (0, 0, 4096, False),  # empty file
        (4096, 0, 4096, True),  # fully sparse or inline
    ],
)
def test_threshold_boundaries(size, blocks, block_size, expected):
    assert should_skip(size, blocks, block_size) is expected


def test_large_values_do_not_lose_precision():
    size = 10**15 + 1
    # One block either side of the threshold
    blocks = (size * 10) // 12 - 1
    assert should_skip(size, blocks, 1) is True
    assert should_skip(size, blocks + 2, 1) is False
