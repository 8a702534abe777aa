"""Decide whether a file is already compact enough to leave alone."""

# Skip when allocated/size < 10/12, i.e. already better than ~1.2:1
RATIO_NUMERATOR = 10
RATIO_DENOMINATOR = 12


def should_skip(size: int, blocks: int, block_size: int) -> bool:
    """
    Return True if the file is already compressed (or sparse) enough.

    Integer arithmetic only, multiplied out so no precision is lost.

    Args:
        size: Logical file size in bytes
        blocks: Allocated block count
        block_size: Size of one block in bytes
    """
    return block_size * blocks * RATIO_DENOMINATOR < size * RATIO_NUMERATOR
