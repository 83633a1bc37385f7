from typing import Sequence


def chunk(items: Sequence[str], max_size: int) -> list[list[str]]:
    """Split ``items`` into contiguous batches of at most ``max_size``, keeping order.

    An empty input yields no batches at all, so callers issue no request for it.
    """
    if max_size < 1:
        raise ValueError(f"max_size must be at least 1, got {max_size}")
    return [list(items[start : start + max_size]) for start in range(0, len(items), max_size)]
