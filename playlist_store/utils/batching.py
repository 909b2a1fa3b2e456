"""Playlist Store - Batch partitioning."""

from collections.abc import Iterable, Iterator
from itertools import islice
from typing import TypeVar

T = TypeVar("T")


def batched(items: Iterable[T], size: int) -> Iterator[list[T]]:
    """Partition items into contiguous lists of at most `size` elements.

    Lazy: consumes the input only as batches are requested. Order is
    preserved, every item appears exactly once, the last batch may be short.
    The size is checked eagerly, before any batch is requested.

    Args:
        items: Any iterable.
        size: Maximum batch length, must be >= 1.

    Returns:
        Iterator over lists of up to `size` items.

    Raises:
        ValueError: If size < 1.
    """
    if size < 1:
        raise ValueError(f"batch size must be >= 1, got {size}")
    return _iter_batches(iter(items), size)


def _iter_batches(iterator: Iterator[T], size: int) -> Iterator[list[T]]:
    while batch := list(islice(iterator, size)):
        yield batch
