"""Optional worker pool for the embarrassingly parallel execution points.

Used per entity (No-Pooling), per batch (BatchExecutor) and per fold
(CrossValidator). Units must be self-contained and return FitOutcome values,
never raise.
"""

from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, List, TypeVar

T = TypeVar('T')
R = TypeVar('R')


def map_units(fn: Callable[[T], R], items: Iterable[T], n_workers: int = 1) -> List[R]:
    """Apply fn to every item, optionally on a thread pool.

    Args:
        fn: Unit of work
        items: Work items
        n_workers: Pool size; 1 (or less) runs sequentially in the caller's thread

    Returns:
        Results in the order of ``items`` regardless of completion order
    """
    items = list(items)
    if n_workers is None or n_workers <= 1 or len(items) <= 1:
        return [fn(item) for item in items]

    with ThreadPoolExecutor(max_workers=min(n_workers, len(items))) as pool:
        return list(pool.map(fn, items))
