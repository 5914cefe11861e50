"""
Process-pool fan-out shared by the profiling, distance and clustering stages.

Every unit of work reads immutable inputs and returns a value; results are
written back into a list indexed like the inputs, so no locking is needed.
"""

import logging
import os
from concurrent.futures import ProcessPoolExecutor, as_completed
from typing import Callable, Iterable, List, Optional, Tuple, TypeVar

from tqdm import tqdm

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

# Below this many work items the pool start-up cost outweighs any gain
MIN_PARALLEL_ITEMS = 8


def resolve_num_workers(num_workers: Optional[int], n_items: int) -> int:
    """Number of worker processes to use for n_items units of work.

    None means auto-detect from the CPU count; 0 or 1 means run in-process.
    """
    if num_workers is not None and num_workers <= 1:
        return 1
    workers = num_workers or (os.cpu_count() or 4)
    return max(1, min(workers, n_items))


def parallel_map(func: Callable[[T], R],
                 items: Iterable[T],
                 num_workers: Optional[int] = None,
                 show_progress: bool = False,
                 desc: str = "Processing",
                 unit: str = "item",
                 initializer: Optional[Callable] = None,
                 initargs: Tuple = ()) -> List[R]:
    """
    Apply func to every item, fanning out over a process pool when worthwhile.

    Args:
        func: Picklable (module-level) function of one argument
        items: Inputs; materialized into a list
        num_workers: Worker processes (None: auto-detect, 0/1: in-process)
        show_progress: Show a tqdm progress bar
        desc: Progress bar description
        unit: Progress bar unit
        initializer: Optional per-worker setup, called once per process with
            initargs. Also called in-process when running serially, so func
            always sees the same worker state.
        initargs: Arguments for initializer

    Returns:
        Results in input order
    """
    items = list(items)
    n = len(items)
    workers = resolve_num_workers(num_workers, n)

    if workers <= 1 or n < MIN_PARALLEL_ITEMS:
        if initializer is not None:
            initializer(*initargs)
        iterator = tqdm(items, desc=desc, unit=unit) if show_progress else items
        return [func(item) for item in iterator]

    logger.debug(f"{desc}: {n} items across {workers} workers")
    results: List[Optional[R]] = [None] * n
    with ProcessPoolExecutor(max_workers=workers,
                             initializer=initializer,
                             initargs=initargs) as executor:
        futures = {executor.submit(func, item): idx for idx, item in enumerate(items)}

        if show_progress:
            iterator = tqdm(as_completed(futures), total=n, desc=desc, unit=unit)
        else:
            iterator = as_completed(futures)

        for future in iterator:
            results[futures[future]] = future.result()

    return results
