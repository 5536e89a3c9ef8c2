"""
Bounded-concurrency task pool.

Every item is submitted to a thread pool sized min(concurrency, len(items)),
so a worker slot that frees up immediately picks the next pending item. Item
failures are collected instead of propagated; the pool only fails once every
item has finished.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence

from .errors import PoolError

logger = logging.getLogger(__name__)


@dataclass
class TaskResult:
    """Outcome of one pool item."""
    index: int
    item: Any
    value: Any = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _run_one(index: int, item: Any, worker: Callable[[Any], Any]) -> TaskResult:
    try:
        return TaskResult(index=index, item=item, value=worker(item))
    except Exception as e:
        return TaskResult(index=index, item=item, error=e)


def collect(items: Sequence[Any], worker: Callable[[Any], Any], concurrency: int) -> List[TaskResult]:
    """
    Run worker over items and return one TaskResult per item, in input order.

    Args:
        items: Items to process
        worker: Callable invoked once per item
        concurrency: Maximum number of workers running at the same time

    Raises:
        ValueError: If concurrency is less than 1
    """
    if concurrency < 1:
        raise ValueError(f"concurrency must be at least 1, got {concurrency}")

    if not items:
        return []

    max_workers = min(concurrency, len(items))
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix='backup') as executor:
        futures = [
            executor.submit(_run_one, index, item, worker)
            for index, item in enumerate(items)
        ]
        return [future.result() for future in futures]


def run_pool(items: Sequence[Any], worker: Callable[[Any], Any], concurrency: int) -> List[Any]:
    """
    Run worker over items with bounded concurrency.

    A failing item does not stop the others. After all items have finished,
    every failure is logged and a PoolError carrying the first failure in
    dispatch order is raised.

    Returns:
        Worker return values, in input order

    Raises:
        PoolError: If one or more items failed
    """
    results = collect(items, worker, concurrency)
    failures = [result for result in results if not result.ok]

    if failures:
        for failure in failures:
            logger.error(f"Task failed for {failure.item}: {failure.error}")
        raise PoolError(failures) from failures[0].error

    return [result.value for result in results]
