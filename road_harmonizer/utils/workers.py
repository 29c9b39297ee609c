"""
Worker-pool and cancellation helpers shared by the pipeline stages.

This module provides:
    • map_ordered(executor, fn, items)
    • iter_ordered(executor, fn, items)
    • check_cancel(cancel, stage)
"""

from concurrent.futures import Executor
from typing import Callable, Iterable, Iterator, List, Optional

from road_harmonizer.errors import CancellationRequested


def map_ordered(executor: Optional[Executor], fn: Callable, items: Iterable) -> List:
    """
    Apply `fn` to every item, on the executor when one is given.
    Results always come back in input order.
    """
    if executor is None:
        return [fn(item) for item in items]
    return list(executor.map(fn, items))


def check_cancel(cancel, stage: str):
    """
    Raise CancellationRequested when the token (anything with is_set())
    has been set.
    """
    if cancel is not None and cancel.is_set():
        raise CancellationRequested(f"cancelled during {stage}")


def iter_ordered(executor: Optional[Executor], fn: Callable, items: Iterable) -> Iterator:
    """
    Lazy variant of map_ordered. Without an executor each item is processed
    only when the caller asks for the next result, so checks placed between
    iterations run between items.
    """
    if executor is None:
        return (fn(item) for item in items)
    return executor.map(fn, items)
