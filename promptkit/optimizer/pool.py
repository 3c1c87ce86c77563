from __future__ import annotations

import math
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from logging import Logger
from typing import Callable, Dict, Iterable, Optional, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def run_bounded(
    func: Callable[[T], R],
    items: Iterable[T],
    num_threads: int,
    timeout: Optional[float],
    label: str,
    logger: Logger,
) -> Dict[int, "Future[R]"]:
    """Run ``func`` over ``items`` on at most ``num_threads`` workers.

    Every unit gets ``timeout`` seconds from the moment a worker picks it up;
    a unit running longer is dropped from the result even if it finishes
    later. The whole region is additionally bounded by ``timeout`` times the
    number of waves. The returned mapping holds the finished futures keyed by
    submission index.
    """
    units = list(items)
    if not units:
        return {}
    workers = max(1, min(int(num_threads), len(units)))
    started: Dict[int, float] = {}
    durations: Dict[int, float] = {}

    def timed(idx: int, unit: T) -> R:
        started[idx] = time.monotonic()
        try:
            return func(unit)
        finally:
            durations[idx] = time.monotonic() - started[idx]

    hard_deadline = None
    if timeout is not None:
        hard_deadline = time.monotonic() + timeout * math.ceil(len(units) / workers)
    executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix=f"promptkit-{label}")
    try:
        futures = [executor.submit(timed, idx, unit) for idx, unit in enumerate(units)]
        if timeout is None:
            wait(futures)
        else:
            _wait_per_unit(futures, started, timeout, hard_deadline)
    finally:
        executor.shutdown(wait=False, cancel_futures=True)

    finished = {
        idx: future
        for idx, future in enumerate(futures)
        if future.done()
        and not future.cancelled()
        and (timeout is None or durations.get(idx, math.inf) <= timeout)
    }
    discarded = len(units) - len(finished)
    if discarded:
        logger.warning(
            "Discarding %d %s unit(s) that exceeded the timeout",
            discarded,
            label,
            extra={"timeout": timeout, "units": len(units)},
        )
    return finished


def _wait_per_unit(
    futures: list,
    started: Dict[int, float],
    timeout: float,
    hard_deadline: float,
) -> None:
    index = {future: idx for idx, future in enumerate(futures)}
    pending = set(futures)
    while pending:
        now = time.monotonic()
        pending = {
            future
            for future in pending
            if index[future] not in started or now - started[index[future]] < timeout
        }
        if not pending or now >= hard_deadline:
            return
        expiries = [started[index[future]] + timeout for future in pending if index[future] in started]
        wake = min(expiries + [hard_deadline]) - now
        _, pending = wait(pending, timeout=max(wake, 0.0), return_when=FIRST_COMPLETED)


__all__ = ["run_bounded"]
