"""
Bounded worker pool over a shared queue.

A fixed number of workers pull items until the queue is empty. An exception
from one item is captured on that item's outcome and never stops the others.
"""

from collections.abc import Callable, Iterable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Generic, Optional, TypeVar
import logging
import queue
import time

from .metrics import IngestMetrics

logger = logging.getLogger(__name__)

InT = TypeVar("InT")
OutT = TypeVar("OutT")


@dataclass
class WorkOutcome(Generic[InT, OutT]):
    """Result of processing one queued item."""

    index: int
    item: InT
    result: Optional[OutT] = None
    error: Optional[Exception] = None
    attempts: int = 1

    @property
    def ok(self) -> bool:
        return self.error is None


def process_concurrently(
    items: Iterable[InT],
    worker: Callable[[InT], OutT],
    *,
    limit: int = 5,
    max_retries: int = 0,
    retry_delay: float = 0.0,
    metrics: Optional[IngestMetrics] = None,
) -> list[WorkOutcome[InT, OutT]]:
    """
    Run ``worker`` over ``items`` with at most ``limit`` calls in flight.

    Args:
        items: Work items
        worker: Callable applied to each item
        limit: Number of concurrent workers
        max_retries: Extra attempts for an item whose worker raised
        retry_delay: Seconds to wait between attempts
        metrics: Counters to update (optional)

    Returns:
        One outcome per item, in input order
    """
    if not isinstance(limit, int) or limit < 1:
        raise ValueError("limit must be a positive integer")

    work: "queue.Queue[tuple[int, Any]]" = queue.Queue()
    count = 0
    for index, item in enumerate(items):
        work.put((index, item))
        count += 1
    if metrics is not None:
        metrics.record_queued(count)

    outcomes: list[Optional[WorkOutcome]] = [None] * count

    def run() -> None:
        while True:
            try:
                index, item = work.get_nowait()
            except queue.Empty:
                return
            outcomes[index] = _attempt(index, item, worker, max_retries, retry_delay, metrics)
            work.task_done()

    with ThreadPoolExecutor(max_workers=min(limit, count) or 1) as pool:
        futures = [pool.submit(run) for _ in range(min(limit, count))]
        for future in futures:
            future.result()

    failed = sum(1 for o in outcomes if o is not None and not o.ok)
    if failed:
        logger.warning(f"{failed}/{count} item(s) failed")
    return [o for o in outcomes if o is not None]


def _attempt(
    index: int,
    item: Any,
    worker: Callable[[Any], Any],
    max_retries: int,
    retry_delay: float,
    metrics: Optional[IngestMetrics],
) -> WorkOutcome:
    started = time.monotonic()
    attempts = 0
    while True:
        attempts += 1
        try:
            result = worker(item)
        except Exception as e:
            if attempts <= max_retries:
                logger.warning(f"Item {index} failed (attempt {attempts}), retrying: {e}")
                if metrics is not None:
                    metrics.record_retry()
                if retry_delay > 0:
                    time.sleep(retry_delay)
                continue
            logger.error(f"Item {index} failed after {attempts} attempt(s): {e}")
            if metrics is not None:
                metrics.record_failed(time.monotonic() - started)
            return WorkOutcome(index=index, item=item, error=e, attempts=attempts)

        if metrics is not None:
            metrics.record_processed(time.monotonic() - started)
        return WorkOutcome(index=index, item=item, result=result, attempts=attempts)
