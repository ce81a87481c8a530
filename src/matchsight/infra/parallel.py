"""
Settle-all fan-out for per-player fetches.

Every call runs on a shared thread pool and is joined before the tick moves
on. A call that raises or outlives the timeout yields a failed ``Settled``
instead of aborting the batch, so one slow rank lookup never costs another
player their stats.
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable, Hashable, Mapping
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)

DEFAULT_WORKERS = min(32, (os.cpu_count() or 4) * 3)


@dataclass
class Settled(Generic[K]):
    """Outcome of one call in a settle-all batch."""

    key: K
    value: Any = None
    error: BaseException | None = None
    duration_seconds: float = 0.0

    @property
    def ok(self) -> bool:
        return self.error is None

    def value_or(self, default: Any) -> Any:
        return self.value if self.error is None else default


class FetchTimeout(TimeoutError):
    """A fanned-out call did not finish within the batch timeout."""


def _timed(fn: Callable[[], Any]) -> tuple[Any, float]:
    start = time.perf_counter()
    result = fn()
    return result, time.perf_counter() - start


def settle_all(
    calls: Mapping[K, Callable[[], Any]],
    executor: ThreadPoolExecutor,
    timeout: float | None = None,
) -> dict[K, Settled[K]]:
    """
    Run every call concurrently and wait for all of them.

    Args:
        calls: Key -> zero-argument callable
        executor: Pool to run the calls on
        timeout: Seconds to wait for the whole batch (None waits forever)

    Returns:
        Key -> Settled, one entry per call, in the order given
    """
    if not calls:
        return {}

    futures: dict[K, Future] = {key: executor.submit(_timed, fn) for key, fn in calls.items()}
    done, _ = wait(futures.values(), timeout=timeout)

    results: dict[K, Settled[K]] = {}
    for key, future in futures.items():
        if future not in done:
            # Left to finish in the background; its result is discarded
            future.cancel()
            logger.debug(f"Fetch {key!r} timed out after {timeout}s")
            results[key] = Settled(key=key, error=FetchTimeout(f"{key!r} timed out"))
            continue

        error = future.exception()
        if error is not None:
            logger.debug(f"Fetch {key!r} failed: {error}")
            results[key] = Settled(key=key, error=error)
        else:
            value, duration = future.result()
            results[key] = Settled(key=key, value=value, duration_seconds=duration)

    return results


def create_executor(max_workers: int | None = None) -> ThreadPoolExecutor:
    """Thread pool shared by one session loop."""
    return ThreadPoolExecutor(
        max_workers=max_workers or DEFAULT_WORKERS,
        thread_name_prefix="matchsight-fetch",
    )
