"""
Retrying bulk execution for cleanup work (deleting data files on abort).

Semantics
- Work runs in rounds. Every round attempts every pending item; items that fail are kept
  for the next round, items that succeed are dropped.
- Between rounds the runner sleeps ``min(min_wait_ms * scale_factor ** round, max_wait_ms)``.
- Rounds stop when nothing is pending, after ``retries`` extra rounds, or when the total
  time budget is spent.
- Items still failing at the end are reported together in one CleanupError; a failure
  on one item never prevents attempts on the others.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from typing import TypeVar

from loguru import logger

from .errors import CleanupError

__all__ = ["retry_delay_ms", "run_tasks"]

T = TypeVar("T")


def retry_delay_ms(
    attempt: int, min_wait_ms: int, max_wait_ms: int, scale_factor: float = 2.0
) -> float:
    """
    Exponential backoff delay for a 0-based retry attempt, capped at ``max_wait_ms``.

    Examples:
        >>> retry_delay_ms(0, 100, 1000), retry_delay_ms(3, 100, 1000), retry_delay_ms(5, 100, 1000)
        (100.0, 800.0, 1000.0)
    """
    return float(min(min_wait_ms * (scale_factor**attempt), max_wait_ms))


def run_tasks(
    items: Iterable[T],
    action: Callable[[T], None],
    *,
    retries: int = 0,
    min_wait_ms: int = 100,
    max_wait_ms: int = 60_000,
    total_timeout_ms: int = 30 * 60 * 1000,
    scale_factor: float = 2.0,
    describe: Callable[[T], str] = str,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """
    Apply ``action`` to every item, retrying failed items in later rounds.

    Args:
        items: Work items (e.g., file locations).
        action: Callable applied to each item; raising marks the item failed.
        retries: Extra rounds after the first.
        min_wait_ms / max_wait_ms: Bounds on the wait between rounds.
        total_timeout_ms: Stop starting new rounds after this much time.
        scale_factor: Backoff growth per round.
        describe: Renders an item for logs and the CleanupError report.
        sleep: Sleep function, in seconds.

    Raises:
        CleanupError: If any item still fails after the last round.
    """
    pending = list(items)
    failures: dict[str, BaseException] = {}
    start = time.monotonic()
    attempt = 0

    while pending:
        still_failing: list[T] = []
        for item in pending:
            try:
                action(item)
            except Exception as exc:
                logger.warning("attempt {} failed for {}: {}", attempt + 1, describe(item), exc)
                failures[describe(item)] = exc
                still_failing.append(item)
            else:
                failures.pop(describe(item), None)
        pending = still_failing
        if not pending or attempt >= retries:
            break
        elapsed_ms = (time.monotonic() - start) * 1000.0
        if elapsed_ms >= total_timeout_ms:
            logger.warning("giving up after {:.0f} ms with {} items pending", elapsed_ms, len(pending))
            break
        delay = retry_delay_ms(attempt, min_wait_ms, max_wait_ms, scale_factor)
        sleep(delay / 1000.0)
        attempt += 1

    if pending:
        raise CleanupError(
            f"failed to process {len(pending)} item(s)",
            {describe(item): failures[describe(item)] for item in pending},
        )
