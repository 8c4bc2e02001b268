from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from ..contracts import Task
from ..errors import (
    RetriesExhaustedError,
    RetryNotEligibleError,
    TaskInterruptedError,
    TaskTimeoutError,
)

logger = logging.getLogger(__name__)


def compute_backoff(retry_count: int, retry_delay_ms: int) -> float:
    """Compute linear backoff in seconds: ``retry_delay_ms * retry_count``."""
    return max(retry_count, 0) * retry_delay_ms / 1000


async def schedule_retry(retry_count: int, retry_delay_ms: int) -> None:
    """Sleep for computed backoff delay before retrying."""
    delay = compute_backoff(retry_count, retry_delay_ms)
    if delay:
        await asyncio.sleep(delay)


def max_retries_for(task: Task, default_max_retries: int) -> int:
    return task.max_retries if task.max_retries is not None else default_max_retries


def check_retry_eligible(task: Task, default_max_retries: int) -> None:
    """Raise if ``task`` may not be retried. Never mutates the task."""
    if not task.retryable:
        raise RetryNotEligibleError(task.id)
    max_retries = max_retries_for(task, default_max_retries)
    if task.retry_count >= max_retries:
        raise RetriesExhaustedError(task.id, max_retries)


async def execute_with_timeout(
    work: Awaitable[Any],
    timeout_ms: int,
    task_id: str = "",
    on_start: Optional[Callable[[asyncio.Future], None]] = None,
) -> Any:
    """Race ``work`` against a timer.

    On expiry the inner asyncio task is cancelled and ``TaskTimeoutError`` is
    raised without waiting for it to stop. Coroutines see ``CancelledError``;
    work running in a thread keeps going and its outcome is dropped.

    Args:
        work: Awaitable produced by the task's work function.
        timeout_ms: Budget for this attempt.
        task_id: Used in error messages.
        on_start: Optional callback receiving the inner ``asyncio.Task`` so
            the caller can interrupt it (pause/cancel).
    """
    inner = asyncio.ensure_future(work)
    if on_start is not None:
        on_start(inner)
    try:
        done, _ = await asyncio.wait({inner}, timeout=timeout_ms / 1000)
    except asyncio.CancelledError:
        inner.cancel()
        raise

    if not done:
        inner.cancel()
        logger.debug(f"Task {task_id} exceeded its {timeout_ms}ms budget")
        raise TaskTimeoutError(task_id, timeout_ms)
    if inner.cancelled():
        raise TaskInterruptedError(task_id)
    return inner.result()
