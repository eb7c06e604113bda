"""Async helpers for running blocking repository work off the event loop."""

import asyncio
import logging
from typing import Any, Callable, Sequence, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)


def clamp_parallelism(limit: int) -> int:
    """Treat non-positive parallelism bounds as 1."""
    return limit if limit > 0 else 1


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Used by MCP tool handlers to call the blocking core.

    Example:
        registry = Registry.open(paths, git)
        repos = await run_sync(registry.get_all_repositories)
    """
    return await asyncio.to_thread(func, *args, **kwargs)


async def gather_bounded(
    calls: Sequence[Callable[[], T]],
    limit: int,
) -> list[T]:
    """Run blocking callables in worker threads, at most *limit* at a time.

    A fresh semaphore bounds each invocation, so concurrent batches never
    share a budget.  Results come back in input order after every call has
    finished.  Each callable is expected to trap its own errors; an
    exception that escapes one propagates once the whole batch has joined.

    Args:
        calls: Zero-argument callables, one per unit of work.
        limit: Maximum number in flight (values <= 0 are treated as 1).

    Returns:
        List of results in the same order as *calls*.
    """
    semaphore = asyncio.Semaphore(clamp_parallelism(limit))

    async def _one(call: Callable[[], T]) -> T:
        async with semaphore:
            return await asyncio.to_thread(call)

    logger.debug(
        "Running %d task(s) with parallelism %d",
        len(calls),
        clamp_parallelism(limit),
    )
    results = await asyncio.gather(
        *(_one(c) for c in calls), return_exceptions=True
    )
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return list(results)  # type: ignore[arg-type]

