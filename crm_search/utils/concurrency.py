"""
Concurrency helpers shared by the search fan-out and the facet aggregator.
"""

import asyncio
import logging
from collections.abc import Awaitable
from typing import Any, TypeVar

from crm_search.exceptions import StorageError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def gather_or_cancel(*aws: Awaitable[Any]) -> list[Any]:
    """
    Run awaitables concurrently and return their results in order.

    If any of them fails (or the caller is cancelled), the unfinished ones
    are cancelled and awaited before the exception propagates.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


async def run_with_timeout(
    aw: Awaitable[T],
    timeout: float | None,
    entity_type: str | None = None,
    operation: str | None = None,
) -> T:
    """Await with an optional deadline; a timeout surfaces as StorageError."""
    if not timeout or timeout <= 0:
        return await aw
    try:
        return await asyncio.wait_for(aw, timeout=timeout)
    except asyncio.TimeoutError as e:
        logger.warning(f"{entity_type or 'storage'} {operation or 'operation'} timed out after {timeout}s")
        raise StorageError(
            f"{operation or 'Operation'} on {entity_type or 'storage'} timed out",
            entity_type=entity_type,
            operation=operation,
            timed_out=True,
        ) from e
