"""
Small asyncio helpers shared by the backfill pipeline.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Iterable, List, Optional, Tuple, Type, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


async def retry_async(
    fn: Callable[[], Awaitable[T]],
    attempts: int = 2,
    delay: float = 10.0,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    log: Optional[logging.Logger] = None,
) -> T:
    """
    Await `fn()` up to `attempts` times, sleeping `delay` seconds between tries.

    The last failure is re-raised unchanged.

    Example:
        >>> await retry_async(lambda: save_batch(...), attempts=2, delay=10)
    """
    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=wait_fixed(delay),
        retry=retry_if_exception_type(retry_on),
        before_sleep=before_sleep_log(log or logger, logging.WARNING),
        reraise=True,
    ):
        with attempt:
            return await fn()

    raise RuntimeError("unreachable")  # pragma: no cover


async def gather_defined(
    fn: Callable[[T], Awaitable[Optional[R]]],
    items: Iterable[T],
    limit: Optional[int] = None,
) -> List[R]:
    """
    Concurrently map `fn` over `items` and keep the results that are not None.

    Results keep the order of `items`. `limit` caps how many calls are in
    flight at once. The first exception propagates.
    """
    if limit is None:
        results = await asyncio.gather(*(fn(item) for item in items))
    else:
        semaphore = asyncio.Semaphore(limit)

        async def bounded(item: T) -> Optional[R]:
            async with semaphore:
                return await fn(item)

        results = await asyncio.gather(*(bounded(item) for item in items))

    return [result for result in results if result is not None]
