"""Poll a condition with exponential backoff."""

import asyncio
from typing import Awaitable, Callable, TypeVar

import structlog

from .config import config

logger = structlog.get_logger()

T = TypeVar("T")


async def poll_with_backoff(
    check: Callable[[], Awaitable[T | None]],
    interval: float | None = None,
    max_interval: float | None = None,
    backoff: float | None = None,
    timeout: float | None = None,
) -> T:
    """
    Await `check` until it returns something other than None.

    The delay starts at `interval` and is multiplied by `backoff` after each
    miss, capped at `max_interval`. Cancel the awaiting task to stop early;
    with `timeout` set, asyncio.TimeoutError is raised once it elapses.
    Exceptions from `check` propagate.
    """
    interval = config.poll_interval if interval is None else interval
    max_interval = config.poll_max_interval if max_interval is None else max_interval
    backoff = config.poll_backoff if backoff is None else backoff

    async def _loop() -> T:
        delay = interval
        attempt = 0
        while True:
            attempt += 1
            result = await check()
            if result is not None:
                return result
            logger.debug("Condition not met yet", attempt=attempt, retry_in=delay)
            await asyncio.sleep(delay)
            delay = min(delay * backoff, max_interval)

    if timeout is None:
        return await _loop()
    return await asyncio.wait_for(_loop(), timeout=timeout)


async def gather_or_cancel(*aws: Awaitable[T]) -> list[T]:
    """
    Like asyncio.gather, but a failure cancels the siblings still running.

    The cancelled tasks are awaited before the error is re-raised so none of
    them outlives the call.
    """
    tasks = [asyncio.ensure_future(aw) for aw in aws]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
