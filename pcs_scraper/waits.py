import asyncio
from typing import Awaitable, Callable

from pcs_scraper.errors import WaitTimeout


async def await_predicate(
    predicate: Callable[[], Awaitable[bool]],
    *,
    interval_ms: int,
    timeout_ms: int,
    description: str = "condition",
) -> None:
    """
    Poll an async predicate until it returns True.

    The predicate is checked immediately, then every interval_ms. Exceptions
    raised by the predicate propagate unchanged.

    Raises:
        WaitTimeout: if the predicate is still false after timeout_ms
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout_ms / 1000
    while True:
        if await predicate():
            return
        remaining = deadline - loop.time()
        if remaining <= 0:
            raise WaitTimeout(f"{description} not met within {timeout_ms}ms")
        await asyncio.sleep(min(interval_ms / 1000, remaining))
