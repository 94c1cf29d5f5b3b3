"""
Race between bounded waits.

A condition is a zero-argument callable returning an awaitable that completes
when the condition holds and raises (typically a timeout) when it does not.
"""

import asyncio
from collections.abc import Awaitable, Callable, Mapping
from typing import Any

from reminder_bell.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

Condition = Callable[[], Awaitable[Any]]


async def first_satisfied(conditions: Mapping[str, Condition], timeout: float) -> str | None:
    """
    Return the name of the first condition that completes successfully.

    Conditions that raise are treated as unsatisfied. Returns None when the
    timeout elapses or every condition failed. Remaining waits are cancelled.
    """
    if not conditions:
        return None

    tasks: dict[asyncio.Task, str] = {
        asyncio.ensure_future(factory()): name for name, factory in conditions.items()
    }
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    pending = set(tasks)

    try:
        while pending:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break

            done, pending = await asyncio.wait(
                pending, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
            )
            if not done:
                break

            # Deterministic tie-break: declaration order
            for task in sorted(done, key=lambda t: list(tasks).index(t)):
                if task.cancelled():
                    continue
                error = task.exception()
                if error is None:
                    return tasks[task]
                logger.debug(
                    "Wait condition failed",
                    condition=tasks[task],
                    error_type=type(error).__name__,
                )
        return None

    finally:
        for task in tasks:
            if not task.done():
                task.cancel()
        # Collects results so no failed wait is reported as unretrieved
        await asyncio.gather(*tasks, return_exceptions=True)
