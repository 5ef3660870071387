"""Race an awaitable against a deadline.

The losing branch is abandoned, not killed. When the deadline wins, the
in-flight call keeps running in the background until it settles on its
own. At most one abandoned call exists per timed-out request.
"""

import asyncio
import logging
from typing import Awaitable, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DeadlineExceeded(Exception):
    """Raised when the deadline fires before the awaitable settles.

    Attributes:
        timeout_seconds: The deadline that was exceeded.
        abandoned: The still-running task, left to finish in the background.
    """

    def __init__(self, timeout_seconds: float, abandoned: "asyncio.Task") -> None:
        self.timeout_seconds = timeout_seconds
        self.abandoned = abandoned
        super().__init__(f"Operation did not settle within {timeout_seconds:g}s")


def _consume_abandoned_result(task: "asyncio.Task") -> None:
    if task.cancelled():
        return
    exc: Optional[BaseException] = task.exception()
    if exc is not None:
        logger.info(
            "Abandoned call settled after its deadline with %s: %s",
            type(exc).__name__,
            exc,
        )
    else:
        logger.info("Abandoned call settled after its deadline")


async def race_against_deadline(awaitable: Awaitable[T], timeout_seconds: float) -> T:
    """Await ``awaitable`` for at most ``timeout_seconds``.

    Whichever settles first decides the outcome: the awaitable's result (or
    exception) is returned (or raised) unchanged; if the deadline fires
    first, :class:`DeadlineExceeded` is raised and the awaitable's task is
    left running, with a done-callback that consumes its eventual outcome.

    If the caller itself is cancelled while waiting, the cancellation
    propagates and the task is abandoned the same way.
    """
    task = asyncio.ensure_future(awaitable)
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout_seconds)
    except asyncio.CancelledError:
        task.add_done_callback(_consume_abandoned_result)
        raise

    if task in done:
        return task.result()

    task.add_done_callback(_consume_abandoned_result)
    raise DeadlineExceeded(timeout_seconds, task)
