"""Asyncio helpers: deadlines that abandon work instead of cancelling it."""

import asyncio
import logging
from typing import Any, Awaitable, Optional

logger = logging.getLogger(__name__)


class DeadlineExceeded(asyncio.TimeoutError):
    """Raised when awaited work does not finish before its deadline."""

    def __init__(self, timeout_ms: float):
        super().__init__(f"Deadline of {timeout_ms:g}ms exceeded")
        self.timeout_ms = timeout_ms


def has_event_loop() -> bool:
    """Check if event loop exists"""
    try:
        asyncio.get_running_loop()
        return True
    except RuntimeError:
        return False


def _consume_abandoned(task: "asyncio.Future[Any]") -> None:
    # Retrieve the outcome so the loop doesn't report it as never retrieved
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("Abandoned task finished with error: %r", exc)


async def wait_or_abandon(
    work: Awaitable[Any], timeout_ms: float, name: Optional[str] = None
) -> Any:
    """Await ``work`` for at most ``timeout_ms`` milliseconds.

    On timeout the work is abandoned, not cancelled: it keeps running and
    its eventual outcome is discarded. asyncio.wait owns the timer, so no
    timer handle survives this call on any path.

    Raises:
        DeadlineExceeded: If the work did not finish in time
    """
    task = asyncio.ensure_future(work)
    if name and isinstance(task, asyncio.Task):
        task.set_name(name)

    try:
        done, _ = await asyncio.wait({task}, timeout=timeout_ms / 1000)
    except asyncio.CancelledError:
        task.add_done_callback(_consume_abandoned)
        raise

    if task in done:
        return task.result()

    task.add_done_callback(_consume_abandoned)
    raise DeadlineExceeded(timeout_ms)
