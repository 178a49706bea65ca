"""Utility modules for hookdb."""

from hookdb.utils.asyncio import DeadlineExceeded, has_event_loop, wait_or_abandon

__all__ = [
    "DeadlineExceeded",
    "has_event_loop",
    "wait_or_abandon",
]
