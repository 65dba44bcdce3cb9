"""Async utilities for running synchronous sync handlers from async MCP tools."""

import asyncio
import logging
from typing import Any, Callable, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)

# One lock per channel id; handlers for the same channel never overlap
_channel_locks: dict[int, asyncio.Lock] = {}


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Example:
        # In MCP tool handler:
        greeting = await run_sync(client.validate_connection)
    """
    return await asyncio.to_thread(func, *args, **kwargs)


def channel_lock(channel_id: int) -> asyncio.Lock:
    """Return the lock serializing change handlers for one channel."""
    lock = _channel_locks.get(channel_id)
    if lock is None:
        lock = asyncio.Lock()
        _channel_locks[channel_id] = lock
    return lock


async def run_exclusive(
    channel_id: int, func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous handler in a thread pool, one at a time per channel.

    Args:
        channel_id: Channel whose structure the handler reads and mutates.
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)
    """
    lock = channel_lock(channel_id)
    if lock.locked():
        logger.info(
            "Channel %d is busy, waiting for the running handler", channel_id
        )
    async with lock:
        return await asyncio.to_thread(func, *args, **kwargs)


def reset_channel_locks() -> None:
    """Forget all channel locks (server shutdown and tests)."""
    _channel_locks.clear()
