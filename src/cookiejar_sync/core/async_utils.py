"""Async helpers for running blocking work off the event loop."""

import asyncio
import logging
import time
from typing import Any, Callable, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)

# Blocking calls slower than this are logged at DEBUG
SLOW_CALL_SECONDS = 1.0

_clock = time.monotonic


def _call_name(func: Callable[..., Any]) -> str:
    return getattr(func, "__qualname__", None) or repr(func)


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Used for ``requests`` calls to the Gist API, PBKDF2 key derivation and
    state file I/O.  Arguments are never logged: they may carry the token
    or the passphrase.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Example:
        client = GistClient(config)
        gist = await run_sync(client.get_gist, gist_id, token)
    """
    started = _clock()
    try:
        return await asyncio.to_thread(func, *args, **kwargs)
    finally:
        elapsed = _clock() - started
        if elapsed >= SLOW_CALL_SECONDS:
            logger.debug("%s took %.2fs", _call_name(func), elapsed)
