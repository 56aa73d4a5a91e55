"""Tie a client disconnect to the cancel event handed to blocking calls."""

import asyncio
import threading
from collections.abc import Callable
from typing import Any

from fastapi import Request
from fastapi.concurrency import run_in_threadpool

DISCONNECT_POLL_SECONDS = 0.5


async def watch_disconnect(request: Request, cancel: threading.Event) -> None:
    """Set ``cancel`` once the client goes away. Returns as soon as it is set."""
    while not cancel.is_set():
        if await request.is_disconnected():
            cancel.set()
            return
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


async def run_cancellable(
    request: Request, func: Callable[..., Any], *args: Any, **kwargs: Any
) -> Any:
    """Run ``func(*args, cancel=event, **kwargs)`` in the threadpool.

    The event is set if the client disconnects while the call is running.
    """
    cancel = threading.Event()
    watcher = asyncio.create_task(watch_disconnect(request, cancel))
    try:
        return await run_in_threadpool(func, *args, cancel=cancel, **kwargs)
    finally:
        watcher.cancel()
