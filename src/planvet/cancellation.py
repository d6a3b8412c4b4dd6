"""Deadline-bounded execution with two-stage cancellation.

Both backend paths run their single suspending call through
``run_with_deadline``. When the deadline passes the work is cancelled, the
graceful stop is requested, and if the resource has not closed within the
grace window the forceful stop follows. The caller always gets control back
with nothing left running.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from planvet.config.defaults import INVOKE_TERMINATE_GRACE_SECONDS
from planvet.errors import DeadlineExceeded

T = TypeVar("T")
logger = logging.getLogger(__name__)


async def run_with_deadline(
    work: Awaitable[T],
    timeout: float,
    *,
    graceful: Optional[Callable[[], Any]] = None,
    forceful: Optional[Callable[[], Any]] = None,
    wait_closed: Optional[Callable[[], Awaitable[Any]]] = None,
    grace: float = INVOKE_TERMINATE_GRACE_SECONDS,
) -> T:
    """Await ``work`` for at most ``timeout`` seconds.

    Args:
        work: Coroutine or future doing the actual I/O.
        timeout: Deadline in seconds.
        graceful: Called once the deadline passes (e.g. ``proc.terminate``).
        forceful: Called if ``wait_closed`` does not finish within ``grace``
            (e.g. ``proc.kill``).
        wait_closed: Awaitable factory that completes once the underlying
            resource is gone (e.g. ``proc.wait``).
        grace: Seconds between the graceful and forceful stop.

    Returns:
        Whatever ``work`` returns.

    Raises:
        DeadlineExceeded: If the deadline passed. ``escalated`` tells whether
            the forceful stop was needed.
    """
    task = asyncio.ensure_future(work)
    try:
        done, _ = await asyncio.wait({task}, timeout=timeout)
    except asyncio.CancelledError:
        # Caller was cancelled: tear down the same way, then propagate.
        await _stop(task, graceful, forceful, wait_closed, grace)
        raise

    if task in done:
        return task.result()

    logger.debug(f"Deadline of {timeout:.3f}s exceeded, stopping work")
    escalated = await _stop(task, graceful, forceful, wait_closed, grace)
    raise DeadlineExceeded(timeout, escalated=escalated)


async def _stop(
    task: asyncio.Future,
    graceful: Optional[Callable[[], Any]],
    forceful: Optional[Callable[[], Any]],
    wait_closed: Optional[Callable[[], Awaitable[Any]]],
    grace: float,
) -> bool:
    """Cancel ``task`` and release the resource behind it.

    Returns True when the forceful stop had to be used.
    """
    escalated = False
    task.cancel()

    if graceful is not None:
        graceful()

    if wait_closed is not None:
        try:
            await asyncio.wait_for(wait_closed(), grace)
        except asyncio.TimeoutError:
            if forceful is not None:
                logger.warning(f"Resource still alive after {grace}s grace window, forcing stop")
                forceful()
                escalated = True
            await wait_closed()

    # Reap the cancelled work so no pending task outlives the call.
    await asyncio.gather(task, return_exceptions=True)
    return escalated
