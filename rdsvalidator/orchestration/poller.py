"""
Readiness polling.

Every provisioning step waits on its resource with :func:`await_ready`:
call a check at a fixed interval until it yields a value, a fatal error is
raised, the run is cancelled, or an optional timeout elapses.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, TypeVar

from ..errors import OperationCancelled, ReadinessTimeout

T = TypeVar("T")

Check = Callable[[], Awaitable[Optional[T]]]
RetryPolicy = Callable[[BaseException], bool]
ProgressCallback = Callable[[str, int], None]

logger = logging.getLogger(__name__)


def never_retry(exc: BaseException) -> bool:
    """Default policy: every exception raised by a check is fatal."""
    return False


async def await_ready(
    check: Check,
    *,
    interval: float,
    label: str,
    cancel: Optional[asyncio.Event] = None,
    retry_on: RetryPolicy = never_retry,
    timeout: Optional[float] = None,
    progress: Optional[ProgressCallback] = None,
) -> T:
    """
    Poll ``check`` until it returns something other than ``None``.

    Args:
        check: Coroutine function returning the ready value, or ``None`` when
            the resource is not ready yet.
        interval: Seconds to wait between attempts.
        label: Human readable name used for progress and errors.
        cancel: Event that aborts the wait when set.
        retry_on: Decides whether an exception raised by ``check`` is
            transient (retried) or fatal (propagated immediately).
        timeout: Optional upper bound in seconds; ``None`` waits forever.
        progress: Called with ``(label, attempt)`` after each unready attempt.

    Returns:
        The first non-``None`` value returned by ``check``.

    Raises:
        OperationCancelled: ``cancel`` was set.
        ReadinessTimeout: ``timeout`` elapsed.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout if timeout is not None else None
    attempt = 0

    while True:
        _raise_if_cancelled(cancel, label)
        attempt += 1

        try:
            result = await check()
        except Exception as e:
            if not retry_on(e):
                raise
            logger.debug(
                f"Transient error while waiting on {label}: {e}",
                extra={"label": label, "attempt": attempt},
            )
            result = None

        if result is not None:
            logger.debug(
                f"{label} ready after {attempt} attempt(s)",
                extra={"label": label, "attempt": attempt},
            )
            return result

        if progress is not None:
            progress(label, attempt)

        delay = interval
        if deadline is not None:
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise ReadinessTimeout(
                    f"Gave up waiting on {label} after {timeout}s "
                    f"({attempt} attempts)"
                )
            delay = min(interval, remaining)

        await _sleep(delay, cancel, label)


async def _sleep(delay: float, cancel: Optional[asyncio.Event], label: str) -> None:
    """Sleep for ``delay`` seconds, waking early if ``cancel`` is set."""
    if cancel is None:
        await asyncio.sleep(delay)
        return

    try:
        await asyncio.wait_for(cancel.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return
    _raise_if_cancelled(cancel, label)


def _raise_if_cancelled(cancel: Optional[asyncio.Event], label: str) -> None:
    if cancel is not None and cancel.is_set():
        raise OperationCancelled(f"Stopped waiting on {label}")
