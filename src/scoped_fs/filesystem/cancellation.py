"""
Deadlines and cancellation for long-running filesystem operations.

A CancellationToken is created per call and passed into every
operation that can suspend. Subprocess-backed work reacts to it by
terminating the child process; in-process traversal polls ``expired``
and stops enumerating.
"""

import asyncio
import logging
import time
from typing import Awaitable, Optional

logger = logging.getLogger(__name__)


class CancellationToken:
    """
    Cancellation signal with an optional wall-clock deadline.

    Usage:
        token = CancellationToken(timeout=5.0)
        finished = await run_until_cancelled(do_work(token), token)
        if not finished:
            # deadline hit, work was cancelled
    """

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout
        self._deadline = time.monotonic() + timeout if timeout is not None else None
        self._cancelled = False
        self._event: Optional[asyncio.Event] = None

    @property
    def cancelled(self) -> bool:
        """True once cancel() was called or the deadline passed."""
        return self._cancelled or self.timed_out

    expired = cancelled

    @property
    def timed_out(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    def remaining(self) -> Optional[float]:
        """Seconds until the deadline, None when there is no deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def cancel(self) -> None:
        self._cancelled = True
        if self._event is not None:
            self._event.set()

    async def wait(self) -> None:
        """Suspend until the token is cancelled or its deadline passes."""
        if self.cancelled:
            return
        if self._event is None:
            self._event = asyncio.Event()
        try:
            await asyncio.wait_for(self._event.wait(), timeout=self.remaining())
        except asyncio.TimeoutError:
            pass

    def __repr__(self) -> str:
        return f"CancellationToken(timeout={self.timeout}, cancelled={self.cancelled})"


async def run_until_cancelled(work: Awaitable, token: CancellationToken) -> bool:
    """
    Run ``work`` until it completes or ``token`` fires.

    Returns True if the work finished, False if it was cancelled by the
    token. Exceptions raised by the work propagate.
    """
    task = asyncio.ensure_future(work)
    waiter = asyncio.ensure_future(token.wait())
    try:
        done, _ = await asyncio.wait(
            {task, waiter}, return_when=asyncio.FIRST_COMPLETED
        )
        if task in done:
            task.result()
            return True
        return False
    finally:
        for pending in (task, waiter):
            if not pending.done():
                pending.cancel()
        await asyncio.gather(task, waiter, return_exceptions=True)


async def terminate_process(
    proc: asyncio.subprocess.Process, grace_seconds: float = 1.0
) -> None:
    """Stop a child process: SIGTERM, then SIGKILL after ``grace_seconds``."""
    if proc.returncode is not None:
        return

    try:
        proc.terminate()
    except ProcessLookupError:
        return

    try:
        await asyncio.wait_for(proc.wait(), timeout=grace_seconds)
    except asyncio.TimeoutError:
        logger.warning(f"Process {proc.pid} ignored SIGTERM, killing")
        try:
            proc.kill()
        except ProcessLookupError:
            return
        await proc.wait()
