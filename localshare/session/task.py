"""
Background Session Task

Design Decision: One Abstraction for Every Phase
=================================================

The handshake, the receive loop and the send loop all follow the same shape:
run once in the background, can be cancelled at any blocking point, and
report a single outcome. Each is a subclass of SessionTask implementing
`run()`; the session controller only ever deals with `start()`, `cancel()`
and `wait()`.

Nothing raised inside `run()` escapes the task. Exceptions become a FAILED
outcome, cancellation becomes a CANCELLED outcome.
"""

import asyncio
import logging
from enum import Enum
from typing import Any, Optional
from dataclasses import dataclass

logger = logging.getLogger(__name__)


class TaskStatus(Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class TaskOutcome:
    """Result of a finished background task."""
    status: TaskStatus
    value: Any = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status == TaskStatus.SUCCEEDED


class SessionTask:
    """Base class for cancellable background units of work."""

    name = "task"

    def __init__(self):
        self._task: Optional[asyncio.Task] = None
        self._cancel_requested = False

    @property
    def started(self) -> bool:
        return self._task is not None

    @property
    def done(self) -> bool:
        return self._task is not None and self._task.done()

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested

    def start(self) -> asyncio.Task:
        """Schedule the task on the running event loop."""
        if self._task is not None:
            raise RuntimeError(f"{self.name} already started")
        self._task = asyncio.get_running_loop().create_task(
            self._run_guarded(), name=self.name
        )
        return self._task

    def cancel(self) -> bool:
        """
        Request cancellation.

        The running coroutine is interrupted at its current await and closes
        its sockets on the way out. Returns False if there was nothing to cancel.
        """
        if self.done:
            return False
        self._cancel_requested = True
        if self._task is None:
            return True
        return self._task.cancel()

    async def wait(self) -> TaskOutcome:
        """Wait for the task to finish and return its outcome."""
        if self._task is None:
            raise RuntimeError(f"{self.name} was never started")
        try:
            return await asyncio.shield(self._task)
        except asyncio.CancelledError:
            # Cancelled before its first step, so run() never got to catch it
            if self._task.cancelled():
                return TaskOutcome(TaskStatus.CANCELLED)
            raise

    async def run(self) -> Any:
        raise NotImplementedError

    async def _run_guarded(self) -> TaskOutcome:
        if self._cancel_requested:
            return TaskOutcome(TaskStatus.CANCELLED)
        try:
            value = await self.run()
        except asyncio.CancelledError:
            logger.info(f"{self.name} cancelled")
            return TaskOutcome(TaskStatus.CANCELLED)
        except Exception as e:
            logger.exception(f"{self.name} failed: {e}")
            return TaskOutcome(TaskStatus.FAILED, error=str(e) or e.__class__.__name__)

        if self._cancel_requested:
            return TaskOutcome(TaskStatus.CANCELLED, value=value)
        if value is False or value is None:
            return TaskOutcome(TaskStatus.FAILED, value=value)
        return TaskOutcome(TaskStatus.SUCCEEDED, value=value)
