"""
Session Event Channel

Background tasks never touch the presentation layer directly. They publish
events here and observers pick them up either through a queue or a callback.
"""

import asyncio
import logging
from typing import Callable, List, Union
from dataclasses import dataclass

from .models import SessionResult, SessionState
from .registry import FileStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StateChanged:
    state: SessionState


@dataclass(frozen=True)
class ItemStatusChanged:
    index: int
    name: str
    status: FileStatus


@dataclass(frozen=True)
class SessionFinished:
    result: SessionResult


SessionEvent = Union[StateChanged, ItemStatusChanged, SessionFinished]
EventCallback = Callable[[SessionEvent], None]


class EventChannel:
    """Fan-out of session events to queue and callback subscribers."""

    def __init__(self):
        self._queues: List[asyncio.Queue] = []
        self._callbacks: List[EventCallback] = []

    def subscribe(self) -> asyncio.Queue:
        """Get a queue that receives every event published from now on."""
        queue: asyncio.Queue = asyncio.Queue()
        self._queues.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue):
        if queue in self._queues:
            self._queues.remove(queue)

    def on_event(self, callback: EventCallback):
        """Register a callback for session events."""
        self._callbacks.append(callback)

    def publish(self, event: SessionEvent):
        for queue in self._queues:
            queue.put_nowait(event)

        for callback in self._callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Event callback error: {e}")

    async def listen(self):
        """Yield events until the session finishes (inclusive)."""
        queue = self.subscribe()
        try:
            while True:
                event = await queue.get()
                yield event
                if isinstance(event, SessionFinished):
                    return
        finally:
            self.unsubscribe(queue)
