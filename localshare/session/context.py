"""
Transfer Context

The narrow view of a session that background tasks get: read the file list,
write item status, count finished attempts, check for cancellation.
"""

import logging
from typing import List

from .events import EventChannel, ItemStatusChanged
from .models import TransferSession
from .registry import FileStatus, FileTransferItem, TransferRegistry

logger = logging.getLogger(__name__)


class TransferContext:
    """Capability handed to the handshake and transfer tasks."""

    def __init__(self, session: TransferSession, registry: TransferRegistry,
                 events: EventChannel):
        self._session = session
        self._registry = registry
        self._events = events

    @property
    def file_names(self) -> List[str]:
        return self._registry.names

    @property
    def total_files(self) -> int:
        return self._session.total_files

    @property
    def transferred_count(self) -> int:
        return self._session.transferred_count

    @property
    def cancelled(self) -> bool:
        return self._session.cancelled

    def set_status(self, index: int, status: FileStatus) -> FileTransferItem:
        """Update an item and notify observers."""
        item = self._registry.set_status(index, status)
        logger.debug(f"File {index} ({item.name}): {status.value}")
        self._events.publish(ItemStatusChanged(index=index, name=item.name, status=status))
        return item

    def record_transferred(self):
        """Count one finished connection attempt, successful or not."""
        self._session.transferred_count += 1
