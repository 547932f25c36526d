"""
Transfer Item Registry

Ordered list of files in the session. The index of an item is the same on
both peers and is the only thing tying a data connection to a file.

Status lifecycle:
```
PENDING -> TRANSFERRING -> DONE
                        -> ERROR
```
"""

from enum import Enum
from typing import Iterable, Iterator, List
from dataclasses import dataclass


class FileStatus(Enum):
    """Transfer status of a single file."""
    PENDING = "pending"
    TRANSFERRING = "transferring"
    DONE = "done"
    ERROR = "error"


_ALLOWED_TRANSITIONS = {
    FileStatus.PENDING: {FileStatus.TRANSFERRING},
    FileStatus.TRANSFERRING: {FileStatus.DONE, FileStatus.ERROR},
    FileStatus.DONE: set(),
    FileStatus.ERROR: set(),
}


class InvalidStatusTransition(ValueError):
    """An item was asked to move backwards or skip a state."""


@dataclass
class FileTransferItem:
    """One file's transfer record."""
    name: str
    status: FileStatus = FileStatus.PENDING

    def to_dict(self) -> dict:
        return {'name': self.name, 'status': self.status.value}


class TransferRegistry:
    """
    Index-addressed file items with monotonic status.

    Only the active background task writes to it; the presentation layer
    reads it and listens to status events.
    """

    def __init__(self, names: Iterable[str] = ()):
        self._items: List[FileTransferItem] = [FileTransferItem(name) for name in names]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[FileTransferItem]:
        return iter(self._items)

    def __getitem__(self, index: int) -> FileTransferItem:
        return self._items[index]

    @property
    def names(self) -> List[str]:
        return [item.name for item in self._items]

    def replace(self, names: Iterable[str]):
        """Load the file list learnt during the handshake (receiver side)."""
        if any(item.status != FileStatus.PENDING for item in self._items):
            raise RuntimeError("Cannot replace items once a transfer has started")
        self._items = [FileTransferItem(name) for name in names]

    def set_status(self, index: int, status: FileStatus) -> FileTransferItem:
        """
        Move item `index` to `status`.

        Raises:
            IndexError: no such item
            InvalidStatusTransition: transition not allowed
        """
        item = self._items[index]
        if status not in _ALLOWED_TRANSITIONS[item.status]:
            raise InvalidStatusTransition(
                f"Item {index} ({item.name}): {item.status.value} -> {status.value} not allowed"
            )
        item.status = status
        return item

    def count(self, status: FileStatus) -> int:
        return sum(1 for item in self._items if item.status == status)

    def to_list(self) -> List[dict]:
        return [item.to_dict() for item in self._items]
