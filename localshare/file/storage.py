"""
File Storage

Design Decision: Destination Layout
====================================

Options Considered:
1. Flatten everything into the storage root
   - Simple, but names collide and folders are lost

2. Keep the relative name the sender announced
   - Mirrors the sender's naming
   - Must refuse names that climb out of the root

Decision: root / <announced name>
- Missing parent directories are created on demand
- Absolute names and names containing '..' are refused
- A file that failed halfway is removed so no truncated copy is left behind

Storage Layout:
```
received/
├── a.txt
└── wikipedia/
    └── wikipedia_en_all.zim
```
"""

import logging
from pathlib import Path, PurePosixPath
from typing import Optional
from dataclasses import dataclass

import aiofiles
import aiofiles.os

logger = logging.getLogger(__name__)


class StorageError(OSError):
    """A destination path cannot be used."""


class ReceiveStorage:
    """
    Destination for received files.

    Provides:
    - Name to path resolution under a single root
    - Parent directory creation
    - Cleanup of partially written files
    """

    def __init__(self, root: Path):
        self.root = Path(root)

    def destination(self, name: str) -> Path:
        """
        Resolve the path a received file is written to.

        Raises:
            StorageError: name is empty, absolute or escapes the root
        """
        relative = PurePosixPath(name.replace('\\', '/'))
        if not name or relative.is_absolute() or '..' in relative.parts:
            raise StorageError(f"Refusing file name {name!r}")
        return self.root.joinpath(*relative.parts)

    async def prepare(self, name: str) -> Path:
        """
        Resolve the destination and create any missing parent directories.

        Raises:
            OSError: the directories could not be created
        """
        path = self.destination(name)
        await aiofiles.os.makedirs(path.parent, exist_ok=True)
        return path

    async def discard(self, path: Path):
        """Remove a partially written file."""
        try:
            await aiofiles.os.remove(path)
            logger.debug(f"Removed partial file {path}")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove partial file {path}: {e}")


@dataclass
class SourceFile:
    """A local file offered for sending."""
    path: Path

    def __post_init__(self):
        self.path = Path(self.path)

    @property
    def name(self) -> str:
        """Name announced to the receiver: the last path component."""
        return self.path.name

    @property
    def size(self) -> Optional[int]:
        try:
            return self.path.stat().st_size
        except OSError:
            return None

    def open(self):
        """
        Open the file for reading with aiofiles.

        Await the result or use it with `async with`; raises OSError if the
        file cannot be opened.
        """
        return aiofiles.open(self.path, 'rb')
