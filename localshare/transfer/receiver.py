"""
File Receiver

Accepts one connection per expected file on FILE_TRANSFER_PORT, in registry
order, and writes each stream to storage until the sender closes it.

A single listener serves the whole session: connection n carries file n.
A failed file is marked ERROR and the loop moves on; it is never retried.
A connection the sender resets instead of closing is such a failure: the
bytes received so far are discarded.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import aiofiles

from .protocol import accept_connection, close_writer, open_listener
from ..file.storage import ReceiveStorage
from ..session.context import TransferContext
from ..session.registry import FileStatus
from ..session.task import SessionTask

logger = logging.getLogger(__name__)


class FileReceiver(SessionTask):
    """
    Receive loop for the receiving peer.

    `run()` returns True only if every file arrived; per-file errors are
    reported through item status and make the overall result False.
    Failing to bind the listener raises, which fails the whole session.
    """

    name = "receiver"

    def __init__(self, context: TransferContext, storage: ReceiveStorage,
                 host: str = '0.0.0.0', port: int = 8008,
                 chunk_size: int = 64 * 1024,
                 transfer_timeout: Optional[float] = None):
        super().__init__()
        self.context = context
        self.storage = storage
        self.host = host
        self.port = port
        self.chunk_size = chunk_size
        self.transfer_timeout = transfer_timeout

        # Statistics
        self.files_received = 0
        self.bytes_received = 0

    async def run(self) -> bool:
        listener = open_listener(self.host, self.port)
        logger.info(f"Receiver listening on port {self.port}, "
                    f"expecting {self.context.total_files} files")

        all_received = True
        try:
            for index, name in enumerate(self.context.file_names):
                if self.context.cancelled:
                    break

                try:
                    reader, writer, peer_ip = await accept_connection(
                        listener, timeout=self.transfer_timeout
                    )
                except asyncio.TimeoutError:
                    logger.error(f"No connection for file {index + 1} "
                                 f"within {self.transfer_timeout}s, giving up")
                    return False
                except ConnectionAbortedError as e:
                    # Sender reset the connection before it was accepted
                    logger.error(f"Connection for file {index + 1} aborted: {e!r}")
                    self.context.set_status(index, FileStatus.TRANSFERRING)
                    self.context.set_status(index, FileStatus.ERROR)
                    all_received = False
                    self.context.record_transferred()
                    continue

                logger.debug(f"Client {peer_ip} connected for file {index + 1}")
                self.context.set_status(index, FileStatus.TRANSFERRING)

                ok = await self._receive_file(name, reader, writer)
                self.context.set_status(index, FileStatus.DONE if ok else FileStatus.ERROR)
                if not ok:
                    all_received = False
                self.context.record_transferred()
        finally:
            listener.close()
            logger.debug(f"Receiver stopped listening on port {self.port}")

        logger.info(f"Received {self.files_received}/{self.context.total_files} files, "
                    f"{self.bytes_received:,} bytes")
        return all_received and not self.context.cancelled

    async def _receive_file(self, name: str, reader: asyncio.StreamReader,
                            writer: asyncio.StreamWriter) -> bool:
        """Drain one connection into the destination file."""
        path: Optional[Path] = None
        completed = False
        try:
            path = await self.storage.prepare(name)
            size = await self._copy_to_file(reader, path)
            completed = True
            self.files_received += 1
            logger.info(f"Received {name} ({size:,} bytes)")
            return True
        except asyncio.TimeoutError:
            logger.error(f"Timed out receiving {name}")
            return False
        except OSError as e:
            logger.error(f"Error receiving {name}: {e!r}")
            return False
        finally:
            # Also reached on cancellation
            await close_writer(writer)
            if path is not None and not completed:
                await self.storage.discard(path)

    async def _copy_to_file(self, reader: asyncio.StreamReader, path: Path) -> int:
        """Copy until end-of-stream; the peer closing marks end of file."""
        size = 0
        async with aiofiles.open(path, 'wb') as f:
            while True:
                chunk = await asyncio.wait_for(
                    reader.read(self.chunk_size), timeout=self.transfer_timeout
                )
                if not chunk:
                    break
                await f.write(chunk)
                size += len(chunk)
                self.bytes_received += len(chunk)
        return size

    def get_stats(self) -> dict:
        """Get receiver statistics."""
        return {
            'files_received': self.files_received,
            'bytes_received': self.bytes_received,
            'port': self.port,
        }
