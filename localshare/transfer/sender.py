"""
File Sender

Streams each file, in registry order, over its own connection to the
receiver's FILE_TRANSFER_PORT. Closing the connection tells the receiver the
file is complete, so files can only go one at a time: the next connection is
opened after the previous one is closed.

No retries and no reordering: a file that fails is marked ERROR and the
sender moves on to the next one.
"""

import asyncio
import logging
from typing import List, Optional

from .protocol import abort_writer, close_writer, connect_to_peer
from ..file.storage import SourceFile
from ..session.context import TransferContext
from ..session.registry import FileStatus
from ..session.task import SessionTask

logger = logging.getLogger(__name__)


class FileSender(SessionTask):
    """
    Send loop for the sending peer.

    `run()` returns True only if every file was streamed without error.
    """

    name = "sender"

    def __init__(self, context: TransferContext, sources: List[SourceFile],
                 peer_address: str, port: int = 8008,
                 chunk_size: int = 64 * 1024,
                 connect_timeout: Optional[float] = 15.0,
                 transfer_timeout: Optional[float] = None,
                 start_delay: float = 0.0):
        super().__init__()
        self.context = context
        self.sources = list(sources)
        self.peer_address = peer_address
        self.port = port
        self.chunk_size = chunk_size
        self.connect_timeout = connect_timeout
        self.transfer_timeout = transfer_timeout
        self.start_delay = start_delay

        # Statistics
        self.files_sent = 0
        self.bytes_sent = 0

    async def run(self) -> bool:
        if self.start_delay > 0:
            logger.debug(f"Waiting {self.start_delay}s for receiver to start listening")
            await asyncio.sleep(self.start_delay)

        logger.info(f"Sending {len(self.sources)} files to {self.peer_address}:{self.port}")

        all_sent = True
        for index, source in enumerate(self.sources):
            if self.context.cancelled:
                break

            self.context.set_status(index, FileStatus.TRANSFERRING)
            ok = await self._send_file(source)
            self.context.set_status(index, FileStatus.DONE if ok else FileStatus.ERROR)
            if not ok:
                all_sent = False
            self.context.record_transferred()

        logger.info(f"Sent {self.files_sent}/{len(self.sources)} files, "
                    f"{self.bytes_sent:,} bytes")
        return all_sent and not self.context.cancelled

    async def _send_file(self, source: SourceFile) -> bool:
        """
        Open a connection, stream the file, close to mark end of file.

        The connection is opened even if the source turns out to be
        unreadable: connection n is file n on the receiver, so every index
        uses up its connection. A file that was not sent completely is
        ended with a reset, which the receiver records as an error.
        """
        conn = await connect_to_peer(self.peer_address, self.port,
                                     timeout=self.connect_timeout)
        if conn is None:
            return False
        _, writer = conn

        size = None
        try:
            size = await self._stream(source, writer)
        except asyncio.TimeoutError:
            logger.error(f"Timed out sending {source.name}")
        except OSError as e:
            logger.error(f"Error sending {source.name}: {e!r}")
        finally:
            if size is None:
                abort_writer(writer)
            else:
                await close_writer(writer)

        if size is None:
            return False

        self.files_sent += 1
        logger.info(f"Sent {source.name} ({size:,} bytes)")
        return True

    async def _stream(self, source: SourceFile, writer: asyncio.StreamWriter) -> int:
        f = await source.open()
        try:
            size = 0
            while True:
                chunk = await f.read(self.chunk_size)
                if not chunk:
                    break
                writer.write(chunk)
                await asyncio.wait_for(writer.drain(), timeout=self.transfer_timeout)
                size += len(chunk)
                self.bytes_sent += len(chunk)
        finally:
            await f.close()
        return size

    def get_stats(self) -> dict:
        """Get sender statistics."""
        return {
            'files_sent': self.files_sent,
            'bytes_sent': self.bytes_sent,
            'peer': f"{self.peer_address}:{self.port}",
        }
