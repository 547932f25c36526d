"""
Peer Group Handshake

Runs once, right after the link layer reports a connected group. It answers
two questions before any file bytes move:

1. Where should data connections go? The group owner only learns its peer's
   address by accepting a connection from it; the other peer already knows
   the group owner's address from the link layer.
2. Which files are coming? The sender announces the ordered file names, so
   both registries use the same indices.

Exchange (HANDSHAKE_PORT):
```
non-owner                         owner
    | ---- HELLO {greeting, role} --> |   owner checks greeting and roles
    | <------- REJECT {reason} ------ |   (on mismatch, then both fail)
    | ---- METADATA (from sender) --> |   direction depends on who sends
    | <------- ACK (from receiver) -- |
```
"""

import asyncio
import logging
from typing import List, Optional
from dataclasses import dataclass

from .protocol import (
    HANDSHAKE_GREETING, HandshakeMessage, HandshakeMessageType, ProtocolError,
    accept_connection, close_writer, connect_to_peer, open_listener, send_message,
)
from ..session.models import LinkInfo, Role
from ..session.task import SessionTask

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HandshakeResult:
    """What the data-transfer phase needs from the handshake."""
    peer_address: str
    file_names: List[str]

    @property
    def total_files(self) -> int:
        return len(self.file_names)


class HandshakeFailed(Exception):
    """The peer did not complete the handshake as expected."""


class HandshakeCoordinator(SessionTask):
    """
    Resolves the data-connection target address and the file list.

    `run()` returns a HandshakeResult, or None when the peer could not be
    reached or did not cooperate.
    """

    name = "handshake"

    def __init__(self, link: LinkInfo, role: Role, file_names: Optional[List[str]] = None,
                 host: str = '0.0.0.0', port: int = 8009,
                 connect_timeout: Optional[float] = 15.0,
                 timeout: Optional[float] = None):
        super().__init__()
        self.link = link
        self.role = role
        self.file_names = list(file_names or [])
        self.host = host
        self.port = port
        self.connect_timeout = connect_timeout
        self.timeout = timeout

    async def run(self) -> Optional[HandshakeResult]:
        logger.info(f"Starting handshake as {self.role.value} "
                    f"({'group owner' if self.link.is_group_owner else 'client'})")
        try:
            return await asyncio.wait_for(self._handshake(), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(f"Handshake timed out after {self.timeout}s")
        except (HandshakeFailed, ProtocolError) as e:
            logger.error(f"Handshake failed: {e}")
        except OSError as e:
            logger.error(f"Handshake connection error: {e!r}")
        return None

    async def _handshake(self) -> HandshakeResult:
        if self.link.is_group_owner:
            return await self._run_as_owner()
        return await self._run_as_client()

    async def _run_as_owner(self) -> HandshakeResult:
        listener = open_listener(self.host, self.port)
        try:
            logger.info(f"Waiting for peer on handshake port {self.port}")
            reader, writer, peer_ip = await accept_connection(listener)
        finally:
            # One handshake per session, stop accepting right away
            listener.close()

        try:
            logger.debug(f"Handshake connection from {peer_ip}")
            hello = await HandshakeMessage.from_reader(reader)
            reason = self._check_hello(hello)
            if reason:
                logger.warning(f"Rejecting handshake from {peer_ip}: {reason}")
                await send_message(writer, HandshakeMessage.reject(reason))
                raise HandshakeFailed(reason)

            file_names = await self._exchange_metadata(reader, writer)
        finally:
            await close_writer(writer)

        return HandshakeResult(peer_address=peer_ip, file_names=file_names)

    async def _run_as_client(self) -> HandshakeResult:
        address = self.link.group_owner_address
        conn = await connect_to_peer(address, self.port, timeout=self.connect_timeout)
        if conn is None:
            raise HandshakeFailed(f"Could not reach group owner at {address}:{self.port}")
        reader, writer = conn

        try:
            await send_message(writer, HandshakeMessage.hello(self.role.value))
            file_names = await self._exchange_metadata(reader, writer)
        finally:
            await close_writer(writer)

        return HandshakeResult(peer_address=address, file_names=file_names)

    def _check_hello(self, hello: Optional[HandshakeMessage]) -> Optional[str]:
        """Validate the peer's HELLO; return a rejection reason or None."""
        if hello is None:
            return "connection closed before greeting"
        if hello.type != HandshakeMessageType.HELLO:
            return f"expected HELLO, got {hello.type.value}"
        if hello.headers.get('greeting') != HANDSHAKE_GREETING:
            return "unexpected greeting"
        if hello.headers.get('role') == self.role.value:
            return f"both peers want to be {self.role.value}"
        return None

    async def _exchange_metadata(self, reader: asyncio.StreamReader,
                                 writer: asyncio.StreamWriter) -> List[str]:
        if self.role == Role.SENDER:
            await send_message(writer, HandshakeMessage.metadata(self.file_names))
            reply = await HandshakeMessage.from_reader(reader)
            self._raise_if_not(reply, HandshakeMessageType.ACK)
            logger.info(f"Peer accepted {len(self.file_names)} files")
            return self.file_names

        message = await HandshakeMessage.from_reader(reader)
        self._raise_if_not(message, HandshakeMessageType.METADATA)
        file_names = message.headers.get('files')
        total_files = message.headers.get('total_files')
        if (not isinstance(file_names, list)
                or not all(isinstance(name, str) for name in file_names)
                or total_files != len(file_names)):
            raise HandshakeFailed("malformed file metadata")

        await send_message(writer, HandshakeMessage.ack())
        logger.info(f"Expecting {total_files} files")
        return file_names

    @staticmethod
    def _raise_if_not(message: Optional[HandshakeMessage], expected: HandshakeMessageType):
        if message is None:
            raise HandshakeFailed(f"connection closed while waiting for {expected.value}")
        if message.type == HandshakeMessageType.REJECT:
            raise HandshakeFailed(f"rejected by peer: {message.headers.get('reason')}")
        if message.type != expected:
            raise HandshakeFailed(f"expected {expected.value}, got {message.type.value}")
