"""
Local File Transfer Wire Protocol

Design Decision: Two Connection Kinds
======================================

Options Considered:
1. Single long-lived connection, length-prefixed file frames
   - One socket for the whole session
   - Needs framing for every file, incompatible with existing peers

2. Handshake connection + one raw connection per file
   - Handshake is tiny and structured (JSON)
   - File boundaries are connection boundaries, no framing needed

Decision: Handshake messages are framed, file data is not
- Handshake runs once on HANDSHAKE_PORT and is length-prefixed
  (4B total length + 4B header length + JSON header + data)
- Every file is sent on a fresh connection to FILE_TRANSFER_PORT
- End of file == the sender closing the connection

Limitation: without a length prefix or checksum there is no way to tell a
truncated file from a complete one, and no way to resume mid-file.

Handshake Message Format:
```
+----------------+----------------+----------------+----------------+
| Length (4B)    | Hdr len (4B)   | Header (JSON)  | Data (binary)  |
+----------------+----------------+----------------+----------------+

Header JSON:
{
    "type": "HELLO" | "METADATA" | "ACK" | "REJECT",
    "data_length": 0,
    ...
}
```
"""

import asyncio
import json
import socket
import struct
import logging
from enum import Enum
from typing import Optional, Tuple, Dict, Any
from dataclasses import dataclass

logger = logging.getLogger(__name__)

# Fixed well-known ports
FILE_TRANSFER_PORT = 8008
HANDSHAKE_PORT = 8009

# Sent by the non-owner peer to open the handshake
HANDSHAKE_GREETING = "Request LocalShare File Sharing"

MAX_MESSAGE_SIZE = 1024 * 1024  # 1MB

LISTEN_BACKLOG = 8

# 4B total length + 4B header length, big-endian
_PREFIX = struct.Struct('>II')


class HandshakeMessageType(Enum):
    """Handshake message types."""
    HELLO = "HELLO"
    METADATA = "METADATA"
    ACK = "ACK"
    REJECT = "REJECT"


class ProtocolError(Exception):
    """Raised when a peer sends something that is not a valid handshake frame."""


@dataclass
class HandshakeMessage:
    """A handshake protocol message."""
    type: HandshakeMessageType
    headers: Dict[str, Any]
    data: bytes = b''

    def to_bytes(self) -> bytes:
        """Frame the message for the wire."""
        header = json.dumps({
            'type': self.type.value,
            'data_length': len(self.data),
            **self.headers,
        }).encode('utf-8')
        return _PREFIX.pack(len(header) + len(self.data), len(header)) + header + self.data

    @classmethod
    async def from_reader(cls, reader: asyncio.StreamReader) -> Optional['HandshakeMessage']:
        """
        Read one framed message.

        Returns:
            The message, or None if the peer closed the connection first

        Raises:
            ProtocolError: the bytes received are not a valid frame
        """
        try:
            total, header_size = _PREFIX.unpack(await reader.readexactly(_PREFIX.size))
            if total > MAX_MESSAGE_SIZE:
                raise ProtocolError(f"Message too large: {total}")
            if header_size > total:
                raise ProtocolError(f"Header length {header_size} exceeds message length")

            body = await reader.readexactly(total) if total else b''
        except asyncio.IncompleteReadError:
            return None

        try:
            header = json.loads(body[:header_size].decode('utf-8'))
            msg_type = HandshakeMessageType(header.pop('type'))
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise ProtocolError(f"Invalid message header: {e}") from e

        header.pop('data_length', None)
        return cls(type=msg_type, headers=header, data=body[header_size:])

    # === Constructors ===

    @classmethod
    def hello(cls, role: str) -> 'HandshakeMessage':
        return cls(
            type=HandshakeMessageType.HELLO,
            headers={'greeting': HANDSHAKE_GREETING, 'role': role}
        )

    @classmethod
    def metadata(cls, file_names) -> 'HandshakeMessage':
        names = list(file_names)
        return cls(
            type=HandshakeMessageType.METADATA,
            headers={'total_files': len(names), 'files': names}
        )

    @classmethod
    def ack(cls) -> 'HandshakeMessage':
        return cls(type=HandshakeMessageType.ACK, headers={})

    @classmethod
    def reject(cls, reason: str) -> 'HandshakeMessage':
        return cls(type=HandshakeMessageType.REJECT, headers={'reason': reason})


async def send_message(writer: asyncio.StreamWriter, message: HandshakeMessage):
    """Write a message and wait for the transport buffer to drain."""
    writer.write(message.to_bytes())
    await writer.drain()


async def close_writer(writer: asyncio.StreamWriter):
    """Close a stream, ignoring errors from a peer that already went away."""
    writer.close()
    try:
        await writer.wait_closed()
    except (ConnectionError, OSError) as e:
        logger.debug(f"Error while closing connection: {e}")


def abort_writer(writer: asyncio.StreamWriter):
    """
    Drop a connection with a TCP reset.

    A plain close reads as end of file on the other side, so a data
    connection for a file that was not fully sent must be reset instead.
    """
    sock = writer.get_extra_info('socket')
    if sock is not None:
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_LINGER, struct.pack('ii', 1, 0))
        except OSError as e:
            logger.debug(f"Could not set SO_LINGER before reset: {e}")
    writer.transport.abort()


def open_listener(host: str, port: int) -> socket.socket:
    """
    Bind a non-blocking listening TCP socket.

    Raises:
        OSError: the port could not be bound
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        sock.listen(LISTEN_BACKLOG)
        sock.setblocking(False)
    except OSError:
        sock.close()
        raise
    logger.debug(f"Listening on {sock.getsockname()}")
    return sock


async def accept_connection(listener: socket.socket,
                            timeout: Optional[float] = None
                            ) -> Tuple[asyncio.StreamReader, asyncio.StreamWriter, str]:
    """
    Wait for one incoming connection on a listening socket.

    Returns:
        (reader, writer, peer_ip)

    Raises:
        asyncio.TimeoutError: nobody connected within `timeout`
    """
    loop = asyncio.get_running_loop()
    conn, addr = await asyncio.wait_for(loop.sock_accept(listener), timeout=timeout)
    try:
        reader, writer = await asyncio.open_connection(sock=conn)
    except BaseException:
        conn.close()
        raise
    return reader, writer, addr[0]


async def connect_to_peer(ip: str, port: int,
                          timeout: Optional[float] = 15.0
                          ) -> Optional[Tuple[asyncio.StreamReader, asyncio.StreamWriter]]:
    """
    Connect to a peer.

    Returns:
        (reader, writer), or None if connection failed
    """
    try:
        return await asyncio.wait_for(
            asyncio.open_connection(ip, port),
            timeout=timeout
        )
    except (OSError, asyncio.TimeoutError) as e:
        logger.error(f"Failed to connect to {ip}:{port}: {e!r}")
        return None
