"""
Transfer Module - Handshake and File Streaming

Handles the TCP exchanges between the two peers of a session.
"""

from .protocol import (
    FILE_TRANSFER_PORT, HANDSHAKE_PORT, HandshakeMessage, HandshakeMessageType,
    ProtocolError,
)
from .handshake import HandshakeCoordinator, HandshakeResult
from .receiver import FileReceiver
from .sender import FileSender

__all__ = [
    'FILE_TRANSFER_PORT',
    'HANDSHAKE_PORT',
    'HandshakeMessage',
    'HandshakeMessageType',
    'ProtocolError',
    'HandshakeCoordinator',
    'HandshakeResult',
    'FileReceiver',
    'FileSender',
]
