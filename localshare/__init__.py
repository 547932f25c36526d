"""
Local File Transfer

Moves a set of files between two directly linked peers: a short handshake
resolves the peer address and file list, then each file is streamed over its
own TCP connection, one at a time.
"""

__version__ = "0.1.0"
