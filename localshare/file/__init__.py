"""
File Module - Source and Destination Storage

This module handles file operations for the local transfer system.
"""

from .storage import ReceiveStorage, SourceFile, StorageError

__all__ = [
    'ReceiveStorage',
    'SourceFile',
    'StorageError',
]
