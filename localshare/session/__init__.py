"""
Session Module - State, Registry and Events

Data model and plumbing shared by the handshake and transfer tasks.
"""

from .models import Role, SessionState, LinkInfo, TransferSession, SessionResult
from .registry import FileStatus, FileTransferItem, TransferRegistry, InvalidStatusTransition
from .events import EventChannel, StateChanged, ItemStatusChanged, SessionFinished
from .task import SessionTask, TaskOutcome, TaskStatus
from .context import TransferContext

__all__ = [
    'Role',
    'SessionState',
    'LinkInfo',
    'TransferSession',
    'SessionResult',
    'FileStatus',
    'FileTransferItem',
    'TransferRegistry',
    'InvalidStatusTransition',
    'EventChannel',
    'StateChanged',
    'ItemStatusChanged',
    'SessionFinished',
    'SessionTask',
    'TaskOutcome',
    'TaskStatus',
    'TransferContext',
]
