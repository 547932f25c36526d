"""
Session Data Model

A session starts when the link layer reports a connected two-peer group and
ends with exactly one terminal state.
"""

from enum import Enum
from typing import Optional
from dataclasses import dataclass


class Role(Enum):
    """Which side of the transfer this peer plays."""
    SENDER = "sender"
    RECEIVER = "receiver"


class SessionState(Enum):
    """Session controller states."""
    IDLE = "idle"
    HANDSHAKING = "handshaking"
    TRANSFERRING = "transferring"
    COMPLETE = "complete"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.COMPLETE, SessionState.FAILED, SessionState.CANCELLED)


@dataclass(frozen=True)
class LinkInfo:
    """
    What the link layer hands over once the group is formed.

    The group owner learns its peer's address during the handshake; the
    other peer must be told the group owner's address up front.
    """
    is_group_owner: bool
    group_owner_address: Optional[str] = None

    def __post_init__(self):
        if not self.is_group_owner and not self.group_owner_address:
            raise ValueError("A peer that is not the group owner needs the group owner address")


@dataclass
class TransferSession:
    """Mutable state of one session, owned by the session controller."""
    role: Role
    is_group_owner: bool
    total_files: int = 0
    transferred_count: int = 0
    peer_address: Optional[str] = None
    cancelled: bool = False
    state: SessionState = SessionState.IDLE

    @property
    def all_transferred(self) -> bool:
        return self.transferred_count == self.total_files

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            'role': self.role.value,
            'is_group_owner': self.is_group_owner,
            'total_files': self.total_files,
            'transferred_count': self.transferred_count,
            'peer_address': self.peer_address,
            'cancelled': self.cancelled,
            'state': self.state.value,
        }


@dataclass(frozen=True)
class SessionResult:
    """Terminal outcome reported to the presentation layer."""
    state: SessionState
    message: str
    transferred: int
    total: int

    @property
    def succeeded(self) -> bool:
        return self.state == SessionState.COMPLETE
