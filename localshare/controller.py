"""
Session Controller - Main Controller

Orchestrates one file-moving session between two peers:
- Handshake to resolve the peer address and file list
- File receiver or file sender, depending on this peer's role
- Cancellation and terminal outcome reporting

State machine:
```
IDLE -> HANDSHAKING -> TRANSFERRING -> COMPLETE
             |               |-------> FAILED
             |-------------------------> FAILED
(any non-terminal state) -------------> CANCELLED
```
"""

import asyncio
import logging
from pathlib import Path
from typing import Iterable, Optional

from .config import Config
from .file import ReceiveStorage, SourceFile
from .session import (
    EventChannel, LinkInfo, Role, SessionFinished, SessionResult, SessionState,
    SessionTask, StateChanged, TaskOutcome, TaskStatus, TransferContext,
    TransferRegistry, TransferSession,
)
from .transfer import FileReceiver, FileSender, HandshakeCoordinator, HandshakeResult

logger = logging.getLogger(__name__)

MSG_COMPLETE = "All files transferred"
MSG_NOT_COOPERATING = "Peer device is not cooperating"
MSG_TRANSFER_ERROR = "Error during transfer"
MSG_CANCELLED = "Transfer cancelled"


class SessionController:
    """
    Owns one transfer session.

    A peer constructed with files to send is the sender; without files it is
    the receiver. Progress is published on `events`; the item list is in
    `registry`.
    """

    def __init__(self, config: Config = None, files: Optional[Iterable[Path]] = None,
                 storage: Optional[ReceiveStorage] = None):
        """
        Initialize a session controller.

        Args:
            config: Transfer configuration (uses defaults if not provided)
            files: Files to send; omit on the receiving peer
            storage: Where received files go (default: config.storage_root)

        Raises:
            ValueError: two files share the same name
        """
        self.config = config or Config()
        self.sources = [SourceFile(path) for path in (files or [])]
        names = [source.name for source in self.sources]
        duplicates = sorted({name for name in names if names.count(name) > 1})
        if duplicates:
            # The receiver stores files by name alone
            raise ValueError(f"Several files would be sent as {', '.join(duplicates)}")
        self.role = Role.SENDER if self.sources else Role.RECEIVER
        self.storage = storage or ReceiveStorage(self.config.storage_root)

        self.registry = TransferRegistry(source.name for source in self.sources)
        self.events = EventChannel()
        self.session: Optional[TransferSession] = None

        # State
        self._state = SessionState.IDLE
        self._context: Optional[TransferContext] = None
        self._current: Optional[SessionTask] = None
        self._runner: Optional[asyncio.Task] = None
        self._result: Optional[SessionResult] = None
        self._finished = asyncio.Event()

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def result(self) -> Optional[SessionResult]:
        return self._result

    @property
    def is_sender(self) -> bool:
        return self.role == Role.SENDER

    # === Lifecycle ===

    def on_link_connected(self, link: LinkInfo):
        """
        Start the session once the link layer reports a connected group.

        Must be called from within the running event loop.
        """
        if self._state != SessionState.IDLE:
            raise RuntimeError(f"Session already {self._state.value}")

        self.session = TransferSession(
            role=self.role,
            is_group_owner=link.is_group_owner,
            total_files=len(self.sources),
        )
        self._context = TransferContext(self.session, self.registry, self.events)

        self._set_state(SessionState.HANDSHAKING)
        self._runner = asyncio.get_running_loop().create_task(
            self._run_guarded(link), name="session"
        )

    async def run(self, link: LinkInfo) -> SessionResult:
        """Start the session and wait for its outcome."""
        self.on_link_connected(link)
        return await self.wait()

    async def wait(self) -> SessionResult:
        """Wait until the session reaches a terminal state."""
        await self._finished.wait()
        return self._result

    def cancel(self):
        """
        Tear the session down.

        Cancels whichever task is running; that task closes its listener and
        connections as it unwinds. No-op once the session has ended.
        """
        if self._state.is_terminal:
            return

        logger.info(f"Cancelling session ({self._state.value})")
        if self.session is not None:
            self.session.cancelled = True

        if self._runner is None:
            self._finish(SessionState.CANCELLED, MSG_CANCELLED)
            return

        if self._current is not None:
            self._current.cancel()

    async def shutdown(self) -> SessionResult:
        """Cancel if still running and wait until every socket is released."""
        self.cancel()
        result = await self.wait()
        if self._runner is not None:
            await asyncio.gather(self._runner, return_exceptions=True)
        return result

    # === Session flow ===

    async def _run_guarded(self, link: LinkInfo):
        try:
            await self._run(link)
        except asyncio.CancelledError:
            self.session.cancelled = True
            if self._current is not None:
                self._current.cancel()
            self._finish(SessionState.CANCELLED, MSG_CANCELLED)
            raise
        except Exception as e:
            logger.exception(f"Session crashed: {e}")
            self._finish(SessionState.FAILED, f"{MSG_TRANSFER_ERROR}: {e}")

    async def _run(self, link: LinkInfo):
        handshake = HandshakeCoordinator(
            link=link,
            role=self.role,
            file_names=self.registry.names,
            host=self.config.host,
            port=self.config.handshake_port,
            connect_timeout=self.config.connect_timeout,
            timeout=self.config.handshake_timeout,
        )
        outcome = await self._run_phase(handshake)

        if self._was_cancelled(outcome):
            self._finish(SessionState.CANCELLED, MSG_CANCELLED)
            return
        if not outcome.succeeded:
            self._finish(SessionState.FAILED, MSG_NOT_COOPERATING)
            return

        result: HandshakeResult = outcome.value
        self.session.peer_address = result.peer_address
        if self.role == Role.RECEIVER:
            self.registry.replace(result.file_names)
            self.session.total_files = result.total_files

        logger.info(f"Handshake complete: peer {result.peer_address}, "
                    f"{self.session.total_files} files")
        self._set_state(SessionState.TRANSFERRING)

        outcome = await self._run_phase(self._create_transfer_task())

        if self._was_cancelled(outcome):
            self._finish(SessionState.CANCELLED, MSG_CANCELLED)
        elif outcome.succeeded and self.session.all_transferred:
            self._finish(SessionState.COMPLETE, MSG_COMPLETE)
        elif outcome.error:
            self._finish(SessionState.FAILED, f"{MSG_TRANSFER_ERROR}: {outcome.error}")
        else:
            self._finish(SessionState.FAILED, MSG_TRANSFER_ERROR)

    def _create_transfer_task(self) -> SessionTask:
        if self.role == Role.RECEIVER:
            return FileReceiver(
                context=self._context,
                storage=self.storage,
                host=self.config.host,
                port=self.config.transfer_port,
                chunk_size=self.config.chunk_size,
                transfer_timeout=self.config.transfer_timeout,
            )

        return FileSender(
            context=self._context,
            sources=self.sources,
            peer_address=self.session.peer_address,
            port=self.config.transfer_port,
            chunk_size=self.config.chunk_size,
            connect_timeout=self.config.connect_timeout,
            transfer_timeout=self.config.transfer_timeout,
            start_delay=self.config.sender_start_delay,
        )

    async def _run_phase(self, task: SessionTask) -> TaskOutcome:
        if self.session.cancelled:
            return TaskOutcome(TaskStatus.CANCELLED)
        self._current = task
        try:
            task.start()
            return await task.wait()
        finally:
            self._current = None

    def _was_cancelled(self, outcome: TaskOutcome) -> bool:
        return outcome.status == TaskStatus.CANCELLED or self.session.cancelled

    def _set_state(self, state: SessionState):
        self._state = state
        if self.session is not None:
            self.session.state = state
        logger.info(f"Session state: {state.value}")
        self.events.publish(StateChanged(state))

    def _finish(self, state: SessionState, message: str):
        """Enter a terminal state; only the first call has any effect."""
        if self._result is not None:
            return

        self._set_state(state)
        transferred = self.session.transferred_count if self.session else 0
        total = self.session.total_files if self.session else len(self.sources)
        self._result = SessionResult(
            state=state, message=message, transferred=transferred, total=total
        )

        if state == SessionState.FAILED:
            logger.error(f"Session failed: {message}")
        else:
            logger.info(f"Session {state.value}: {message} ({transferred}/{total})")

        self.events.publish(SessionFinished(self._result))
        self._finished.set()

    # === Info ===

    def get_stats(self) -> dict:
        """Get complete session statistics."""
        return {
            'state': self._state.value,
            'session': self.session.to_dict() if self.session else None,
            'items': self.registry.to_list(),
        }


async def run_session(link: LinkInfo, config: Config = None,
                      files: Optional[Iterable[Path]] = None) -> SessionResult:
    """
    Run one session (convenience function).

    Runs until the session ends; cancelling the caller tears the session down.
    """
    controller = SessionController(config, files=files)
    try:
        return await controller.run(link)
    finally:
        await controller.shutdown()
