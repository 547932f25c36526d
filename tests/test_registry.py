from __future__ import annotations

import pytest

from localshare.session import (
    EventChannel,
    FileStatus,
    InvalidStatusTransition,
    ItemStatusChanged,
    Role,
    TransferContext,
    TransferRegistry,
    TransferSession,
)


def test_items_start_pending_in_order():
    registry = TransferRegistry(["a.txt", "b.bin", "c.txt"])
    assert registry.names == ["a.txt", "b.bin", "c.txt"]
    assert all(item.status == FileStatus.PENDING for item in registry)
    assert registry.count(FileStatus.PENDING) == 3


def test_forward_transitions():
    registry = TransferRegistry(["a.txt", "b.txt"])
    registry.set_status(0, FileStatus.TRANSFERRING)
    registry.set_status(0, FileStatus.DONE)
    registry.set_status(1, FileStatus.TRANSFERRING)
    registry.set_status(1, FileStatus.ERROR)
    assert registry[0].status == FileStatus.DONE
    assert registry[1].status == FileStatus.ERROR


@pytest.mark.parametrize(
    "path",
    [
        [FileStatus.DONE],
        [FileStatus.ERROR],
        [FileStatus.TRANSFERRING, FileStatus.PENDING],
        [FileStatus.TRANSFERRING, FileStatus.TRANSFERRING],
        [FileStatus.TRANSFERRING, FileStatus.DONE, FileStatus.ERROR],
        [FileStatus.TRANSFERRING, FileStatus.ERROR, FileStatus.DONE],
    ],
)
def test_illegal_transitions_rejected(path):
    registry = TransferRegistry(["a.txt"])
    *legal, illegal = path
    for status in legal:
        registry.set_status(0, status)
    with pytest.raises(InvalidStatusTransition):
        registry.set_status(0, illegal)


def test_replace_only_before_transfer_starts():
    registry = TransferRegistry()
    registry.replace(["x", "y"])
    assert registry.names == ["x", "y"]

    registry.set_status(0, FileStatus.TRANSFERRING)
    with pytest.raises(RuntimeError):
        registry.replace(["z"])


def test_context_publishes_status_and_counts():
    registry = TransferRegistry(["a.txt"])
    session = TransferSession(role=Role.SENDER, is_group_owner=False, total_files=1)
    events = EventChannel()
    seen = []
    events.on_event(seen.append)
    context = TransferContext(session, registry, events)

    context.set_status(0, FileStatus.TRANSFERRING)
    context.set_status(0, FileStatus.DONE)
    context.record_transferred()

    assert seen == [
        ItemStatusChanged(0, "a.txt", FileStatus.TRANSFERRING),
        ItemStatusChanged(0, "a.txt", FileStatus.DONE),
    ]
    assert session.transferred_count == 1
    assert session.all_transferred


def test_failing_callback_does_not_block_other_subscribers():
    events = EventChannel()
    seen = []

    def broken(event):
        raise RuntimeError("boom")

    events.on_event(broken)
    events.on_event(seen.append)
    events.publish(ItemStatusChanged(0, "a", FileStatus.TRANSFERRING))
    assert len(seen) == 1
