from __future__ import annotations

import asyncio

from peers import open_connection_retry
from localshare.session import LinkInfo, Role, TaskStatus
from localshare.transfer.handshake import HandshakeCoordinator
from localshare.transfer.protocol import (
    HandshakeMessage,
    HandshakeMessageType,
    close_writer,
    open_listener,
    send_message,
)

HOST = "127.0.0.1"


def _owner(role, port, names=None, timeout=5.0):
    return HandshakeCoordinator(
        link=LinkInfo(is_group_owner=True), role=role, file_names=names,
        host=HOST, port=port, timeout=timeout,
    )


def _client(role, port, names=None, timeout=5.0):
    return HandshakeCoordinator(
        link=LinkInfo(is_group_owner=False, group_owner_address=HOST), role=role,
        file_names=names, host=HOST, port=port, connect_timeout=2.0, timeout=timeout,
    )


async def _pair(owner, client):
    owner.start()
    # let the owner bind before the client dials
    await asyncio.sleep(0.2)
    client.start()
    return await asyncio.gather(owner.wait(), client.wait())


def test_owner_receiver_learns_files_and_peer(free_port):
    port = free_port()
    names = ["a.txt", "b.bin", "c.txt"]
    owner = _owner(Role.RECEIVER, port)
    client = _client(Role.SENDER, port, names)

    owner_out, client_out = asyncio.run(_pair(owner, client))

    assert owner_out.status == TaskStatus.SUCCEEDED
    assert client_out.status == TaskStatus.SUCCEEDED
    assert owner_out.value.file_names == names
    assert owner_out.value.total_files == 3
    assert owner_out.value.peer_address == HOST
    assert client_out.value.peer_address == HOST
    assert client_out.value.file_names == names


def test_owner_sender_announces_files(free_port):
    port = free_port()
    names = ["only.zim"]
    owner = _owner(Role.SENDER, port, names)
    client = _client(Role.RECEIVER, port)

    owner_out, client_out = asyncio.run(_pair(owner, client))

    assert owner_out.succeeded and client_out.succeeded
    assert client_out.value.file_names == names
    # the non-owner sends data to the address the link layer gave it
    assert client_out.value.peer_address == HOST
    assert owner_out.value.peer_address == HOST


def test_two_senders_are_rejected(free_port):
    port = free_port()
    owner = _owner(Role.SENDER, port, ["a.txt"])
    client = _client(Role.SENDER, port, ["b.txt"])

    owner_out, client_out = asyncio.run(_pair(owner, client))

    assert owner_out.status == TaskStatus.FAILED
    assert client_out.status == TaskStatus.FAILED
    assert owner_out.value is None and client_out.value is None


def test_wrong_greeting_is_rejected(free_port):
    port = free_port()
    owner = _owner(Role.RECEIVER, port)

    async def scenario():
        owner.start()
        reader, writer = await open_connection_retry(HOST, port)
        try:
            bogus = HandshakeMessage(
                type=HandshakeMessageType.HELLO,
                headers={"greeting": "hello there", "role": "sender"},
            )
            await send_message(writer, bogus)
            reply = await HandshakeMessage.from_reader(reader)
        finally:
            await close_writer(writer)
        return reply, await owner.wait()

    reply, outcome = asyncio.run(scenario())
    assert reply.type == HandshakeMessageType.REJECT
    assert outcome.status == TaskStatus.FAILED


def test_inconsistent_metadata_fails(free_port):
    port = free_port()
    owner = _owner(Role.RECEIVER, port)

    async def scenario():
        owner.start()
        reader, writer = await open_connection_retry(HOST, port)
        try:
            await send_message(writer, HandshakeMessage.hello("sender"))
            await send_message(writer, HandshakeMessage(
                type=HandshakeMessageType.METADATA,
                headers={"total_files": 5, "files": ["a.txt"]},
            ))
            await HandshakeMessage.from_reader(reader)
        finally:
            await close_writer(writer)
        return await owner.wait()

    outcome = asyncio.run(scenario())
    assert outcome.status == TaskStatus.FAILED


def test_unreachable_owner_fails(free_port):
    client = _client(Role.SENDER, free_port(), ["a.txt"])

    async def scenario():
        client.start()
        return await client.wait()

    outcome = asyncio.run(scenario())
    assert outcome.status == TaskStatus.FAILED
    assert outcome.value is None


def test_owner_gives_up_after_timeout_and_frees_port(free_port):
    port = free_port()
    owner = _owner(Role.RECEIVER, port, timeout=0.3)

    async def scenario():
        owner.start()
        return await owner.wait()

    outcome = asyncio.run(scenario())
    assert outcome.status == TaskStatus.FAILED
    open_listener(HOST, port).close()


def test_cancel_while_waiting_for_peer(free_port):
    port = free_port()
    owner = _owner(Role.RECEIVER, port, timeout=None)

    async def scenario():
        owner.start()
        await asyncio.sleep(0.2)
        assert owner.cancel()
        return await owner.wait()

    outcome = asyncio.run(scenario())
    assert outcome.status == TaskStatus.CANCELLED
    assert owner.cancel_requested
    open_listener(HOST, port).close()
