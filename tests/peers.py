"""Scripted peers for driving one side of a session from a test."""

from __future__ import annotations

import asyncio
from typing import Optional

from localshare.transfer.protocol import (
    HandshakeMessage,
    abort_writer,
    accept_connection,
    close_writer,
    open_listener,
    send_message,
)


async def open_connection_retry(host: str, port: int, attempts: int = 100, delay: float = 0.05):
    last_error: Optional[OSError] = None
    for _ in range(attempts):
        try:
            return await asyncio.open_connection(host, port)
        except OSError as e:
            last_error = e
            await asyncio.sleep(delay)
    raise ConnectionError(f"could not connect to {host}:{port}: {last_error!r}")


async def sender_handshake(host: str, port: int, names: list[str], role: str = "sender"):
    """Act as a non-owner sender: HELLO, METADATA, then return the owner's reply."""
    reader, writer = await open_connection_retry(host, port)
    try:
        await send_message(writer, HandshakeMessage.hello(role))
        await send_message(writer, HandshakeMessage.metadata(names))
        return await HandshakeMessage.from_reader(reader)
    finally:
        await close_writer(writer)


async def receiver_handshake_as_owner(host: str, port: int):
    """Act as a group-owner receiver: accept, read HELLO and METADATA, answer ACK."""
    listener = open_listener(host, port)
    try:
        reader, writer, _ = await accept_connection(listener)
    finally:
        listener.close()
    try:
        hello = await HandshakeMessage.from_reader(reader)
        metadata = await HandshakeMessage.from_reader(reader)
        await send_message(writer, HandshakeMessage.ack())
        return hello, metadata
    finally:
        await close_writer(writer)


async def send_raw_file(host: str, port: int, data: bytes):
    """One data connection: write everything, then close to mark end of file."""
    _, writer = await open_connection_retry(host, port)
    try:
        writer.write(data)
        await writer.drain()
    except OSError:
        pass
    finally:
        await close_writer(writer)


async def reset_raw_file(host: str, port: int, data: bytes):
    """One data connection that writes `data` and then resets instead of closing."""
    _, writer = await open_connection_retry(host, port)
    writer.write(data)
    await writer.drain()
    abort_writer(writer)


async def wait_until(predicate, timeout: float = 5.0, interval: float = 0.01):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(interval)
