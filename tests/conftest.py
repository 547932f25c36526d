from __future__ import annotations

import socket
from pathlib import Path

import pytest

from localshare.config import Config


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def free_port():
    return _free_port


@pytest.fixture
def config(tmp_path: Path) -> Config:
    return Config(
        host="127.0.0.1",
        handshake_port=_free_port(),
        transfer_port=_free_port(),
        storage_root=tmp_path / "received",
        chunk_size=16 * 1024,
        connect_timeout=5.0,
        handshake_timeout=10.0,
        sender_start_delay=0.2,
    )
