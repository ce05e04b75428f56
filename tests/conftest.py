"""Shared fixtures."""

from __future__ import annotations

import os
import shutil
import socket
import tempfile
from pathlib import Path
from typing import Iterator

import pytest


@pytest.fixture
def sock_dir() -> Iterator[Path]:
    """A short-pathed directory for unix sockets (sun_path is ~108 bytes)."""
    path = tempfile.mkdtemp(prefix="dbox", dir="/tmp")
    try:
        yield Path(path)
    finally:
        shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def pipe_fd() -> Iterator[int]:
    """A non-tty fd: raw mode attempts on it fail and degrade to cooked."""
    r, w = os.pipe()
    try:
        yield r
    finally:
        os.close(r)
        os.close(w)


def listen_unix(path: Path) -> socket.socket:
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    sock.bind(str(path))
    sock.listen(4)
    return sock


def make_stale_socket(path: Path) -> None:
    """Leave a socket file behind with nothing listening on it."""
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    sock.bind(str(path))
    sock.close()
