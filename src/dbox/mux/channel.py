"""Byte channels the multiplexer drives, plus the local terminal ends."""

from __future__ import annotations

import asyncio
import logging
import os
import sys
import threading
from pathlib import Path
from typing import BinaryIO, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class DuplexChannel(Protocol):
    """A session's console: bytes in, bytes out.

    ``read`` returns ``b""`` once the far side has closed.
    """

    async def read(self, n: int) -> bytes: ...

    async def write(self, data: bytes) -> None: ...

    def close(self) -> None: ...


class SocketChannel:
    """A connection to a session's control socket."""

    def __init__(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        self._reader = reader
        self._writer = writer

    @classmethod
    async def connect(cls, path: str | Path) -> SocketChannel:
        reader, writer = await asyncio.open_unix_connection(str(path))
        return cls(reader, writer)

    async def read(self, n: int) -> bytes:
        return await self._reader.read(n)

    async def write(self, data: bytes) -> None:
        self._writer.write(data)
        await self._writer.drain()

    def close(self) -> None:
        self._writer.close()


class PipeChannel:
    """A child process's stdout (read side) and stdin (write side).

    Closing the channel closes only the pipe into the child; the child's
    stdout is left for the process to close when it exits.
    """

    def __init__(self, process: asyncio.subprocess.Process) -> None:
        if process.stdout is None or process.stdin is None:
            raise ValueError("process must be started with stdin and stdout pipes")
        self._stdout = process.stdout
        self._stdin = process.stdin

    async def read(self, n: int) -> bytes:
        return await self._stdout.read(n)

    async def write(self, data: bytes) -> None:
        self._stdin.write(data)
        await self._stdin.drain()

    def close(self) -> None:
        if not self._stdin.is_closing():
            self._stdin.close()


class StdinPump:
    """Feeds a local fd into an ``asyncio.StreamReader`` from a daemon thread.

    Blocking reads stay off the event loop and never change the fd's
    blocking mode, which the terminal shares with stdout. The thread is
    a daemon: after the drive loop returns it may sit in ``os.read``
    until the next keystroke or process exit.
    """

    def __init__(self, fd: int | None = None, chunk_size: int = 1024) -> None:
        self.fd = sys.stdin.fileno() if fd is None else fd
        self.chunk_size = chunk_size
        self._thread: threading.Thread | None = None

    def start(self, loop: asyncio.AbstractEventLoop | None = None) -> asyncio.StreamReader:
        loop = loop or asyncio.get_running_loop()
        reader = asyncio.StreamReader()
        self._thread = threading.Thread(
            target=self._pump, args=(loop, reader), name="dbox-stdin", daemon=True
        )
        self._thread.start()
        return reader

    def _pump(self, loop: asyncio.AbstractEventLoop, reader: asyncio.StreamReader) -> None:
        while True:
            try:
                data = os.read(self.fd, self.chunk_size)
            except OSError as e:
                logger.debug("stdin read failed: %s", e)
                _call_soon(loop, reader.set_exception, e)
                return
            if not data:
                _call_soon(loop, reader.feed_eof)
                return
            if not _call_soon(loop, reader.feed_data, data):
                return


def _call_soon(loop: asyncio.AbstractEventLoop, fn, *args) -> bool:
    try:
        loop.call_soon_threadsafe(fn, *args)
    except RuntimeError:
        # Loop already closed; nobody is listening any more.
        return False
    return True


class BinaryOutput:
    """Unbuffered byte sink over a binary stream (stdout by default)."""

    def __init__(self, stream: BinaryIO | None = None) -> None:
        self._stream = stream if stream is not None else sys.stdout.buffer

    def write(self, data: bytes) -> None:
        self._stream.write(data)
        self._stream.flush()
