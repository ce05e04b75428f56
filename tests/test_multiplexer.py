"""Tests for dbox.mux.multiplexer.Multiplexer."""

from __future__ import annotations

import asyncio
import io

from dbox.mux.channel import BinaryOutput
from dbox.mux.multiplexer import Multiplexer, MuxOutcome, drive


class ScriptedChannel:
    """Hands out pre-set chunks one read at a time; None means closed.

    Once the script runs out, reads block until more is queued.
    """

    def __init__(self, chunks: list[bytes | None] | None = None) -> None:
        self._queue: asyncio.Queue[bytes | None] = asyncio.Queue()
        for chunk in chunks or []:
            self._queue.put_nowait(chunk)
        self.written = bytearray()
        self.closed = False

    def push(self, chunk: bytes | None) -> None:
        self._queue.put_nowait(chunk)

    def remaining(self) -> list[bytes | None]:
        items = []
        while not self._queue.empty():
            items.append(self._queue.get_nowait())
        return items

    async def read(self, n: int) -> bytes:
        chunk = await self._queue.get()
        return b"" if chunk is None else chunk

    async def write(self, data: bytes) -> None:
        self.written += data

    def close(self) -> None:
        self.closed = True


class EchoChannel(ScriptedChannel):
    """Everything written comes straight back out."""

    async def write(self, data: bytes) -> None:
        await super().write(data)
        self.push(data)


class BrokenWriteChannel(ScriptedChannel):
    async def write(self, data: bytes) -> None:
        raise BrokenPipeError("session gone")


class BrokenReadChannel(ScriptedChannel):
    async def read(self, n: int) -> bytes:
        raise ConnectionResetError("reset by peer")


class BrokenOutput:
    """A stdout whose reader has gone away."""

    def __init__(self) -> None:
        self.attempts = 0

    def write(self, data: bytes) -> None:
        self.attempts += 1
        raise BrokenPipeError("stdout closed")


def _idle_stdin() -> asyncio.StreamReader:
    return asyncio.StreamReader()


class TestMultiplexerDetach:
    async def test_scenario_marker_split_across_reads(self) -> None:
        channel = ScriptedChannel([b"hello", b"<DBOX:DE", b"TACH>", b"world"])
        out = io.BytesIO()
        mux = Multiplexer(channel, _idle_stdin(), BinaryOutput(out))

        outcome = await mux.run()

        assert outcome is MuxOutcome.DETACHED
        assert out.getvalue() == b"hello<DBOX:DETACH>"
        # The loop returned before reading the trailing chunk.
        assert channel.remaining() == [b"world"]

    async def test_echo_happens_for_whole_chunk(self) -> None:
        channel = ScriptedChannel([b"a<DBOX:DETACH>b"])
        out = io.BytesIO()
        outcome = await drive(channel, _idle_stdin(), BinaryOutput(out))
        assert outcome is MuxOutcome.DETACHED
        assert out.getvalue() == b"a<DBOX:DETACH>b"

    async def test_on_detach_called_once(self) -> None:
        calls: list[str] = []
        channel = ScriptedChannel([b"<DBOX:DETACH>", b"<DBOX:DETACH>"])
        mux = Multiplexer(
            channel,
            _idle_stdin(),
            BinaryOutput(io.BytesIO()),
            on_detach=lambda: calls.append("restore"),
        )
        assert await mux.run() is MuxOutcome.DETACHED
        assert calls == ["restore"]

    async def test_channel_not_closed_on_detach(self) -> None:
        channel = ScriptedChannel([b"<DBOX:DETACH>"])
        await drive(channel, _idle_stdin(), BinaryOutput(io.BytesIO()))
        assert not channel.closed

    async def test_marker_typed_through_echo_channel(self) -> None:
        stdin = asyncio.StreamReader()
        stdin.feed_data(b"echo hi\n")
        channel = EchoChannel()
        out = io.BytesIO()
        mux = Multiplexer(channel, stdin, BinaryOutput(out))

        task = asyncio.create_task(mux.run())
        await asyncio.sleep(0.05)
        stdin.feed_data(b"<DBOX:DETACH>")
        outcome = await asyncio.wait_for(task, 2)

        assert outcome is MuxOutcome.DETACHED
        assert bytes(channel.written) == b"echo hi\n<DBOX:DETACH>"
        assert out.getvalue() == b"echo hi\n<DBOX:DETACH>"


class TestMultiplexerPassthrough:
    async def test_stream_without_marker_echoed_in_order(self) -> None:
        chunks = [b"boot: ok\r\n", b"\x1b[2J", b"<DBOX:", b"DETACHED?", b"\x00\xff", None]
        channel = ScriptedChannel(chunks)
        out = io.BytesIO()
        calls: list[str] = []
        mux = Multiplexer(
            channel,
            _idle_stdin(),
            BinaryOutput(out),
            on_detach=lambda: calls.append("restore"),
        )

        outcome = await mux.run()

        assert outcome is MuxOutcome.ENDED
        assert out.getvalue() == b"".join(c for c in chunks if c)
        assert calls == []

    async def test_stdin_copied_unmodified(self) -> None:
        stdin = asyncio.StreamReader()
        stdin.feed_data(b"\x03ls -la\r")
        channel = ScriptedChannel()
        mux = Multiplexer(channel, stdin, BinaryOutput(io.BytesIO()))

        task = asyncio.create_task(mux.run())
        await asyncio.sleep(0.05)
        channel.push(None)
        assert await asyncio.wait_for(task, 2) is MuxOutcome.ENDED
        assert bytes(channel.written) == b"\x03ls -la\r"


class TestMultiplexerEnded:
    async def test_channel_closed(self) -> None:
        channel = ScriptedChannel([b"bye", None])
        out = io.BytesIO()
        assert await drive(channel, _idle_stdin(), BinaryOutput(out)) is MuxOutcome.ENDED
        assert out.getvalue() == b"bye"

    async def test_channel_read_error(self) -> None:
        channel = BrokenReadChannel()
        outcome = await drive(channel, _idle_stdin(), BinaryOutput(io.BytesIO()))
        assert outcome is MuxOutcome.ENDED

    async def test_channel_write_error(self) -> None:
        stdin = asyncio.StreamReader()
        stdin.feed_data(b"x")
        channel = BrokenWriteChannel()
        outcome = await asyncio.wait_for(
            drive(channel, stdin, BinaryOutput(io.BytesIO())), 2
        )
        assert outcome is MuxOutcome.ENDED

    async def test_stdin_read_error(self) -> None:
        stdin = asyncio.StreamReader()
        stdin.set_exception(OSError("EIO"))
        channel = ScriptedChannel()
        outcome = await asyncio.wait_for(
            drive(channel, stdin, BinaryOutput(io.BytesIO())), 2
        )
        assert outcome is MuxOutcome.ENDED

    async def test_stdout_write_error(self) -> None:
        calls: list[str] = []
        channel = ScriptedChannel([b"hello", b"<DBOX:DETACH>"])
        out = BrokenOutput()
        mux = Multiplexer(
            channel,
            _idle_stdin(),
            out,
            on_detach=lambda: calls.append("restore"),
        )

        outcome = await asyncio.wait_for(mux.run(), 2)

        assert outcome is MuxOutcome.ENDED
        assert out.attempts == 1
        assert calls == []
        assert channel.remaining() == [b"<DBOX:DETACH>"]

    async def test_stdin_eof_keeps_output_flowing(self) -> None:
        stdin = asyncio.StreamReader()
        stdin.feed_eof()
        channel = ScriptedChannel()
        out = io.BytesIO()
        task = asyncio.create_task(drive(channel, stdin, BinaryOutput(out)))

        await asyncio.sleep(0.05)
        assert not task.done()
        channel.push(b"still here")
        channel.push(b"<DBOX:DETACH>")
        assert await asyncio.wait_for(task, 2) is MuxOutcome.DETACHED
        assert out.getvalue() == b"still here<DBOX:DETACH>"
