"""I/O multiplexer — pairs the local terminal with a session channel."""

from __future__ import annotations

import asyncio
import enum
import logging
from typing import Callable, Protocol

from dbox.mux.channel import DuplexChannel
from dbox.mux.matcher import DETACH_MARKER, DetachMatcher

logger = logging.getLogger(__name__)


class MuxOutcome(enum.Enum):
    """How a drive loop finished."""

    DETACHED = "detached"  # Marker seen; the session is left running
    ENDED = "ended"  # Channel closed or local I/O failed


class ByteReader(Protocol):
    async def read(self, n: int) -> bytes: ...


class ByteWriter(Protocol):
    def write(self, data: bytes) -> None: ...


class Multiplexer:
    """Copies stdin to a channel and the channel to stdout.

    Every byte read from the channel is echoed before the detach scan
    looks at it, so output is never held back waiting on a partial
    marker. The first of {marker complete, channel closed or failed,
    local read or channel write failed} decides the outcome; only the
    marker reports ``DETACHED``. The loop that did not decide is
    cancelled.

    ``on_detach`` runs inside the outbound loop the moment the marker
    completes, before the outcome is delivered. Pass the terminal
    restore here so the terminal is usable even if the caller is slow.
    """

    def __init__(
        self,
        channel: DuplexChannel,
        stdin: ByteReader,
        stdout: ByteWriter,
        on_detach: Callable[[], None] | None = None,
        marker: bytes = DETACH_MARKER,
        chunk_size: int = 1024,
    ) -> None:
        self.channel = channel
        self.stdin = stdin
        self.stdout = stdout
        self.on_detach = on_detach
        self.matcher = DetachMatcher(marker)
        self.chunk_size = chunk_size
        self._done: asyncio.Future[MuxOutcome] | None = None

    def _finish(self, outcome: MuxOutcome) -> None:
        if self._done is not None and not self._done.done():
            self._done.set_result(outcome)

    async def run(self) -> MuxOutcome:
        """Drive both directions until detach or end."""
        self._done = asyncio.get_running_loop().create_future()
        tasks = [
            asyncio.create_task(self._outbound(), name="dbox-mux-outbound"),
            asyncio.create_task(self._inbound(), name="dbox-mux-inbound"),
        ]
        try:
            outcome = await self._done
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.debug("Multiplexer finished: %s", outcome.value)
        return outcome

    async def _outbound(self) -> None:
        """Channel -> stdout, scanning for the detach marker."""
        while True:
            try:
                data = await self.channel.read(self.chunk_size)
            except (OSError, asyncio.IncompleteReadError) as e:
                logger.debug("Error reading from session: %s", e)
                self._finish(MuxOutcome.ENDED)
                return
            if not data:
                self._finish(MuxOutcome.ENDED)
                return

            try:
                self.stdout.write(data)
            except OSError as e:
                logger.debug("Error writing to stdout: %s", e)
                self._finish(MuxOutcome.ENDED)
                return

            if self.matcher.feed(data) >= 0:
                if self.on_detach is not None:
                    self.on_detach()
                self._finish(MuxOutcome.DETACHED)
                return

    async def _inbound(self) -> None:
        """Stdin -> channel, unmodified."""
        while True:
            try:
                data = await self.stdin.read(self.chunk_size)
            except OSError as e:
                logger.debug("Error reading stdin: %s", e)
                self._finish(MuxOutcome.ENDED)
                return
            if not data:
                # Local EOF: stop sending but keep showing session output.
                return
            try:
                await self.channel.write(data)
            except OSError as e:
                logger.debug("Error writing to session: %s", e)
                self._finish(MuxOutcome.ENDED)
                return


async def drive(
    channel: DuplexChannel,
    stdin: ByteReader,
    stdout: ByteWriter,
    on_detach: Callable[[], None] | None = None,
    chunk_size: int = 1024,
) -> MuxOutcome:
    """Run a ``Multiplexer`` over ``channel`` with the default marker."""
    mux = Multiplexer(
        channel, stdin, stdout, on_detach=on_detach, chunk_size=chunk_size
    )
    return await mux.run()
