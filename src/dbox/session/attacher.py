"""Session attacher — reconnect the terminal to a running VM."""

from __future__ import annotations

import asyncio
import logging

from dbox.config import DboxConfig
from dbox.mux.channel import BinaryOutput, SocketChannel, StdinPump
from dbox.mux.multiplexer import ByteReader, ByteWriter, Multiplexer, MuxOutcome
from dbox.session.errors import SessionConnectError, SessionNotFoundError
from dbox.session.registry import SessionRegistry
from dbox.term.controller import raw_terminal

logger = logging.getLogger(__name__)

STATUS_QUERY = b"info status\n"


async def attach_session(
    session_id: str,
    *,
    config: DboxConfig | None = None,
    registry: SessionRegistry | None = None,
    stdin: ByteReader | None = None,
    stdout: ByteWriter | None = None,
    terminal_fd: int | None = None,
    trap_signals: bool = True,
) -> MuxOutcome:
    """Attach to ``session_id``'s control socket until detach or end.

    A missing socket file is reported before any connection is tried.
    A socket file that refuses the connection is reported as a connect
    failure and left on disk; only listing reaps stale sockets.

    Raises:
        SessionNotFoundError: No socket file for the id.
        SessionConnectError: The socket file exists but nothing answered.
    """
    config = config or DboxConfig()
    registry = registry or SessionRegistry(config.session.socket_dir)
    path = registry.socket_path(session_id)

    if not path.exists():
        raise SessionNotFoundError(session_id)

    try:
        channel = await SocketChannel.connect(path)
    except OSError as e:
        raise SessionConnectError(session_id, e) from e

    logger.info("Attached to session %s at %s", session_id, path)

    loop = asyncio.get_running_loop()
    try:
        if stdin is None:
            stdin = StdinPump(terminal_fd, config.session.chunk_size).start(loop)
        if stdout is None:
            stdout = BinaryOutput()

        with raw_terminal(terminal_fd, loop if trap_signals else None) as term:
            try:
                await channel.write(STATUS_QUERY)
            except OSError as e:
                logger.debug("Status query to session %s failed: %s", session_id, e)
                return MuxOutcome.ENDED

            # Give the monitor a moment to settle before taking over its I/O.
            await asyncio.sleep(config.session.grace_period)

            mux = Multiplexer(
                channel,
                stdin,
                stdout,
                on_detach=term.restore,
                chunk_size=config.session.chunk_size,
            )
            return await mux.run()
    finally:
        channel.close()
