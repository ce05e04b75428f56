"""Session launcher — boot a VM and drive its console."""

from __future__ import annotations

import asyncio
import contextlib
import enum
import logging
from dataclasses import dataclass

from dbox.config import DboxConfig
from dbox.hypervisor import build_hypervisor_command
from dbox.mux.channel import BinaryOutput, PipeChannel, StdinPump
from dbox.mux.multiplexer import ByteReader, ByteWriter, Multiplexer, MuxOutcome
from dbox.session.errors import LaunchError
from dbox.session.registry import Session, SessionRegistry
from dbox.term.controller import raw_terminal

logger = logging.getLogger(__name__)


class LaunchOutcome(enum.Enum):
    DETACHED = "detached"  # Detach marker seen; the VM may still be running
    SHUTDOWN = "shutdown"  # The hypervisor process exited


@dataclass
class LaunchResult:
    session: Session
    outcome: LaunchOutcome
    process: asyncio.subprocess.Process
    returncode: int | None = None


async def launch_session(
    environment: str,
    ram: int | None = None,
    cpu: int | None = None,
    *,
    config: DboxConfig | None = None,
    registry: SessionRegistry | None = None,
    image: str | None = None,
    command: str | None = None,
    stdin: ByteReader | None = None,
    stdout: ByteWriter | None = None,
    terminal_fd: int | None = None,
    trap_signals: bool = True,
) -> LaunchResult:
    """Start a hypervisor for ``environment`` and drive it until detach or exit.

    The child's stdin and stdout are pipes so its serial console passes
    through the multiplexer (and the detach scan) on the way to the real
    terminal. Its stderr is inherited.

    Args:
        environment: Environment / image set name (e.g. "python").
        ram: Memory in MB (default from config).
        cpu: vCPU count (default from config).
        config: Loaded configuration.
        registry: Where the control socket goes (default from config).
        image: Image name when it differs from the environment.
        command: Shell command to run instead of the built QEMU invocation.
        stdin: Local input; defaults to a pump over the process's stdin.
        stdout: Local output; defaults to the process's stdout.
        terminal_fd: Terminal to put in raw mode (default stdin).
        trap_signals: Restore the terminal and exit on SIGINT/SIGTERM.

    Raises:
        LaunchError: If the hypervisor process cannot be started.
    """
    config = config or DboxConfig()
    registry = registry or SessionRegistry(config.session.socket_dir)
    ram = ram or config.vm.ram
    cpu = cpu or config.vm.cpu

    session_id = registry.allocate_session_id()
    session = Session(id=session_id, socket_path=registry.socket_path(session_id))
    if command is None:
        command = build_hypervisor_command(
            environment, ram, cpu, session.socket_path, config.vm, image=image
        )

    logger.debug("Session %s command: %s", session.id, command)
    try:
        process = await asyncio.create_subprocess_exec(
            "bash",
            "-c",
            command,
            stdin=asyncio.subprocess.PIPE,
            stdout=asyncio.subprocess.PIPE,
        )
    except OSError as e:
        raise LaunchError(f"failed to start environment {environment}: {e}") from e

    logger.info(
        "Session %s started: pid=%d socket=%s",
        session.id,
        process.pid,
        session.socket_path,
    )

    loop = asyncio.get_running_loop()
    if stdin is None:
        stdin = StdinPump(terminal_fd, config.session.chunk_size).start(loop)
    if stdout is None:
        stdout = BinaryOutput()

    channel = PipeChannel(process)
    try:
        with raw_terminal(terminal_fd, loop if trap_signals else None) as term:
            mux = Multiplexer(
                channel,
                stdin,
                stdout,
                on_detach=term.restore,
                chunk_size=config.session.chunk_size,
            )
            outcome, returncode = await _race(
                mux, process, drain_timeout=config.session.grace_period
            )
    finally:
        channel.close()

    logger.info("Session %s %s", session.id, outcome.value)
    return LaunchResult(
        session=session, outcome=outcome, process=process, returncode=returncode
    )


async def _race(
    mux: Multiplexer,
    process: asyncio.subprocess.Process,
    drain_timeout: float,
) -> tuple[LaunchOutcome, int | None]:
    """Wait for the first of detach or process exit."""
    mux_task = asyncio.create_task(mux.run())
    exit_task = asyncio.create_task(process.wait())
    try:
        done, _ = await asyncio.wait(
            {mux_task, exit_task}, return_when=asyncio.FIRST_COMPLETED
        )
        if mux_task in done and mux_task.result() is MuxOutcome.DETACHED:
            return LaunchOutcome.DETACHED, None

        # Console closed or process gone: either way this is a shutdown.
        returncode = await exit_task
        if not mux_task.done():
            # Let any output still in the pipe reach the terminal.
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(asyncio.shield(mux_task), drain_timeout)
        return LaunchOutcome.SHUTDOWN, returncode
    finally:
        for task in (mux_task, exit_task):
            if not task.done():
                task.cancel()
        await asyncio.gather(mux_task, exit_task, return_exceptions=True)
