"""Terminal controller — raw mode that always gets undone."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
import termios
import tty
from contextlib import contextmanager
from typing import Any, Iterator

logger = logging.getLogger(__name__)

TRAPPED_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class TerminalController:
    """Owns one raw-mode entry on a terminal fd.

    ``enter_raw()`` saves the current termios attributes and switches the
    fd to raw mode. ``restore()`` puts the saved attributes back and then
    forgets them, so any number of later calls are no-ops. If the switch
    fails (not a tty, no controlling terminal) a warning is logged and
    the controller holds no state: the caller carries on in cooked mode.

    Used as a context manager it restores on every way out of the block.
    """

    def __init__(self, fd: int | None = None) -> None:
        self.fd = sys.stdin.fileno() if fd is None else fd
        self._saved: list[Any] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def is_raw(self) -> bool:
        return self._saved is not None

    def enter_raw(self) -> list[Any] | None:
        """Switch to raw mode, returning the prior state (or None on failure)."""
        if self._saved is not None:
            return self._saved
        try:
            saved = termios.tcgetattr(self.fd)
            tty.setraw(self.fd)
        except (termios.error, OSError) as e:
            logger.warning("Could not set raw mode on fd %d: %s", self.fd, e)
            return None
        self._saved = saved
        return saved

    def restore(self) -> None:
        saved, self._saved = self._saved, None
        if saved is None:
            return
        try:
            termios.tcsetattr(self.fd, termios.TCSADRAIN, saved)
        except (termios.error, OSError) as e:
            logger.warning("Could not restore terminal on fd %d: %s", self.fd, e)

    # -- signals -------------------------------------------------------------

    def trap_signals(self, loop: asyncio.AbstractEventLoop) -> None:
        """Restore and exit immediately on SIGINT/SIGTERM."""
        for sig in TRAPPED_SIGNALS:
            loop.add_signal_handler(sig, self._on_signal, sig)
        self._loop = loop

    def release_signals(self) -> None:
        loop, self._loop = self._loop, None
        if loop is None or loop.is_closed():
            return
        for sig in TRAPPED_SIGNALS:
            loop.remove_signal_handler(sig)

    def _on_signal(self, sig: signal.Signals) -> None:
        self.restore()
        os._exit(128 + sig)

    def __enter__(self) -> TerminalController:
        self.enter_raw()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.restore()


@contextmanager
def raw_terminal(
    fd: int | None = None,
    loop: asyncio.AbstractEventLoop | None = None,
) -> Iterator[TerminalController]:
    """Hold the terminal in raw mode for the duration of the block.

    With a loop, SIGINT/SIGTERM are trapped for the same span so an
    interrupt also restores the terminal before the process dies.
    """
    controller = TerminalController(fd)
    controller.enter_raw()
    try:
        if loop is not None:
            controller.trap_signals(loop)
        yield controller
    finally:
        controller.release_signals()
        controller.restore()
