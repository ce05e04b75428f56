"""Session registry — live sessions are the control sockets that answer."""

from __future__ import annotations

import logging
import os
import socket
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

logger = logging.getLogger(__name__)

SOCKET_PREFIX = "dbox-"
SOCKET_SUFFIX = ".sock"


@dataclass(frozen=True)
class Session:
    """A running VM as seen through its control socket."""

    id: str
    socket_path: Path


class SessionRegistry:
    """Discovers, reaps and names sessions in a socket directory.

    There is no separate record of sessions: a session is live iff a
    process accepts connections on ``<socket_dir>/dbox-<id>.sock``.
    Socket files with no listener are removed when a listing sees them.
    """

    def __init__(
        self,
        socket_dir: str | Path | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.socket_dir = Path(socket_dir or tempfile.gettempdir())
        self._clock = clock

    def socket_path(self, session_id: str) -> Path:
        return self.socket_dir / f"{SOCKET_PREFIX}{session_id}{SOCKET_SUFFIX}"

    def allocate_session_id(self) -> str:
        """Return a new session id derived from the current second.

        Two calls within the same second return the same id; nothing
        checks for a live session already using it.
        """
        return str(int(self._clock()))

    def list_sessions(self) -> set[str]:
        """Probe every control socket and return the ids that answer.

        Sockets that refuse the probe are deleted. Per-socket failures
        are logged and skipped.
        """
        active: set[str] = set()
        for path in self.socket_dir.glob(f"{SOCKET_PREFIX}*{SOCKET_SUFFIX}"):
            session_id = _session_id_from_path(path)
            if _probe(path):
                active.add(session_id)
                continue

            logger.debug("Removing stale control socket %s", path)
            try:
                os.remove(path)
            except OSError as e:
                logger.debug("Could not remove %s: %s", path, e)
        return active

    def sessions(self) -> list[Session]:
        """Live sessions, sorted by id."""
        return [
            Session(id=sid, socket_path=self.socket_path(sid))
            for sid in sorted(self.list_sessions())
        ]


def _session_id_from_path(path: Path) -> str:
    name = path.name
    return name[len(SOCKET_PREFIX) : len(name) - len(SOCKET_SUFFIX)]


def _probe(path: Path) -> bool:
    """Connect to a unix socket and close it straight away."""
    sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    try:
        sock.connect(str(path))
    except OSError as e:
        logger.debug("Probe of %s failed: %s", path, e)
        return False
    finally:
        sock.close()
    return True
