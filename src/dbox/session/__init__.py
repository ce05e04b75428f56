"""VM sessions — registry, launch and attach.

A session is a running hypervisor plus its control socket
``<tmp>/dbox-<id>.sock``. Nothing else about a session is stored.
"""

from dbox.session.attacher import attach_session
from dbox.session.errors import (
    DboxError,
    LaunchError,
    SessionConnectError,
    SessionNotFoundError,
)
from dbox.session.launcher import LaunchOutcome, LaunchResult, launch_session
from dbox.session.registry import Session, SessionRegistry

__all__ = [
    "attach_session",
    "DboxError",
    "LaunchError",
    "SessionConnectError",
    "SessionNotFoundError",
    "LaunchOutcome",
    "LaunchResult",
    "launch_session",
    "Session",
    "SessionRegistry",
]
