"""Errors raised by the session layer."""

from __future__ import annotations


class DboxError(Exception):
    """Base class for dbox session errors."""


class SessionNotFoundError(DboxError):
    """No control socket exists for the requested session."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"session {session_id} not found")
        self.session_id = session_id


class SessionConnectError(DboxError):
    """The control socket exists but nothing answered on it."""

    def __init__(self, session_id: str, cause: BaseException) -> None:
        super().__init__(f"failed to connect to session {session_id}: {cause}")
        self.session_id = session_id


class LaunchError(DboxError):
    """The hypervisor process could not be started."""
