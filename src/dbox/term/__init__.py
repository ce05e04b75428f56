"""Controlling-terminal mode handling."""

from dbox.term.controller import TerminalController, raw_terminal

__all__ = [
    "TerminalController",
    "raw_terminal",
]
