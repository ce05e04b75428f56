"""Terminal <-> session multiplexing with in-band detach detection.

The outbound stream is echoed byte for byte and scanned for the
``<DBOX:DETACH>`` marker; seeing it ends the drive loop and leaves the
session running.
"""

from dbox.mux.channel import (
    BinaryOutput,
    DuplexChannel,
    PipeChannel,
    SocketChannel,
    StdinPump,
)
from dbox.mux.matcher import DETACH_MARKER, DetachMatcher
from dbox.mux.multiplexer import Multiplexer, MuxOutcome, drive

__all__ = [
    "BinaryOutput",
    "DuplexChannel",
    "PipeChannel",
    "SocketChannel",
    "StdinPump",
    "DETACH_MARKER",
    "DetachMatcher",
    "Multiplexer",
    "MuxOutcome",
    "drive",
]
