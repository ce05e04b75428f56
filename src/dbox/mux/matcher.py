"""Detach marker detection over a chunked byte stream."""

from __future__ import annotations

DETACH_MARKER = b"<DBOX:DETACH>"


def _failure_table(pattern: bytes) -> list[int]:
    """KMP failure function: longest proper prefix that is also a suffix."""
    table = [0] * len(pattern)
    k = 0
    for i in range(1, len(pattern)):
        while k and pattern[i] != pattern[k]:
            k = table[k - 1]
        if pattern[i] == pattern[k]:
            k += 1
        table[i] = k
    return table


class DetachMatcher:
    """Partial-match automaton for a fixed marker.

    State is the length of the longest marker prefix that ends the bytes
    fed so far, so a marker split across any number of chunks is found
    at the byte that completes it. Once matched, the matcher stays
    matched and reports nothing further until ``reset()``.
    """

    def __init__(self, marker: bytes = DETACH_MARKER) -> None:
        if not marker:
            raise ValueError("detach marker must not be empty")
        self.marker = marker
        self._table = _failure_table(marker)
        self._state = 0
        self._matched = False

    @property
    def matched(self) -> bool:
        return self._matched

    @property
    def partial(self) -> int:
        """Number of marker bytes matched at the end of the stream so far."""
        return self._state

    def feed(self, chunk: bytes) -> int:
        """Advance over ``chunk``.

        Returns:
            Index in ``chunk`` just past the byte that completes the
            marker, or -1 if the marker did not complete in this chunk.
        """
        if self._matched:
            return -1

        marker = self.marker
        table = self._table
        k = self._state
        for i, b in enumerate(chunk):
            while k and b != marker[k]:
                k = table[k - 1]
            if b == marker[k]:
                k += 1
            if k == len(marker):
                self._state = k
                self._matched = True
                return i + 1
        self._state = k
        return -1

    def reset(self) -> None:
        self._state = 0
        self._matched = False
