"""Incremental line framing for event-stream bodies.

Chunks may split a line anywhere, including between the ``\\r`` and ``\\n`` of
a CRLF pair. Each connection attempt gets a fresh framer.
"""

from __future__ import annotations

import re
from collections.abc import AsyncIterable, AsyncIterator

_NEWLINE = re.compile(r"\r\n|\r|\n")


class LineFramer:
    """Splits text chunks into logical lines, keeping the unterminated tail."""

    def __init__(self) -> None:
        self._carry: str = ""
        # Previous chunk ended in \r, so a leading \n belongs to that terminator
        self._skip_lf: bool = False

    def feed(self, chunk: str) -> list[str]:
        """Feed a chunk of text, return any complete lines."""
        if not chunk:
            return []

        if self._skip_lf:
            self._skip_lf = False
            if chunk.startswith("\n"):
                chunk = chunk[1:]

        text = self._carry + chunk
        lines = _NEWLINE.split(text)
        self._carry = lines.pop()
        if text.endswith("\r"):
            self._skip_lf = True
        return lines

    def flush(self) -> list[str]:
        """Return the unterminated tail as a final line, if any."""
        tail, self._carry = self._carry, ""
        self._skip_lf = False
        return [tail] if tail else []


async def iter_lines(chunks: AsyncIterable[str]) -> AsyncIterator[str]:
    """Lazily yield lines from an async iterable of text chunks."""
    framer = LineFramer()
    async for chunk in chunks:
        for line in framer.feed(chunk):
            yield line
    for line in framer.flush():
        yield line
