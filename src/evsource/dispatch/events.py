"""Event payloads delivered to listeners."""

from __future__ import annotations

import enum
from dataclasses import dataclass

from evsource.stream.sse_parser import MessageEvent

__all__ = ["ErrorEvent", "ErrorKind", "Event", "MessageEvent"]


class ErrorKind(enum.Enum):
    NETWORK = "network"
    INVALID_RESPONSE = "invalid_response"


@dataclass(frozen=True)
class Event:
    """A payload-less event such as ``open`` or ``close``."""

    type: str


@dataclass(frozen=True)
class ErrorEvent:
    """An ``error`` event.

    ``kind`` is None when the stream was aborted locally rather than failing.
    """

    kind: ErrorKind | None = None
    error: BaseException | None = None
    type: str = "error"

    @property
    def message(self) -> str | None:
        return str(self.error) if self.error is not None else None
