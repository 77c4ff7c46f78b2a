"""Host visibility signal used to pause and resume a stream."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

import structlog

log = structlog.get_logger()

VisibilityCallback = Callable[[bool], None]


class VisibilitySignal(Protocol):
    """Anything that can report hidden/visible changes to subscribers."""

    def subscribe(self, callback: VisibilityCallback) -> None: ...

    def unsubscribe(self, callback: VisibilityCallback) -> None: ...


class ManualVisibility:
    """In-process visibility signal driven by ``set_hidden``."""

    def __init__(self, hidden: bool = False) -> None:
        self._hidden = hidden
        self._subscribers: list[VisibilityCallback] = []

    @property
    def hidden(self) -> bool:
        return self._hidden

    def subscribe(self, callback: VisibilityCallback) -> None:
        if callback not in self._subscribers:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: VisibilityCallback) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def set_hidden(self, hidden: bool) -> None:
        """Record the new visibility and notify subscribers if it changed."""
        if hidden == self._hidden:
            return
        self._hidden = hidden
        log.debug("visibility_changed", hidden=hidden, subscribers=len(self._subscribers))
        for callback in list(self._subscribers):
            callback(hidden)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)
