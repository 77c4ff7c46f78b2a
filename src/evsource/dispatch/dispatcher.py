"""Listener registry and event emission."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Callable
from typing import Any

import structlog

log = structlog.get_logger()

Handler = Callable[[Any], Any]


class EventDispatcher:
    """Maps event types to listeners and emits events to them in order."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[Handler]] = {}
        self._tasks: set[asyncio.Task[Any]] = set()

    def on(self, event_type: str, handler: Handler) -> None:
        """Register a listener. Registering the same listener twice is a no-op."""
        listeners = self._listeners.setdefault(event_type, [])
        if handler not in listeners:
            listeners.append(handler)

    def off(self, event_type: str, handler: Handler | None) -> None:
        listeners = self._listeners.get(event_type)
        if not listeners or handler not in listeners:
            return
        listeners.remove(handler)
        if not listeners:
            del self._listeners[event_type]

    def emit(self, event_type: str, event: Any) -> None:
        """Call every listener for ``event_type``.

        Coroutine listeners are scheduled as tasks. A failing listener is
        logged and does not prevent the remaining ones from running.
        """
        for handler in list(self._listeners.get(event_type, ())):
            try:
                result = handler(event)
            except Exception:
                log.exception("listener_error", event_type=event_type)
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error("listener_error", error=repr(exc), exc_info=exc)

    def listener_count(self, event_type: str) -> int:
        return len(self._listeners.get(event_type, ()))


class HandlerSlot:
    """Single-handler convenience property, e.g. ``source.onmessage = fn``.

    Assigning replaces the previously assigned handler in the owner's
    dispatcher; assigning None just removes it. Listeners added with ``on``
    are not affected.
    """

    def __set_name__(self, owner: type, name: str) -> None:
        self._event_type = name.removeprefix("on")
        self._attr = f"_{name}_handler"

    def __get__(self, obj: Any, objtype: type | None = None) -> Any:
        if obj is None:
            return self
        return getattr(obj, self._attr, None)

    def __set__(self, obj: Any, handler: Handler | None) -> None:
        previous = getattr(obj, self._attr, None)
        if previous is not None:
            obj.off(self._event_type, previous)
        if handler is not None:
            obj.on(self._event_type, handler)
        setattr(obj, self._attr, handler)
