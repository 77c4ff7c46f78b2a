"""SSE field parser.

Turns framed lines into dispatchable events. Field handling follows the
event-stream interpretation rules: ``event`` replaces, ``data`` accumulates,
``id`` is committed only when the event is terminated by a blank line, and
``retry`` updates the reconnection delay immediately.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

DEFAULT_EVENT_TYPE = "message"


@dataclass(frozen=True)
class MessageEvent:
    """A single dispatched Server-Sent Event."""

    type: str
    data: str
    last_event_id: str = ""
    origin: str = ""

    def to_bytes(self) -> bytes:
        """Serialize back to SSE wire format."""
        lines: list[str] = []
        if self.type != DEFAULT_EVENT_TYPE:
            lines.append(f"event: {self.type}")
        for data_line in self.data.split("\n"):
            lines.append(f"data: {data_line}")
        if self.last_event_id:
            lines.append(f"id: {self.last_event_id}")
        lines.append("")  # blank line terminates event
        return ("\n".join(lines) + "\n").encode()


@dataclass
class PendingEvent:
    """Scratch state for the event currently being accumulated."""

    data: str = ""
    event_type: str = ""
    last_event_id: str = ""


class EventStreamParser:
    """Line-at-a-time SSE parser for a single connection attempt."""

    def __init__(
        self,
        origin: str = "",
        last_event_id: str = "",
        on_retry: Callable[[int], None] | None = None,
    ) -> None:
        self.origin = origin
        # Committed id: only changes when a blank line terminates an event
        self.last_event_id = last_event_id
        self._on_retry = on_retry
        self._pending = PendingEvent(last_event_id=last_event_id)

    @property
    def pending(self) -> PendingEvent:
        return self._pending

    def feed_line(self, line: str) -> MessageEvent | None:
        """Process one line, returning an event when a blank line completes one."""
        if not line:
            return self._dispatch()

        if line.startswith(":"):
            # Comment, ignore
            return None

        field_name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if field_name == "event":
            self._pending.event_type = value
        elif field_name == "data":
            self._pending.data += value + "\n"
        elif field_name == "id":
            if "\0" not in value:
                self._pending.last_event_id = value
        elif field_name == "retry":
            if value.isascii() and value.isdigit() and self._on_retry is not None:
                self._on_retry(int(value))
        return None

    def _dispatch(self) -> MessageEvent | None:
        pending = self._pending
        self.last_event_id = pending.last_event_id

        if not pending.data:
            pending.event_type = ""
            return None

        data = pending.data[:-1] if pending.data.endswith("\n") else pending.data
        event = MessageEvent(
            type=pending.event_type or DEFAULT_EVENT_TYPE,
            data=data,
            last_event_id=pending.last_event_id,
            origin=self.origin,
        )
        pending.data = ""
        pending.event_type = ""
        return event
