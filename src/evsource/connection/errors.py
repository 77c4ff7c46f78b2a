"""Error types surfaced through error events or raised to the caller."""

from __future__ import annotations

import httpx


class EventSourceError(Exception):
    """Base class for event source errors."""


class InvalidResponseError(EventSourceError):
    """The server answered, but not with a 200 text/event-stream response."""

    def __init__(self, message: str, response: httpx.Response) -> None:
        self.response = response
        super().__init__(message)

    @property
    def status_code(self) -> int:
        return self.response.status_code

    @property
    def headers(self) -> httpx.Headers:
        return self.response.headers

    @classmethod
    def from_response(cls, response: httpx.Response) -> InvalidResponseError:
        content_type = response.headers.get("content-type")
        if response.status_code == 200:
            message = (
                f"Invalid response content-type {content_type!r}. "
                "Must be text/event-stream"
            )
        else:
            message = (
                "Response status is not 200 OK "
                f"(status: {response.status_code} {response.reason_phrase})"
            )
        return cls(message, response)


class StreamEndedError(EventSourceError):
    """The server ended the event stream without a transport error."""

    def __init__(self) -> None:
        super().__init__("Event stream ended by server")


def is_valid_stream_response(response: httpx.Response) -> bool:
    content_type = response.headers.get("content-type", "")
    return response.status_code == 200 and content_type.startswith("text/event-stream")
