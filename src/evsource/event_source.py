"""Reconnecting Server-Sent Events client.

Each connection attempt runs as its own asyncio task; cancelling that task is
the only way an in-flight request or body read is interrupted. Listener
notifications are queued as ScheduledEmissions tagged with the attempt that
produced them, so nothing from a retired attempt, or from any attempt after
``close()``, ever reaches a listener.
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import structlog

from evsource.config import EventSourceConfig
from evsource.connection.errors import (
    InvalidResponseError,
    StreamEndedError,
    is_valid_stream_response,
)
from evsource.connection.scheduler import ReconnectScheduler, ScheduledEmission
from evsource.connection.state_machine import ReadyState, transition
from evsource.connection.visibility import VisibilitySignal
from evsource.dispatch.dispatcher import EventDispatcher, Handler, HandlerSlot
from evsource.dispatch.events import ErrorEvent, ErrorKind, Event, MessageEvent
from evsource.stream.line_framer import iter_lines
from evsource.stream.sse_parser import EventStreamParser

log = structlog.get_logger()

RequestInput = str | httpx.URL | httpx.Request


def _mark_retrieved(future: asyncio.Future[None]) -> None:
    # A fault is re-raised by wait_closed(), which may never be awaited.
    if not future.cancelled():
        future.exception()


class EventSource:
    """A long-lived, self-healing event stream.

    Constructing an EventSource requires a running event loop; the first
    connection attempt starts immediately. Listeners registered right after
    construction still see the ``open`` event, since every emission is
    deferred to a later loop iteration.

    Routine connection events are logged through structlog at debug level and
    failed attempts at warning. Hosts that have not configured structlog should call
    ``evsource.logging_config.setup_logging`` or ``structlog.configure``.

    Args:
        input: Target URL, or a pre-built ``httpx.Request``.
        client: HTTP client to use. If omitted, one is built from ``config``
            and closed by ``aclose()``.
        config: Client configuration. Defaults to EventSourceConfig().
        disconnect_on_hidden: Pause the stream while ``visibility`` reports
            hidden.
        visibility: Optional host visibility signal.
        last_event_id: Id to resume from on the first request.
        dispatcher: Listener registry (for sharing or testing).
        scheduler: Reconnect scheduler (for testing).
        **request_options: Passed to ``httpx.AsyncClient.build_request``
            (method, headers, content, json, params, ...).
    """

    CONNECTING = ReadyState.CONNECTING
    OPEN = ReadyState.OPEN
    CLOSED = ReadyState.CLOSED

    onopen = HandlerSlot()
    onmessage = HandlerSlot()
    onerror = HandlerSlot()
    onclose = HandlerSlot()

    def __init__(
        self,
        input: RequestInput,
        *,
        client: httpx.AsyncClient | None = None,
        config: EventSourceConfig | None = None,
        disconnect_on_hidden: bool = False,
        visibility: VisibilitySignal | None = None,
        last_event_id: str = "",
        dispatcher: EventDispatcher | None = None,
        scheduler: ReconnectScheduler | None = None,
        **request_options: Any,
    ) -> None:
        loop = asyncio.get_running_loop()
        self.config = config if config is not None else EventSourceConfig()
        self._input = input
        self._url = input.url if isinstance(input, httpx.Request) else httpx.URL(input)
        self._request_options = request_options
        self._owns_client = client is None
        self._client = client if client is not None else self.config.build_client()
        self._dispatcher = dispatcher if dispatcher is not None else EventDispatcher()
        self._scheduler = scheduler if scheduler is not None else ReconnectScheduler()
        self._visibility = visibility

        self._ready_state = ReadyState.CONNECTING
        self._last_event_id = last_event_id
        self._reconnect_delay_ms = self.config.default_retry_ms
        self._task: asyncio.Task[None] | None = None
        self._attempt = 0
        self._paused = False
        self._closed: asyncio.Future[None] = loop.create_future()
        self._closed.add_done_callback(_mark_retrieved)

        self._disconnect_on_hidden = False
        self.disconnect_on_hidden = disconnect_on_hidden

        self._connect()

    # -- observable state -------------------------------------------------

    @property
    def ready_state(self) -> ReadyState:
        return self._ready_state

    @property
    def url(self) -> httpx.URL:
        return self._url

    @property
    def origin(self) -> str:
        return f"{self._url.scheme}://{self._url.netloc.decode('ascii')}"

    @property
    def last_event_id(self) -> str:
        """The id of the last completed event, sent as Last-Event-ID on reconnect."""
        return self._last_event_id

    @property
    def reconnect_delay_ms(self) -> int:
        return self._reconnect_delay_ms

    @property
    def disconnect_on_hidden(self) -> bool:
        return self._disconnect_on_hidden

    @disconnect_on_hidden.setter
    def disconnect_on_hidden(self, value: bool) -> None:
        if value == self._disconnect_on_hidden:
            return
        self._disconnect_on_hidden = value
        if self._visibility is None:
            if value:
                log.debug("visibility_unavailable", url=str(self._url))
            return
        if value:
            self._visibility.subscribe(self._handle_visibility_change)
            return
        self._visibility.unsubscribe(self._handle_visibility_change)
        if self._paused and self._ready_state is not ReadyState.CLOSED:
            self._paused = False
            log.debug("sse_resumed", url=str(self._url), trigger="disconnect_on_hidden_off")
            self._connect()

    # -- listeners --------------------------------------------------------

    def on(self, event_type: str, handler: Handler) -> None:
        self._dispatcher.on(event_type, handler)

    def off(self, event_type: str, handler: Handler | None) -> None:
        self._dispatcher.off(event_type, handler)

    add_event_listener = on
    remove_event_listener = off

    # -- lifecycle --------------------------------------------------------

    def close(self) -> None:
        """Close the stream for good and cancel any in-flight attempt."""
        self._ready_state = transition(
            self._ready_state, ReadyState.CLOSED, str(self._url), "close",
        )
        self._retire_attempt()
        if self._visibility is not None and self._disconnect_on_hidden:
            self._visibility.unsubscribe(self._handle_visibility_change)
        if not self._closed.done():
            self._closed.set_result(None)

    async def aclose(self) -> None:
        """Close, wait for the current attempt to unwind, release an owned client."""
        self.close()
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)
        if self._owns_client:
            self._owns_client = False
            await self._client.aclose()

    async def wait_closed(self) -> None:
        """Wait until the stream is closed.

        Raises the underlying exception if the stream was terminated by an
        unrecognized fault rather than by ``close()``.
        """
        await asyncio.shield(self._closed)

    async def __aenter__(self) -> EventSource:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    def __repr__(self) -> str:
        return f"<EventSource url={str(self._url)!r} ready_state={self._ready_state.name}>"

    # -- connection state machine -----------------------------------------

    def _is_live(self, attempt: int) -> bool:
        return self._ready_state is not ReadyState.CLOSED and attempt == self._attempt

    def _retire_attempt(self) -> None:
        """Invalidate the current attempt's pending emissions and cancel its task."""
        self._attempt += 1
        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def _connect(self) -> None:
        self._retire_attempt()
        attempt = self._attempt
        self._task = asyncio.create_task(
            self._run(attempt), name=f"evsource-attempt-{attempt}",
        )
        self._task.add_done_callback(self._on_attempt_done)

    def _build_request(self) -> httpx.Request:
        options = dict(self._request_options)
        headers = httpx.Headers(options.pop("headers", None))
        if isinstance(self._input, httpx.Request):
            base = self._input
            merged = httpx.Headers(base.headers)
            merged.update(headers)
            headers = merged
            method = options.pop("method", base.method)
            options.setdefault("content", base.content)
            options.setdefault("extensions", base.extensions)
        else:
            method = options.pop("method", "GET")

        headers["Accept"] = "text/event-stream"
        headers["Cache-Control"] = "no-cache"
        if self._last_event_id:
            headers["Last-Event-ID"] = self._last_event_id
        return self._client.build_request(method, self._url, headers=headers, **options)

    async def _run(self, attempt: int) -> None:
        url = str(self._url)
        request = self._build_request()
        log.debug(
            "sse_connecting",
            url=url,
            attempt=attempt,
            last_event_id=self._last_event_id,
        )
        try:
            notified = await self._stream(request, attempt)
        except asyncio.CancelledError:
            log.debug(
                "sse_attempt_cancelled",
                url=url,
                attempt=attempt,
                ready_state=self._ready_state.name,
            )
            raise
        except httpx.TransportError as exc:
            log.warning("sse_network_error", url=url, attempt=attempt, error=repr(exc))
            notified = self._fail(attempt, ErrorKind.NETWORK, exc)

        await self._scheduler.wait_and_reconnect(
            self._reconnect_delay_ms,
            notified,
            still_connecting=lambda: (
                self._ready_state is ReadyState.CONNECTING and attempt == self._attempt
            ),
            reconnect=self._connect,
        )

    async def _stream(self, request: httpx.Request, attempt: int) -> ScheduledEmission:
        """Run one request to completion. Returns the resulting error emission."""
        response = await self._client.send(request, stream=True)
        try:
            if not is_valid_stream_response(response):
                error = InvalidResponseError.from_response(response)
                log.warning(
                    "sse_invalid_response",
                    url=str(self._url),
                    status=response.status_code,
                    content_type=response.headers.get("content-type"),
                )
                return self._fail(attempt, ErrorKind.INVALID_RESPONSE, error)

            self._announce(attempt)
            parser = EventStreamParser(
                origin=self.origin,
                last_event_id=self._last_event_id,
                on_retry=self._set_reconnect_delay,
            )
            async for line in iter_lines(response.aiter_text()):
                event = parser.feed_line(line)
                if not line:
                    self._dispatch_message(attempt, parser.last_event_id, event)
        finally:
            await response.aclose()

        log.debug("sse_stream_ended", url=str(self._url), attempt=attempt)
        return self._fail(attempt, ErrorKind.NETWORK, StreamEndedError())

    def _set_reconnect_delay(self, delay_ms: int) -> None:
        log.debug("sse_retry_updated", url=str(self._url), delay_ms=delay_ms)
        self._reconnect_delay_ms = delay_ms

    def _announce(self, attempt: int) -> ScheduledEmission:
        def _open() -> None:
            self._ready_state = transition(
                self._ready_state, ReadyState.OPEN, str(self._url), "response_ok",
            )
            log.debug("sse_open", url=str(self._url), attempt=attempt)
            self._dispatcher.emit("open", Event("open"))

        return ScheduledEmission(_open, guard=lambda: self._is_live(attempt))

    def _dispatch_message(
        self, attempt: int, last_event_id: str, event: MessageEvent | None,
    ) -> ScheduledEmission:
        # Last-Event-ID only advances for lines that reach dispatch.
        def _deliver() -> None:
            self._last_event_id = last_event_id
            if event is not None:
                self._dispatcher.emit(event.type, event)

        return ScheduledEmission(_deliver, guard=lambda: self._is_live(attempt))

    def _fail(
        self, attempt: int, kind: ErrorKind, error: BaseException,
    ) -> ScheduledEmission:
        def _error() -> None:
            self._ready_state = transition(
                self._ready_state, ReadyState.CONNECTING, str(self._url), kind.value,
            )
            self._dispatcher.emit("error", ErrorEvent(kind=kind, error=error))

        return ScheduledEmission(_error, guard=lambda: self._is_live(attempt))

    def _on_attempt_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        log.error(
            "sse_unrecognized_fault",
            url=str(self._url),
            error=repr(exc),
            exc_info=exc,
        )
        if task is not self._task or self._ready_state is ReadyState.CLOSED:
            return

        if not self._closed.done():
            self._closed.set_exception(exc)
        self.close()
        ScheduledEmission(lambda: self._dispatcher.emit("close", Event("close")))

    def _handle_visibility_change(self, hidden: bool) -> None:
        if self._ready_state is ReadyState.CLOSED:
            return
        if hidden:
            if self._paused:
                return
            self._paused = True
            self._retire_attempt()
            self._ready_state = transition(
                self._ready_state, ReadyState.CONNECTING, str(self._url), "hidden",
            )
            log.debug("sse_paused", url=str(self._url))
            ScheduledEmission(
                lambda: self._dispatcher.emit("error", ErrorEvent()),
                guard=lambda: self._ready_state is not ReadyState.CLOSED,
            )
        elif self._paused:
            self._paused = False
            log.debug("sse_resumed", url=str(self._url))
            self._connect()
