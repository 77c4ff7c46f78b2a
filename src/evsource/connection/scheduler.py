"""Deferred emission and reconnect timing.

Listener notifications are never invoked from inside the parsing loop; they
are queued on the event loop as ``ScheduledEmission``s so that ``close()``
calls issued in between can still suppress them.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import structlog

log = structlog.get_logger()


class ScheduledEmission:
    """A cancellable callback queued for the next loop iteration.

    The optional guard is evaluated when the callback is due; if it returns
    False the callback is skipped.
    """

    def __init__(
        self,
        callback: Callable[[], None],
        guard: Callable[[], bool] | None = None,
    ) -> None:
        loop = asyncio.get_running_loop()
        self._callback = callback
        self._guard = guard
        self._done: asyncio.Future[None] = loop.create_future()
        self._handle = loop.call_soon(self._run)
        self.skipped = False

    def _run(self) -> None:
        try:
            if self._guard is None or self._guard():
                self._callback()
            else:
                self.skipped = True
        finally:
            self._resolve()

    def _resolve(self) -> None:
        if not self._done.done():
            self._done.set_result(None)

    def cancel(self) -> None:
        self._handle.cancel()
        self.skipped = True
        self._resolve()

    def done(self) -> bool:
        return self._done.done()

    async def wait(self) -> None:
        """Wait until the emission has run, been skipped, or been cancelled."""
        await asyncio.shield(self._done)


class ReconnectScheduler:
    """Waits out the reconnect delay, then re-enters the connect step."""

    def __init__(self, sleep: Callable[[float], Awaitable[object]] = asyncio.sleep) -> None:
        self._sleep = sleep
        self.scheduled_count = 0

    async def wait_and_reconnect(
        self,
        delay_ms: int,
        notified: ScheduledEmission | None,
        still_connecting: Callable[[], bool],
        reconnect: Callable[[], None],
    ) -> bool:
        """Sleep ``delay_ms`` then reconnect if the connection still wants it.

        ``notified`` is the error emission for the failure being recovered
        from; the reconnect never starts before it has been handed to the
        dispatcher. Returns True if ``reconnect`` was called.
        """
        self.scheduled_count += 1
        log.debug("sse_reconnect_scheduled", delay_ms=delay_ms, attempt=self.scheduled_count)
        await self._sleep(delay_ms / 1000)
        if notified is not None:
            await notified.wait()

        if not still_connecting():
            log.debug("sse_reconnect_discarded", attempt=self.scheduled_count)
            return False
        reconnect()
        return True
