"""Tests for listener dispatch."""

import asyncio

import pytest

from evsource.dispatch.dispatcher import EventDispatcher, HandlerSlot
from evsource.dispatch.events import ErrorEvent, ErrorKind, Event


class _Owner:
    onmessage = HandlerSlot()
    onerror = HandlerSlot()

    def __init__(self):
        self.dispatcher = EventDispatcher()

    def on(self, event_type, handler):
        self.dispatcher.on(event_type, handler)

    def off(self, event_type, handler):
        self.dispatcher.off(event_type, handler)


class TestEventDispatcher:
    def test_emit_in_registration_order(self):
        dispatcher = EventDispatcher()
        calls = []
        dispatcher.on("message", lambda e: calls.append(("a", e)))
        dispatcher.on("message", lambda e: calls.append(("b", e)))
        dispatcher.emit("message", 1)
        assert calls == [("a", 1), ("b", 1)]

    def test_only_matching_type(self):
        dispatcher = EventDispatcher()
        calls = []
        dispatcher.on("foo", calls.append)
        dispatcher.emit("message", 1)
        assert calls == []

    def test_duplicate_registration_ignored(self):
        dispatcher = EventDispatcher()
        calls = []
        dispatcher.on("message", calls.append)
        dispatcher.on("message", calls.append)
        dispatcher.emit("message", 1)
        assert calls == [1]
        assert dispatcher.listener_count("message") == 1

    def test_off(self):
        dispatcher = EventDispatcher()
        calls = []
        dispatcher.on("message", calls.append)
        dispatcher.off("message", calls.append)
        dispatcher.emit("message", 1)
        assert calls == []
        assert dispatcher.listener_count("message") == 0

    def test_off_unknown_is_noop(self):
        dispatcher = EventDispatcher()
        dispatcher.off("message", print)
        dispatcher.off("message", None)

    def test_failing_listener_does_not_stop_others(self):
        dispatcher = EventDispatcher()
        calls = []

        def boom(event):
            raise RuntimeError("listener bug")

        dispatcher.on("message", boom)
        dispatcher.on("message", calls.append)
        dispatcher.emit("message", 1)
        assert calls == [1]

    def test_listener_removed_during_emit(self):
        dispatcher = EventDispatcher()
        calls = []

        def first(event):
            calls.append("first")
            dispatcher.off("message", second)

        def second(event):
            calls.append("second")

        dispatcher.on("message", first)
        dispatcher.on("message", second)
        dispatcher.emit("message", 1)
        dispatcher.emit("message", 2)
        assert calls == ["first", "second", "first"]

    @pytest.mark.asyncio
    async def test_async_listener_scheduled(self):
        dispatcher = EventDispatcher()
        seen = asyncio.Event()

        async def handler(event):
            seen.set()

        dispatcher.on("open", handler)
        dispatcher.emit("open", Event("open"))
        await asyncio.wait_for(seen.wait(), 1)


class TestHandlerSlot:
    def test_assign_registers(self):
        owner = _Owner()
        calls = []
        owner.onmessage = calls.append
        owner.dispatcher.emit("message", 1)
        assert calls == [1]
        assert owner.onmessage == calls.append

    def test_reassign_replaces(self):
        owner = _Owner()
        first, second = [], []
        owner.onmessage = first.append
        owner.onmessage = second.append
        owner.dispatcher.emit("message", 1)
        assert first == []
        assert second == [1]

    def test_none_clears(self):
        owner = _Owner()
        calls = []
        owner.onmessage = calls.append
        owner.onmessage = None
        owner.dispatcher.emit("message", 1)
        assert calls == []
        assert owner.onmessage is None

    def test_other_listeners_untouched(self):
        owner = _Owner()
        slot, general = [], []
        owner.on("message", general.append)
        owner.onmessage = slot.append
        owner.onmessage = None
        owner.dispatcher.emit("message", 1)
        assert general == [1]
        assert slot == []

    def test_slots_are_per_type(self):
        owner = _Owner()
        errors = []
        owner.onerror = errors.append
        owner.dispatcher.emit("message", 1)
        event = ErrorEvent(kind=ErrorKind.NETWORK, error=OSError("down"))
        owner.dispatcher.emit("error", event)
        assert errors == [event]
        assert errors[0].message == "down"

    def test_class_access_returns_descriptor(self):
        assert isinstance(_Owner.onmessage, HandlerSlot)
