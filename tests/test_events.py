"""Tests for the forwarded event system."""

import asyncio
from datetime import datetime

import pytest

from chatrelay.events import Event, EventEmitter, EventType, get_event_emitter, off, on


@pytest.fixture
def emitter():
    """Create a fresh event emitter."""
    return EventEmitter()


class TestEvent:
    def test_from_forwarded(self):
        event = Event.from_forwarded(
            {"type": "GATEWAY_MESSAGE_CREATE", "timestamp": 1700000000000, "data": {"id": "1"}},
            platform="discord",
        )

        assert event.type == EventType.MESSAGE_CREATE.value
        assert event.timestamp == datetime.fromtimestamp(1700000000)
        assert event.data == {"id": "1"}
        assert event.platform == "discord"

    def test_from_forwarded_without_timestamp(self):
        event = Event.from_forwarded({"type": "GATEWAY_READY"}, platform="discord")
        assert isinstance(event.timestamp, datetime)
        assert event.data is None

    def test_from_forwarded_requires_type(self):
        with pytest.raises(ValueError):
            Event.from_forwarded({"data": {}}, platform="discord")


class TestEventEmitter:
    @pytest.mark.asyncio
    async def test_basic_handler(self, emitter):
        received = []

        async def handler(event: Event):
            received.append(event)

        emitter.on(EventType.MESSAGE_CREATE, handler)

        event = Event(type="GATEWAY_MESSAGE_CREATE")
        await emitter.emit(event)

        assert received == [event]

    @pytest.mark.asyncio
    async def test_string_and_enum_keys_match(self, emitter):
        received = []

        async def handler(event: Event):
            received.append(event.type)

        emitter.on("GATEWAY_MESSAGE_CREATE", handler)
        await emitter.emit(Event(type=EventType.MESSAGE_CREATE.value))

        assert received == ["GATEWAY_MESSAGE_CREATE"]

    @pytest.mark.asyncio
    async def test_handler_priority(self, emitter):
        results = []

        async def low_priority(event: Event):
            results.append("low")

        async def high_priority(event: Event):
            results.append("high")

        emitter.on(EventType.REACTION_ADD, low_priority, priority=0)
        emitter.on(EventType.REACTION_ADD, high_priority, priority=10)

        await emitter.emit(Event(type=EventType.REACTION_ADD.value))

        assert results == ["high", "low"]

    @pytest.mark.asyncio
    async def test_wildcard_handler(self, emitter):
        received = []

        async def handler(event: Event):
            received.append(event.type)

        emitter.on("*", handler)

        await emitter.emit(Event(type="GATEWAY_MESSAGE_CREATE"))
        await emitter.emit(Event(type="GATEWAY_TYPING_START"))

        assert received == ["GATEWAY_MESSAGE_CREATE", "GATEWAY_TYPING_START"]

    @pytest.mark.asyncio
    async def test_handler_error_isolation(self, emitter):
        results = []

        async def failing_handler(event: Event):
            raise ValueError("Test error")

        async def working_handler(event: Event):
            results.append("success")

        emitter.on(EventType.MESSAGE_CREATE, failing_handler, priority=10)
        emitter.on(EventType.MESSAGE_CREATE, working_handler)

        await emitter.emit(Event(type=EventType.MESSAGE_CREATE.value))

        assert results == ["success"]

    @pytest.mark.asyncio
    async def test_off_removes_handler(self, emitter):
        received = []

        async def handler(event: Event):
            received.append(event)

        emitter.on(EventType.MESSAGE_CREATE, handler)
        assert emitter.off(EventType.MESSAGE_CREATE, handler) is True
        assert emitter.off(EventType.MESSAGE_CREATE, handler) is False

        await emitter.emit(Event(type=EventType.MESSAGE_CREATE.value))
        assert received == []

    def test_event_history(self):
        emitter = EventEmitter(history_limit=4)
        loop = asyncio.new_event_loop()

        for i in range(6):
            loop.run_until_complete(emitter.emit(Event(type="GATEWAY_READY", data={"i": i})))
        loop.close()

        history = emitter.get_history(limit=3)
        assert [e.data["i"] for e in history] == [5, 4, 3]
        assert emitter.get_stats()["history_size"] == 4

    def test_stats(self, emitter):
        async def handler(event: Event):
            pass

        emitter.on(EventType.MESSAGE_CREATE, handler)
        emitter.on("*", handler)

        stats = emitter.get_stats()
        assert stats["wildcard_handlers"] == 1
        assert stats["handler_counts"] == {"GATEWAY_MESSAGE_CREATE": 1}


class TestGlobalEmitter:
    def test_module_helpers(self):
        async def handler(event: Event):
            pass

        on(EventType.READY, handler)
        assert get_event_emitter().get_stats()["handler_counts"] == {"GATEWAY_READY": 1}
        assert off(EventType.READY, handler) is True
