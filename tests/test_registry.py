"""Tests for HandlerRegistry and EventDispatcher"""

from datetime import datetime

import pytest

from tvon.bus.events import MessageEvent, SessionIdentity, SessionStatus, StatusEvent
from tvon.bus.registry import EventDispatcher, HandlerRegistry


def message(text="Oi"):
    return MessageEvent(chat_id="5514999998888@s.whatsapp.net", text=text, type="conversation", timestamp=datetime.now())


class TestHandlerRegistry:

    @pytest.mark.asyncio
    async def test_sync_and_async_handlers(self):
        registry = HandlerRegistry("message")
        seen = []

        async def async_handler(event):
            seen.append(("async", event.text))

        registry.add(lambda event: seen.append(("sync", event.text)))
        registry.add(async_handler)

        await registry.dispatch(message())

        assert seen == [("sync", "Oi"), ("async", "Oi")]

    @pytest.mark.asyncio
    async def test_failing_handler_isolated(self):
        registry = HandlerRegistry("message")
        seen = []

        def broken(event):
            raise RuntimeError("boom")

        registry.add(broken)
        registry.add(seen.append)

        await registry.dispatch(message())

        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_duplicate_registration_kept_once(self):
        registry = HandlerRegistry("message")
        seen = []
        registry.add(seen.append)
        registry.add(seen.append)

        await registry.dispatch(message())

        assert len(registry) == 1
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe(self):
        registry = HandlerRegistry("status")
        seen = []
        unsubscribe = registry.add(seen.append)

        unsubscribe()
        unsubscribe()
        await registry.dispatch(StatusEvent(connected=True, connecting=False))

        assert seen == []
        assert seen.append not in registry

    @pytest.mark.asyncio
    async def test_changes_during_dispatch_apply_to_next_event(self):
        registry = HandlerRegistry("message")
        calls = []

        def late(event):
            calls.append(("late", event.text))

        def second(event):
            calls.append(("second", event.text))

        def first(event):
            calls.append(("first", event.text))
            registry.add(late)
            registry.remove(second)

        registry.add(first)
        registry.add(second)

        await registry.dispatch(message("one"))
        await registry.dispatch(message("two"))

        assert calls == [
            ("first", "one"),
            ("second", "one"),
            ("first", "two"),
            ("late", "two"),
        ]


class TestEventDispatcher:

    @pytest.mark.asyncio
    async def test_routes_by_type(self):
        dispatcher = EventDispatcher()
        messages, statuses = [], []
        dispatcher.messages.add(messages.append)
        dispatcher.statuses.add(statuses.append)

        await dispatcher.dispatch(message())
        await dispatcher.dispatch(StatusEvent(connected=False, connecting=True))

        assert [e.kind for e in messages] == ["message"]
        assert [e.kind for e in statuses] == ["status"]

    @pytest.mark.asyncio
    async def test_unknown_event(self):
        with pytest.raises(TypeError):
            await EventDispatcher().dispatch({"type": "message"})

    def test_clear(self):
        dispatcher = EventDispatcher()
        dispatcher.messages.add(print)
        dispatcher.statuses.add(print)

        dispatcher.clear()

        assert len(dispatcher.messages) == 0
        assert len(dispatcher.statuses) == 0


def test_status_to_dict():
    status = SessionStatus(
        connected=True,
        connecting=False,
        qr=None,
        qr_image=None,
        identity=SessionIdentity(id="5514988887777:3@s.whatsapp.net", name="TV ON", phone_number="5514988887777"),
        pending_queue_size=2,
    )

    assert status.to_dict() == {
        "isConnected": True,
        "isConnecting": False,
        "qr": None,
        "userProfile": {"id": "5514988887777:3@s.whatsapp.net", "name": "TV ON", "phoneNumber": "5514988887777"},
        "queueSize": 2,
    }


def test_message_phone_number():
    assert message().phone_number == "5514999998888"
