"""Bridge transport: outbound queue, inbound actions, handler registry."""

import json

import pytest

from gp_chat.errors import BridgeError
from gp_chat.models.events import BridgeEventType
from gp_chat.transport.bridge import BridgeTransport, HandlerRegistry
from gp_chat.transport.envelope import decode_action


def _types(messages):
    return [json.loads(m)["eventType"] for m in messages]


class TestOutboundQueue:
    def test_fifo_order(self):
        bridge = BridgeTransport()
        bridge.send("A", {"n": 1})
        bridge.send("B", {"n": 2})
        bridge.send("C", {"n": 3})
        assert bridge.pending == 3
        assert _types(bridge.drain()) == ["A", "B", "C"]
        assert bridge.pending == 0

    def test_envelope_shape(self):
        bridge = BridgeTransport()
        bridge.send(BridgeEventType.STREAM_CHUNK, {"chunk": "He", "timestamp": "t"})
        event = json.loads(bridge.drain()[0])
        assert event["eventType"] == "stream_chunk"
        assert event["data"] == {"chunk": "He", "timestamp": "t"}
        assert event["timestamp"]

    @pytest.mark.asyncio
    async def test_pull_returns_next_or_none(self):
        bridge = BridgeTransport()
        assert await bridge.pull(timeout=0.01) is None
        bridge.send("A", {})
        assert json.loads(await bridge.pull(timeout=0.01))["eventType"] == "A"

    def test_chat_initialized_sets_flags(self):
        bridge = BridgeTransport()
        assert not bridge.initialized and not bridge.connected
        bridge.send(BridgeEventType.MESSAGE_RECEIVED, {})
        assert not bridge.initialized
        bridge.send(BridgeEventType.CHAT_INITIALIZED, {"conversationHistory": [], "expectNewMessage": False})
        assert bridge.initialized and bridge.connected

    def test_send_error(self):
        bridge = BridgeTransport()
        bridge.send_error("boom")
        event = json.loads(bridge.drain()[0])
        assert event["eventType"] == "error_occurred"
        assert event["data"]["error"] == "boom"
        assert event["data"]["timestamp"]


class TestHandlerRegistry:
    @pytest.mark.asyncio
    async def test_handlers_run_in_registration_order(self):
        registry = HandlerRegistry()
        calls = []
        registry.on("E", lambda data, raw: calls.append(("first", data)))
        registry.on("E", lambda data, raw: calls.append(("second", data)))
        assert await registry.dispatch("E", 1, {}) == 2
        assert calls == [("first", 1), ("second", 1)]

    @pytest.mark.asyncio
    async def test_failing_handler_does_not_stop_others(self):
        registry = HandlerRegistry()
        calls = []

        def broken(data, raw):
            raise RuntimeError("handler bug")

        registry.on("E", broken)
        registry.on("E", lambda data, raw: calls.append(data))
        await registry.dispatch("E", "x", {})
        assert calls == ["x"]

    @pytest.mark.asyncio
    async def test_async_handlers_are_awaited(self):
        registry = HandlerRegistry()
        calls = []

        async def handler(data, raw):
            calls.append(data)

        registry.on("E", handler)
        await registry.dispatch("E", "x", {})
        assert calls == ["x"]

    @pytest.mark.asyncio
    async def test_removal_during_dispatch_applies_next_time(self):
        registry = HandlerRegistry()
        calls = []

        def second(data, raw):
            calls.append("second")

        def first(data, raw):
            calls.append("first")
            registry.off("E", second)

        registry.on("E", first)
        registry.on("E", second)
        await registry.dispatch("E", None, {})
        assert calls == ["first", "second"]

        calls.clear()
        await registry.dispatch("E", None, {})
        assert calls == ["first"]

    def test_remover_and_off(self):
        registry = HandlerRegistry()

        def handler(data, raw):
            pass

        remove = registry.on("E", handler)
        assert registry.handlers("E") == [handler]
        remove()
        assert registry.handlers("E") == []
        assert registry.off("E", handler) is False


class TestInbound:
    @pytest.mark.asyncio
    async def test_action_payload_reaches_handler(self):
        bridge = BridgeTransport()
        received = []
        bridge.on("send_message", lambda data, raw: received.append((data, raw)))
        action = await bridge.receive(json.dumps({"action": "send_message", "message": "hi"}))
        assert action.action == "send_message"
        assert received == [({"message": "hi"}, {"action": "send_message", "message": "hi"})]

    @pytest.mark.asyncio
    async def test_unknown_action_is_accepted(self):
        bridge = BridgeTransport()
        action = await bridge.receive({"action": "dance", "speed": 3})
        assert action is not None
        assert action.payload == {"speed": 3}
        assert bridge.pending == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["not json", "[1, 2]", '{"message": "no action"}'])
    async def test_malformed_message_reports_error(self, raw):
        bridge = BridgeTransport()
        assert await bridge.receive(raw) is None
        messages = bridge.drain()
        assert _types(messages) == ["error_occurred"]
        assert "Error handling message" in json.loads(messages[0])["data"]["error"]

    @pytest.mark.parametrize("raw,reason", [
        ("not json", "Malformed JSON"),
        ("[1, 2]", "JSON object with an action"),
        ({"action": 7}, "JSON object with an action"),
    ])
    def test_decode_action_raises_bridge_error(self, raw, reason):
        with pytest.raises(BridgeError) as exc:
            decode_action(raw)
        assert reason in str(exc.value)
        assert exc.value.code == "bridge_error"

    def test_decode_action_splits_payload(self):
        action = decode_action('{"action": "send_message", "message": "Hi"}')
        assert action.action == "send_message"
        assert action.payload == {"message": "Hi"}

    @pytest.mark.asyncio
    async def test_missing_payload_field_still_dispatches(self, caplog):
        bridge = BridgeTransport()
        received = []
        bridge.on("click_button", lambda data, raw: received.append(data))
        await bridge.receive({"action": "click_button"})
        assert received == [{}]
        assert "buttonId" in caplog.text
