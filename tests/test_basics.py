"""Basic unit tests for the gp-chat package."""

from gp_chat import (
    BridgeError,
    BridgeTransport,
    ConversationOrchestrator,
    FrontendBridge,
    GpChatError,
    InputValidationError,
    ServiceError,
    SessionError,
    __version__,
)
from gp_chat.models.events import ActionType, BridgeEventType
from gp_chat.models.message import Button, ChatMessage, Role, event_timestamp, serialize_history


def test_version():
    assert __version__ == "0.1.0"


def test_public_exports():
    assert BridgeTransport is not None
    assert FrontendBridge is not None
    assert ConversationOrchestrator is not None


def test_error_hierarchy():
    assert issubclass(InputValidationError, GpChatError)
    assert issubclass(ServiceError, GpChatError)
    assert issubclass(SessionError, GpChatError)
    assert issubclass(BridgeError, GpChatError)


def test_error_attributes():
    err = GpChatError(code="test_code", message="something broke")
    assert err.code == "test_code"
    assert str(err) == "something broke"
    assert err.details is None

    err_with_details = SessionError("bad session", details={"id": "123"})
    assert err_with_details.code == "session_error"
    assert err_with_details.details == {"id": "123"}

    service_err = ServiceError("router", "timed out")
    assert service_err.service == "router"
    assert service_err.code == "service_error"


def test_event_constants():
    assert BridgeEventType.CHAT_INITIALIZED == "chat_initialized"
    assert BridgeEventType.STREAM_CHUNK == "stream_chunk"
    assert ActionType.SEND_MESSAGE == "send_message"
    assert ActionType.FORCE_NEW_CONVERSATION == "force_new_conversation"


def test_event_timestamp_has_milliseconds():
    stamp = event_timestamp()
    date, time = stamp.split(" ")
    assert len(date) == 10
    assert len(time.split(".")[1]) == 3


def test_message_wire_form():
    msg = ChatMessage(role=Role.BOT, text="Pick one", buttons=(Button(identifier="a", label="Option A"),))
    wire = msg.to_wire()
    assert wire["role"] == "bot"
    assert wire["message"] == "Pick one"
    assert wire["buttons"] == [{"identifier": "a", "text": "Option A"}]
    assert wire["buttonName"] is None

    restored = ChatMessage.from_wire(wire)
    assert restored.buttons[0].label == "Option A"


def test_from_wire_reads_unknown_role_as_bot():
    msg = ChatMessage.from_wire({"role": "narrator", "message": "once upon a time"})
    assert msg.role == Role.BOT


def test_serialize_history_keeps_last_window():
    history = [ChatMessage(role=Role.USER, text=f"m{i}") for i in range(12)]
    lines = serialize_history(history, window=10).splitlines()
    assert len(lines) == 10
    assert lines[0] == "user: m2"
    assert lines[-1] == "user: m11"
