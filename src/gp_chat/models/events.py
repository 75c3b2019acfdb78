"""
Bridge event and action identifiers.
"""


class BridgeEventType:
    """Events sent native -> frontend."""
    CHAT_INITIALIZED = "chat_initialized"
    MESSAGE_RECEIVED = "message_received"
    STREAM_CHUNK = "stream_chunk"
    ERROR_OCCURRED = "error_occurred"
    CONVERSATION_HISTORY = "conversation_history"


class ActionType:
    """Actions sent frontend -> native."""
    SEND_MESSAGE = "send_message"
    CLICK_BUTTON = "click_button"
    USER_ACTIVITY = "user_activity"
    FORCE_NEW_CONVERSATION = "force_new_conversation"
    GET_CONVERSATION_HISTORY = "get_conversation_history"
