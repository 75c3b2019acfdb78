"""
gp-chat: conversational pipeline behind an embedded chat frontend.

Router -> retrieval -> streaming generation -> profile update, talking to
the frontend only through a queued, schema-checked bridge.
"""

from gp_chat.app import ChatApp, build_app
from gp_chat.config import ChatConfig, load_config
from gp_chat.errors import BridgeError, GpChatError, InputValidationError, ServiceError, SessionError
from gp_chat.frontend import FrontendBridge
from gp_chat.models.events import ActionType, BridgeEventType
from gp_chat.orchestrator import ConversationOrchestrator, Stage
from gp_chat.schema import EventSchemaRegistry
from gp_chat.transport.bridge import BridgeTransport, HandlerRegistry

__version__ = "0.1.0"
__all__ = [
    "ChatApp",
    "build_app",
    "ChatConfig",
    "load_config",
    "GpChatError",
    "InputValidationError",
    "ServiceError",
    "SessionError",
    "BridgeError",
    "FrontendBridge",
    "ActionType",
    "BridgeEventType",
    "ConversationOrchestrator",
    "Stage",
    "EventSchemaRegistry",
    "BridgeTransport",
    "HandlerRegistry",
]
