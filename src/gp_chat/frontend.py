"""
Frontend end of the bridge.

Drains events queued by BridgeTransport, validates them against the event
schemas, keeps the initialized/connected flags, and dispatches each event
to the handlers registered for its type. Actions go the other way as
``{action, ...payload}`` JSON, exactly what an embedded web frontend sends.
"""

import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Callable, Mapping, Optional, Union

from gp_chat.errors import InputValidationError
from gp_chat.models.envelope import BridgeEvent
from gp_chat.models.events import ActionType, BridgeEventType
from gp_chat.schema import EventSchemaRegistry, default_event_schemas
from gp_chat.transport.bridge import BridgeTransport, Handler, HandlerRegistry
from gp_chat.transport.envelope import build_action, parse_event

logger = logging.getLogger(__name__)


class FrontendBridge:
    def __init__(
        self,
        transport: BridgeTransport,
        schemas: Optional[EventSchemaRegistry] = None,
        handlers: Optional[HandlerRegistry] = None,
    ):
        self._transport = transport
        self._schemas = schemas if schemas is not None else default_event_schemas()
        self._handlers = handlers if handlers is not None else HandlerRegistry()
        self._initialized = False
        self._connected = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def connected(self) -> bool:
        return self._connected

    def on(self, event_type: str, handler: Handler) -> Callable[[], None]:
        return self._handlers.on(event_type, handler)

    def off(self, event_type: str, handler: Handler) -> bool:
        return self._handlers.off(event_type, handler)

    # Events from native

    async def handle(self, raw: Union[str, dict[str, Any]]) -> Optional[BridgeEvent]:
        event = parse_event(raw)
        if event is None:
            logger.warning("Ignoring malformed bridge event: %.200s", raw)
            return None
        if event.event_type == BridgeEventType.CHAT_INITIALIZED:
            self._initialized = True
            self._connected = True
        self._schemas.check(event.event_type, event.data)
        await self._handlers.dispatch(event.event_type, event.data, event.model_dump(by_alias=True))
        return event

    async def poll(self) -> int:
        """Handle everything queued right now. Returns the number of events handled."""
        messages = self._transport.drain()
        for message in messages:
            await self.handle(message)
        return len(messages)

    async def run(self, stop: Optional[asyncio.Event] = None, interval: float = 0.5) -> None:
        """Pull and handle events until ``stop`` is set."""
        while stop is None or not stop.is_set():
            message = await self._transport.pull(timeout=interval)
            if message is not None:
                await self.handle(message)

    # Actions to native

    async def send_message(self, message: str) -> None:
        if not isinstance(message, str) or not message.strip():
            raise InputValidationError("Message must be a non-empty string")
        await self._send(ActionType.SEND_MESSAGE, {"message": message.strip()})

    async def click_button(self, button_id: str) -> None:
        if not isinstance(button_id, str) or not button_id:
            raise InputValidationError("ButtonId must be a non-empty string")
        await self._send(ActionType.CLICK_BUTTON, {"buttonId": button_id})

    async def send_user_activity(self, activity: Mapping[str, Any]) -> None:
        if not isinstance(activity, Mapping):
            raise InputValidationError("ActivityData must be an object")
        if not activity.get("type") or not activity.get("name"):
            raise InputValidationError("ActivityData must have type and name properties")
        data = dict(activity)
        data["context"] = activity.get("context") or ""
        data["timestamp"] = activity.get("timestamp") or datetime.now().isoformat()
        await self._send(ActionType.USER_ACTIVITY, {"activityData": json.dumps(data)})

    async def start_new_conversation(self) -> None:
        await self._send(ActionType.FORCE_NEW_CONVERSATION)

    async def request_conversation_history(self) -> None:
        await self._send(ActionType.GET_CONVERSATION_HISTORY)

    async def _send(self, action: str, payload: Optional[dict[str, Any]] = None) -> None:
        logger.debug("Sending action %s", action)
        await self._transport.receive(build_action(action, payload))
