"""
Native end of the bridge between the conversation pipeline and the embedded
frontend.

Outbound events go into an unbounded FIFO that the frontend drains at its
own pace. Inbound actions are validated and dispatched to the handlers
registered for them. Unknown actions are accepted.
"""

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union

from gp_chat.errors import BridgeError
from gp_chat.models.envelope import ActionMessage, BridgeEvent
from gp_chat.models.events import BridgeEventType
from gp_chat.schema import EventSchemaRegistry, default_action_schemas
from gp_chat.transport.envelope import build_event, decode_action, error_payload, serialize_event

logger = logging.getLogger(__name__)

Handler = Callable[[Any, dict[str, Any]], Union[None, Awaitable[None]]]


class HandlerRegistry:
    """type -> handlers, invoked in registration order.

    Dispatch works on a snapshot of the handler list, so handlers added or
    removed during a dispatch only take effect on the next one.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[Handler]] = {}

    def on(self, event_type: str, handler: Handler) -> Callable[[], None]:
        """Register a handler. Returns a cleanup function."""
        self._handlers.setdefault(event_type, []).append(handler)
        logger.debug("Registered handler for: %s", event_type)

        def remove() -> None:
            self.off(event_type, handler)
        return remove

    def off(self, event_type: str, handler: Handler) -> bool:
        handlers = self._handlers.get(event_type)
        if not handlers:
            return False
        try:
            handlers.remove(handler)
        except ValueError:
            return False
        logger.debug("Unregistered handler for: %s", event_type)
        return True

    def handlers(self, event_type: str) -> list[Handler]:
        return list(self._handlers.get(event_type, ()))

    async def dispatch(self, event_type: str, data: Any, raw: dict[str, Any]) -> int:
        """Run every handler for event_type. A failing handler is logged and skipped."""
        handlers = self.handlers(event_type)
        if not handlers:
            logger.debug("No handlers registered for: %s", event_type)
        for handler in handlers:
            try:
                result = handler(data, raw)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Error in handler for %s", event_type)
        return len(handlers)


class BridgeTransport:
    def __init__(
        self,
        handlers: Optional[HandlerRegistry] = None,
        action_schemas: Optional[EventSchemaRegistry] = None,
    ):
        self._handlers = handlers if handlers is not None else HandlerRegistry()
        self._action_schemas = action_schemas if action_schemas is not None else default_action_schemas()
        self._outbound: asyncio.Queue[str] = asyncio.Queue()
        self._initialized = False
        self._connected = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def pending(self) -> int:
        return self._outbound.qsize()

    def on(self, action: str, handler: Handler) -> Callable[[], None]:
        return self._handlers.on(action, handler)

    def off(self, action: str, handler: Handler) -> bool:
        return self._handlers.off(action, handler)

    # Outbound

    def send(self, event_type: str, data: Any) -> BridgeEvent:
        event = build_event(event_type, data)
        if event_type == BridgeEventType.CHAT_INITIALIZED:
            self._initialized = True
            self._connected = True
        self._outbound.put_nowait(serialize_event(event))
        logger.debug("Queued %s (%d pending)", event_type, self._outbound.qsize())
        return event

    def send_error(self, error: str) -> BridgeEvent:
        return self.send(BridgeEventType.ERROR_OCCURRED, error_payload(error))

    async def pull(self, timeout: Optional[float] = None) -> Optional[str]:
        """Wait for the next serialized event. Returns None on timeout."""
        try:
            return await asyncio.wait_for(self._outbound.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return None

    def drain(self) -> list[str]:
        """Take every queued event, oldest first."""
        messages = []
        while not self._outbound.empty():
            messages.append(self._outbound.get_nowait())
        return messages

    # Inbound

    async def receive(self, message: Union[str, dict[str, Any]]) -> Optional[ActionMessage]:
        try:
            action = decode_action(message)
        except BridgeError as e:
            logger.error("Dropping malformed bridge message %.200s: %s", message, e)
            self.send_error(f"Error handling message: {e}")
            return None
        self._action_schemas.check(action.action, action.payload)
        handled = await self._handlers.dispatch(action.action, action.payload, action.to_wire())
        if not handled:
            logger.info("No handlers for action %s, accepted as-is", action.action)
        return action
