"""
Socket.IO link between a BridgeTransport and a remote frontend host.

Connection: {url}/socket.io/ with auth={token}. Waits for the peer's
`ready` event before resolving connect(). Outbound bridge events are
emitted as `bridge_event`; peer `action` events are fed to
BridgeTransport.receive().
"""

import asyncio
import json
import logging
from typing import Any, Optional

import socketio

from gp_chat.transport.bridge import BridgeTransport

logger = logging.getLogger(__name__)

SOCKETIO_PATH = "/socket.io/"
OUTBOUND_EVENT = "bridge_event"
INBOUND_EVENT = "action"


class SocketIOFrontendLink:
    def __init__(
        self,
        transport: BridgeTransport,
        url: str,
        token: Optional[str] = None,
        transports: Optional[list[str]] = None,
        ready_timeout: float = 15.0,
        socketio_path: str = SOCKETIO_PATH,
    ):
        self._transport = transport
        self._url = url
        self._token = token
        self._transports = transports or ["websocket"]
        self._ready_timeout = ready_timeout
        self._socketio_path = socketio_path
        self._sio: Optional[socketio.AsyncClient] = None
        self._connected = False

    @property
    def connected(self) -> bool:
        return self._connected and self._sio is not None and self._sio.connected

    async def connect(self) -> None:
        if self._sio and self._sio.connected:
            return

        self._sio = socketio.AsyncClient()
        ready_event = asyncio.Event()

        @self._sio.on("ready")
        async def on_ready(*_args: Any) -> None:
            self._connected = True
            ready_event.set()

        @self._sio.on(INBOUND_EVENT)
        async def on_action(data: Any) -> None:
            await self._transport.receive(data)

        @self._sio.event
        async def disconnect(_reason: str = "") -> None:
            self._connected = False

        await self._sio.connect(
            self._url,
            auth={"token": self._token} if self._token else None,
            transports=self._transports,
            socketio_path=self._socketio_path,
        )

        try:
            await asyncio.wait_for(ready_event.wait(), timeout=self._ready_timeout)
        except asyncio.TimeoutError:
            await self._sio.disconnect()
            raise TimeoutError(f"Timed out waiting for 'ready' event after {self._ready_timeout}s")

    async def pump(self, stop: Optional[asyncio.Event] = None, interval: float = 0.5) -> None:
        """Forward queued bridge events to the peer until stopped or disconnected."""
        while self.connected and (stop is None or not stop.is_set()):
            message = await self._transport.pull(timeout=interval)
            if message is None:
                continue
            try:
                await self._sio.emit(OUTBOUND_EVENT, json.loads(message))  # type: ignore[union-attr]
            except Exception as e:
                logger.error("Emit failed for %.80s: %s", message, e)

    async def disconnect(self) -> None:
        self._connected = False
        if self._sio:
            await self._sio.disconnect()
            self._sio = None
