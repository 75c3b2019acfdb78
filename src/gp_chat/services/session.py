"""
Session and persistence collaborators used at bootstrap and after each message.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Optional

from gp_chat.models.message import ChatMessage
from gp_chat.models.results import LoginResult
from gp_chat.transport.http import HttpClient

logger = logging.getLogger(__name__)


class HttpSessionProvider:
    """Acquire a session token from the backend login endpoint."""

    def __init__(self, http: HttpClient, path: str = "/login", credentials: Optional[dict[str, Any]] = None):
        self._http = http
        self._path = path
        self._credentials = credentials or {}

    async def login(self) -> LoginResult:
        try:
            result = await self._http.post(self._path, self._credentials, authenticated=False)
        except Exception as e:
            return LoginResult(success=False, error=str(e))
        token = result.get("access_token") or result.get("token") if isinstance(result, dict) else None
        if not token:
            return LoginResult(success=False, error="Login response carried no token")
        self._http.set_token(token)
        return LoginResult(success=True, token=token)


class StaticModuleContext:
    def __init__(self, context: Optional[str] = None):
        self._context = context

    async def latest_context(self) -> Optional[str]:
        return self._context


class InMemoryHistoryStore:
    def __init__(self, messages: Optional[list[ChatMessage]] = None):
        self.messages: list[ChatMessage] = list(messages or [])

    async def load(self) -> list[ChatMessage]:
        return list(self.messages)

    async def append(self, message: ChatMessage) -> None:
        self.messages.append(message)

    async def clear(self) -> None:
        self.messages.clear()


class JsonHistoryStore:
    """Conversation history kept as JSON Lines, one wire-form message per line.

    Appends add a single line. File access runs in a worker thread.
    """

    def __init__(self, path: Path):
        self._path = Path(path)

    async def load(self) -> list[ChatMessage]:
        return await asyncio.to_thread(self._read)

    async def append(self, message: ChatMessage) -> None:
        await asyncio.to_thread(self._append_line, json.dumps(message.to_wire()))

    async def clear(self) -> None:
        await asyncio.to_thread(self._truncate)

    def _read(self) -> list[ChatMessage]:
        try:
            lines = self._path.read_text().splitlines()
        except FileNotFoundError:
            return []
        messages = []
        for number, line in enumerate(lines, 1):
            if not line.strip():
                continue
            try:
                raw = json.loads(line)
                if isinstance(raw, dict):
                    messages.append(ChatMessage.from_wire(raw))
            except (json.JSONDecodeError, ValueError) as e:
                logger.warning("Skipping unreadable history line %d in %s: %s", number, self._path, e)
        return messages

    def _append_line(self, line: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._path.open("a", encoding="utf-8") as f:
            f.write(line + "\n")

    def _truncate(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text("")
