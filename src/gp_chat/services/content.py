"""
Backend-sourced chat content: scripted (predefined) messages and the
instruction texts used by generation, profile updates and agent naming.

Both endpoints answer with `{data: [{attributes: {...}}]}` collections;
`data` may also be a single object.
"""

import logging
from typing import Any, Optional

import httpx

from gp_chat.errors import GpChatError, ServiceError
from gp_chat.models.message import Button
from gp_chat.models.results import PredefinedMessage
from gp_chat.transport.http import HttpClient

logger = logging.getLogger(__name__)


def _records(payload: Any) -> list[dict[str, Any]]:
    data = payload.get("data") if isinstance(payload, dict) else payload
    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        return []
    records = []
    for item in data:
        if not isinstance(item, dict):
            continue
        attributes = item.get("attributes", item)
        if isinstance(attributes, dict):
            records.append(attributes)
    return records


def _button(raw: Any) -> Optional[Button]:
    # Buttons arrive either as bare identifiers or as {identifier, text}.
    if isinstance(raw, str) and raw:
        return Button(identifier=raw, label=raw)
    if isinstance(raw, dict) and raw.get("identifier"):
        return Button(identifier=raw["identifier"], label=raw.get("text") or raw["identifier"])
    return None


class HttpPredefinedMessageProvider:
    def __init__(self, http: HttpClient, path: str = "/chat-predefined-messages"):
        self._http = http
        self._path = path

    async def fetch(self, identifier: str) -> Optional[PredefinedMessage]:
        try:
            payload = await self._http.get(self._path, params={"identifier": identifier})
        except (GpChatError, httpx.HTTPError, ValueError) as e:
            raise ServiceError("predefined", f"Failed to load predefined message '{identifier}': {e}")
        records = _records(payload)
        if not records or not records[0].get("content"):
            logger.info("No predefined message for %s", identifier)
            return None
        record = records[0]
        buttons = [b for b in (_button(raw) for raw in record.get("buttons") or []) if b is not None]
        return PredefinedMessage(
            identifier=record.get("identifier") or identifier,
            text=record["content"],
            buttons=buttons,
        )


class HttpInstructionProvider:
    def __init__(self, http: HttpClient, path: str = "/chat-instructions", per_page: int = 100):
        self._http = http
        self._path = path
        self._per_page = per_page

    async def load(self) -> dict[str, str]:
        try:
            payload = await self._http.get(self._path, params={"page": 1, "per_page": self._per_page})
        except (GpChatError, httpx.HTTPError, ValueError) as e:
            raise ServiceError("instructions", f"Failed to load instructions: {e}")
        instructions = {
            r["identifier"]: r["instruction"]
            for r in _records(payload)
            if r.get("identifier") and r.get("instruction")
        }
        logger.debug("Loaded instructions for: %s", ", ".join(sorted(instructions)))
        return instructions
