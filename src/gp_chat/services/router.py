"""
Webhook-backed router: asks a workflow endpoint which agent should answer.
"""

import logging

import httpx

from gp_chat.errors import GpChatError, ServiceError
from gp_chat.models.results import RouterResult
from gp_chat.transport.http import HttpClient

logger = logging.getLogger(__name__)


class HttpRouterService:
    def __init__(self, http: HttpClient):
        self._http = http

    async def route(self, user_message: str, serialized_history: str) -> RouterResult:
        try:
            data = await self._http.post(
                "", {"message": user_message, "conversationHistory": serialized_history}, authenticated=False,
            )
        except (GpChatError, httpx.HTTPError, ValueError) as e:
            raise ServiceError("router", f"Router request failed: {e}")
        if not isinstance(data, dict) or not data.get("agent"):
            raise ServiceError("router", "Router returned no agent")
        logger.debug("Routed to agent %s", data["agent"])
        return RouterResult(
            agent=data["agent"],
            examples=data.get("examples") or "",
            knowledge=data.get("knowledge") or "",
        )
