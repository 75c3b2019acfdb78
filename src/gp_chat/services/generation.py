"""
OpenAI chat-completions adapter.

Replies are streamed over server-sent events; every delta is folded into
the running text and the cumulative text is handed to on_chunk.
"""

import logging
from typing import Any, Optional, Sequence

import httpx

from gp_chat.errors import GpChatError, ServiceError
from gp_chat.models.message import ChatMessage, Role, serialize_history
from gp_chat.models.results import GenerationResult
from gp_chat.services.base import OnChunk
from gp_chat.transport.http import HttpClient

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4"
_ROLE_MAP = {Role.USER: "user", Role.BOT: "assistant", Role.SYSTEM: "system"}


def build_system_message(instruction: str, examples: str, knowledge: str, profile_context: str) -> str:
    return f"{instruction}\n\nKnowledge: {knowledge}\n\nExamples: {examples}\n\nUser Profile Context: {profile_context}"


def history_to_messages(history: Sequence[ChatMessage]) -> list[dict[str, str]]:
    return [{"role": _ROLE_MAP[m.role], "content": m.text} for m in history]


class OpenAIGenerationService:
    def __init__(
        self,
        http: HttpClient,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 1000,
        temperature: float = 0.7,
        history_window: int = 10,
    ):
        self._http = http
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._history_window = history_window

    async def generate(
        self,
        instruction: str,
        examples: str,
        knowledge: str,
        profile_context: str,
        history: Sequence[ChatMessage],
        on_chunk: Optional[OnChunk] = None,
    ) -> GenerationResult:
        messages = [{"role": "system", "content": build_system_message(instruction, examples, knowledge, profile_context)}]
        messages.extend(history_to_messages(history[-self._history_window:]))
        body = {
            "model": self._model,
            "messages": messages,
            "max_tokens": self._max_tokens,
            "temperature": self._temperature,
            "stream": True,
        }
        text = ""
        try:
            async for event in self._http.stream_events("", body):
                delta = _delta_content(event)
                if not delta:
                    continue
                text += delta
                if on_chunk is not None:
                    on_chunk(text)
        except (GpChatError, httpx.HTTPError, ValueError) as e:
            raise ServiceError("generation", f"Generation request failed: {e}")
        if not text:
            raise ServiceError("generation", "Generation returned an empty response")
        return GenerationResult(text=text)

    async def update_profile(self, current_profile: str, history: Sequence[ChatMessage], instruction: str) -> str:
        prompt = (
            f"Current profile:\n{current_profile or 'no profile'}\n\n"
            f"Conversation:\n{serialize_history(history, self._history_window)}"
        )
        return await self._complete("profile", instruction, prompt, max_tokens=500, temperature=0.3)

    async def name_agent(self, history: Sequence[ChatMessage], instruction: str) -> str:
        prompt = serialize_history(history, self._history_window)
        return (await self._complete("agent_name", instruction, prompt, max_tokens=20, temperature=0.3)).strip()

    async def _complete(self, service: str, system: str, prompt: str, max_tokens: int, temperature: float) -> str:
        body = {
            "model": self._model,
            "messages": [{"role": "system", "content": system}, {"role": "user", "content": prompt}],
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        try:
            data = await self._http.post("", body)
            content = data["choices"][0]["message"]["content"]
        except (GpChatError, httpx.HTTPError, ValueError, KeyError, IndexError, TypeError) as e:
            raise ServiceError(service, f"Failed to parse {service} response: {e}")
        if not content:
            raise ServiceError(service, f"Empty {service} response")
        return content


def _delta_content(event: dict[str, Any]) -> str:
    try:
        return event["choices"][0]["delta"].get("content") or ""
    except (KeyError, IndexError, AttributeError, TypeError):
        return ""
