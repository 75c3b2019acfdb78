"""
Deterministic test doubles for every capability.

Each mock records its calls, can be told to fail, and can be held at a
gate (an asyncio.Event) so tests can observe intermediate pipeline stages.
"""

import asyncio
import re
from typing import Any, Optional, Sequence

from gp_chat.errors import ServiceError
from gp_chat.models.message import Button, ChatMessage
from gp_chat.models.results import (
    GenerationResult,
    LoginResult,
    PredefinedMessage,
    RAGResult,
    RouterResult,
)
from gp_chat.services.base import OnChunk


class _Gated:
    def __init__(self, gate: Optional[asyncio.Event] = None, error: Optional[str] = None):
        self.gate = gate
        self.error = error
        self.calls: list[dict[str, Any]] = []

    async def _enter(self, service: str, **call: Any) -> None:
        self.calls.append(call)
        if self.gate is not None:
            await self.gate.wait()
        if self.error:
            raise ServiceError(service, self.error)


class MockRouterService(_Gated):
    def __init__(self, agent: str = "default", examples: str = "", knowledge: str = "", **kwargs: Any):
        super().__init__(**kwargs)
        self.result = RouterResult(agent=agent, examples=examples, knowledge=knowledge)

    async def route(self, user_message: str, serialized_history: str) -> RouterResult:
        await self._enter("router", user_message=user_message, serialized_history=serialized_history)
        return self.result


class MockRAGService(_Gated):
    def __init__(self, examples: str = "", knowledge: str = "", **kwargs: Any):
        super().__init__(**kwargs)
        self.result = RAGResult(examples=examples, knowledge=knowledge)

    async def retrieve(
        self, agent: str, examples_seed: str, knowledge_seed: str, history: Sequence[ChatMessage],
    ) -> RAGResult:
        await self._enter("rag", agent=agent, examples_seed=examples_seed,
                          knowledge_seed=knowledge_seed, history=list(history))
        return self.result


class MockGenerationService(_Gated):
    """Streams ``chunks`` (already cumulative) then completes with ``final``.

    ``chunk_gate``, when set, is awaited after the first chunk so a test can
    start another turn while this one is mid-stream.
    """

    def __init__(
        self,
        chunks: Sequence[str] = (),
        final: str = "",
        buttons: Sequence[Button] = (),
        profile: str = "updated profile",
        agent_name: str = "Buddy",
        chunk_gate: Optional[asyncio.Event] = None,
        profile_error: Optional[str] = None,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.chunks = list(chunks)
        self.final = final or (self.chunks[-1] if self.chunks else "")
        self.buttons = list(buttons)
        self.profile = profile
        self.agent_name = agent_name
        self.chunk_gate = chunk_gate
        self.profile_error = profile_error
        self.profile_calls: list[dict[str, Any]] = []

    async def generate(
        self,
        instruction: str,
        examples: str,
        knowledge: str,
        profile_context: str,
        history: Sequence[ChatMessage],
        on_chunk: Optional[OnChunk] = None,
    ) -> GenerationResult:
        await self._enter("generation", instruction=instruction, examples=examples, knowledge=knowledge,
                          profile_context=profile_context, history=list(history))
        for i, chunk in enumerate(self.chunks):
            if on_chunk is not None:
                on_chunk(chunk)
            if i == 0 and self.chunk_gate is not None:
                await self.chunk_gate.wait()
            await asyncio.sleep(0)
        return GenerationResult(text=self.final, buttons=self.buttons)

    async def update_profile(self, current_profile: str, history: Sequence[ChatMessage], instruction: str) -> str:
        self.profile_calls.append({"current_profile": current_profile, "history": list(history),
                                   "instruction": instruction})
        if self.profile_error:
            raise ServiceError("profile", self.profile_error)
        return self.profile

    async def name_agent(self, history: Sequence[ChatMessage], instruction: str) -> str:
        return self.agent_name

    @classmethod
    def streaming(cls, final: str, **kwargs: Any) -> "MockGenerationService":
        """A mock that streams ``final`` word by word as cumulative chunks."""
        words = final.split(" ")
        chunks = [" ".join(words[:i]) for i in range(1, len(words))]
        return cls(chunks=chunks, final=final, **kwargs)


class MockSessionProvider:
    """Fails the first ``failures`` logins, then succeeds."""

    def __init__(self, failures: int = 0, token: str = "test-token"):
        self.failures = failures
        self.token = token
        self.attempts = 0

    async def login(self) -> LoginResult:
        self.attempts += 1
        if self.attempts <= self.failures:
            return LoginResult(success=False, error=f"login attempt {self.attempts} refused")
        return LoginResult(success=True, token=self.token)


def tokenize(text: str) -> list[str]:
    return re.findall(r"[a-z0-9]+", text.lower())


class MockEmbedder:
    """Bag-of-words vectors over a fixed vocabulary, one dimension per word."""

    def __init__(self, vocabulary: Sequence[str]):
        self.vocabulary = [w.lower() for w in vocabulary]
        self.calls: list[list[str]] = []

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        vectors = []
        for text in texts:
            tokens = tokenize(text)
            vectors.append([float(tokens.count(word)) for word in self.vocabulary])
        return vectors


class MockPredefinedMessageProvider(_Gated):
    def __init__(self, messages: Optional[dict[str, PredefinedMessage]] = None, **kwargs: Any):
        super().__init__(**kwargs)
        self.messages = dict(messages or {})

    async def fetch(self, identifier: str) -> Optional[PredefinedMessage]:
        await self._enter("predefined", identifier=identifier)
        return self.messages.get(identifier)


class MockInstructionProvider(_Gated):
    def __init__(self, instructions: Optional[dict[str, str]] = None, **kwargs: Any):
        super().__init__(**kwargs)
        self.instructions = dict(instructions or {})

    async def load(self) -> dict[str, str]:
        await self._enter("instructions")
        return dict(self.instructions)
