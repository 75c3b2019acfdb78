"""
Capability protocols consumed by the conversation orchestrator.

Each capability has a production and a deterministic mock implementation;
the composition root picks one. Implementations raise ServiceError on
failure and never retry on their own.
"""

from typing import Callable, Optional, Protocol, Sequence

from gp_chat.models.message import ChatMessage
from gp_chat.models.results import GenerationResult, LoginResult, PredefinedMessage, RAGResult, RouterResult

OnChunk = Callable[[str], None]


class RouterService(Protocol):
    async def route(self, user_message: str, serialized_history: str) -> RouterResult:
        ...


class RAGService(Protocol):
    async def retrieve(
        self, agent: str, examples_seed: str, knowledge_seed: str, history: Sequence[ChatMessage],
    ) -> RAGResult:
        ...


class GenerationService(Protocol):
    async def generate(
        self,
        instruction: str,
        examples: str,
        knowledge: str,
        profile_context: str,
        history: Sequence[ChatMessage],
        on_chunk: Optional[OnChunk] = None,
    ) -> GenerationResult:
        """Stream a reply. on_chunk gets the cumulative text so far, never a delta."""
        ...

    async def update_profile(self, current_profile: str, history: Sequence[ChatMessage], instruction: str) -> str:
        ...

    async def name_agent(self, history: Sequence[ChatMessage], instruction: str) -> str:
        ...


class SessionProvider(Protocol):
    async def login(self) -> LoginResult:
        ...


class ModuleContextProvider(Protocol):
    async def latest_context(self) -> Optional[str]:
        """Latest known module/microgame context, read once at bootstrap."""
        ...


class HistoryStore(Protocol):
    async def load(self) -> list[ChatMessage]:
        ...

    async def append(self, message: ChatMessage) -> None:
        ...

    async def clear(self) -> None:
        ...


class PredefinedMessageProvider(Protocol):
    async def fetch(self, identifier: str) -> Optional[PredefinedMessage]:
        """The scripted message for identifier, or None when the backend has none."""
        ...


class InstructionProvider(Protocol):
    async def load(self) -> dict[str, str]:
        """identifier -> instruction text (agent names, profile_generator, agent_namer)."""
        ...


class Embedder(Protocol):
    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        """One vector per text, in input order."""
        ...
