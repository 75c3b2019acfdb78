"""
Local retrieval over per-agent example and knowledge corpora.

Corpora are split into overlapping chunks and embedded once, the first
time an agent is asked for. A query is embedded the same way and the
chunks closest by cosine similarity are stitched into one context string.
"""

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Optional, Sequence

from pydantic import BaseModel

from gp_chat.models.message import ChatMessage, Role
from gp_chat.models.results import RAGResult
from gp_chat.services.base import Embedder
from gp_chat.services.embeddings import cosine_similarity

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 5
DEFAULT_MAX_CHARS = 1200


class RAGKind(str, Enum):
    EXAMPLES = "examples"
    KNOWLEDGE = "knowledge"


class RagHit(BaseModel):
    text: str
    score: float


def chunk_text(text: str, max_chars: int = 400, overlap: int = 50) -> list[str]:
    """Pack paragraphs into chunks of at most max_chars; long paragraphs are split with overlap."""
    chunks: list[str] = []
    current = ""
    for paragraph in (p.strip() for p in re.split(r"\n\s*\n", text)):
        if not paragraph:
            continue
        if len(paragraph) > max_chars:
            if current:
                chunks.append(current)
                current = ""
            step = max(1, max_chars - overlap)
            for start in range(0, len(paragraph), step):
                chunks.append(paragraph[start:start + max_chars])
                if start + max_chars >= len(paragraph):
                    break
            continue
        candidate = f"{current}\n\n{paragraph}" if current else paragraph
        if len(candidate) > max_chars:
            chunks.append(current)
            current = paragraph
        else:
            current = candidate
    if current:
        chunks.append(current)
    return chunks


class RagIndex:
    def __init__(self, chunks: Sequence[str], vectors: Sequence[Sequence[float]]):
        if len(chunks) != len(vectors):
            raise ValueError("one vector per chunk is required")
        self._chunks = list(chunks)
        self._vectors = [list(v) for v in vectors]

    @classmethod
    async def build(cls, chunks: Sequence[str], embedder: Embedder) -> RagIndex:
        chunks = list(chunks)
        vectors = await embedder.embed(chunks) if chunks else []
        return cls(chunks, vectors)

    @classmethod
    async def from_text(cls, text: str, embedder: Embedder, max_chars: int = 400) -> RagIndex:
        return await cls.build(chunk_text(text, max_chars=max_chars), embedder)

    def __len__(self) -> int:
        return len(self._chunks)

    def search(self, query_vector: Sequence[float], top_k: int = DEFAULT_TOP_K) -> list[RagHit]:
        hits = []
        for chunk, vector in zip(self._chunks, self._vectors):
            score = cosine_similarity(query_vector, vector)
            if score > 0:
                hits.append(RagHit(text=chunk, score=score))
        hits.sort(key=lambda h: h.score, reverse=True)
        return hits[:top_k]

    def ask(self, query_vector: Sequence[float], top_k: int = DEFAULT_TOP_K,
            max_chars: int = DEFAULT_MAX_CHARS) -> str:
        parts: list[str] = []
        used = 0
        for hit in self.search(query_vector, top_k):
            remaining = max_chars - used
            if remaining <= 0:
                break
            part = hit.text[:remaining]
            parts.append(part)
            used += len(part)
        return "\n---\n".join(parts)


class IndexRAGService:
    def __init__(
        self,
        embedder: Embedder,
        corpora: Optional[dict[str, dict[str, str]]] = None,
        top_k: int = DEFAULT_TOP_K,
        max_chars: int = DEFAULT_MAX_CHARS,
    ):
        self._embedder = embedder
        self._corpora = {agent: dict(kinds) for agent, kinds in (corpora or {}).items()}
        self._indexes: dict[tuple[str, RAGKind], RagIndex] = {}
        self._top_k = top_k
        self._max_chars = max_chars

    @classmethod
    def from_corpora(cls, corpora: dict[str, dict[str, str]], embedder: Embedder, **kwargs) -> IndexRAGService:
        """corpora: agent -> {"examples": text, "knowledge": text}. Indexed lazily."""
        for kinds in corpora.values():
            for kind in kinds:
                RAGKind(kind)
        return cls(embedder, corpora, **kwargs)

    def add(self, agent: str, kind: RAGKind, index: RagIndex) -> None:
        self._indexes[(agent, kind)] = index

    async def retrieve(
        self, agent: str, examples_seed: str, knowledge_seed: str, history: Sequence[ChatMessage],
    ) -> RAGResult:
        query = next((m.text for m in reversed(history) if m.role == Role.USER), "")
        examples_index = await self._index(agent, RAGKind.EXAMPLES)
        knowledge_index = await self._index(agent, RAGKind.KNOWLEDGE)
        examples = knowledge = ""
        if query and (examples_index or knowledge_index):
            query_vector = (await self._embedder.embed([query]))[0]
            if examples_index:
                examples = examples_index.ask(query_vector, self._top_k, self._max_chars)
            if knowledge_index:
                knowledge = knowledge_index.ask(query_vector, self._top_k, self._max_chars)
        result = RAGResult(examples=examples or examples_seed, knowledge=knowledge or knowledge_seed)
        if result.empty:
            logger.info("No context available for agent %s", agent)
        return result

    async def _index(self, agent: str, kind: RAGKind) -> Optional[RagIndex]:
        index = self._indexes.get((agent, kind))
        if index is not None:
            return index
        text = self._corpora.get(agent, {}).get(kind.value)
        if not text:
            return None
        index = await RagIndex.from_text(text, self._embedder)
        self._indexes[(agent, kind)] = index
        logger.info("Indexed %d %s chunks for agent %s", len(index), kind.value, agent)
        return index
