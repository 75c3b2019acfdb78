"""
Embedding client for retrieval.

Texts are embedded through an OpenAI-compatible `/embeddings` endpoint;
similarity between vectors is plain cosine.
"""

import logging
from typing import Any, Sequence

import httpx

from gp_chat.errors import GpChatError, ServiceError
from gp_chat.transport.http import HttpClient

logger = logging.getLogger(__name__)

DEFAULT_EMBEDDING_MODEL = "text-embedding-3-small"


def cosine_similarity(vec1: Sequence[float], vec2: Sequence[float]) -> float:
    """Between -1 and 1. Mismatched or zero vectors score 0."""
    if not vec1 or not vec2 or len(vec1) != len(vec2):
        return 0.0
    dot = sum(a * b for a, b in zip(vec1, vec2))
    norm1 = sum(a * a for a in vec1) ** 0.5
    norm2 = sum(b * b for b in vec2) ** 0.5
    if norm1 == 0 or norm2 == 0:
        return 0.0
    return dot / (norm1 * norm2)


class HttpEmbedder:
    def __init__(self, http: HttpClient, model: str = DEFAULT_EMBEDDING_MODEL, batch_size: int = 64):
        self._http = http
        self._model = model
        self._batch_size = batch_size

    async def embed(self, texts: Sequence[str]) -> list[list[float]]:
        vectors: list[list[float]] = []
        for start in range(0, len(texts), self._batch_size):
            batch = list(texts[start:start + self._batch_size])
            vectors.extend(await self._embed_batch(batch))
        return vectors

    async def _embed_batch(self, batch: list[str]) -> list[list[float]]:
        try:
            data = await self._http.post("", {"model": self._model, "input": batch})
            items: list[dict[str, Any]] = sorted(data["data"], key=lambda d: d.get("index", 0))
            vectors = [list(item["embedding"]) for item in items]
        except (GpChatError, httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            raise ServiceError("embeddings", f"Embedding request failed: {e}")
        if len(vectors) != len(batch):
            raise ServiceError("embeddings", f"Expected {len(batch)} embeddings, got {len(vectors)}")
        logger.debug("Embedded %d texts (%d dimensions)", len(vectors), len(vectors[0]) if vectors else 0)
        return vectors
