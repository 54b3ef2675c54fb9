"""Async client for text embeddings used by knowledge-base search.

Embeddings are optional: without ``OPENAI_API_KEY`` (or when the API
fails) the knowledge base falls back to keyword scoring.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from typing import Protocol

from openai import AsyncOpenAI, OpenAIError

from support_agent.config import EMBEDDING_MODEL, OPENAI_API_KEY
from support_agent.services.metrics import metrics

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 10.0
MAX_RETRIES = 2


class EmbeddingError(Exception):
    """Raised when embeddings cannot be produced."""


class Embedder(Protocol):
    async def embed_documents(self, texts: Sequence[str]) -> list[list[float]]: ...

    async def embed_query(self, text: str) -> list[float]: ...


class OpenAIEmbedder:
    """Thin wrapper over the OpenAI embeddings endpoint."""

    def __init__(
        self,
        api_key: str | None = None,
        model: str = EMBEDDING_MODEL,
        *,
        client: AsyncOpenAI | None = None,
    ) -> None:
        if client is None:
            key = api_key or OPENAI_API_KEY
            if not key:
                raise EmbeddingError("OPENAI_API_KEY is not configured")
            client = AsyncOpenAI(
                api_key=key,
                timeout=REQUEST_TIMEOUT_SECONDS,
                max_retries=MAX_RETRIES,
            )
        self._client = client
        self._model = model

    async def embed_documents(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed *texts*, preserving input order."""
        if not texts:
            return []
        t0 = time.perf_counter()
        try:
            response = await self._client.embeddings.create(model=self._model, input=list(texts))
        except OpenAIError as exc:
            elapsed = (time.perf_counter() - t0) * 1000
            metrics.record_failure(
                "openai", "embeddings", error_type=type(exc).__name__, latency_ms=elapsed,
            )
            raise EmbeddingError(f"Embedding request failed: {exc}") from exc

        elapsed = (time.perf_counter() - t0) * 1000
        metrics.record_success("openai", "embeddings", latency_ms=elapsed)
        logger.debug("Embedded %d text(s) with %s in %.0fms", len(texts), self._model, elapsed)
        return [item.embedding for item in sorted(response.data, key=lambda d: d.index)]

    async def embed_query(self, text: str) -> list[float]:
        vectors = await self.embed_documents([text])
        return vectors[0]


def build_default_embedder() -> OpenAIEmbedder | None:
    """Return an embedder when credentials exist, else ``None`` (keyword search only)."""
    if not OPENAI_API_KEY:
        logger.info("OPENAI_API_KEY not set; knowledge search will use keyword scoring")
        return None
    return OpenAIEmbedder()
