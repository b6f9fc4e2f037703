"""
Embedding Pipeline  —  Batch Embeddings with Retry
══════════════════════════════════════════════════

Design goals:
  • Batch efficiency: one API call per EMBEDDING_BATCH_SIZE texts
  • Retry logic: exponential back-off on rate limits and transient errors
  • Order preservation: output[i] is the vector of input[i]; chunk_index
    assignment downstream depends on it
  • One model for both ingestion and queries, so stored vectors and query
    vectors always share a dimensionality

Retry policy:
  On RateLimitError / APIError (5xx) / APIConnectionError
      → wait RETRY_BASE_DELAY × 2^attempt (capped at RETRY_MAX_DELAY)
  On AuthenticationError / BadRequestError → fail immediately
"""

from __future__ import annotations

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Sequence

from docqa.core.config import Settings, settings as default_settings
from docqa.core.errors import EmbeddingError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

EMBEDDING_BATCH_SIZE     = 100    # texts per OpenAI API call
MAX_CONCURRENT_BATCHES   = 4      # concurrent embedding requests
MAX_RETRIES              = 3      # per-batch retry limit
RETRY_BASE_DELAY         = 2.0    # seconds, doubles each retry
RETRY_MAX_DELAY          = 60.0   # cap

_NON_RETRYABLE = ("AuthenticationError", "BadRequestError", "PermissionDeniedError", "NotFoundError")


class Embedder(ABC):
    """Text(s) → fixed-length vector(s)."""

    @abstractmethod
    async def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        """Embed many texts; output order matches input order."""

    @abstractmethod
    async def embed_query(self, text: str) -> list[float]:
        """Embed one query string with the ingestion model."""


class EmbeddingPipeline(Embedder):
    """
    OpenAI-backed embedder.

    Usage:
        pipeline = EmbeddingPipeline()
        vectors  = await pipeline.embed_texts(["chunk one", "chunk two"])
    """

    def __init__(self, cfg: Settings | None = None, client=None) -> None:
        cfg = cfg or default_settings
        self._model      = cfg.embedding_model
        self._dimensions = cfg.embedding_dimensions
        self._client     = client or self._build_client(cfg.openai_api_key)

    @staticmethod
    def _build_client(api_key: str):
        from openai import AsyncOpenAI
        return AsyncOpenAI(api_key=api_key or None)

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    async def embed_texts(self, texts: Sequence[str]) -> list[list[float]]:
        if not texts:
            return []

        t0 = time.monotonic()
        batches = [
            list(texts[i : i + EMBEDDING_BATCH_SIZE])
            for i in range(0, len(texts), EMBEDDING_BATCH_SIZE)
        ]

        logger.info(
            "EmbeddingPipeline | texts=%d batches=%d model=%s",
            len(texts), len(batches), self._model,
        )

        semaphore = asyncio.Semaphore(MAX_CONCURRENT_BATCHES)
        results = await asyncio.gather(*[
            self._embed_batch_with_retry(batch, batch_idx, semaphore)
            for batch_idx, batch in enumerate(batches)
        ])

        vectors = [vec for batch_vectors in results for vec in batch_vectors]
        if len(vectors) != len(texts):
            raise EmbeddingError(
                "Embedding provider returned an unexpected number of vectors.",
                detail=f"expected={len(texts)} got={len(vectors)}",
            )

        logger.info(
            "EmbeddingPipeline done | vectors=%d elapsed_ms=%.0f",
            len(vectors), (time.monotonic() - t0) * 1000,
        )
        return vectors

    async def embed_query(self, text: str) -> list[float]:
        semaphore = asyncio.Semaphore(1)
        vectors = await self._embed_batch_with_retry([text], 0, semaphore)
        return vectors[0]

    # ------------------------------------------------------------------
    # Batch processing with retry
    # ------------------------------------------------------------------

    async def _embed_batch_with_retry(
        self,
        batch:     list[str],
        batch_idx: int,
        semaphore: asyncio.Semaphore,
    ) -> list[list[float]]:
        last_error: Exception | None = None

        for attempt in range(MAX_RETRIES + 1):
            if attempt > 0:
                delay = min(RETRY_BASE_DELAY * (2 ** (attempt - 1)), RETRY_MAX_DELAY)
                logger.warning(
                    "Embedding retry | batch=%d attempt=%d delay=%.1fs error=%s",
                    batch_idx, attempt, delay, last_error,
                )
                await asyncio.sleep(delay)

            async with semaphore:
                try:
                    return await self._call_openai(batch)
                except Exception as exc:
                    last_error = exc
                    if type(exc).__name__ in _NON_RETRYABLE:
                        logger.error("Non-retryable embedding error batch=%d: %s", batch_idx, exc)
                        raise EmbeddingError("Embedding request was rejected.", detail=str(exc)) from exc

        raise EmbeddingError(
            f"Embedding batch {batch_idx} failed after {MAX_RETRIES} retries.",
            detail=str(last_error),
        ) from last_error

    async def _call_openai(self, batch: list[str]) -> list[list[float]]:
        kwargs: dict = {"model": self._model, "input": batch}
        # dimensions param only works for text-embedding-3-* models
        if self._model.startswith("text-embedding-3") and self._dimensions != 1536:
            kwargs["dimensions"] = self._dimensions

        response = await self._client.embeddings.create(**kwargs)
        ordered = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in ordered]
