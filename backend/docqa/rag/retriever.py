"""
Retrieval engine — nearest chunks for a question

    question ──embed_query──▶ vector ──pgvector L2 (<->)──▶ top-k chunks

The same embedding model is used here and at ingestion time, so stored and
query vectors always share a dimensionality. Ranking is pure nearest-neighbour
distance; there is no re-ranking or score threshold.
"""

from __future__ import annotations

import logging
import time

from docqa.core.errors import EmptyIndex
from docqa.db.repository import DocumentStore
from docqa.models.records import RetrievedChunk
from docqa.processing.embeddings import Embedder

logger = logging.getLogger(__name__)

DEFAULT_TOP_K = 8


class Retriever:
    """Rank every indexed chunk against one query."""

    def __init__(self, store: DocumentStore, embedder: Embedder) -> None:
        self._store    = store
        self._embedder = embedder

    async def retrieve(self, query_text: str, k: int = DEFAULT_TOP_K) -> list[RetrievedChunk]:
        """
        Return at most ``k`` chunks, nearest first.

        Raises:
            EmptyIndex: nothing has been indexed yet. Checked before the query
                        is embedded, so an empty question fails the same way.
        """
        if await self._store.count_chunks() == 0:
            raise EmptyIndex()

        await self._store.release()

        t0 = time.monotonic()
        # The embeddings API rejects empty input.
        vector = await self._embedder.embed_query(query_text.strip() or " ")
        ranked = await self._store.nearest_chunks(vector, k)
        await self._store.release()

        logger.info(
            "Retrieval | k=%d hits=%d elapsed_ms=%.0f",
            k, len(ranked), (time.monotonic() - t0) * 1000,
        )
        return ranked
