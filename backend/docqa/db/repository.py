"""
Document Store — relational + vector persistence

``DocumentStore`` is the only interface services use to read or write
documents and chunks. ``SqlDocumentStore`` implements it on PostgreSQL with
the pgvector extension; tests substitute an in-memory implementation.

Every write is one logical unit of work and commits before returning.
Reads leave their implicit transaction open until ``release()``, which
callers invoke before waiting on the network (embedding, generation) so
no pooled connection is held across that wait.

``replace_chunks`` is the re-index primitive:

    BEGIN
      SELECT pg_advisory_xact_lock(<document_id>)   -- serialize per document
      DELETE FROM chunks WHERE document_id = <id>
      INSERT ... (0, text0, vec0) ... (N-1, textN-1, vecN-1)
    COMMIT                                          -- lock released here

so concurrent re-indexes of the same document run one after another and
readers never observe a partially indexed document.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Sequence

from sqlalchemy import delete, func, select, text, update
from sqlalchemy.ext.asyncio import AsyncSession

from docqa.models.documents import Chunk, Document, OcrStatus
from docqa.models.records import DocumentRecord, EvidenceChunk, RetrievedChunk

logger = logging.getLogger(__name__)

# Sentinel: "leave the column unchanged"
UNCHANGED = object()


# ---------------------------------------------------------------------------
# Abstract interface
# ---------------------------------------------------------------------------

class DocumentStore(ABC):
    """Persistence capability for documents, chunks and nearest-neighbour search."""

    # ---- documents -------------------------------------------------------

    @abstractmethod
    async def create_document(self, filename: str) -> DocumentRecord:
        """Insert a document row holding only its filename."""

    @abstractmethod
    async def get_document(self, document_id: int) -> DocumentRecord | None:
        ...

    @abstractmethod
    async def record_storage(
        self, document_id: int, *, s3_key: str, mime_type: str, size_bytes: int,
    ) -> None:
        """Attach the stored object's key, content type and size."""

    @abstractmethod
    async def update_ocr(
        self,
        document_id: int,
        status: OcrStatus | None,
        *,
        error: str | None = None,
        job_id: object = UNCHANGED,
    ) -> None:
        """Set ocr_status / ocr_error (and optionally textract_job_id). None clears the status."""

    @abstractmethod
    async def list_documents(self, limit: int) -> list[DocumentRecord]:
        """Newest first (highest id first)."""

    @abstractmethod
    async def latest_document_by_filename(self, filename: str) -> DocumentRecord | None:
        """Most recently created document with this exact filename (highest id)."""

    # ---- chunks ----------------------------------------------------------

    @abstractmethod
    async def replace_chunks(
        self, document_id: int, chunks: Sequence[tuple[str, list[float]]],
    ) -> int:
        """Delete every chunk of the document then insert ``chunks`` as 0..N-1."""

    @abstractmethod
    async def count_chunks(self) -> int:
        """Total chunks across all documents."""

    @abstractmethod
    async def nearest_chunks(self, vector: list[float], k: int) -> list[RetrievedChunk]:
        """The ``k`` chunks closest to ``vector``, nearest first."""

    @abstractmethod
    async def get_chunk(self, document_id: int, chunk_index: int) -> EvidenceChunk | None:
        ...

    # ---- connection ------------------------------------------------------

    async def release(self) -> None:
        """Hand any held connection back before a long non-database wait."""


# ---------------------------------------------------------------------------
# PostgreSQL + pgvector implementation
# ---------------------------------------------------------------------------

class SqlDocumentStore(DocumentStore):
    """One instance per request, bound to that request's AsyncSession."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create_document(self, filename: str) -> DocumentRecord:
        doc = Document(filename=filename)
        self._session.add(doc)
        await self._session.flush()     # assigns id
        await self._session.commit()
        logger.info("Document created | doc=%s file=%s", doc.id, filename)
        return DocumentRecord.from_orm(doc)

    async def get_document(self, document_id: int) -> DocumentRecord | None:
        doc = await self._session.get(Document, document_id)
        return DocumentRecord.from_orm(doc) if doc else None

    async def record_storage(
        self, document_id: int, *, s3_key: str, mime_type: str, size_bytes: int,
    ) -> None:
        await self._session.execute(
            update(Document)
            .where(Document.id == document_id)
            .values(s3_key=s3_key, mime_type=mime_type, size_bytes=size_bytes)
        )
        await self._session.commit()

    async def update_ocr(
        self,
        document_id: int,
        status: OcrStatus | None,
        *,
        error: str | None = None,
        job_id: object = UNCHANGED,
    ) -> None:
        values: dict = {"ocr_status": status.value if status else None, "ocr_error": error}
        if job_id is not UNCHANGED:
            values["textract_job_id"] = job_id
        await self._session.execute(
            update(Document).where(Document.id == document_id).values(**values)
        )
        await self._session.commit()
        logger.info("OCR state | doc=%s status=%s error=%s", document_id, values["ocr_status"], error)

    async def list_documents(self, limit: int) -> list[DocumentRecord]:
        result = await self._session.execute(
            select(Document).order_by(Document.id.desc()).limit(limit)
        )
        return [DocumentRecord.from_orm(d) for d in result.scalars().all()]

    async def latest_document_by_filename(self, filename: str) -> DocumentRecord | None:
        result = await self._session.execute(
            select(Document)
            .where(Document.filename == filename)
            .order_by(Document.id.desc())
            .limit(1)
        )
        doc = result.scalars().first()
        return DocumentRecord.from_orm(doc) if doc else None

    async def replace_chunks(
        self, document_id: int, chunks: Sequence[tuple[str, list[float]]],
    ) -> int:
        session = self._session
        try:
            await session.execute(
                text("SELECT pg_advisory_xact_lock(:doc_id)"), {"doc_id": document_id}
            )
            await session.execute(delete(Chunk).where(Chunk.document_id == document_id))
            session.add_all([
                Chunk(
                    document_id=document_id,
                    chunk_index=index,
                    content=content,
                    embedding=list(vector),
                )
                for index, (content, vector) in enumerate(chunks)
            ])
            await session.commit()
        except Exception:
            await session.rollback()
            raise

        logger.debug("Chunks replaced | doc=%s count=%d", document_id, len(chunks))
        return len(chunks)

    async def count_chunks(self) -> int:
        result = await self._session.execute(select(func.count()).select_from(Chunk))
        return int(result.scalar_one())

    async def nearest_chunks(self, vector: list[float], k: int) -> list[RetrievedChunk]:
        result = await self._session.execute(
            select(
                Chunk.document_id.label("document_id"),
                Document.filename.label("filename"),
                Chunk.chunk_index.label("chunk_index"),
                Chunk.content.label("content"),
            )
            .join(Document, Document.id == Chunk.document_id)
            .order_by(Chunk.embedding.l2_distance(vector))
            .limit(k)
        )
        return [RetrievedChunk.from_row(row) for row in result.mappings().all()]

    async def get_chunk(self, document_id: int, chunk_index: int) -> EvidenceChunk | None:
        result = await self._session.execute(
            select(
                Chunk.document_id.label("document_id"),
                Document.filename.label("filename"),
                Chunk.chunk_index.label("chunk_index"),
                Chunk.content.label("content"),
            )
            .join(Document, Document.id == Chunk.document_id)
            .where(Chunk.document_id == document_id, Chunk.chunk_index == chunk_index)
            .limit(1)
        )
        row = result.mappings().first()
        return EvidenceChunk.from_row(row) if row else None

    async def release(self) -> None:
        # Reads autobegin a transaction that nothing commits; closing ends it
        # and returns the connection to the pool. The session stays usable.
        await self._session.close()
