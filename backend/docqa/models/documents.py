"""
SQLAlchemy ORM Models — Documents & Chunks

Mapped classes (2.x style) for full async support. The ``chunks.embedding``
column is a pgvector ``vector(N)`` sized from ``settings.embedding_dimensions``;
it must match the embedding model used for both ingestion and queries.

Contiguity invariant:
    For each document the stored chunk_index values are exactly 0..N-1.
    It is maintained by replacing a document's chunk set wholesale
    (see DocumentRepository.replace_chunks), never by partial update.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pgvector.sqlalchemy import Vector
from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from docqa.core.config import settings


# ---------------------------------------------------------------------------
# Declarative base — shared across all models
# ---------------------------------------------------------------------------

class Base(DeclarativeBase):
    pass


class OcrStatus(str, Enum):
    """
    OCR sub-flow state machine (documents.ocr_status):
        PENDING   — raw file stored, no text, no job started yet
        RUNNING   — Textract job started, job id recorded
        SUCCEEDED — OCR text retrieved and re-indexed
        FAILED    — terminal; see documents.ocr_error
    NULL means the document never needed OCR, or text was later uploaded
    for it directly.
    """
    PENDING   = "PENDING"
    RUNNING   = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED    = "FAILED"


# ---------------------------------------------------------------------------
# Document model — documents
# ---------------------------------------------------------------------------

class Document(Base):
    """One uploaded file. Storage columns stay NULL until raw bytes are stored."""

    __tablename__ = "documents"
    __table_args__ = (
        CheckConstraint(
            "ocr_status IS NULL OR ocr_status IN ('PENDING', 'RUNNING', 'SUCCEEDED', 'FAILED')",
            name="documents_ocr_status_check",
        ),
        Index("idx_documents_filename", "filename", "id"),
    )

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)

    filename: Mapped[str] = mapped_column(Text, nullable=False)

    mime_type: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    size_bytes: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    s3_key: Mapped[Optional[str]] = mapped_column(
        Text,
        nullable=True,
        comment="<prefix>/<document_id>/<epoch_ms>-<sanitized filename>",
    )

    ocr_status: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    ocr_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    textract_job_id: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    chunks: Mapped[list["Chunk"]] = relationship(
        back_populates="document",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __repr__(self) -> str:
        return (
            f"<Document id={self.id} file={self.filename!r} "
            f"ocr_status={self.ocr_status}>"
        )


# ---------------------------------------------------------------------------
# Chunk model — chunks
# ---------------------------------------------------------------------------

class Chunk(Base):
    """One word-window of a document's text plus its embedding."""

    __tablename__ = "chunks"
    __table_args__ = (
        Index("idx_chunks_document_id", "document_id"),
    )

    document_id: Mapped[int] = mapped_column(
        BigInteger,
        ForeignKey("documents.id", ondelete="CASCADE"),
        primary_key=True,
    )
    chunk_index: Mapped[int] = mapped_column(Integer, primary_key=True)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    embedding: Mapped[list[float]] = mapped_column(
        Vector(settings.embedding_dimensions),
        nullable=False,
    )

    document: Mapped[Document] = relationship(back_populates="chunks")

    def __repr__(self) -> str:
        return f"<Chunk doc={self.document_id} index={self.chunk_index} chars={len(self.content)}>"
