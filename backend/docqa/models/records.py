"""
Typed records returned by the storage layer.

Rows are converted here, at the boundary where they are read back, so that
services never handle ORM objects or raw result mappings. Unexpected shapes
are coerced (ids to int) or rejected (unknown ocr_status → ValueError).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional

from docqa.models.documents import Document, OcrStatus


def _parse_ocr_status(value: Any) -> OcrStatus | None:
    if value is None:
        return None
    if isinstance(value, OcrStatus):
        return value
    try:
        return OcrStatus(str(value))
    except ValueError:
        raise ValueError(f"Unexpected ocr_status value: {value!r}") from None


@dataclass(frozen=True)
class DocumentRecord:
    id:              int
    filename:        str
    mime_type:       Optional[str] = None
    size_bytes:      Optional[int] = None
    s3_key:          Optional[str] = None
    ocr_status:      Optional[OcrStatus] = None
    ocr_error:       Optional[str] = None
    textract_job_id: Optional[str] = None
    created_at:      Optional[datetime] = None

    @classmethod
    def from_orm(cls, doc: Document) -> "DocumentRecord":
        return cls(
            id=int(doc.id),
            filename=str(doc.filename),
            mime_type=doc.mime_type,
            size_bytes=int(doc.size_bytes) if doc.size_bytes is not None else None,
            s3_key=doc.s3_key or None,
            ocr_status=_parse_ocr_status(doc.ocr_status),
            ocr_error=doc.ocr_error,
            textract_job_id=doc.textract_job_id or None,
            created_at=doc.created_at,
        )


@dataclass(frozen=True)
class RetrievedChunk:
    """One ranked retrieval hit: (document_id, filename, chunk_index, content)."""
    document_id: int
    filename:    str
    chunk_index: int
    content:     str

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "RetrievedChunk":
        return cls(
            document_id=int(row["document_id"]),
            filename=str(row["filename"]),
            chunk_index=int(row["chunk_index"]),
            content=str(row["content"]),
        )


@dataclass(frozen=True)
class EvidenceChunk:
    """The exact stored text a citation resolves to."""
    document_id: int
    filename:    str
    chunk_index: int
    content:     str

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "EvidenceChunk":
        return cls(
            document_id=int(row["document_id"]),
            filename=str(row["filename"]),
            chunk_index=int(row["chunk_index"]),
            content=str(row["content"]),
        )
