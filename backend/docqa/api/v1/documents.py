"""
Documents API Router

POST /api/v1/documents/upload           → store + index (or flag for OCR)
GET  /api/v1/documents                  → newest documents first
GET  /api/v1/documents/{id}/file        → short-lived signed URL to the raw file
POST /api/v1/documents/{id}/reindex     → replace a document's chunks from new text

Upload request lifecycle:
  ┌──────────────────────────────────────────────────────────┐
  │ 1. Read multipart ``file`` (+ optional ``text``,          │
  │    ``document_id``)                                       │
  │ 2. IngestionService.ingest():                             │
  │      create row → S3 put → text? → chunk → embed → insert │
  │ 3. needsOcr=true when a PDF had no text layer             │
  └──────────────────────────────────────────────────────────┘

All failures are raised as DocQAError subclasses and rendered by the
application-level handler in docqa.main.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, File, Form, Query, UploadFile, status

from docqa.api.dependencies import AppConfig, Ingestion, Storage, Store
from docqa.core.errors import MissingFile, NotFoundError
from docqa.schemas.documents import (
    DocumentListResponse,
    DocumentSummary,
    FileUrlResponse,
    ReindexRequest,
    ReindexResponse,
    UploadResponse,
)
from docqa.schemas.errors import ErrorResponse

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/documents",
    tags=["Documents"],
)


# ---------------------------------------------------------------------------
# POST /documents/upload
# ---------------------------------------------------------------------------

@router.post(
    "/upload",
    response_model=UploadResponse,
    status_code=status.HTTP_200_OK,
    summary="Upload a document",
    description=(
        "Accepts plain text or PDF. Text (supplied, decoded, or read from the PDF "
        "text layer) is chunked and indexed before the response is returned. "
        "Scanned PDFs come back with needsOcr=true."
    ),
    responses={
        400: {"model": ErrorResponse, "description": "Missing file or no usable text"},
        404: {"model": ErrorResponse, "description": "document_id does not exist"},
        502: {"model": ErrorResponse, "description": "Storage or embedding provider failed"},
    },
)
async def upload_document(
    ingestion:   Ingestion,
    file:        Optional[UploadFile] = File(None, description="Document file (PDF or text)"),
    text:        Optional[str]        = Form(None, description="Already-extracted text, if the client has it"),
    document_id: Optional[int]        = Form(None, description="Attach to an existing document instead of creating one"),
) -> UploadResponse:
    if file is None:
        raise MissingFile()

    raw_bytes = await file.read()
    result = await ingestion.ingest(
        raw_bytes,
        file.filename,
        document_id=document_id,
        mime_hint=file.content_type,
        extracted_text=text,
    )

    return UploadResponse(
        document_id=result.document_id,
        chunks=result.chunks,
        needs_ocr=result.needs_ocr,
        truncated=result.truncated,
        total_windows=result.total_windows,
    )


# ---------------------------------------------------------------------------
# GET /documents
# ---------------------------------------------------------------------------

@router.get(
    "",
    response_model=DocumentListResponse,
    summary="List documents, newest first",
)
async def list_documents(store: Store, cfg: AppConfig) -> DocumentListResponse:
    docs = await store.list_documents(cfg.document_list_limit)
    return DocumentListResponse(
        documents=[
            DocumentSummary(
                id=d.id,
                filename=d.filename,
                mime=d.mime_type,
                size=d.size_bytes,
                ocr_status=d.ocr_status,
            )
            for d in docs
        ]
    )


# ---------------------------------------------------------------------------
# GET /documents/{document_id}/file
# ---------------------------------------------------------------------------

@router.get(
    "/{document_id}/file",
    response_model=FileUrlResponse,
    summary="Signed URL for the stored file",
    responses={404: {"model": ErrorResponse, "description": "No stored file for this document"}},
)
async def get_file_url(
    document_id: int,
    store:   Store,
    storage: Storage,
    inline:  bool = Query(False, description="1 = preview in the browser, 0 = download"),
) -> FileUrlResponse:
    doc = await store.get_document(document_id)
    if doc is None or not doc.s3_key:
        raise NotFoundError(f"No stored file for document {document_id}.", kind="NO_STORED_FILE")

    signed = await storage.generate_presigned_get(
        doc.s3_key,
        inline=inline,
        filename=doc.filename,
        content_type=doc.mime_type,
    )
    return FileUrlResponse(url=signed.url, expires_in=signed.expires_in)


# ---------------------------------------------------------------------------
# POST /documents/{document_id}/reindex
# ---------------------------------------------------------------------------

@router.post(
    "/{document_id}/reindex",
    response_model=ReindexResponse,
    summary="Replace a document's chunks",
    responses={
        400: {"model": ErrorResponse, "description": "Text is empty after cleaning"},
        404: {"model": ErrorResponse, "description": "Unknown document"},
    },
)
async def reindex_document(
    document_id: int,
    body:        ReindexRequest,
    ingestion:   Ingestion,
) -> ReindexResponse:
    result = await ingestion.reindex(document_id, body.text)
    return ReindexResponse(
        document_id=result.document_id,
        chunks=result.chunks,
        truncated=result.truncated,
        total_windows=result.total_windows,
    )
